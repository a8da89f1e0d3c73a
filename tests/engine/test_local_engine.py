"""Unit tests for the in-process geometry engine."""

import tempfile
from pathlib import Path

import numpy as np
import pytest
from shapely.geometry import box

from tileortho.common.lidar_io import read_parquet
from tileortho.engine.local import LocalEngine
from tileortho.engine.texturing import UNTEXTURED, best_image_colours
from tileortho.engine.types import CameraImage, Mesh, PointCloud, TexturedMesh


def _image(name, position, colour, path="missing.jpg", with_pixels=True):
    pixels = None
    if with_pixels:
        pixels = np.zeros((50, 100, 3), dtype=np.uint8)
        pixels[:] = colour
    return CameraImage(name=name, camera="Rear Right", path=path, position=position,
                       focal_px=50.0, _pixels=pixels)


class TestBestImageColours:
    """Test suite for per-triangle image selection."""

    def test_nearest_visible_camera_wins(self):
        """Test the closest camera seeing a face provides its colour."""
        centroids = np.array([[10.0, 0.0, 0.0], [-30.0, 0.0, 0.0]])
        images = [
            _image("far", (-5.0, 0.0, 0.0), (0, 0, 255)),
            _image("near", (0.0, 0.0, 0.0), (255, 0, 0)),
            _image("out of reach", (500.0, 0.0, 0.0), (0, 255, 0)),
        ]

        colours, used = best_image_colours(centroids, images, max_distance=50.0)

        assert colours[0].tolist() == [255, 0, 0]
        # Behind every camera
        assert colours[1].tolist() == list(UNTEXTURED)
        assert used == ["near"]
        # Pixels are dropped after use
        assert all(image._pixels is None for image in images[:2])

    def test_unreadable_image_is_skipped(self):
        """Test an image whose file cannot be read does not stop texturing."""
        centroids = np.array([[10.0, 0.0, 0.0]])
        images = [
            _image("broken", (1.0, 0.0, 0.0), (0, 0, 0), with_pixels=False),
            _image("ok", (0.0, 0.0, 0.0), (0, 255, 0)),
        ]

        colours, used = best_image_colours(centroids, images)

        assert colours[0].tolist() == [0, 255, 0]
        assert used == ["ok"]


class TestLocalEngine:
    """Test suite for LocalEngine."""

    def test_count_in_prism(self):
        """Test points are counted by plan position regardless of height."""
        engine = LocalEngine()
        cloud = PointCloud(xyz=np.array([[1.0, 1.0, -500.0], [1.5, 1.5, 900.0], [5.0, 5.0, 0.0]]))

        assert engine.count_in_prism(cloud, box(0, 0, 2, 2)) == 2
        assert engine.count_in_prism(cloud, box(10, 10, 12, 12)) == 0

    def test_separate_near_mask(self):
        """Test separation keeps points near the mask in plan and height."""
        engine = LocalEngine()
        outline = box(0, -4, 10, 4)
        surface = np.array([[0, -4, 0], [10, -4, 0], [10, 4, 0], [0, 4, 0]], dtype=float)
        cloud = PointCloud(xyz=np.array([
            [5.0, 0.0, 0.1],    # on the road
            [5.0, 4.3, 0.0],    # just beside the mask
            [5.0, 6.0, 0.0],    # too far to the side
            [5.0, 3.9, 3.0],    # above the mask
        ]))

        near = engine.separate_near_mask(cloud, outline, surface, 0.5)
        assert near.xyz[:, 1].tolist() == [0.0, 4.3]

        # Without a surface only the plan distance counts
        flat = engine.separate_near_mask(cloud, outline, None, 0.0)
        assert len(flat) == 2

    def test_export_points_formats(self):
        """Test points are written as Parquet or LAS and other suffixes are rejected."""
        engine = LocalEngine()
        cloud = PointCloud(
            xyz=np.array([[100.0, 200.0, 3.0], [101.5, 201.25, 4.0]]),
            intensity=np.array([10.0, 20.0]),
            classification=np.array([2, 11], dtype=np.uint8),
        )
        with tempfile.TemporaryDirectory() as tmpdir:
            parquet = engine.export_points(cloud, Path(tmpdir) / "t.parquet")
            back = read_parquet(parquet)
            assert np.allclose(back.xyz, cloud.xyz)
            assert back.classification.tolist() == [2, 11]

            las = engine.export_points(cloud, Path(tmpdir) / "t.las")
            assert las.exists()

            with pytest.raises(ValueError):
                engine.export_points(cloud, Path(tmpdir) / "t.e57")

    def test_texture_and_export_ortho(self):
        """Test a textured mesh is rendered to a JPEG with world file."""
        engine = LocalEngine()
        vertices = np.array([[0, 0, 0], [4, 0, 0], [4, 4, 0], [0, 4, 0]], dtype=float)
        mesh = Mesh(vertices, np.array([[0, 1, 2], [0, 2, 3]]), name="X0Y0_Mesh")

        textured = engine.texture_mesh(mesh, [])
        assert isinstance(textured, TexturedMesh)
        assert (textured.face_rgb == UNTEXTURED).all()

        with tempfile.TemporaryDirectory() as tmpdir:
            world = engine.export_ortho(Path(tmpdir) / "o_X0Y0.jpg", [textured], (0.0, 4.0),
                                        4.0, 4.0, 0.5, 10)
            assert world.name == "o_X0Y0.jgw"
            assert (Path(tmpdir) / "o_X0Y0.jpg").exists()

    def test_mesh_pipeline_primitives(self):
        """Test rough mesh, refinement, subdivision and crop chain together."""
        engine = LocalEngine()
        x, y = np.meshgrid(np.arange(0, 10.01, 0.5), np.arange(0, 4.01, 0.5))
        cloud = PointCloud(xyz=np.column_stack([x.ravel(), y.ravel(), np.zeros(x.size)]))

        spacing = engine.mean_spacing(cloud)
        rough = engine.mesh_direct(cloud, 15 * spacing)
        refined = engine.refine_mesh(rough, cloud, 0.5, 10_000)
        fine = engine.subdivide(refined, 0.6)
        cropped = engine.crop_to_polygon(fine, box(2, 0, 7, 4))

        assert spacing == pytest.approx(0.5)
        assert fine.longest_edge() <= 0.6
        assert cropped.vertices[:, 0].min() >= 2 - 1e-9
        assert cropped.vertices[:, 0].max() <= 7 + 1e-9
