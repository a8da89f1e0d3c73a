"""Unit tests for point cloud file input and output."""

import tempfile
from pathlib import Path

import laspy
import numpy as np

from tileortho.common.lidar_io import load_laz_points, write_las
from tileortho.engine.types import PointCloud


def _cloud():
    rng = np.random.default_rng(7)
    xyz = np.column_stack([rng.uniform(1000, 1100, 500), rng.uniform(2000, 2050, 500), rng.uniform(0, 5, 500)])
    return PointCloud(
        xyz=xyz,
        intensity=rng.integers(0, 4000, 500).astype(float),
        rgb=rng.integers(0, 256, (500, 3)).astype(np.uint8),
        classification=rng.choice([2, 6, 11], 500).astype(np.uint8),
        name="scan",
    )


class TestLasIO:
    """Test suite for LAS reading and writing."""

    def test_write_then_read(self):
        """Test attributes survive a LAS file at millimetre precision."""
        cloud = _cloud()
        with tempfile.TemporaryDirectory() as tmpdir:
            path = write_las(cloud, Path(tmpdir) / "scan.las")
            back = load_laz_points(path, chunk_size=128)

        assert len(back) == len(cloud)
        assert np.allclose(back.xyz, cloud.xyz, atol=0.001)
        assert back.classification.tolist() == cloud.classification.tolist()
        assert np.array_equal(back.rgb, cloud.rgb)
        assert back.name == "scan"

    def test_clip_box_applied_while_reading(self):
        """Test only points inside the box are returned."""
        cloud = _cloud()
        low = np.array([1000.0, 2000.0, -10.0])
        up = np.array([1050.0, 2025.0, 10.0])
        with tempfile.TemporaryDirectory() as tmpdir:
            path = write_las(cloud, Path(tmpdir) / "scan.las")
            back = load_laz_points(path, box=(low, up), chunk_size=100)

        expected = np.all((cloud.xyz >= low) & (cloud.xyz <= up), axis=1).sum()
        assert abs(len(back) - expected) <= 2  # points on the box edge may move by rounding
        assert np.all(back.xyz >= low) and np.all(back.xyz <= up)

    def test_box_without_points(self):
        """Test a box missing the data yields an empty cloud."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = write_las(_cloud(), Path(tmpdir) / "scan.las")
            back = load_laz_points(path, box=(np.zeros(3), np.ones(3)))

        assert back.is_empty

    def test_sixteen_bit_colour_decided_per_file(self):
        """Test a dark first chunk of a 16-bit file is scaled like the rest."""
        header = laspy.LasHeader(point_format=3, version="1.2")
        header.scales = np.array([0.001, 0.001, 0.001])
        las = laspy.LasData(header)
        n = 200
        las.x = np.arange(n, dtype=float)
        las.y = np.zeros(n)
        las.z = np.zeros(n)
        red = np.where(np.arange(n) < 100, 200, 51400).astype(np.uint16)
        las.red, las.green, las.blue = red, red, red
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "sixteen.las"
            las.write(str(path))
            back = load_laz_points(path, chunk_size=100)

        assert back.rgb[:100, 0].tolist() == [0] * 100
        assert back.rgb[100:, 0].tolist() == [200] * 100
