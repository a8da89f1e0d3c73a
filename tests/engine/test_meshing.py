"""Unit tests for meshing primitives."""

import numpy as np
import pytest
from shapely.geometry import box

from tileortho.engine.meshing import crop, delaunay_mesh, grid_average, refine, subdivide


def _grid(n=11, step=1.0, slope=0.0):
    x, y = np.meshgrid(np.arange(n) * step, np.arange(n) * step)
    x, y = x.ravel(), y.ravel()
    return np.column_stack([x, y, slope * x])


def _edges(vertices, faces):
    tri = vertices[faces]
    return np.linalg.norm(tri - np.roll(tri, -1, axis=1), axis=2)


def _plan_area(vertices, faces):
    a, b, c = (vertices[faces][:, i, :2] for i in range(3))
    ab, ac = b - a, c - a
    return float(np.abs(ab[:, 0] * ac[:, 1] - ab[:, 1] * ac[:, 0]).sum() / 2)


class TestDelaunayMesh:
    """Test suite for delaunay_mesh."""

    def test_regular_grid(self):
        """Test a 10x10 cell grid is fully triangulated."""
        vertices, faces = delaunay_mesh(_grid(), max_edge=2.0)

        assert len(faces) >= 200
        assert _edges(vertices, faces).max() <= 2.0
        assert _plan_area(vertices, faces) == pytest.approx(100.0)

    def test_gap_stays_open(self):
        """Test triangles spanning a gap longer than max_edge are dropped."""
        left = _grid(n=5)
        right = _grid(n=5) + [10.0, 0.0, 0.0]
        vertices, faces = delaunay_mesh(np.concatenate([left, right]), max_edge=2.0)

        assert _edges(vertices, faces).max() <= 2.0
        assert _plan_area(vertices, faces) == pytest.approx(32.0)

    def test_too_few_points(self):
        """Test fewer than three points cannot be meshed."""
        with pytest.raises(ValueError):
            delaunay_mesh(np.zeros((2, 3)), max_edge=1.0)


class TestRefine:
    """Test suite for grid_average and refine."""

    def test_grid_average(self):
        """Test points in the same cell collapse to their mean."""
        xyz = np.array([[0.1, 0.1, 1.0], [0.3, 0.3, 3.0], [1.5, 0.5, 0.0]])
        averaged = grid_average(xyz, 1.0)

        assert len(averaged) == 2
        assert [0.2, 0.2, 2.0] in averaged.round(6).tolist()

    def test_triangle_budget(self):
        """Test the refined mesh respects the triangle budget."""
        target = _grid(n=101, step=0.1)
        vertices, faces = delaunay_mesh(_grid(n=11), max_edge=2.0)

        _, refined = refine(vertices, faces, target, min_triangle_size=0.1, max_triangles=2000)

        assert 0 < len(refined) <= 2000


class TestSubdivide:
    """Test suite for subdivide."""

    def test_edges_below_bound(self):
        """Test subdivision brings every edge under the bound and keeps the area."""
        vertices, faces = delaunay_mesh(_grid(n=3, step=1.0, slope=0.5), max_edge=3.0)

        new_vertices, new_faces = subdivide(vertices, faces, max_edge=0.3)

        assert _edges(new_vertices, new_faces).max() <= 0.3
        assert _plan_area(new_vertices, new_faces) == pytest.approx(_plan_area(vertices, faces))

    def test_input_unchanged(self):
        """Test the input arrays are not modified."""
        vertices, faces = delaunay_mesh(_grid(n=3), max_edge=3.0)
        before = faces.copy()
        subdivide(vertices, faces, max_edge=0.5)
        assert np.array_equal(faces, before)


class TestCrop:
    """Test suite for crop."""

    def test_keeps_inside_portion(self):
        """Test cropping to a window keeps exactly the window area at the right height."""
        vertices, faces = delaunay_mesh(_grid(n=11, slope=0.5), max_edge=2.0)
        window = box(2.5, 2.5, 7.5, 6.0)

        new_vertices, new_faces = crop(vertices, faces, window)

        assert _plan_area(new_vertices, new_faces) == pytest.approx(window.area)
        assert new_vertices[:, 0].min() >= 2.5 - 1e-9
        assert new_vertices[:, 0].max() <= 7.5 + 1e-9
        # Vertices stay on the sloped plane z = 0.5 x
        assert np.allclose(new_vertices[:, 2], 0.5 * new_vertices[:, 0])

    def test_outside_window(self):
        """Test a window away from the mesh leaves nothing."""
        vertices, faces = delaunay_mesh(_grid(), max_edge=2.0)
        _, new_faces = crop(vertices, faces, box(50, 50, 60, 60))
        assert len(new_faces) == 0
