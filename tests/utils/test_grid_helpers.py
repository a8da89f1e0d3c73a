"""Unit tests for grid helpers."""

import itertools

import pytest
from shapely.geometry import box
from shapely.ops import unary_union

from tileortho.utils.tiling import generate_cells, grid_shape, tile_id


class TestGridShape:
    """Test suite for grid_shape."""

    def test_counts_use_ceiling(self):
        """Test row and column counts round up to cover the region."""
        assert grid_shape(-10.0, -10.0, 130.0, 90.0, 50.0) == (3, 2)
        assert grid_shape(0.0, 0.0, 100.0, 100.0, 50.0) == (2, 2)
        assert grid_shape(0.0, 0.0, 100.1, 0.5, 50.0) == (3, 1)

    def test_invalid_size(self):
        """Test a non-positive cell size is rejected."""
        with pytest.raises(ValueError):
            grid_shape(0.0, 0.0, 10.0, 10.0, 0.0)


class TestGenerateCells:
    """Test suite for generate_cells."""

    def test_row_major_from_upper_left(self):
        """Test rows advance along +X and columns along -Y from the upper-left corner."""
        cells = list(generate_cells(-10.0, -10.0, 130.0, 90.0, 50.0))

        assert [(r, c) for r, c, _ in cells] == [(0, 0), (0, 1), (1, 0), (1, 1), (2, 0), (2, 1)]
        assert cells[0][2] == (-10.0, 40.0, 40.0, 90.0)
        assert cells[1][2] == (-10.0, -10.0, 40.0, 40.0)
        assert cells[2][2] == (40.0, 40.0, 90.0, 90.0)

    def test_cells_cover_region_without_overlap(self):
        """Test candidate cells have uniform size, never overlap and cover the region."""
        region = (3.0, -7.0, 181.0, 64.0)
        size = 25.0
        cells = [box(*bbox) for _, _, bbox in generate_cells(*region, size)]

        rows, columns = grid_shape(*region, size)
        assert len(cells) == rows * columns

        for cell in cells:
            x0, y0, x1, y1 = cell.bounds
            assert x1 - x0 == pytest.approx(size)
            assert y1 - y0 == pytest.approx(size)

        for a, b in itertools.combinations(cells, 2):
            assert a.intersection(b).area == pytest.approx(0.0)

        assert unary_union(cells).buffer(1e-9).contains(box(*region))


class TestTileId:
    """Test suite for tile_id."""

    def test_padding_matches_totals(self):
        """Test field widths follow the digit counts of the totals."""
        assert tile_id(3, 5, 12, 7) == "X03Y5"
        assert tile_id(3, 0, 120, 10) == "X003Y00"
        assert tile_id(0, 1, 3, 2) == "X0Y1"

    def test_names_are_unique(self):
        """Test every cell of a grid gets a distinct name."""
        names = {tile_id(r, c, 12, 7) for r in range(12) for c in range(7)}
        assert len(names) == 84
