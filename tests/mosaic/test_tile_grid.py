"""Unit tests for bounds and the tile grid."""

import tempfile
from pathlib import Path

import numpy as np
import pytest

from tileortho.engine.local import LocalEngine
from tileortho.engine.types import PointCloud
from tileortho.errors import BoundsError, GridError
from tileortho.mosaic.bounds import BoundsCalculator
from tileortho.mosaic.tiler import EXPORTED, Tile, TileGridBuilder, export_tile_index, load_tile_index


def _cloud(xy, z=0.0):
    xy = np.asarray(xy, dtype=float)
    return PointCloud(xyz=np.column_stack([xy, np.full(len(xy), z)]))


class TestBoundsCalculator:
    """Test suite for BoundsCalculator."""

    def test_margin(self):
        """Test the margin widens X and Y on both sides and Z only upward."""
        clouds = [_cloud([[0.0, 0.0]], z=1.0), _cloud([[120.0, 80.0]], z=5.0)]

        extent = BoundsCalculator().compute(clouds)

        assert (extent.min_x, extent.max_x) == (-10.0, 130.0)
        assert (extent.min_y, extent.max_y) == (-10.0, 90.0)
        assert extent.z_range == (1.0, 15.0)
        assert extent.top_left == (-10.0, 90.0)

    def test_no_points(self):
        """Test an extent cannot be computed without points."""
        with pytest.raises(BoundsError):
            BoundsCalculator().compute([PointCloud()])


class TestTileGridBuilder:
    """Test suite for TileGridBuilder."""

    def test_end_to_end_scenario(self):
        """Test 6 candidate cells of which 4 hold data yield exactly 4 named tiles."""
        sample = _cloud([[0.0, 0.0], [120.0, 80.0], [60.0, 60.0], [60.0, 20.0]])
        extent = BoundsCalculator().compute([sample])

        grid = TileGridBuilder(LocalEngine(), size=50.0).build(extent, sample).value

        assert (grid.total_rows, grid.total_columns) == (3, 2)
        assert [t.tile_id for t in grid.tiles] == ["X0Y1", "X1Y0", "X1Y1", "X2Y0"]
        for tile in grid.tiles:
            assert tile.size == pytest.approx(50.0)
            assert tile.boundary.area == pytest.approx(2500.0)

    def test_gap_is_pruned(self):
        """Test cells over a gap in the data are not returned."""
        rng = np.random.default_rng(3)
        left = rng.uniform([1.0, 1.0], [39.0, 39.0], (500, 2))
        right = rng.uniform([161.0, 1.0], [189.0, 39.0], (500, 2))
        # Pin the extent so the grid layout is known
        corners = [[1.0, 1.0], [189.0, 39.0]]
        sample = _cloud(np.concatenate([left, right, corners]))
        extent = BoundsCalculator().compute([sample])

        grid = TileGridBuilder(LocalEngine(), size=50.0).build(extent, sample).value

        assert grid.total_rows == 5
        assert [t.tile_id for t in grid.tiles] == ["X0Y0", "X3Y0"]

    def test_failing_cell_is_discarded(self):
        """Test a cell whose containment test raises is skipped and reported."""

        class FlakyEngine(LocalEngine):
            calls = 0

            def count_in_prism(self, cloud, footprint):
                FlakyEngine.calls += 1
                if FlakyEngine.calls == 1:
                    raise RuntimeError("engine hiccup")
                return super().count_in_prism(cloud, footprint)

        sample = _cloud([[0.0, 0.0], [120.0, 80.0], [60.0, 60.0], [60.0, 20.0]])
        extent = BoundsCalculator().compute([sample])

        result = TileGridBuilder(FlakyEngine(), size=50.0).build(extent, sample)

        assert [f.unit for f in result.failures] == ["X0Y0"]
        assert len(result.value) == 4

    def test_tiles_do_not_overlap(self):
        """Test surviving tiles share at most an edge."""
        rng = np.random.default_rng(5)
        sample = _cloud(rng.uniform(0, 300, (2000, 2)))
        extent = BoundsCalculator().compute([sample])

        tiles = TileGridBuilder(LocalEngine(), size=50.0).build(extent, sample).value.tiles

        for i, a in enumerate(tiles):
            for b in tiles[i + 1:]:
                assert a.boundary.intersection(b.boundary).area == pytest.approx(0.0)


class TestTileIndex:
    """Test suite for tile index export and loading."""

    def test_export_and_select(self):
        """Test a written index can be loaded back restricted to some tiles."""
        tiles = [
            Tile("X0Y0", 0, 0, (0.0, 50.0, 50.0, 100.0), (0.0, 10.0)),
            Tile("X0Y1", 0, 1, (0.0, 0.0, 50.0, 50.0), (0.0, 10.0), status_color=EXPORTED),
            Tile("X1Y0", 1, 0, (50.0, 50.0, 100.0, 100.0), (0.0, 10.0)),
        ]
        with tempfile.TemporaryDirectory() as tmpdir:
            path = export_tile_index(tiles, Path(tmpdir) / "ortho_tiles.parquet")

            loaded = load_tile_index(path, ["X1Y0", "X0Y0"])
            assert [t.tile_id for t in loaded] == ["X0Y0", "X1Y0"]
            assert loaded[1].bbox == (50.0, 50.0, 100.0, 100.0)
            assert loaded[1].top_left == (50.0, 100.0)

            with pytest.raises(GridError):
                load_tile_index(path, ["X9Y9"])

    def test_missing_index(self):
        """Test a missing index is a grid error."""
        with pytest.raises(GridError):
            load_tile_index(Path("/nonexistent/tiles.parquet"))
