"""Partition the survey extent into square mosaic tiles.

The extent is covered by a regular grid of square cells anchored at its
upper-left corner: rows advance along +X, columns along -Y.  A cell is
kept as a `Tile` only when its vertical prism contains at least one
point of the sample cloud; empty cells are never materialised.  Tile
names encode row and column zero-padded to the digit width of the
respective totals (``X03Y5`` for 12 rows and 7 columns).

The resulting grid can be exported to a Parquet tile index and loaded
again later to reprocess a selection of tiles.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from shapely.geometry import Polygon

from ..engine.base import GeometryEngine
from ..engine.types import PointCloud
from ..errors import GridError
from ..utils.logging import get_logger
from ..utils.tiling import generate_cells, grid_shape, tile_id
from .bounds import Extent
from .results import StageResult

logger = get_logger(__name__)

PENDING = "red"
EXPORTED = "green"


@dataclass(eq=False)
class Tile:
    """A square cell of the mosaic grid."""
    tile_id: str
    row: int
    column: int
    bbox: Tuple[float, float, float, float]
    """``(xmin, ymin, xmax, ymax)``."""
    z_range: Tuple[float, float] = (0.0, 0.0)
    """Elevation range of the survey, used to size clip boxes."""
    status_color: str = PENDING
    """Display colour only: green once the ortho image is written."""

    @property
    def corners(self) -> np.ndarray:
        """Boundary corners ``(4, 2)`` clockwise from the upper-left one."""
        x0, y0, x1, y1 = self.bbox
        return np.array([[x0, y1], [x1, y1], [x1, y0], [x0, y0]])

    @property
    def boundary(self) -> Polygon:
        return Polygon(self.corners)

    @property
    def top_left(self) -> Tuple[float, float]:
        return self.bbox[0], self.bbox[3]

    @property
    def size(self) -> float:
        """Edge length, a quarter of the boundary length."""
        return self.boundary.length / 4.0

    def to_metadata_dict(self) -> Dict:
        """Convert the tile to a flat record for the tile index."""
        return {
            "tile_id": self.tile_id,
            "row": self.row,
            "column": self.column,
            "bbox_x_min": self.bbox[0],
            "bbox_y_min": self.bbox[1],
            "bbox_x_max": self.bbox[2],
            "bbox_y_max": self.bbox[3],
            "z_min": self.z_range[0],
            "z_max": self.z_range[1],
            "status": self.status_color,
        }

    @classmethod
    def from_metadata_dict(cls, record: Dict) -> "Tile":
        return cls(
            tile_id=str(record["tile_id"]),
            row=int(record["row"]),
            column=int(record["column"]),
            bbox=(float(record["bbox_x_min"]), float(record["bbox_y_min"]),
                  float(record["bbox_x_max"]), float(record["bbox_y_max"])),
            z_range=(float(record["z_min"]), float(record["z_max"])),
        )


@dataclass
class TileGrid:
    """Surviving tiles plus the dimensions of the full candidate grid."""
    tiles: List[Tile]
    total_rows: int
    total_columns: int

    def __len__(self) -> int:
        return len(self.tiles)


@dataclass
class TileGridBuilder:
    """Build the grid of non-empty tiles covering an extent."""

    engine: GeometryEngine
    size: float = 50.0
    """Tile edge length."""

    def build(self, extent: Extent, sample: PointCloud) -> StageResult[TileGrid]:
        """Create every non-empty tile, row-major.

        Parameters
        ----------
        extent : Extent
            Region to cover.
        sample : PointCloud
            Merged sample cloud deciding which cells hold data.

        Returns
        -------
        StageResult of TileGrid
            The grid; cells whose containment test raised are listed as
            failures and left out.
        """
        total_rows, total_columns = grid_shape(extent.min_x, extent.min_y, extent.max_x, extent.max_y, self.size)
        result: StageResult[TileGrid] = StageResult()
        tiles: List[Tile] = []
        for row, column, bbox in generate_cells(extent.min_x, extent.min_y, extent.max_x, extent.max_y, self.size):
            name = tile_id(row, column, total_rows, total_columns)
            x0, y0, x1, y1 = bbox
            try:
                count = self.engine.count_in_prism(sample, Polygon([(x0, y1), (x1, y1), (x1, y0), (x0, y0)]))
            except Exception as exc:
                logger.warning("Discarding cell %s: %s", name, exc)
                result.add_failure(name, str(exc))
                continue
            if count > 0:
                tiles.append(Tile(name, row, column, bbox, extent.z_range))
        logger.info("Grid of %d x %d cells, %d tiles hold data", total_rows, total_columns, len(tiles))
        result.value = TileGrid(tiles, total_rows, total_columns)
        return result


def export_tile_index(tiles: Sequence[Tile], path: Path) -> Path:
    """Write the tile grid to a Parquet file, one row per tile."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    df = pd.DataFrame([t.to_metadata_dict() for t in tiles],
                      columns=list(Tile("", 0, 0, (0, 0, 0, 0)).to_metadata_dict()))
    df.to_parquet(path, index=False)
    return path


def load_tile_index(path: Path, tile_ids: Optional[Sequence[str]] = None) -> List[Tile]:
    """Load tiles from a Parquet tile index.

    Parameters
    ----------
    path : Path
        Index written by `export_tile_index`.
    tile_ids : sequence of str, optional
        Keep only these tiles, in index order.

    Raises
    ------
    GridError
        If the index cannot be read or a requested tile is missing.
    """
    path = Path(path)
    if not path.exists():
        raise GridError(f"Tile index not found: {path}")
    try:
        df = pd.read_parquet(path)
        tiles = [Tile.from_metadata_dict(r) for r in df.to_dict('records')]
    except (OSError, KeyError, ValueError) as exc:
        raise GridError(f"Unreadable tile index {path}: {exc}") from exc
    if tile_ids:
        wanted = set(tile_ids)
        missing = wanted - {t.tile_id for t in tiles}
        if missing:
            raise GridError(f"Tiles not in index: {', '.join(sorted(missing))}")
        tiles = [t for t in tiles if t.tile_id in wanted]
    return tiles
