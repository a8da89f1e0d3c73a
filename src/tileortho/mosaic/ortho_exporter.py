"""Export of tile orthoimages and point subsets.

Each exported tile produces ``<prefix>_<tileID>.jpg`` and its world
file.  In LIDAR mode the tile's points can additionally be written as
``<prefix>_<tileID>.parquet`` or ``.las``.
"""

import math
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from ..engine.base import GeometryEngine, Renderable
from ..engine.types import PointCloud
from ..utils.logging import get_logger
from .results import StageResult
from .settings import ExportSettings, PointExport
from .tiler import EXPORTED, Tile

logger = get_logger(__name__)

# Default rendered point diameter in ground units.
POINT_FOOTPRINT = 0.05


def point_size_scale(texel_size: float, point_size: Optional[float] = None) -> int:
    """Splat size in pixels for rendering points.

    Parameters
    ----------
    texel_size : float
        Ground size of a pixel.
    point_size : float, optional
        Percentage of the default splat; None uses the default.

    Examples
    --------
    >>> point_size_scale(0.005, 100)
    10
    >>> point_size_scale(0.005)
    10
    """
    if point_size is None:
        return int(math.ceil(POINT_FOOTPRINT / texel_size))
    return int(math.ceil((POINT_FOOTPRINT / texel_size) * (point_size / 100.0)))


@dataclass
class OrthoExporter:
    """Write orthoimages and point exports for tiles."""

    engine: GeometryEngine
    settings: ExportSettings
    point_size: Optional[float] = None
    """Point size percentage used when rendering clouds."""

    @property
    def point_scale(self) -> int:
        return point_size_scale(self.settings.texel_size, self.point_size)

    def export(self, tile: Tile, items: Sequence[Renderable]) -> StageResult[Path]:
        """Render ``items`` over the tile footprint.

        On success the tile is marked green and the image path returned.
        """
        path = self.settings.path_for(tile.tile_id, ".jpg")
        size = tile.size
        try:
            self.engine.export_ortho(path, items, tile.top_left, size, size,
                                     self.settings.texel_size, self.point_scale)
        except Exception as exc:
            logger.error("Unable to export ortho image for tile id %s: %s", tile.tile_id, exc)
            return StageResult.failure(tile.tile_id, f"ortho export failed: {exc}")
        tile.status_color = EXPORTED
        logger.info("Exported %s", path)
        return StageResult.success(path)

    def export_points(self, tile: Tile, cloud: PointCloud, fmt: PointExport) -> StageResult[Path]:
        """Write the tile's points; ``PointExport.NONE`` writes nothing."""
        if fmt is PointExport.NONE:
            return StageResult()
        path = self.settings.path_for(tile.tile_id, fmt.suffix)
        try:
            self.engine.export_points(cloud, path)
        except Exception as exc:
            logger.error("Unable to export points for tile id %s: %s", tile.tile_id, exc)
            return StageResult.failure(tile.tile_id, f"point export failed: {exc}")
        logger.info("Exported %s", path)
        return StageResult.success(path)
