"""Tile-based batch orthomosaic pipeline.

Stages, in processing order: `BoundsCalculator`, `TileGridBuilder`,
`RoadMaskExtractor`, `SurfaceClipper`, `SurfaceMesher`,
`TextureCompositor` and `OrthoExporter`, sequenced per tile by
`TileProcessingOrchestrator`.
"""

from .bounds import BoundsCalculator, Extent
from .clipper import SurfaceClipper
from .mesher import SurfaceMesher
from .ortho_exporter import OrthoExporter, point_size_scale
from .pipeline import TileProcessingOrchestrator
from .results import Failure, RunReport, StageResult
from .road_mask import RoadMask, RoadMaskExtractor
from .settings import RunSettings, build_settings
from .texture import TextureCompositor, TexturePool
from .tiler import Tile, TileGrid, TileGridBuilder

__all__ = [
    "BoundsCalculator",
    "Extent",
    "SurfaceClipper",
    "SurfaceMesher",
    "OrthoExporter",
    "point_size_scale",
    "TileProcessingOrchestrator",
    "Failure",
    "RunReport",
    "StageResult",
    "RoadMask",
    "RoadMaskExtractor",
    "RunSettings",
    "build_settings",
    "TextureCompositor",
    "TexturePool",
    "Tile",
    "TileGrid",
    "TileGridBuilder",
]
