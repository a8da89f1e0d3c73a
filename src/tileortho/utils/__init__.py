"""Utility functions for the orthomosaic pipeline."""

from .logging import get_logger, configure_run_log
from .config import load_config, merge_overrides
from .tiling import generate_cells, grid_shape, tile_id

__all__ = [
    "get_logger",
    "configure_run_log",
    "load_config",
    "merge_overrides",
    "generate_cells",
    "grid_shape",
    "tile_id",
]
