"""Mesh the clipped road surface of a tile.

The mesh is built on the oversized clip of the tile (data straddling
the tile edge is included) and cropped back to the exact tile boundary
at the end, so neighbouring tiles meet without seams.
"""

from dataclasses import dataclass
from typing import List, Sequence

from ..engine.base import GeometryEngine
from ..engine.types import Mesh, PointCloud
from ..utils.logging import get_logger
from .results import StageResult
from .tiler import Tile

logger = get_logger(__name__)


@dataclass
class SurfaceMesher:
    """Rough mesh, refinement, subdivision and crop for one tile."""

    engine: GeometryEngine
    mesh_size: float = 0.01
    """Minimum triangle size of the refined mesh."""
    max_triangles: int = 10_000_000
    spacing_factor: float = 15.0
    """Rough mesh edge limit as a multiple of the mean point spacing."""
    texture_edge: float = 0.05
    """Longest edge after subdivision."""

    def _mesh(self, cloud: PointCloud, tile: Tile) -> Mesh:
        intermediates: List[Mesh] = []
        cropped = None
        try:
            spacing = self.engine.mean_spacing(cloud)
            rough = self.engine.mesh_direct(cloud, self.spacing_factor * spacing)
            intermediates.append(rough)
            if rough.is_empty:
                raise ValueError("rough mesh has no triangles")
            refined = self.engine.refine_mesh(rough, cloud, self.mesh_size, self.max_triangles)
            intermediates.append(refined)
            fine = self.engine.subdivide(refined, self.texture_edge)
            intermediates.append(fine)
            cropped = self.engine.crop_to_polygon(fine, tile.boundary)
        finally:
            for mesh in intermediates:
                if mesh is not cropped:
                    mesh.release()
        if cropped.is_empty:
            cropped.release()
            raise ValueError("no triangles left inside the tile")
        cropped.name = f"{tile.tile_id}_Mesh"
        return cropped

    def build(self, clouds: Sequence[PointCloud], tile: Tile) -> StageResult[Mesh]:
        """Mesh the merged ``clouds``; any failure leaves the tile without a mesh."""
        merged = PointCloud.merge(clouds, name=f"{tile.tile_id}_surface")
        try:
            if len(merged) < 3:
                raise ValueError(f"only {len(merged)} surface points")
            mesh = self._mesh(merged, tile)
        except Exception as exc:
            logger.warning("Unable to mesh tile %s: %s", tile.tile_id, exc)
            return StageResult.failure(tile.tile_id, f"meshing failed: {exc}")
        finally:
            merged.release()
        logger.debug("Tile %s meshed with %d triangles", tile.tile_id, mesh.triangle_count)
        return StageResult.success(mesh)
