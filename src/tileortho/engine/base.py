"""Interface of the geometry engine used by the mosaic pipeline.

The pipeline only orchestrates; every computational primitive (point
filtering and separation, meshing, texturing, rasterisation and point
export) is delegated to an engine implementing this interface.  Calls
are synchronous and may raise any exception; the calling stage decides
whether a failure is fatal or only degrades the current unit.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Sequence, Tuple, Union

import numpy as np
from shapely.geometry import Polygon

from .types import CameraImage, Mesh, PointCloud, TexturedMesh

Renderable = Union[PointCloud, TexturedMesh]


class GeometryEngine(ABC):
    """Computational services called by the pipeline stages."""

    @abstractmethod
    def count_in_prism(self, cloud: PointCloud, footprint: Polygon) -> int:
        """Number of points inside the vertical extrusion of ``footprint``."""

    @abstractmethod
    def mean_spacing(self, cloud: PointCloud) -> float:
        """Mean distance between a point and its nearest neighbour."""

    @abstractmethod
    def filter_horizontal(self, cloud: PointCloud, max_angle: float) -> PointCloud:
        """Keep points whose local normal is within ``max_angle`` degrees of vertical."""

    @abstractmethod
    def reduce_noise(self, cloud: PointCloud, strength: float) -> PointCloud:
        """Remove isolated points; ``strength`` in percent (0-100)."""

    @abstractmethod
    def separate_near_mask(self, cloud: PointCloud, outline: Polygon,
                           surface: Optional[np.ndarray], distance: float) -> PointCloud:
        """Points within ``distance`` of a 2.5D mask.

        ``outline`` is the planar footprint of the mask and ``surface``
        its vertices ``(N, 3)``, used to interpolate the mask height.
        Without a surface only the planar distance is tested.
        """

    @abstractmethod
    def mesh_direct(self, cloud: PointCloud, max_edge: float) -> Mesh:
        """Triangulate a cloud, rejecting triangles with an edge above ``max_edge``."""

    @abstractmethod
    def refine_mesh(self, mesh: Mesh, target: PointCloud, min_triangle_size: float,
                    max_triangles: int) -> Mesh:
        """Remesh towards ``target`` with a minimum triangle size and a triangle budget."""

    @abstractmethod
    def subdivide(self, mesh: Mesh, max_edge: float) -> Mesh:
        """Split triangles until no edge exceeds ``max_edge``."""

    @abstractmethod
    def crop_to_polygon(self, mesh: Mesh, footprint: Polygon) -> Mesh:
        """Keep triangles inside or crossing ``footprint``, trimmed to its inside portion."""

    @abstractmethod
    def texture_mesh(self, mesh: Mesh, images: Sequence[CameraImage]) -> TexturedMesh:
        """Colour every triangle from the best-fitting image."""

    @abstractmethod
    def export_ortho(self, path: Path, items: Sequence[Renderable], top_left: Tuple[float, float],
                     width: float, height: float, texel_size: float, point_size: int) -> Path:
        """Render a top-down orthographic image and its world file.

        Returns the path of the written world file.
        """

    @abstractmethod
    def export_points(self, cloud: PointCloud, path: Path) -> Path:
        """Write a cloud in the format implied by the suffix of ``path``."""
