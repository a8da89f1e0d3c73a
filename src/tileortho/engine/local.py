"""In-process geometry engine built on numpy, scipy and shapely.

`LocalEngine` implements every primitive the mosaic pipeline needs so a
survey can be processed without an external geometry package.  Each
method delegates to the functional modules of this package
(`filters`, `meshing`, `texturing`, `raster`) and wraps the results in
the shared data handles.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Tuple

import numpy as np
import shapely
from scipy.interpolate import LinearNDInterpolator
from scipy.spatial import cKDTree
from shapely.geometry import Polygon

from ..common import lidar_io
from . import filters, meshing
from .base import GeometryEngine, Renderable
from .raster import OrthoRasterizer
from .texturing import best_image_colours
from .types import CameraImage, Mesh, PointCloud, TexturedMesh


def surface_height(surface: np.ndarray, xy: np.ndarray) -> np.ndarray:
    """Height of a 2.5D vertex set at planar positions ``xy``."""
    heights = np.full(len(xy), np.nan)
    if len(surface) >= 3:
        heights = LinearNDInterpolator(surface[:, :2], surface[:, 2])(xy)
    outside = np.isnan(heights)
    if outside.any():
        _, nearest = cKDTree(surface[:, :2]).query(xy[outside])
        heights[outside] = surface[nearest, 2]
    return heights


@dataclass
class LocalEngine(GeometryEngine):
    """Reference engine running entirely in the Python process."""

    normal_neighbours: int = 12
    """Neighbourhood size for normal estimation."""

    noise_neighbours: int = 8
    """Neighbourhood size for statistical noise rejection."""

    spacing_sample: int = 100_000
    """Maximum number of points queried when measuring spacing."""

    texture_reach: float = 50.0
    """Cameras further than this from a mesh are not considered for texturing."""

    jpeg_quality: int = 95

    def count_in_prism(self, cloud: PointCloud, footprint: Polygon) -> int:
        if cloud.is_empty:
            return 0
        min_x, min_y, max_x, max_y = footprint.bounds
        xy = cloud.xyz[:, :2]
        near = (xy[:, 0] >= min_x) & (xy[:, 0] <= max_x) & (xy[:, 1] >= min_y) & (xy[:, 1] <= max_y)
        if not near.any():
            return 0
        return int(shapely.intersects_xy(footprint, xy[near, 0], xy[near, 1]).sum())

    def mean_spacing(self, cloud: PointCloud) -> float:
        return filters.mean_spacing(cloud.xyz, sample=self.spacing_sample)

    def filter_horizontal(self, cloud: PointCloud, max_angle: float) -> PointCloud:
        mask = filters.horizontal_mask(cloud.xyz, max_angle, k=self.normal_neighbours)
        return cloud.subset(mask)

    def reduce_noise(self, cloud: PointCloud, strength: float) -> PointCloud:
        return cloud.subset(filters.noise_mask(cloud.xyz, strength, k=self.noise_neighbours))

    def separate_near_mask(self, cloud: PointCloud, outline: Polygon,
                           surface: Optional[np.ndarray], distance: float) -> PointCloud:
        """Points within ``distance`` of the mask, in plan and in height.

        The mask height under a point is interpolated linearly over the
        triangulated mask vertices; outside their hull the nearest vertex
        is used.
        """
        if cloud.is_empty:
            return cloud.subset(np.zeros(0, dtype=np.int64))
        zone = outline.buffer(distance)
        xy = cloud.xyz[:, :2]
        near = shapely.intersects_xy(zone, xy[:, 0], xy[:, 1])
        candidates = np.flatnonzero(near)
        if len(candidates) and surface is not None:
            dz = np.abs(cloud.xyz[candidates, 2] - surface_height(surface, xy[candidates]))
            candidates = candidates[dz <= distance]
        return cloud.subset(candidates)

    def mesh_direct(self, cloud: PointCloud, max_edge: float) -> Mesh:
        vertices, faces = meshing.delaunay_mesh(cloud.xyz, max_edge)
        return Mesh(vertices, faces, name=f"{cloud.name}_rough")

    def refine_mesh(self, mesh: Mesh, target: PointCloud, min_triangle_size: float,
                    max_triangles: int) -> Mesh:
        vertices, faces = meshing.refine(mesh.vertices, mesh.faces, target.xyz,
                                         min_triangle_size, max_triangles)
        return Mesh(vertices, faces, name=mesh.name)

    def subdivide(self, mesh: Mesh, max_edge: float) -> Mesh:
        vertices, faces = meshing.subdivide(mesh.vertices, mesh.faces, max_edge)
        return Mesh(vertices, faces, name=mesh.name)

    def crop_to_polygon(self, mesh: Mesh, footprint: Polygon) -> Mesh:
        vertices, faces = meshing.crop(mesh.vertices, mesh.faces, footprint)
        return Mesh(vertices, faces, name=mesh.name)

    def texture_mesh(self, mesh: Mesh, images: Sequence[CameraImage]) -> TexturedMesh:
        centroids = mesh.vertices[mesh.faces].mean(axis=1)
        colours, used = best_image_colours(centroids, images, max_distance=self.texture_reach)
        return TexturedMesh(mesh.vertices, mesh.faces, name=mesh.name,
                            face_rgb=colours, images_used=used)

    def export_ortho(self, path: Path, items: Sequence[Renderable], top_left: Tuple[float, float],
                     width: float, height: float, texel_size: float, point_size: int) -> Path:
        raster = OrthoRasterizer(top_left=top_left, width=width, height=height, texel_size=texel_size)
        for item in items:
            if isinstance(item, TexturedMesh):
                raster.draw_mesh(item.vertices, item.faces, item.face_rgb)
            elif isinstance(item, PointCloud):
                raster.draw_points(item.xyz, item.colours(), point_size=point_size,
                                   opacity=item.opacity)
        return raster.save(Path(path), quality=self.jpeg_quality)

    def export_points(self, cloud: PointCloud, path: Path) -> Path:
        suffix = Path(path).suffix.lower()
        if suffix in lidar_io.POINT_SUFFIXES:
            return lidar_io.write_las(cloud, path)
        if suffix == ".parquet":
            return lidar_io.write_parquet(cloud, path)
        raise ValueError(f"Unsupported point export format: {suffix}")
