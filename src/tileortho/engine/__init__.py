"""Geometry engine boundary and data handles.

`GeometryEngine` is the interface the pipeline calls; the in-process
implementation lives in :mod:`tileortho.engine.local`.
"""

from .base import GeometryEngine
from .types import CameraImage, Mesh, PointCloud, Projection, TexturedMesh, Trajectory

__all__ = [
    "GeometryEngine",
    "CameraImage",
    "Mesh",
    "PointCloud",
    "Projection",
    "TexturedMesh",
    "Trajectory",
]
