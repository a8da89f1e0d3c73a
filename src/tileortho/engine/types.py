"""Data handles exchanged between the pipeline and the geometry engine.

Point clouds, meshes and camera images are plain containers around
numpy arrays.  They carry no processing logic beyond bookkeeping
(merging, subsetting, splitting by class) so that any geometry engine
can consume them.  Every handle exposes ``release()``: the tile loop
calls it on all per-tile handles to keep peak memory bounded over
hundreds of tiles.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np
from PIL import Image

# ASPRS LAS 1.4 standard point classes.
CLASS_NAMES: Dict[int, str] = {
    0: "Created, never classified",
    1: "Unclassified",
    2: "Ground",
    3: "Low Vegetation",
    4: "Medium Vegetation",
    5: "High Vegetation",
    6: "Building",
    7: "Low Point (noise)",
    8: "Reserved",
    9: "Water",
    10: "Rail",
    11: "Road Surface",
    12: "Reserved",
    13: "Wire - Guard (Shield)",
    14: "Wire - Conductor (Phase)",
    15: "Transmission Tower",
    16: "Wire-structure Connector",
    17: "Bridge Deck",
    18: "High Noise",
}


def class_name(code: int) -> str:
    """Return the display name of a classification code."""
    return CLASS_NAMES.get(int(code), f"Class {int(code)}")


def _empty_xyz() -> np.ndarray:
    return np.empty((0, 3), dtype=float)


@dataclass(eq=False)
class PointCloud:
    """A set of 3D points with optional per-point attributes."""

    xyz: np.ndarray = field(default_factory=_empty_xyz)
    """Coordinates, shape (N, 3)."""

    intensity: Optional[np.ndarray] = None
    """Return intensity, shape (N,)."""

    rgb: Optional[np.ndarray] = None
    """True colour, shape (N, 3), uint8."""

    classification: Optional[np.ndarray] = None
    """Classification codes, shape (N,)."""

    name: str = ""

    display_rgb: Optional[np.ndarray] = None
    """Colour used when the cloud is rendered; falls back to ``rgb``."""

    opacity: int = 255
    """Render opacity, 0 (transparent) to 255 (opaque)."""

    visible: bool = True

    def __post_init__(self) -> None:
        self.xyz = np.asarray(self.xyz, dtype=float).reshape(-1, 3)

    def __len__(self) -> int:
        return int(self.xyz.shape[0])

    @property
    def is_empty(self) -> bool:
        return len(self) == 0

    @classmethod
    def merge(cls, clouds: Iterable["PointCloud"], name: str = "") -> "PointCloud":
        """Concatenate clouds into a new cloud.

        An attribute is kept only when every non-empty input carries it.
        """
        parts = [c for c in clouds if not c.is_empty]
        if not parts:
            return cls(name=name)

        def _stack(attr: str) -> Optional[np.ndarray]:
            values = [getattr(c, attr) for c in parts]
            if any(v is None for v in values):
                return None
            return np.concatenate(values, axis=0)

        return cls(
            xyz=np.concatenate([c.xyz for c in parts], axis=0),
            intensity=_stack("intensity"),
            rgb=_stack("rgb"),
            classification=_stack("classification"),
            name=name,
        )

    def subset(self, mask: np.ndarray, name: Optional[str] = None) -> "PointCloud":
        """Return a new cloud holding the points selected by ``mask``."""

        def _take(values: Optional[np.ndarray]) -> Optional[np.ndarray]:
            return None if values is None else values[mask]

        return PointCloud(
            xyz=self.xyz[mask],
            intensity=_take(self.intensity),
            rgb=_take(self.rgb),
            classification=_take(self.classification),
            name=self.name if name is None else name,
        )

    def decimate(self, max_points: int) -> "PointCloud":
        """Keep at most ``max_points`` points using an even, deterministic stride."""
        if max_points <= 0 or len(self) <= max_points:
            return self
        indices = np.linspace(0, len(self) - 1, max_points).astype(np.int64)
        return self.subset(indices)

    def bounding_box(self) -> Tuple[np.ndarray, np.ndarray]:
        """Return ``(low, up)`` corner points of the axis-aligned bounding box."""
        if self.is_empty:
            raise ValueError(f"cloud '{self.name}' is empty")
        return self.xyz.min(axis=0), self.xyz.max(axis=0)

    def class_codes(self) -> List[int]:
        """Sorted list of classification codes present in the cloud."""
        if self.classification is None or self.is_empty:
            return []
        return [int(c) for c in np.unique(self.classification)]

    def explode_by_class(self) -> List[Tuple[int, "PointCloud"]]:
        """Split the cloud into one sub-cloud per classification code."""
        result: List[Tuple[int, PointCloud]] = []
        for code in self.class_codes():
            sub = self.subset(self.classification == code, name=f"{self.name}_{class_name(code)}")
            result.append((code, sub))
        return result

    def colours(self) -> np.ndarray:
        """Colours to render with: display colour, true colour, or mid grey."""
        if self.display_rgb is not None:
            return self.display_rgb
        if self.rgb is not None:
            return self.rgb
        return np.full((len(self), 3), 128, dtype=np.uint8)

    def release(self) -> None:
        """Drop all point data."""
        self.xyz = _empty_xyz()
        self.intensity = None
        self.rgb = None
        self.classification = None
        self.display_rgb = None


@dataclass(eq=False)
class Mesh:
    """A triangulated surface."""

    vertices: np.ndarray
    """Vertex coordinates, shape (N, 3)."""

    faces: np.ndarray
    """Vertex indices per triangle, shape (M, 3)."""

    name: str = ""
    visible: bool = True

    def __post_init__(self) -> None:
        self.vertices = np.asarray(self.vertices, dtype=float).reshape(-1, 3)
        self.faces = np.asarray(self.faces, dtype=np.int64).reshape(-1, 3)

    @property
    def triangle_count(self) -> int:
        return int(self.faces.shape[0])

    @property
    def is_empty(self) -> bool:
        return self.triangle_count == 0

    def edge_lengths(self) -> np.ndarray:
        """Edge lengths per triangle, shape (M, 3)."""
        tri = self.vertices[self.faces]
        return np.linalg.norm(tri - np.roll(tri, -1, axis=1), axis=2)

    def longest_edge(self) -> float:
        if self.is_empty:
            return 0.0
        return float(self.edge_lengths().max())

    def release(self) -> None:
        self.vertices = _empty_xyz()
        self.faces = np.empty((0, 3), dtype=np.int64)


@dataclass(eq=False)
class TexturedMesh(Mesh):
    """A mesh with one colour sampled from the imagery per triangle."""

    face_rgb: np.ndarray = field(default_factory=lambda: np.empty((0, 3), dtype=np.uint8))
    images_used: List[str] = field(default_factory=list)

    def release(self) -> None:
        super().release()
        self.face_rgb = np.empty((0, 3), dtype=np.uint8)
        self.images_used = []


@dataclass(eq=False)
class Trajectory:
    """Sensor travel path of one capture pass."""

    name: str
    vertices: np.ndarray
    """Ordered positions, shape (N, 3)."""

    def __post_init__(self) -> None:
        self.vertices = np.asarray(self.vertices, dtype=float).reshape(-1, 3)

    def release(self) -> None:
        self.vertices = _empty_xyz()


class Projection(str, Enum):
    PERSPECTIVE = "perspective"
    SPHERICAL = "spherical"


CAMERA_LABELS = ("Front Right", "Front Left", "Rear Right", "Rear Left", "Sphere")


def _rotation(yaw: float, pitch: float, roll: float) -> np.ndarray:
    """Body-to-world rotation from heading, pitch and roll in degrees."""
    cy, sy = math.cos(math.radians(yaw)), math.sin(math.radians(yaw))
    cp, sp = math.cos(math.radians(pitch)), math.sin(math.radians(pitch))
    cr, sr = math.cos(math.radians(roll)), math.sin(math.radians(roll))
    rz = np.array([[cy, -sy, 0.0], [sy, cy, 0.0], [0.0, 0.0, 1.0]])
    ry = np.array([[cp, 0.0, sp], [0.0, 1.0, 0.0], [-sp, 0.0, cp]])
    rx = np.array([[1.0, 0.0, 0.0], [0.0, cr, -sr], [0.0, sr, cr]])
    return rz @ ry @ rx


# Rows are the camera axes (x right, y down, z forward) in the body frame.
_BODY_TO_CAMERA = np.array([[0.0, -1.0, 0.0], [0.0, 0.0, -1.0], [1.0, 0.0, 0.0]])


@dataclass(eq=False)
class CameraImage:
    """A georeferenced camera frame used as texture source.

    Perspective frames are projected with a pinhole model looking along
    the body's forward axis; spherical frames are equirectangular
    panoramas centred on the heading.
    """

    name: str
    camera: str
    path: Path
    position: np.ndarray
    kind: Projection = Projection.PERSPECTIVE
    yaw: float = 0.0
    pitch: float = 0.0
    roll: float = 0.0
    focal_px: float = 1000.0
    visible: bool = True
    _pixels: Optional[np.ndarray] = field(default=None, repr=False)

    def __post_init__(self) -> None:
        self.path = Path(self.path)
        self.position = np.asarray(self.position, dtype=float).reshape(3)
        self.kind = Projection(self.kind)

    @property
    def pixels(self) -> np.ndarray:
        """RGB pixel array ``(H, W, 3)``, read on first access."""
        if self._pixels is None:
            with Image.open(self.path) as img:
                self._pixels = np.asarray(img.convert("RGB"))
        return self._pixels

    def release_pixels(self) -> None:
        self._pixels = None

    def project(self, points: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Project world points into pixel coordinates.

        Parameters
        ----------
        points : numpy.ndarray
            World coordinates, shape (N, 3).

        Returns
        -------
        (numpy.ndarray, numpy.ndarray)
            Pixel coordinates ``(N, 2)`` as (column, row) and a boolean
            mask of points that fall inside the frame.
        """
        height, width = self.pixels.shape[:2]
        body = (np.asarray(points, dtype=float) - self.position) @ _rotation(self.yaw, self.pitch, self.roll)
        if self.kind == Projection.SPHERICAL:
            lon = np.arctan2(body[:, 1], body[:, 0])
            lat = np.arctan2(body[:, 2], np.hypot(body[:, 0], body[:, 1]))
            u = (0.5 - lon / (2.0 * np.pi)) * width
            v = (0.5 - lat / np.pi) * height
            uv = np.column_stack([u, v])
            inside = np.ones(len(uv), dtype=bool)
        else:
            cam = body @ _BODY_TO_CAMERA.T
            depth = cam[:, 2]
            safe = np.where(depth > 1e-9, depth, 1.0)
            u = self.focal_px * cam[:, 0] / safe + width / 2.0
            v = self.focal_px * cam[:, 1] / safe + height / 2.0
            uv = np.column_stack([u, v])
            inside = (depth > 1e-9) & (u >= 0) & (u < width) & (v >= 0) & (v < height)
        return uv, inside

    def sample(self, uv: np.ndarray) -> np.ndarray:
        """Nearest-pixel colour lookup for pixel coordinates ``(N, 2)``."""
        pixels = self.pixels
        height, width = pixels.shape[:2]
        cols = np.clip(uv[:, 0].astype(np.int64), 0, width - 1)
        rows = np.clip(uv[:, 1].astype(np.int64), 0, height - 1)
        return pixels[rows, cols]
