"""Survey dataset handle.

A survey is opened from a path and queried for point clouds,
trajectories and camera images.  Two layouts are understood:

* a structured project directory holding ``survey.yaml``::

      clouds: [scans/run1.laz, scans/run2.laz]
      trajectories: [trajectories/run1.csv, trajectories/run2.csv]
      images: images/index.csv

  trajectory CSV files hold ``x, y, z`` columns in travel order; the
  image index holds ``track, camera, path, x, y, z`` and optionally
  ``name, kind, yaw, pitch, roll, focal_px``;
* a plain LAS/LAZ file, or a directory of them, offering point clouds
  only.

Point clouds are always requested from the structured layout first and
fall back to the plain layout.  While a clip box is active (see
:meth:`SurveyDataset.clipped`) every query only returns data inside it.
"""

from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple, Union

import laspy
import numpy as np
import pandas as pd
import yaml

from ..engine.types import CameraImage, PointCloud, Projection, Trajectory
from ..errors import SurveyOpenError, SurveyReadError
from ..utils.logging import get_logger
from .lidar_io import POINT_SUFFIXES, load_laz_points

logger = get_logger(__name__)

MANIFEST = "survey.yaml"


@dataclass(frozen=True)
class ClipBox:
    """Axis-aligned box restricting which data a survey query returns."""

    center: Tuple[float, float, float]
    length: float
    """Extent along X."""
    width: float
    """Extent along Y."""
    height: float = 300.0
    """Extent along Z."""

    @classmethod
    def around(cls, corners: np.ndarray, z_range: Tuple[float, float], buffer: float,
               height: float = 300.0) -> "ClipBox":
        """Box centred on a square footprint, enlarged by ``buffer`` in X and Y.

        Parameters
        ----------
        corners : numpy.ndarray
            Footprint corners, shape (4, 2).
        z_range : (float, float)
            Lowest and highest elevation of the survey; the box is
            centred between them.
        buffer : float
            Added to the footprint's edge length (half on each side).
        height : float, optional
            Vertical extent, enlarged to the Z range when that is taller.
        """
        corners = np.asarray(corners, dtype=float)
        cx, cy = corners.mean(axis=0)
        size_x = float(np.ptp(corners[:, 0]))
        size_y = float(np.ptp(corners[:, 1]))
        z_low, z_high = z_range
        return cls((float(cx), float(cy), (z_low + z_high) / 2.0), size_x + buffer, size_y + buffer,
                   max(height, z_high - z_low))

    def corners(self) -> Tuple[np.ndarray, np.ndarray]:
        half = np.array([self.length, self.width, self.height]) / 2.0
        center = np.asarray(self.center)
        return center - half, center + half

    def contains(self, xyz: np.ndarray) -> np.ndarray:
        low, up = self.corners()
        return np.all((xyz >= low) & (xyz <= up), axis=1)


class SurveyDataset:
    """Access to the clouds, trajectories and imagery of one survey."""

    def __init__(self, root: Path, manifest: Optional[Dict[str, Any]] = None):
        self.root = Path(root)
        self.manifest = manifest
        self.clip_box: Optional[ClipBox] = None

    @classmethod
    def open(cls, path: Union[str, Path]) -> "SurveyDataset":
        """Open a survey directory or point cloud file.

        Raises
        ------
        SurveyOpenError
            If the path does not exist or holds no usable survey data.
        """
        path = Path(path).expanduser()
        if not path.exists():
            raise SurveyOpenError(f"Survey data not found: {path}")
        if path.is_file():
            if path.suffix.lower() not in POINT_SUFFIXES:
                raise SurveyOpenError(f"Unsupported survey file: {path}")
            return cls(path)
        manifest = None
        manifest_path = path / MANIFEST
        if manifest_path.is_file():
            try:
                with open(manifest_path, 'r', encoding='utf-8') as f:
                    manifest = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as exc:
                logger.warning("Ignoring unreadable %s: %s", manifest_path, exc)
        dataset = cls(path, manifest if isinstance(manifest, dict) else None)
        if dataset.manifest is None and not dataset._plain_files():
            raise SurveyOpenError(f"No survey manifest or point cloud files in {path}")
        logger.info("Opened survey %s (%s)", path, "structured" if dataset.manifest is not None else "point clouds only")
        return dataset

    @property
    def is_structured(self) -> bool:
        return self.manifest is not None

    @contextmanager
    def clipped(self, box: ClipBox) -> Iterator[ClipBox]:
        """Activate ``box`` as import filter for the duration of the block."""
        previous = self.clip_box
        self.clip_box = box
        try:
            yield box
        finally:
            self.clip_box = previous

    def _resolve(self, entry: str) -> Path:
        p = Path(entry)
        return p if p.is_absolute() else self.root / p

    def _plain_files(self) -> List[Path]:
        if self.root.is_file():
            return [self.root]
        return sorted(p for p in self.root.rglob("*") if p.suffix.lower() in POINT_SUFFIXES)

    def _read_clouds(self, files: Sequence[Path]) -> List[PointCloud]:
        box = self.clip_box.corners() if self.clip_box is not None else None
        clouds = [load_laz_points(f, box=box) for f in files]
        return [c for c in clouds if not c.is_empty]

    def import_clouds(self, max_points: int) -> List[PointCloud]:
        """Point clouds inside the active clip box, at most ``max_points`` in total.

        Raises
        ------
        SurveyReadError
            If neither import strategy can read the clouds.
        """
        clouds = None
        if self.manifest is not None:
            try:
                clouds = self._read_clouds([self._resolve(e) for e in self.manifest["clouds"]])
            except (KeyError, TypeError, OSError, ValueError, laspy.errors.LaspyException) as exc:
                logger.warning("Structured cloud import failed (%s), falling back to plain files", exc)
        if clouds is None:
            try:
                clouds = self._read_clouds(self._plain_files())
            except (OSError, ValueError, laspy.errors.LaspyException) as exc:
                raise SurveyReadError(f"Unable to read cloud data from {self.root}: {exc}") from exc
        total = sum(len(c) for c in clouds)
        if max_points > 0 and total > max_points:
            clouds = [c.decimate(max(1, int(len(c) * max_points / total))) for c in clouds]
        return clouds

    def import_trajectories(self) -> List[Trajectory]:
        """Trajectories, split into separate passes where they leave the clip box."""
        if self.manifest is None:
            return []
        trajectories: List[Trajectory] = []
        try:
            for entry in self.manifest.get("trajectories") or []:
                path = self._resolve(entry)
                df = pd.read_csv(path)
                vertices = df[["x", "y", "z"]].to_numpy(dtype=float)
                trajectories.extend(self._clip_path(path.stem, vertices))
        except (KeyError, TypeError, OSError, ValueError) as exc:
            raise SurveyReadError(f"Unable to read trajectory data: {exc}") from exc
        return trajectories

    def _clip_path(self, name: str, vertices: np.ndarray) -> List[Trajectory]:
        if self.clip_box is None:
            return [Trajectory(name, vertices)]
        inside = self.clip_box.contains(vertices)
        runs: List[Trajectory] = []
        edges = np.flatnonzero(np.diff(np.concatenate([[0], inside.astype(np.int8), [0]])))
        for part, (start, stop) in enumerate(zip(edges[::2], edges[1::2])):
            if stop - start >= 2:
                runs.append(Trajectory(f"{name}_{part}" if len(edges) > 2 else name, vertices[start:stop]))
        return runs

    def import_images(self, cameras: Sequence[str]) -> List[CameraImage]:
        """Images from the selected cameras whose position lies in the clip box.

        Each image is named ``"<track> <camera> id:<index>"`` where the
        index counts the frames of its track.
        """
        if self.manifest is None or not self.manifest.get("images"):
            return []
        try:
            index_path = self._resolve(self.manifest["images"])
            df = pd.read_csv(index_path)
            df["frame"] = df.groupby("track").cumcount()
            df = df[df["camera"].isin(list(cameras))]
            if self.clip_box is not None and len(df):
                df = df[self.clip_box.contains(df[["x", "y", "z"]].to_numpy(dtype=float))]
            images = []
            for row in df.itertuples(index=False):
                kind = getattr(row, "kind", None)
                if not isinstance(kind, str):
                    kind = Projection.SPHERICAL if row.camera == "Sphere" else Projection.PERSPECTIVE
                images.append(CameraImage(
                    name=f"{row.track} {row.camera} id:{row.frame}",
                    camera=row.camera,
                    path=index_path.parent / str(row.path),
                    position=(row.x, row.y, row.z),
                    kind=kind,
                    yaw=float(getattr(row, "yaw", 0.0)),
                    pitch=float(getattr(row, "pitch", 0.0)),
                    roll=float(getattr(row, "roll", 0.0)),
                    focal_px=float(getattr(row, "focal_px", 1000.0)),
                ))
        except (KeyError, TypeError, OSError, ValueError) as exc:
            raise SurveyReadError(f"Unable to read image data: {exc}") from exc
        return images
