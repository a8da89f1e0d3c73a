"""Road corridor masks derived from trajectories.

The road under a mobile mapping vehicle is approximated by a ribbon
around its trajectory: the centre line is offset by the road width to
both sides and the two offsets are joined into one polygon.  The ribbon
is lowered by the sensor mounting height so it lies near the road
surface rather than at sensor level.
"""

from dataclasses import dataclass
from typing import List, Sequence, Tuple

import numpy as np
from shapely.geometry import Polygon

from ..engine.types import Trajectory
from ..utils.logging import get_logger
from .results import StageResult

logger = get_logger(__name__)


@dataclass(eq=False)
class RoadMask:
    """Ribbon polygon around one trajectory."""
    name: str
    vertices: np.ndarray
    """Ring vertices ``(N, 3)``: left offset forward, right offset backward."""
    outline: Polygon
    """Planar footprint of the ribbon."""

    def release(self) -> None:
        self.vertices = np.empty((0, 3))


def offset_paths(center_line: np.ndarray, width: float) -> Tuple[np.ndarray, np.ndarray]:
    """Offset a centre line by ``width`` to its left and right.

    Parameters
    ----------
    center_line : numpy.ndarray
        Array of shape (N, 2) or (N, 3); only XY are offset.
    width : float
        Perpendicular offset distance.

    Returns
    -------
    (numpy.ndarray, numpy.ndarray)
        Left and right offset paths with the shape of the input.
    """
    diffs = np.gradient(center_line[:, :2], axis=0)
    # Normal vectors (tangent rotated 90 degrees to the left)
    normals = np.column_stack([-diffs[:, 1], diffs[:, 0]])
    norms = np.linalg.norm(normals, axis=1, keepdims=True)
    if np.any(norms == 0):
        raise ValueError("centre line has a zero-length tangent")
    normals = normals / norms
    shift = np.zeros_like(center_line, dtype=float)
    shift[:, :2] = normals * width
    return center_line + shift, center_line - shift


def _dedupe(vertices: np.ndarray) -> np.ndarray:
    step = np.linalg.norm(np.diff(vertices[:, :2], axis=0), axis=1)
    return vertices[np.concatenate([[True], step > 1e-9])]


@dataclass
class RoadMaskExtractor:
    """Build one road mask per trajectory."""

    road_width: float = 4.0
    sensor_height: float = 2.1

    def mask_for(self, trajectory: Trajectory) -> RoadMask:
        """Ribbon around a single trajectory; raises on a degenerate path."""
        center = _dedupe(np.asarray(trajectory.vertices, dtype=float))
        if len(center) < 2:
            raise ValueError("trajectory has fewer than two distinct positions")
        left, right = offset_paths(center, self.road_width)
        ring = np.concatenate([left, right[::-1]])
        ring[:, 2] -= self.sensor_height
        outline = Polygon(ring[:, :2])
        if not outline.is_valid:
            # Tight turns fold the ribbon onto itself.
            outline = outline.buffer(0)
        if outline.is_empty or outline.area <= 0:
            raise ValueError("road mask has no area")
        return RoadMask(f"{trajectory.name}_mask", ring, outline)

    def extract(self, trajectories: Sequence[Trajectory]) -> StageResult[List[RoadMask]]:
        """Masks for every trajectory that yields one; the others are listed as failures."""
        result: StageResult[List[RoadMask]] = StageResult(value=[])
        for trajectory in trajectories:
            try:
                result.value.append(self.mask_for(trajectory))
            except Exception as exc:
                logger.warning("No road mask for trajectory %s: %s", trajectory.name, exc)
                result.add_failure(trajectory.name, str(exc))
        return result
