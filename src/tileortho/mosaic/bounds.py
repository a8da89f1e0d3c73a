"""Planar extent of the survey data."""

from dataclasses import dataclass
from typing import Sequence, Tuple

import numpy as np

from ..engine.types import PointCloud
from ..errors import BoundsError
from ..utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Extent:
    """Bounding box enlarged by the safety margin.

    X and Y are enlarged on both sides; Z only upward.
    """
    min_x: float
    max_x: float
    min_y: float
    max_y: float
    min_z: float
    max_z: float
    margin: float = 0.0

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        return self.max_y - self.min_y

    @property
    def top_left(self) -> Tuple[float, float]:
        return self.min_x, self.max_y

    @property
    def z_range(self) -> Tuple[float, float]:
        return self.min_z, self.max_z


@dataclass
class BoundsCalculator:
    """Compute the extent of one or more point clouds."""

    margin: float = 10.0

    def compute(self, clouds: Sequence[PointCloud]) -> Extent:
        """Extent of the union of ``clouds``.

        Raises
        ------
        BoundsError
            If there is no point to bound or a box cannot be computed.
        """
        lows, ups = [], []
        for cloud in clouds:
            if cloud.is_empty:
                continue
            try:
                low, up = cloud.bounding_box()
            except ValueError as exc:
                raise BoundsError(f"Cannot bound cloud '{cloud.name}': {exc}") from exc
            lows.append(low)
            ups.append(up)
        if not lows:
            raise BoundsError("No points available to compute the survey extent")
        low = np.min(lows, axis=0)
        up = np.max(ups, axis=0)
        if not np.all(np.isfinite(low)) or not np.all(np.isfinite(up)):
            raise BoundsError("Survey extent is not finite")
        m = self.margin
        extent = Extent(
            min_x=float(low[0]) - m, max_x=float(up[0]) + m,
            min_y=float(low[1]) - m, max_y=float(up[1]) + m,
            min_z=float(low[2]), max_z=float(up[2]) + m,
            margin=m,
        )
        logger.info("Survey extent X[%.2f, %.2f] Y[%.2f, %.2f] (margin %.1f)",
                    extent.min_x, extent.max_x, extent.min_y, extent.max_y, m)
        return extent
