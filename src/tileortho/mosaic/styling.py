"""Display styling of point clouds for LIDAR mode orthoimages.

Three representations are supported:

* ``color``: the true colour recorded with each point;
* ``intensity``: return intensity mapped through a matplotlib colormap;
* ``by_class``: the clouds are split per classification and each class
  is drawn with its own style (true colour, intensity, a flat colour or
  not at all) and opacity.
"""

from dataclasses import dataclass
from typing import List, Sequence

import matplotlib
import numpy as np

from ..engine.types import PointCloud, class_name
from ..utils.logging import get_logger
from .settings import ClassDisplay, ClassStyle, LidarModeSettings, Representation

logger = get_logger(__name__)


def intensity_colours(intensity: np.ndarray, colormap: str = "gray") -> np.ndarray:
    """Map intensities to RGB through a colormap.

    The 2nd to 98th percentile range is stretched over the colormap so a
    few very bright returns do not wash out the image.
    """
    values = np.asarray(intensity, dtype=float)
    if len(values) == 0:
        return np.empty((0, 3), dtype=np.uint8)
    lo, hi = np.percentile(values, [2, 98])
    scaled = np.clip((values - lo) / (hi - lo), 0.0, 1.0) if hi > lo else np.full(len(values), 0.5)
    rgba = matplotlib.colormaps[colormap](scaled)
    return np.rint(rgba[:, :3] * 255).astype(np.uint8)


def discover_classes(clouds: Sequence[PointCloud]) -> List[str]:
    """Names of the classification codes present in ``clouds``, by code."""
    codes = sorted({code for cloud in clouds for code in cloud.class_codes()})
    return [class_name(code) for code in codes]


@dataclass
class LidarStyler:
    """Apply the configured representation to imported clouds."""

    settings: LidarModeSettings

    def _true_colour(self, cloud: PointCloud) -> np.ndarray:
        if cloud.rgb is not None:
            return cloud.rgb
        return self._intensity(cloud)

    def _intensity(self, cloud: PointCloud) -> np.ndarray:
        if cloud.intensity is None:
            return np.full((len(cloud), 3), 128, dtype=np.uint8)
        return intensity_colours(cloud.intensity, self.settings.colormap)

    def _apply(self, cloud: PointCloud, style: ClassStyle) -> None:
        if style.display is ClassDisplay.COLOR:
            cloud.display_rgb = self._true_colour(cloud)
        elif style.display is ClassDisplay.INTENSITY:
            cloud.display_rgb = self._intensity(cloud)
        else:
            cloud.display_rgb = np.tile(np.array(style.rgb, dtype=np.uint8), (len(cloud), 1))
        cloud.opacity = style.alpha

    def style(self, clouds: Sequence[PointCloud]) -> List[PointCloud]:
        """Return the clouds to render.

        For ``by_class`` the input clouds are released and replaced by
        one cloud per visible class.
        """
        representation = self.settings.representation
        if representation is Representation.COLOR:
            for cloud in clouds:
                cloud.display_rgb = self._true_colour(cloud)
            return list(clouds)
        if representation is Representation.INTENSITY:
            for cloud in clouds:
                cloud.display_rgb = self._intensity(cloud)
            return list(clouds)

        styled: List[PointCloud] = []
        for cloud in clouds:
            for code, part in cloud.explode_by_class():
                name = class_name(code)
                style = self.settings.class_styles.get(name, ClassStyle())
                if style.display is ClassDisplay.HIDDEN:
                    part.release()
                    continue
                self._apply(part, style)
                styled.append(part)
            cloud.release()
        return styled
