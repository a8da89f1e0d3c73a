"""Extract the road surface points lying on the road masks."""

from dataclasses import dataclass
from typing import List, Sequence

from ..engine.base import GeometryEngine
from ..engine.types import PointCloud
from ..utils.logging import get_logger
from .results import StageResult
from .road_mask import RoadMask

logger = get_logger(__name__)


@dataclass
class SurfaceClipper:
    """Separate the points near each mask from a set of clouds.

    When filtering is enabled and the data is dense enough, the merged
    cloud is first reduced to near-horizontal points and cleaned of
    isolated returns, which removes walls, vehicles and vegetation
    overhanging the road.
    """

    engine: GeometryEngine
    filtering: bool = True
    noise_angle: float = 30.0
    capture_distance: float = 0.5
    density_threshold: float = 0.2
    """Filtering only runs when the mean point spacing is below this."""
    noise_strength: float = 50.0

    def prefilter(self, cloud: PointCloud) -> PointCloud:
        """Keep horizontal, non-isolated points of a dense cloud."""
        spacing = self.engine.mean_spacing(cloud)
        if spacing >= self.density_threshold:
            logger.debug("Spacing %.3f too coarse for filtering", spacing)
            return cloud
        horizontal = self.engine.filter_horizontal(cloud, self.noise_angle)
        return self.engine.reduce_noise(horizontal, self.noise_strength)

    def clip(self, masks: Sequence[RoadMask], clouds: Sequence[PointCloud],
             name: str = "surface") -> StageResult[List[PointCloud]]:
        """Points of ``clouds`` near each mask, one cloud per mask.

        Masks that capture no point produce no cloud; masks whose
        separation raised are listed as failures.
        """
        result: StageResult[List[PointCloud]] = StageResult(value=[])
        merged = PointCloud.merge(clouds, name=name)
        if merged.is_empty or not masks:
            return result
        source = merged
        if self.filtering:
            try:
                source = self.prefilter(merged)
            except Exception as exc:
                logger.warning("Surface filter failed for %s, using unfiltered points: %s", name, exc)
                result.add_failure(f"{name} filter", str(exc))
        try:
            for mask in masks:
                try:
                    part = self.engine.separate_near_mask(source, mask.outline, mask.vertices,
                                                          self.capture_distance)
                except Exception as exc:
                    logger.warning("Clipping to mask %s failed: %s", mask.name, exc)
                    result.add_failure(mask.name, str(exc))
                    continue
                if part.is_empty:
                    continue
                part.name = f"{mask.name}_points"
                result.value.append(part)
        finally:
            if source is not merged:
                source.release()
            merged.release()
        return result

    def clip_to_footprint(self, tile_boundary, clouds: Sequence[PointCloud],
                          name: str = "tile") -> StageResult[PointCloud]:
        """Merged points of ``clouds`` inside a planar footprint."""
        merged = PointCloud.merge(clouds, name=name)
        try:
            return StageResult.success(self.engine.separate_near_mask(merged, tile_boundary, None, 0.0))
        except Exception as exc:
            logger.warning("Clipping to %s failed: %s", name, exc)
            return StageResult.failure(name, str(exc))
        finally:
            merged.release()
