"""Unit tests for LIDAR point styling."""

import numpy as np

from tileortho.engine.types import PointCloud
from tileortho.mosaic.settings import (
    ClassDisplay,
    ClassStyle,
    LidarModeSettings,
    Representation,
)
from tileortho.mosaic.styling import LidarStyler, discover_classes, intensity_colours


def _classified_cloud():
    return PointCloud(
        xyz=np.zeros((6, 3)),
        intensity=np.array([0, 10, 20, 30, 40, 50]),
        rgb=np.full((6, 3), 200, dtype=np.uint8),
        classification=np.array([2, 2, 5, 5, 11, 11]),
        name="tile",
    )


class TestIntensityColours:
    """Test suite for intensity_colours."""

    def test_grey_ramp(self):
        """Test intensities are stretched over the gray colormap."""
        rgb = intensity_colours(np.arange(101), "gray")

        assert rgb.shape == (101, 3)
        assert rgb.dtype == np.uint8
        assert tuple(rgb[0]) == (0, 0, 0)
        assert tuple(rgb[-1]) == (255, 255, 255)
        assert np.all(np.diff(rgb[:, 0].astype(int)) >= 0)

    def test_constant_intensity(self):
        """Test a constant intensity maps to the middle of the colormap."""
        rgb = intensity_colours(np.full(4, 7.0), "gray")
        assert np.all(np.abs(rgb.astype(int) - 128) <= 1)

    def test_empty(self):
        """Test an empty input gives an empty colour array."""
        assert intensity_colours(np.array([])).shape == (0, 3)


class TestLidarStyler:
    """Test suite for LidarStyler."""

    def test_discover_classes(self):
        """Test class names are listed once, ordered by code."""
        clouds = [_classified_cloud(), PointCloud(xyz=np.zeros((1, 3)), classification=np.array([6]))]
        assert discover_classes(clouds) == ["Ground", "High Vegetation", "Building", "Road Surface"]

    def test_true_colour(self):
        """Test the colour representation uses recorded colours."""
        cloud = _classified_cloud()
        styled = LidarStyler(LidarModeSettings()).style([cloud])
        assert styled == [cloud]
        assert np.all(cloud.colours() == 200)

    def test_true_colour_without_rgb(self):
        """Test clouds without colour fall back to intensity."""
        cloud = PointCloud(xyz=np.zeros((3, 3)), intensity=np.array([0, 50, 100]))
        LidarStyler(LidarModeSettings()).style([cloud])
        assert tuple(cloud.display_rgb[0]) == (0, 0, 0)

    def test_intensity(self):
        """Test the intensity representation colours every cloud."""
        cloud = _classified_cloud()
        settings = LidarModeSettings(representation=Representation.INTENSITY)
        LidarStyler(settings).style([cloud])
        assert cloud.display_rgb.shape == (6, 3)
        assert tuple(cloud.display_rgb[0]) == (0, 0, 0)

    def test_by_class(self):
        """Test per-class display, hidden classes and opacity."""
        cloud = _classified_cloud()
        settings = LidarModeSettings(
            representation=Representation.BY_CLASS,
            class_styles={
                "Ground": ClassStyle(display=ClassDisplay.FLAT, opacity=50, color="red"),
                "High Vegetation": ClassStyle(display=ClassDisplay.HIDDEN),
                "Road Surface": ClassStyle(display=ClassDisplay.INTENSITY),
            },
        )

        styled = LidarStyler(settings).style([cloud])

        assert [c.name for c in styled] == ["tile_Ground", "tile_Road Surface"]
        ground, road = styled
        assert np.all(ground.display_rgb == [255, 0, 0])
        assert ground.opacity == 128
        assert road.opacity == 255
        assert len(road) == 2
        assert cloud.is_empty
