"""Immutable run settings.

The configuration dictionary (YAML file overlaid with command-line
options, see :mod:`tileortho.utils.config`) is validated once and
turned into the frozen dataclasses below.  The resulting `RunSettings`
is passed explicitly to the orchestrator and from there to every
component; no stage reads configuration from anywhere else.

Expected layout::

    mode: image                # or lidar
    tile_size: 50
    export:
      output_prefix: out/ortho
      texel_size: 0.005
    image:
      road_width: 4.0
      imu_height: 2.1
      cameras: [Rear Right, Rear Left]
    lidar:
      representation: by_class
      classes:
        Ground: {display: intensity, opacity: 100}
        High Vegetation: {display: hidden}
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

from ..engine.types import CAMERA_LABELS
from ..errors import ConfigurationCancelled, ConfigurationError


class Mode(str, Enum):
    IMAGE = "image"
    """Road corridor textured from camera images."""
    LIDAR = "lidar"
    """Full scene rendered from styled points."""


class Representation(str, Enum):
    COLOR = "color"
    INTENSITY = "intensity"
    BY_CLASS = "by_class"


class PointExport(str, Enum):
    NONE = "none"
    PARQUET = "parquet"
    LAS = "las"

    @property
    def suffix(self) -> Optional[str]:
        return None if self is PointExport.NONE else f".{self.value}"


class ClassDisplay(str, Enum):
    COLOR = "color"
    INTENSITY = "intensity"
    FLAT = "flat"
    HIDDEN = "hidden"


# Flat colours offered for per-class display, as RGB fractions.
COLORS: Dict[str, Tuple[float, float, float]] = {
    "red": (1.0, 0.0, 0.0),
    "orange": (1.0, 0.5, 0.0),
    "yellow": (1.0, 1.0, 0.0),
    "green": (0.0, 1.0, 0.0),
    "blue": (0.0, 0.0, 1.0),
    "purple": (1.0, 0.0, 1.0),
    "white": (1.0, 1.0, 1.0),
    "grey": (0.5, 0.5, 0.5),
    "black": (0.0, 0.0, 0.0),
}


@dataclass(frozen=True)
class ClassStyle:
    """How the points of one classification are rendered."""
    display: ClassDisplay = ClassDisplay.COLOR
    opacity: int = 100
    """Percent, 10-100."""
    color: str = "white"
    """Name from `COLORS`, used by the flat display."""

    @property
    def alpha(self) -> int:
        return int(round(self.opacity * 255 / 100))

    @property
    def rgb(self) -> Tuple[int, int, int]:
        r, g, b = COLORS[self.color]
        return int(round(r * 255)), int(round(g * 255)), int(round(b * 255))


@dataclass(frozen=True)
class ImageModeSettings:
    road_width: float = 4.0
    """Offset of the road mask on each side of the trajectory."""
    imu_height: float = 2.1
    """Sensor height above the road; masks are lowered by this amount."""
    mesh_size: float = 0.01
    """Minimum triangle size of the refined mesh."""
    filtering: bool = True
    noise_angle: float = 30.0
    """Maximum normal tilt in degrees kept by the horizontal filter."""
    cameras: Tuple[str, ...] = ("Rear Right", "Rear Left")
    max_points: int = 25_000_000
    """Per-tile point import cap."""
    clip_buffer: float = 10.0


@dataclass(frozen=True)
class LidarModeSettings:
    max_points: int = 25_000_000
    point_size: Optional[float] = 100.0
    """Splat size in percent of the default; None uses the default."""
    representation: Representation = Representation.COLOR
    colormap: str = "gray"
    """Matplotlib colormap for intensity display."""
    export: PointExport = PointExport.NONE
    class_styles: Dict[str, ClassStyle] = field(default_factory=dict)
    """Style per discovered class name, in discovery order."""
    clip_buffer: float = 0.0


@dataclass(frozen=True)
class ExportSettings:
    output_prefix: str
    """Path prefix of every output file, e.g. ``out/ortho``."""
    texel_size: float = 0.005
    """Ground size of one output pixel."""

    def path_for(self, tile_id: str, suffix: str) -> Path:
        return Path(f"{self.output_prefix}_{tile_id}{suffix}")

    @property
    def tile_index_path(self) -> Path:
        return Path(f"{self.output_prefix}_tiles.parquet")

    @property
    def log_path(self) -> Path:
        return Path(f"{self.output_prefix}.log")


@dataclass(frozen=True)
class RunSettings:
    mode: Mode
    export: ExportSettings
    image: ImageModeSettings = field(default_factory=ImageModeSettings)
    lidar: LidarModeSettings = field(default_factory=LidarModeSettings)
    tile_size: float = 50.0
    sample_points: int = 1_000_000
    """Point cap of the whole-survey sample the grid is built from."""
    clip_height: float = 300.0
    tile_index: Optional[Path] = None
    """Previously written tile index; when set the grid is not rebuilt."""
    tile_ids: Tuple[str, ...] = ()
    """Restrict a tile index run to these tiles."""

    @property
    def needs_classes(self) -> bool:
        return self.mode is Mode.LIDAR and self.lidar.representation is Representation.BY_CLASS


def _enum(cls, value: Any, key: str):
    try:
        return cls(str(value).lower())
    except ValueError:
        allowed = ", ".join(m.value for m in cls)
        raise ConfigurationError(f"{key} must be one of: {allowed} (got {value!r})") from None


def _number(section: Mapping[str, Any], key: str, default: float, low: Optional[float] = None,
            high: Optional[float] = None, strict_low: bool = False, integer: bool = False):
    value = section.get(key, default)
    try:
        value = int(value) if integer else float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{key} must be a number (got {value!r})") from None
    if low is not None and (value <= low if strict_low else value < low):
        raise ConfigurationError(f"{key} must be {'>' if strict_low else '>='} {low} (got {value})")
    if high is not None and value > high:
        raise ConfigurationError(f"{key} must be <= {high} (got {value})")
    return value


def _section(config: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    section = config.get(name) or {}
    if not isinstance(section, Mapping):
        raise ConfigurationError(f"'{name}' must be a mapping")
    return section


def _image_settings(section: Mapping[str, Any]) -> ImageModeSettings:
    cameras = section.get("cameras", ImageModeSettings.cameras)
    if isinstance(cameras, str):
        cameras = [cameras]
    cameras = tuple(cameras)
    unknown = [c for c in cameras if c not in CAMERA_LABELS]
    if unknown:
        raise ConfigurationError(f"Unknown camera(s): {', '.join(unknown)}")
    if not cameras:
        raise ConfigurationError("At least one camera must be selected")
    return ImageModeSettings(
        road_width=_number(section, "road_width", 4.0, low=0.0, strict_low=True),
        imu_height=_number(section, "imu_height", 2.1),
        mesh_size=_number(section, "mesh_size", 0.01, low=0.0, strict_low=True),
        filtering=bool(section.get("filtering", True)),
        noise_angle=_number(section, "noise_angle", 30.0, low=0.0, high=90.0),
        cameras=cameras,
        max_points=_number(section, "max_points", 25_000_000, low=1, integer=True),
        clip_buffer=_number(section, "clip_buffer", 10.0, low=0.0),
    )


def _class_style(name: str, raw: Any) -> ClassStyle:
    if raw is None:
        return ClassStyle()
    if not isinstance(raw, Mapping):
        raise ConfigurationError(f"Style of class '{name}' must be a mapping")
    color = str(raw.get("color", "white")).lower()
    if color not in COLORS:
        raise ConfigurationError(f"Unknown color '{color}' for class '{name}'")
    return ClassStyle(
        display=_enum(ClassDisplay, raw.get("display", "color"), f"classes.{name}.display"),
        opacity=_number(raw, "opacity", 100, low=10, high=100, integer=True),
        color=color,
    )


def _lidar_settings(section: Mapping[str, Any]) -> LidarModeSettings:
    point_size = section.get("point_size", 100.0)
    if point_size is not None:
        point_size = _number(section, "point_size", 100.0, low=0.0, strict_low=True)
    classes = section.get("classes") or {}
    if not isinstance(classes, Mapping):
        raise ConfigurationError("lidar.classes must map class names to styles")
    return LidarModeSettings(
        max_points=_number(section, "max_points", 25_000_000, low=1, integer=True),
        point_size=point_size,
        representation=_enum(Representation, section.get("representation", "color"), "lidar.representation"),
        colormap=str(section.get("colormap", "gray")),
        export=_enum(PointExport, section.get("export", "none"), "lidar.export"),
        class_styles={str(k): _class_style(str(k), v) for k, v in classes.items()},
        clip_buffer=_number(section, "clip_buffer", 0.0, low=0.0),
    )


def resolve_class_styles(lidar: LidarModeSettings, classes: Sequence[str]) -> LidarModeSettings:
    """Match configured class styles to the classes found in the data.

    The result holds exactly one entry per discovered class, in
    discovery order; classes without a configured style use the
    default style.

    Raises
    ------
    ConfigurationError
        If no classes were discovered.
    """
    if not classes:
        raise ConfigurationError("Per-class display requested but the data holds no classified points")
    styles = {name: lidar.class_styles.get(name, ClassStyle()) for name in classes}
    return replace(lidar, class_styles=styles)


def build_settings(config: Mapping[str, Any], classes: Optional[Sequence[str]] = None) -> RunSettings:
    """Validate a configuration dictionary.

    Parameters
    ----------
    config : mapping
        Parsed configuration.
    classes : sequence of str, optional
        Class names discovered in the survey.  Required when the run
        renders LIDAR data by class.

    Raises
    ------
    ConfigurationCancelled
        If no output prefix was given.
    ConfigurationError
        For any missing or invalid value.
    """
    export = _section(config, "export")
    prefix = str(export.get("output_prefix") or "").strip()
    if not prefix:
        raise ConfigurationCancelled("No output location given")
    tile_index = config.get("tile_index")
    tile_ids = config.get("tiles") or ()
    if isinstance(tile_ids, str):
        tile_ids = [t.strip() for t in tile_ids.split(",") if t.strip()]
    if tile_ids and not tile_index:
        raise ConfigurationError("Selecting tiles requires a tile index")

    settings = RunSettings(
        mode=_enum(Mode, config.get("mode", "image"), "mode"),
        export=ExportSettings(
            output_prefix=prefix,
            texel_size=_number(export, "texel_size", 0.005, low=0.0, strict_low=True),
        ),
        image=_image_settings(_section(config, "image")),
        lidar=_lidar_settings(_section(config, "lidar")),
        tile_size=_number(config, "tile_size", 50.0, low=0.0, strict_low=True),
        sample_points=_number(config, "sample_points", 1_000_000, low=1, integer=True),
        clip_height=_number(config, "clip_height", 300.0, low=0.0, strict_low=True),
        tile_index=Path(tile_index) if tile_index else None,
        tile_ids=tuple(str(t) for t in tile_ids),
    )
    if classes is not None and settings.needs_classes:
        settings = replace(settings, lidar=resolve_class_styles(settings.lidar, classes))
    return settings
