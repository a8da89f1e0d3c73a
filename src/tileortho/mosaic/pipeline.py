"""Batch orthomosaic pipeline.

This module drives the complete run: it plans the tile grid (or loads a
previously written tile index), then processes the tiles one at a time.
Per tile the survey is clipped to a box slightly larger than the tile,
the data inside is imported and turned into an orthoimage:

* image mode: road masks, surface clip, mesh, texture, export;
* lidar mode: point styling, export, optional point export.

Each stage reports skipped units through a `StageResult`; a failing
tile never stops the run.  Every per-tile resource is released before
the next tile starts.

Usage:
    python -m tileortho.mosaic.pipeline SURVEY --output-prefix out/ortho --mode image
"""

import argparse
import logging
import sys
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from tqdm import tqdm

from ..common.survey import ClipBox, SurveyDataset
from ..engine.base import GeometryEngine
from ..engine.local import LocalEngine
from ..engine.types import CameraImage, Mesh, PointCloud, TexturedMesh, Trajectory
from ..errors import ConfigurationCancelled, NoTrajectoryError, SurveyReadError, TileOrthoError
from ..utils.config import load_config, merge_overrides
from ..utils.logging import ROOT_LOGGER, configure_run_log, get_logger
from .bounds import BoundsCalculator
from .clipper import SurfaceClipper
from .mesher import SurfaceMesher
from .ortho_exporter import OrthoExporter
from .results import RunReport, StageResult
from .road_mask import RoadMask, RoadMaskExtractor
from .scene import Scene
from .settings import Mode, RunSettings, build_settings
from .styling import LidarStyler, discover_classes
from .texture import TextureCompositor, TexturePool
from .tiler import Tile, TileGridBuilder, export_tile_index, load_tile_index

logger = get_logger(__name__)

CLASS_SAMPLE_POINTS = 100_000


@dataclass
class TileWorkspace:
    """Every handle created while processing one tile."""
    clouds: List[PointCloud] = field(default_factory=list)
    trajectories: List[Trajectory] = field(default_factory=list)
    masks: List[RoadMask] = field(default_factory=list)
    meshes: List[Mesh] = field(default_factory=list)
    textured: List[TexturedMesh] = field(default_factory=list)
    images: List[CameraImage] = field(default_factory=list)

    def release(self) -> None:
        """Free all point, mesh and mask data held for the tile."""
        for handle in [*self.clouds, *self.trajectories, *self.masks, *self.meshes, *self.textured]:
            handle.release()
        for image in self.images:
            image.release_pixels()
        self.clouds, self.trajectories, self.masks = [], [], []
        self.meshes, self.textured, self.images = [], [], []


class TileProcessingOrchestrator:
    """Plan the tile grid and process every tile in sequence."""

    def __init__(self, survey: SurveyDataset, settings: RunSettings,
                 engine: Optional[GeometryEngine] = None):
        """Initialize the orchestrator.

        Parameters
        ----------
        survey : SurveyDataset
            Opened input survey.
        settings : RunSettings
            Validated run settings, passed on to every component.
        engine : GeometryEngine, optional
            Geometry engine; defaults to `LocalEngine`.
        """
        self.survey = survey
        self.settings = settings
        self.engine = engine if engine is not None else LocalEngine()
        self.report = RunReport()
        self.pool = TexturePool()
        self.scene = Scene()

        image = settings.image
        self.bounds = BoundsCalculator()
        self.grid_builder = TileGridBuilder(self.engine, size=settings.tile_size)
        self.mask_extractor = RoadMaskExtractor(road_width=image.road_width, sensor_height=image.imu_height)
        self.clipper = SurfaceClipper(self.engine, filtering=image.filtering, noise_angle=image.noise_angle)
        self.mesher = SurfaceMesher(self.engine, mesh_size=image.mesh_size)
        self.compositor = TextureCompositor(self.engine)
        self.styler = LidarStyler(settings.lidar)
        point_size = settings.lidar.point_size if settings.mode is Mode.LIDAR else None
        self.exporter = OrthoExporter(self.engine, settings.export, point_size=point_size)

    # ------------------------------------------------------------------
    # Grid planning
    # ------------------------------------------------------------------
    def plan_tiles(self) -> List[Tile]:
        """Tiles to process: loaded from an index or built from a survey sample.

        Raises
        ------
        NoTrajectoryError
            In image mode when the survey has no trajectory or no mask
            could be derived from them.
        BoundsError
            If the sample holds no points.
        """
        if self.settings.tile_index is not None:
            tiles = load_tile_index(self.settings.tile_index, self.settings.tile_ids)
            logger.info("Loaded %d tiles from %s", len(tiles), self.settings.tile_index)
            return tiles

        sample = self.survey.import_clouds(self.settings.sample_points)
        grid_clouds = sample
        trajectories: List[Trajectory] = []
        masks: List[RoadMask] = []
        try:
            if self.settings.mode is Mode.IMAGE:
                trajectories = self.survey.import_trajectories()
                if not trajectories:
                    raise NoTrajectoryError("The survey holds no trajectory data")
                masks = self.report.record(self.mask_extractor.extract(trajectories)).value
                if not masks:
                    raise NoTrajectoryError("No road mask could be derived from the trajectories")
                grid_clouds = self.report.record(self.clipper.clip(masks, sample, name="sample")).value
            extent = self.bounds.compute(grid_clouds)
            merged = PointCloud.merge(grid_clouds, name="grid_sample")
            grid = self.report.record(self.grid_builder.build(extent, merged)).value
            merged.release()
        finally:
            for handle in [*sample, *trajectories, *masks]:
                handle.release()
            if grid_clouds is not sample:
                for cloud in grid_clouds:
                    cloud.release()
        return grid.tiles

    # ------------------------------------------------------------------
    # Per-tile processing
    # ------------------------------------------------------------------
    def _clip_box(self, tile: Tile, buffer: float) -> ClipBox:
        return ClipBox.around(tile.corners, tile.z_range, buffer, height=self.settings.clip_height)

    def _finish_export(self, tile: Tile, result: StageResult) -> bool:
        self.report.record(result)
        if result.value is None:
            self.report.mark_failed(tile.tile_id)
            return False
        self.report.mark_exported(tile.tile_id)
        return True

    def _process_image_tile(self, tile: Tile, ws: TileWorkspace) -> bool:
        image = self.settings.image
        with self.survey.clipped(self._clip_box(tile, image.clip_buffer)):
            ws.clouds = self.survey.import_clouds(image.max_points)
            ws.trajectories = self.survey.import_trajectories()
            ws.images = self.survey.import_images(image.cameras)
        self.pool.add(ws.images)

        ws.masks = self.report.record(self.mask_extractor.extract(ws.trajectories)).value
        surface = self.report.record(self.clipper.clip(ws.masks, ws.clouds, name=tile.tile_id)).value
        ws.clouds.extend(surface)
        if not surface:
            logger.warning("No road surface points in tile %s", tile.tile_id)
            self.report.mark_failed(tile.tile_id, "no road surface points")
            return False

        mesh = self.report.record(self.mesher.build(surface, tile)).value
        if mesh is None:
            self.report.mark_failed(tile.tile_id)
            return False
        ws.meshes.append(mesh)

        ws.textured = self.report.record(self.compositor.texture(ws.meshes, self.pool)).value
        if not ws.textured:
            self.report.mark_failed(tile.tile_id)
            return False

        self.scene.add([*ws.clouds, *ws.meshes])
        with self.scene.isolate(ws.textured) as visible:
            result = self.exporter.export(tile, visible)
        return self._finish_export(tile, result)

    def _process_lidar_tile(self, tile: Tile, ws: TileWorkspace) -> bool:
        lidar = self.settings.lidar
        with self.survey.clipped(self._clip_box(tile, lidar.clip_buffer)):
            ws.clouds = self.survey.import_clouds(lidar.max_points)
        if not ws.clouds:
            self.report.mark_failed(tile.tile_id, "no points in tile")
            return False

        raw = None
        if lidar.export.suffix is not None:
            raw = self.report.record(self.clipper.clip_to_footprint(tile.boundary, ws.clouds,
                                                                     name=tile.tile_id)).value
            if raw is not None:
                ws.clouds.append(raw)
        styled = self.styler.style([c for c in ws.clouds if c is not raw])
        ws.clouds.extend(styled)

        self.scene.add(ws.clouds)
        with self.scene.isolate(styled) as visible:
            result = self.exporter.export(tile, visible)
        exported = self._finish_export(tile, result)

        if raw is not None:
            self.report.record(self.exporter.export_points(tile, raw, lidar.export))
        return exported

    def process_tile(self, tile: Tile) -> bool:
        """Run every stage for one tile; returns True when its orthoimage was written.

        Failures never propagate: they are recorded in the run report
        and the tile's resources are released in every case.
        """
        ws = TileWorkspace()
        try:
            if self.settings.mode is Mode.IMAGE:
                return self._process_image_tile(tile, ws)
            return self._process_lidar_tile(tile, ws)
        except SurveyReadError as exc:
            logger.error("Unable to import data for tile id %s: %s", tile.tile_id, exc)
            self.report.mark_failed(tile.tile_id, str(exc))
        except Exception as exc:
            logger.exception("Unexpected failure on tile id %s", tile.tile_id)
            self.report.mark_failed(tile.tile_id, f"unexpected error: {exc}")
        finally:
            ws.release()
            self.scene.clear()
        return False

    def run(self, tiles: Optional[Sequence[Tile]] = None) -> RunReport:
        """Process all tiles and return the run report.

        Fatal errors (no survey data, no trajectories in image mode,
        unbounded data) propagate before any tile is processed.
        """
        if tiles is None:
            tiles = self.plan_tiles()
        self.report.tiles_total = len(tiles)
        logger.info("Processing %d tiles in %s mode", len(tiles), self.settings.mode.value)
        try:
            for tile in tqdm(tiles, desc="Tiles", unit="tile"):
                self.process_tile(tile)
        finally:
            self.pool.clear()
        if self.settings.tile_index is None and tiles:
            export_tile_index(tiles, self.settings.export.tile_index_path)
        if self.report.error_flag:
            logger.warning("Run finished with errors (%s). Consult the log file %s for details.",
                           self.report.summary(), self.settings.export.log_path)
        else:
            logger.info("Run finished: %s", self.report.summary())
        return self.report


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Create georeferenced orthoimage tiles from a survey")
    parser.add_argument("survey", type=str, help="Survey directory or LAS/LAZ file")
    parser.add_argument("--config", type=str, default=None, help="YAML configuration file")
    parser.add_argument("--mode", choices=[m.value for m in Mode], default=None,
                        help="image (road corridor) or lidar (full scene)")
    parser.add_argument("--output-prefix", type=str, default=None,
                        help="Prefix of every output file, e.g. out/ortho")
    parser.add_argument("--texel-size", type=float, default=None, help="Ground size of a pixel (default: 0.005)")
    parser.add_argument("--tile-size", type=float, default=None, help="Tile edge length (default: 50)")
    parser.add_argument("--road-width", type=float, default=None, help="Road mask half width (default: 4)")
    parser.add_argument("--imu-height", type=float, default=None, help="Sensor height above road (default: 2.1)")
    parser.add_argument("--mesh-size", type=float, default=None, help="Minimum triangle size (default: 0.01)")
    parser.add_argument("--no-filtering", action="store_true", help="Disable the horizontal surface filter")
    parser.add_argument("--noise-angle", type=float, default=None, help="Horizontal filter tolerance in degrees")
    parser.add_argument("--cameras", nargs="+", default=None, help="Cameras used for texturing")
    parser.add_argument("--max-points", type=int, default=None, help="LIDAR mode point import cap per tile")
    parser.add_argument("--point-size", type=float, default=None, help="LIDAR point size in percent")
    parser.add_argument("--representation", choices=["color", "intensity", "by_class"], default=None)
    parser.add_argument("--colormap", type=str, default=None, help="Matplotlib colormap for intensity")
    parser.add_argument("--export", choices=["none", "parquet", "las"], default=None,
                        help="LIDAR mode point export format")
    parser.add_argument("--tile-index", type=str, default=None, help="Reuse a tile index instead of a new grid")
    parser.add_argument("--tiles", nargs="+", default=None, help="Tile ids to process from the tile index")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser


def _overrides(args: argparse.Namespace) -> dict:
    return {
        "mode": args.mode,
        "export.output_prefix": args.output_prefix,
        "export.texel_size": args.texel_size,
        "tile_size": args.tile_size,
        "image.road_width": args.road_width,
        "image.imu_height": args.imu_height,
        "image.mesh_size": args.mesh_size,
        "image.filtering": False if args.no_filtering else None,
        "image.noise_angle": args.noise_angle,
        "image.cameras": args.cameras,
        "lidar.max_points": args.max_points,
        "lidar.point_size": args.point_size,
        "lidar.representation": args.representation,
        "lidar.colormap": args.colormap,
        "lidar.export": args.export,
        "tile_index": args.tile_index,
        "tiles": args.tiles,
    }


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Command-line entry point.

    Exit codes: 0 success, 1 fatal error, 2 cancelled, 3 finished with
    tile failures.
    """
    args = build_parser().parse_args(argv)
    logging.getLogger(ROOT_LOGGER).setLevel(args.log_level)
    try:
        try:
            config = merge_overrides(load_config(args.config), _overrides(args))
            settings = build_settings(config)
        except KeyboardInterrupt:
            raise ConfigurationCancelled("Interrupted while reading settings") from None
        configure_run_log(settings.export.log_path, level=logging.DEBUG)
        survey = SurveyDataset.open(args.survey)
        if settings.needs_classes:
            sample = survey.import_clouds(CLASS_SAMPLE_POINTS)
            classes = discover_classes(sample)
            for cloud in sample:
                cloud.release()
            settings = build_settings(config, classes=classes)
        report = TileProcessingOrchestrator(survey, settings).run()
    except ConfigurationCancelled as exc:
        logger.warning("Cancelled: %s", exc)
        return 2
    except TileOrthoError as exc:
        logger.error("%s", exc)
        return 1
    return 3 if report.error_flag else 0


if __name__ == "__main__":
    sys.exit(main())
