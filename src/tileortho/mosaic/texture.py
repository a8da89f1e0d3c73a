"""Texturing of tile meshes from the accumulated camera images.

Images imported for a tile are added to a `TexturePool` that lives for
the whole run and is never pruned: a tile can be textured from frames
captured while driving past a neighbouring tile.  The pool trades
memory (image metadata only; pixels are decoded per use) for texture
completeness along tile edges.
"""

from dataclasses import dataclass, field
from typing import Iterator, List, Sequence

from ..engine.base import GeometryEngine
from ..engine.types import CameraImage, Mesh, TexturedMesh
from ..utils.logging import get_logger
from .results import StageResult

logger = get_logger(__name__)


@dataclass
class TexturePool:
    """Images gathered so far in the run, newest tile first."""

    images: List[CameraImage] = field(default_factory=list)

    def add(self, images: Sequence[CameraImage]) -> int:
        """Put the images of the current tile in front of the pool.

        Images already in the pool (same name) are not added twice.
        Returns the pool size.
        """
        known = {image.name for image in self.images}
        fresh = [image for image in images if image.name not in known]
        self.images = fresh + self.images
        return len(self.images)

    def __len__(self) -> int:
        return len(self.images)

    def __iter__(self) -> Iterator[CameraImage]:
        return iter(self.images)

    def release_pixels(self) -> None:
        for image in self.images:
            image.release_pixels()

    def clear(self) -> None:
        self.release_pixels()
        self.images = []


@dataclass
class TextureCompositor:
    """Colour meshes from the images in a pool."""

    engine: GeometryEngine

    def texture(self, meshes: Sequence[Mesh], pool: TexturePool) -> StageResult[List[TexturedMesh]]:
        """One textured mesh per input mesh; failing meshes are listed as failures."""
        result: StageResult[List[TexturedMesh]] = StageResult(value=[])
        images = list(pool)
        for mesh in meshes:
            try:
                textured = self.engine.texture_mesh(mesh, images)
            except Exception as exc:
                logger.warning("Unable to texture mesh %s: %s", mesh.name, exc)
                result.add_failure(mesh.name, str(exc))
                continue
            textured.name = mesh.name
            logger.debug("Mesh %s textured from %d images", mesh.name, len(textured.images_used))
            result.value.append(textured)
        pool.release_pixels()
        return result
