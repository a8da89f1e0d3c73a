"""Per-triangle image selection for mesh texturing.

Every triangle takes its colour from the image whose camera is closest
to the triangle centroid among the images that actually see it.
Images are processed one at a time and their pixels are released right
after use, so the texture pool can grow across tiles while only one
frame is decoded at any moment.
"""

from typing import List, Sequence, Tuple

import numpy as np

from ..utils.logging import get_logger
from .types import CameraImage

logger = get_logger(__name__)

UNTEXTURED = (128, 128, 128)


def best_image_colours(centroids: np.ndarray, images: Sequence[CameraImage],
                       max_distance: float = 50.0) -> Tuple[np.ndarray, List[str]]:
    """Sample a colour per centroid from the best-fitting image.

    Parameters
    ----------
    centroids : numpy.ndarray
        Triangle centroids, shape (M, 3).
    images : sequence of CameraImage
        Candidate images.
    max_distance : float, optional
        Images whose camera is further than this from every centroid
        are skipped without being decoded.

    Returns
    -------
    (numpy.ndarray, list of str)
        Colours ``(M, 3)`` as uint8 and the names of the images that
        contributed at least one triangle.
    """
    colours = np.empty((len(centroids), 3), dtype=np.uint8)
    colours[:] = UNTEXTURED
    best = np.full(len(centroids), np.inf)
    owner = np.full(len(centroids), -1, dtype=np.int64)
    if len(centroids) == 0:
        return colours, []
    low, up = centroids.min(axis=0), centroids.max(axis=0)
    for i, image in enumerate(images):
        gap = np.maximum(np.maximum(low - image.position, image.position - up), 0.0)
        if np.linalg.norm(gap) > max_distance:
            continue
        try:
            uv, inside = image.project(centroids)
            dist = np.linalg.norm(centroids - image.position, axis=1)
            better = inside & (dist < best)
            if better.any():
                colours[better] = image.sample(uv[better])
                best[better] = dist[better]
                owner[better] = i
        except OSError as exc:
            logger.warning("Skipping unreadable image %s: %s", image.name, exc)
        finally:
            image.release_pixels()
    used = sorted({images[i].name for i in np.unique(owner) if i >= 0})
    return colours, used
