"""Point cloud filters used before road surface extraction.

The functions in this module return boolean masks over an ``(N, 3)``
coordinate array so callers can subset every point attribute at once.
Neighbourhoods are found with a k-d tree; normals are estimated with a
per-point principal component analysis, processed in chunks to keep
memory flat on large clouds.
"""

import numpy as np
from scipy.spatial import cKDTree


def mean_spacing(xyz: np.ndarray, sample: int = 100_000) -> float:
    """Mean nearest-neighbour distance.

    Parameters
    ----------
    xyz : numpy.ndarray
        Array of shape (N, 3).
    sample : int, optional
        Maximum number of query points; an even subset is used above
        this size.

    Returns
    -------
    float
        Mean distance from a point to its closest neighbour.
    """
    if len(xyz) < 2:
        raise ValueError("at least two points are needed to measure spacing")
    tree = cKDTree(xyz)
    query = xyz
    if len(xyz) > sample:
        query = xyz[np.linspace(0, len(xyz) - 1, sample).astype(np.int64)]
    dist, _ = tree.query(query, k=2)
    return float(dist[:, 1].mean())


def estimate_normals(xyz: np.ndarray, k: int = 12, chunk: int = 200_000) -> np.ndarray:
    """Estimate unit normals from the k nearest neighbours of each point.

    The normal is the eigenvector of the neighbourhood covariance with
    the smallest eigenvalue.  Its sign is arbitrary.
    """
    if len(xyz) < 3:
        raise ValueError("at least three points are needed to estimate normals")
    k = min(k, len(xyz))
    tree = cKDTree(xyz)
    normals = np.empty_like(xyz)
    for start in range(0, len(xyz), chunk):
        stop = min(start + chunk, len(xyz))
        _, idx = tree.query(xyz[start:stop], k=k)
        nbrs = xyz[idx]
        centred = nbrs - nbrs.mean(axis=1, keepdims=True)
        cov = np.einsum('nki,nkj->nij', centred, centred) / k
        _, vectors = np.linalg.eigh(cov)
        normals[start:stop] = vectors[:, :, 0]
    return normals


def horizontal_mask(xyz: np.ndarray, max_angle: float, k: int = 12) -> np.ndarray:
    """Select points lying on near-horizontal surfaces.

    Parameters
    ----------
    xyz : numpy.ndarray
        Array of shape (N, 3).
    max_angle : float
        Maximum angle in degrees between the local normal and the
        vertical axis.  0 keeps only perfectly flat patches, 90 keeps
        everything.

    Returns
    -------
    numpy.ndarray
        Boolean mask of shape (N,).
    """
    normals = estimate_normals(xyz, k=k)
    tilt = np.degrees(np.arccos(np.clip(np.abs(normals[:, 2]), 0.0, 1.0)))
    return tilt <= max_angle


def noise_mask(xyz: np.ndarray, strength: float = 50.0, k: int = 8) -> np.ndarray:
    """Statistical outlier rejection.

    A point is kept when its mean distance to its ``k`` neighbours is
    below ``mean + ratio * std`` of that statistic over the cloud.
    ``strength`` (0-100) tightens the ratio from 3.0 down to 0.5.
    """
    if not 0.0 <= strength <= 100.0:
        raise ValueError("strength must be within [0, 100]")
    if len(xyz) <= k:
        return np.ones(len(xyz), dtype=bool)
    tree = cKDTree(xyz)
    dist, _ = tree.query(xyz, k=k + 1)
    mean_dist = dist[:, 1:].mean(axis=1)
    ratio = 3.0 - 2.5 * strength / 100.0
    return mean_dist <= mean_dist.mean() + ratio * mean_dist.std()
