"""Point cloud file input and output.

LAS/LAZ files are read with laspy.  Large files are streamed in chunks
so an active clip box can discard points before they are accumulated.
Exports write LAS/LAZ (survey interchange) or Parquet (lossless
columnar, one row per point).
"""

from pathlib import Path
from typing import Optional, Tuple, Union

import laspy
import numpy as np
import pandas as pd

from ..engine.types import PointCloud

Box = Tuple[np.ndarray, np.ndarray]

POINT_SUFFIXES = (".las", ".laz")


def _in_box(xyz: np.ndarray, box: Optional[Box]) -> np.ndarray:
    if box is None:
        return np.ones(len(xyz), dtype=bool)
    low, up = box
    return np.all((xyz >= low) & (xyz <= up), axis=1)


def _to_8bit(rgb: np.ndarray, sixteen_bit: bool) -> np.ndarray:
    return (rgb >> 8 if sixteen_bit else rgb).astype(np.uint8)


def load_laz_points(path: Union[str, Path], box: Optional[Box] = None,
                    chunk_size: int = 2_000_000) -> PointCloud:
    """Read a LAS/LAZ file into a PointCloud.

    Parameters
    ----------
    path : str or Path
        File to read.
    box : (numpy.ndarray, numpy.ndarray), optional
        Low and up corners; points outside are skipped while reading.
    chunk_size : int, optional
        Points read per chunk.

    Returns
    -------
    PointCloud
        Coordinates plus intensity, colour and classification when the
        point format carries them.  Colour is reduced to 8 bits; 16-bit
        colour is detected once over the whole file.
    """
    path = Path(path)
    xyz_parts, int_parts, rgb_parts, cls_parts = [], [], [], []
    rgb_max = 0
    with laspy.open(path) as f:
        dims = set(f.header.point_format.dimension_names)
        has_rgb = {"red", "green", "blue"} <= dims
        for points in f.chunk_iterator(chunk_size):
            xyz = np.column_stack([np.asarray(points.x), np.asarray(points.y), np.asarray(points.z)])
            keep = _in_box(xyz, box)
            if has_rgb:
                rgb = np.column_stack([np.asarray(points.red), np.asarray(points.green),
                                       np.asarray(points.blue)])
                rgb_max = max(rgb_max, int(rgb.max(initial=0)))
            if not keep.any():
                continue
            xyz_parts.append(xyz[keep])
            int_parts.append(np.asarray(points.intensity, dtype=float)[keep])
            cls_parts.append(np.asarray(points.classification, dtype=np.uint8)[keep])
            if has_rgb:
                rgb_parts.append(rgb[keep].astype(np.uint16))
    if not xyz_parts:
        return PointCloud(name=path.stem)
    return PointCloud(
        xyz=np.concatenate(xyz_parts),
        intensity=np.concatenate(int_parts),
        rgb=_to_8bit(np.concatenate(rgb_parts), rgb_max > 255) if has_rgb else None,
        classification=np.concatenate(cls_parts),
        name=path.stem,
    )


def write_las(cloud: PointCloud, path: Union[str, Path]) -> Path:
    """Write a cloud as LAS (or LAZ when the suffix is ``.laz``)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    header = laspy.LasHeader(point_format=3, version="1.2")
    header.offsets = cloud.xyz.min(axis=0) if len(cloud) else np.zeros(3)
    header.scales = np.array([0.001, 0.001, 0.001])
    las = laspy.LasData(header)
    las.x = cloud.xyz[:, 0]
    las.y = cloud.xyz[:, 1]
    las.z = cloud.xyz[:, 2]
    if cloud.intensity is not None:
        las.intensity = np.clip(cloud.intensity, 0, 65535).astype(np.uint16)
    if cloud.classification is not None:
        las.classification = cloud.classification.astype(np.uint8)
    if cloud.rgb is not None:
        rgb = cloud.rgb.astype(np.uint16) * 257
        las.red, las.green, las.blue = rgb[:, 0], rgb[:, 1], rgb[:, 2]
    las.write(str(path))
    return path


def write_parquet(cloud: PointCloud, path: Union[str, Path]) -> Path:
    """Write a cloud as a Parquet table with one column per attribute."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    df = pd.DataFrame(cloud.xyz, columns=["x", "y", "z"])
    if cloud.intensity is not None:
        df["intensity"] = cloud.intensity
    if cloud.rgb is not None:
        df["r"], df["g"], df["b"] = cloud.rgb[:, 0], cloud.rgb[:, 1], cloud.rgb[:, 2]
    if cloud.classification is not None:
        df["classification"] = cloud.classification
    df.to_parquet(path, index=False)
    return path


def read_parquet(path: Union[str, Path]) -> PointCloud:
    """Read a cloud written by :func:`write_parquet`."""
    path = Path(path)
    df = pd.read_parquet(path)
    rgb = None
    if {"r", "g", "b"} <= set(df.columns):
        rgb = df[["r", "g", "b"]].to_numpy(dtype=np.uint8)
    return PointCloud(
        xyz=df[["x", "y", "z"]].to_numpy(dtype=float),
        intensity=df["intensity"].to_numpy(dtype=float) if "intensity" in df else None,
        rgb=rgb,
        classification=df["classification"].to_numpy(dtype=np.uint8) if "classification" in df else None,
        name=path.stem,
    )
