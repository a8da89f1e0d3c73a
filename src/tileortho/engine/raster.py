"""Top-down orthographic rasterisation of meshes and point clouds.

This module contains the `OrthoRasterizer` class which paints textured
triangles and point splats onto an RGB canvas.  Each pixel corresponds
to a fixed ground area (the texel size).  A height buffer keeps the
highest surface visible, as seen from above.  The finished canvas is
written as JPEG together with a world file so GIS software can place
the image.

Triangles are filled in batches with a vectorised barycentric test.
Point splats are drawn by ranking points by height and dilating the
rank image with a square maximum filter, which yields the highest point
under every splat without a per-point loop.
"""

import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Tuple

import numpy as np
from PIL import Image
from scipy.ndimage import maximum_filter

WHITE = (255, 255, 255)


def write_world_file(path: Path, top_left: Tuple[float, float], texel_size: float) -> Path:
    """Write the six-line world file georeferencing an image.

    The reference point is the centre of the upper-left pixel.
    """
    x0, y0 = top_left
    lines = [
        texel_size,
        0.0,
        0.0,
        -texel_size,
        x0 + texel_size / 2.0,
        y0 - texel_size / 2.0,
    ]
    path.write_text("\n".join(f"{v:.10f}" for v in lines) + "\n", encoding="utf-8")
    return path


def world_file_path(image_path: Path) -> Path:
    """``tile.jpg`` -> ``tile.jgw``; ``tile.png`` -> ``tile.pgw``."""
    suffix = image_path.suffix
    return image_path.with_suffix(f".{suffix[1]}{suffix[-1]}w" if len(suffix) > 2 else ".wld")


@dataclass
class OrthoRasterizer:
    """Paint meshes and point clouds onto a north-up canvas."""

    top_left: Tuple[float, float]
    """World XY of the upper-left corner of the canvas."""

    width: float
    """Ground width covered by the canvas."""

    height: float
    """Ground height covered by the canvas."""

    texel_size: float = 0.005
    """Pixel size in metres.  0.005 corresponds to a 5x5 mm pixel."""

    background: Tuple[int, int, int] = WHITE

    batch_pixels: int = 4_000_000
    """Candidate pixels evaluated per triangle batch."""

    canvas: np.ndarray = field(init=False, repr=False)
    depth: np.ndarray = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if self.texel_size <= 0:
            raise ValueError("texel_size must be positive")
        cols = int(math.ceil(self.width / self.texel_size))
        rows = int(math.ceil(self.height / self.texel_size))
        if cols <= 0 or rows <= 0:
            raise ValueError("canvas must cover a positive area")
        self.canvas = np.empty((rows, cols, 3), dtype=np.uint8)
        self.canvas[:] = self.background
        self.depth = np.full((rows, cols), -np.inf)

    @property
    def shape(self) -> Tuple[int, int]:
        return self.depth.shape

    def to_pixels(self, xy: np.ndarray) -> np.ndarray:
        """World XY ``(N, 2)`` to continuous pixel coordinates (column, row)."""
        col = (xy[:, 0] - self.top_left[0]) / self.texel_size
        row = (self.top_left[1] - xy[:, 1]) / self.texel_size
        return np.column_stack([col, row])

    def _compose(self, flat_index: np.ndarray, z: np.ndarray, colours: np.ndarray,
                 opacity: int = 255) -> None:
        """Write candidates to the canvas where they are the highest surface."""
        if len(flat_index) == 0:
            return
        order = np.argsort(z, kind="stable")[::-1]
        first = np.unique(flat_index[order], return_index=True)[1]
        winners = order[first]
        idx = flat_index[winners]
        depth = self.depth.reshape(-1)
        on_top = z[winners] >= depth[idx]
        idx, winners = idx[on_top], winners[on_top]
        depth[idx] = z[winners]
        canvas = self.canvas.reshape(-1, 3)
        if opacity >= 255:
            canvas[idx] = colours[winners]
        else:
            alpha = opacity / 255.0
            blended = alpha * colours[winners] + (1.0 - alpha) * canvas[idx]
            canvas[idx] = np.clip(np.rint(blended), 0, 255).astype(np.uint8)

    def draw_mesh(self, vertices: np.ndarray, faces: np.ndarray, face_rgb: np.ndarray) -> None:
        """Fill every triangle with its colour.

        A pixel belongs to a triangle when its centre passes the
        barycentric inside test; the triangle's plane gives its height.
        """
        if len(faces) == 0:
            return
        rows, cols = self.shape
        pix = self.to_pixels(vertices[:, :2])
        tri = pix[faces]
        tri_z = vertices[faces][:, :, 2]
        lo = np.floor(tri.min(axis=1)).astype(np.int64)
        hi = np.ceil(tri.max(axis=1)).astype(np.int64)
        span = np.maximum((hi - lo).max(axis=1), 1)
        # Batch triangles of similar size together.
        bucket = np.ceil(np.log2(span)).astype(np.int64)
        for b in np.unique(bucket):
            members = np.flatnonzero(bucket == b)
            k = int(2 ** b) + 1
            off_r, off_c = np.divmod(np.arange(k * k), k)
            per_batch = max(1, self.batch_pixels // (k * k))
            for start in range(0, len(members), per_batch):
                sel = members[start:start + per_batch]
                c = lo[sel, 0][:, None] + off_c[None, :]
                r = lo[sel, 1][:, None] + off_r[None, :]
                px = c + 0.5
                py = r + 0.5
                a, b1, b2 = tri[sel, 0], tri[sel, 1], tri[sel, 2]
                v0 = b1 - a
                v1 = b2 - a
                det = v0[:, 0] * v1[:, 1] - v0[:, 1] * v1[:, 0]
                valid = np.abs(det) > 1e-12
                det = np.where(valid, det, 1.0)[:, None]
                dx = px - a[:, 0][:, None]
                dy = py - a[:, 1][:, None]
                u = (dx * v1[:, 1][:, None] - dy * v1[:, 0][:, None]) / det
                v = (v0[:, 0][:, None] * dy - v0[:, 1][:, None] * dx) / det
                eps = -1e-9
                hit = (u >= eps) & (v >= eps) & (u + v <= 1.0 - eps) & valid[:, None]
                hit &= (c >= 0) & (c < cols) & (r >= 0) & (r < rows)
                face_i, cand = np.nonzero(hit)
                if len(face_i) == 0:
                    continue
                zs = tri_z[sel]
                z = (zs[face_i, 0] + u[face_i, cand] * (zs[face_i, 1] - zs[face_i, 0])
                     + v[face_i, cand] * (zs[face_i, 2] - zs[face_i, 0]))
                flat = r[face_i, cand] * cols + c[face_i, cand]
                self._compose(flat, z, face_rgb[sel][face_i])

    def draw_points(self, xyz: np.ndarray, colours: np.ndarray, point_size: int = 1,
                    opacity: int = 255) -> None:
        """Draw square splats of ``point_size`` pixels, highest point on top."""
        if len(xyz) == 0:
            return
        rows, cols = self.shape
        pix = np.floor(self.to_pixels(xyz[:, :2])).astype(np.int64)
        keep = (pix[:, 0] >= 0) & (pix[:, 0] < cols) & (pix[:, 1] >= 0) & (pix[:, 1] < rows)
        if not keep.any():
            return
        pix, z, colours = pix[keep], xyz[keep, 2], np.asarray(colours)[keep]
        order = np.argsort(z, kind="stable")
        rank = np.full((rows, cols), -1, dtype=np.int64)
        # Ascending order: higher points overwrite lower ones in the same pixel.
        rank[pix[order, 1], pix[order, 0]] = np.arange(len(order))
        if point_size > 1:
            rank = maximum_filter(rank, size=int(point_size), mode="constant", cval=-1)
        covered = np.flatnonzero(rank.reshape(-1) >= 0)
        winners = order[rank.reshape(-1)[covered]]
        self._compose(covered, z[winners], colours[winners], opacity=opacity)

    def save(self, path: Path, quality: int = 95) -> Path:
        """Write the canvas as JPEG plus world file; returns the world file path."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        Image.fromarray(self.canvas).save(path, format="JPEG", quality=quality)
        return write_world_file(world_file_path(path), self.top_left, self.texel_size)
