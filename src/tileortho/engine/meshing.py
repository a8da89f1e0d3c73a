"""2.5D surface meshing primitives.

Road and ground surfaces are single valued in Z, so meshes are built by
a Delaunay triangulation of the XY projection and lifted back to 3D.
All functions work on plain ``(vertices, faces)`` arrays and return new
arrays; they never modify their inputs.
"""

import math
from typing import List, Tuple

import numpy as np
import shapely
from scipy.spatial import Delaunay
from shapely.geometry import Polygon
from shapely.ops import triangulate

MeshArrays = Tuple[np.ndarray, np.ndarray]


def _edge_lengths(vertices: np.ndarray, faces: np.ndarray) -> np.ndarray:
    tri = vertices[faces]
    return np.linalg.norm(tri - np.roll(tri, -1, axis=1), axis=2)


def delaunay_mesh(xyz: np.ndarray, max_edge: float) -> MeshArrays:
    """Triangulate points in XY and drop triangles with an edge above ``max_edge``.

    Parameters
    ----------
    xyz : numpy.ndarray
        Array of shape (N, 3).
    max_edge : float
        Longest 3D edge allowed; longer triangles bridge gaps in the
        data and are removed, leaving holes open.

    Returns
    -------
    (numpy.ndarray, numpy.ndarray)
        Vertices ``(N, 3)`` and faces ``(M, 3)``.
    """
    if len(xyz) < 3:
        raise ValueError("at least three points are needed to build a mesh")
    tri = Delaunay(xyz[:, :2])
    faces = tri.simplices.astype(np.int64)
    keep = (_edge_lengths(xyz, faces) <= max_edge).all(axis=1)
    return xyz.copy(), faces[keep]


def grid_average(xyz: np.ndarray, cell: float) -> np.ndarray:
    """Average the points falling in each ``cell`` x ``cell`` XY bin."""
    keys = np.floor(xyz[:, :2] / cell).astype(np.int64)
    _, inverse, counts = np.unique(keys, axis=0, return_inverse=True, return_counts=True)
    inverse = inverse.reshape(-1)
    sums = np.zeros((len(counts), 3))
    np.add.at(sums, inverse, xyz)
    return sums / counts[:, None]


def refine(vertices: np.ndarray, faces: np.ndarray, target: np.ndarray,
           min_triangle_size: float, max_triangles: int) -> MeshArrays:
    """Remesh a rough surface from its target cloud.

    The target cloud is averaged on a grid whose cell equals the
    minimum triangle size; the cell grows until the expected triangle
    count (twice the vertex count) fits ``max_triangles``.  Triangles
    longer than the rough mesh's longest edge (or two cells) are
    dropped so the refined mesh keeps the rough mesh's holes.
    """
    if len(faces) == 0:
        raise ValueError("cannot refine an empty mesh")
    if min_triangle_size <= 0:
        raise ValueError("min_triangle_size must be positive")
    cell = min_triangle_size
    samples = grid_average(target, cell)
    while 2 * len(samples) > max_triangles:
        cell *= math.sqrt(2 * len(samples) / max_triangles) * 1.01
        samples = grid_average(target, cell)
    limit = max(float(_edge_lengths(vertices, faces).max()), 2.0 * cell)
    return delaunay_mesh(samples, limit)


def subdivide(vertices: np.ndarray, faces: np.ndarray, max_edge: float) -> MeshArrays:
    """Split triangles 1-to-4 at edge midpoints until every edge is <= ``max_edge``.

    Only triangles with a long edge are split.  Midpoints lie on the
    shared edge, so neighbours that stay whole leave no gap in plan view.
    """
    if max_edge <= 0:
        raise ValueError("max_edge must be positive")
    vertices = vertices.copy()
    faces = faces.copy()
    while len(faces):
        long_faces = (_edge_lengths(vertices, faces) > max_edge).any(axis=1)
        if not long_faces.any():
            break
        split = faces[long_faces]
        m = len(split)
        edges = np.concatenate([split[:, [0, 1]], split[:, [1, 2]], split[:, [2, 0]]])
        unique_edges, inverse = np.unique(np.sort(edges, axis=1), axis=0, return_inverse=True)
        inverse = inverse.reshape(-1) + len(vertices)
        midpoints = (vertices[unique_edges[:, 0]] + vertices[unique_edges[:, 1]]) / 2.0
        vertices = np.concatenate([vertices, midpoints])
        m01, m12, m20 = inverse[:m], inverse[m:2 * m], inverse[2 * m:]
        a, b, c = split[:, 0], split[:, 1], split[:, 2]
        children = np.concatenate([
            np.column_stack([a, m01, m20]),
            np.column_stack([m01, b, m12]),
            np.column_stack([m20, m12, c]),
            np.column_stack([m01, m12, m20]),
        ])
        faces = np.concatenate([faces[~long_faces], children])
    return vertices, faces


def _plane_z(triangle: np.ndarray, xy: np.ndarray) -> np.ndarray:
    """Height of the plane through ``triangle`` (3, 3) at points ``xy`` (K, 2)."""
    a, b, c = triangle
    ab, ac = b - a, c - a
    det = ab[0] * ac[1] - ab[1] * ac[0]
    if abs(det) < 1e-15:
        return np.full(len(xy), triangle[:, 2].mean())
    d = xy - a[:2]
    u = (d[:, 0] * ac[1] - d[:, 1] * ac[0]) / det
    v = (ab[0] * d[:, 1] - ab[1] * d[:, 0]) / det
    return a[2] + u * ab[2] + v * ac[2]


def _inside_pieces(triangle: np.ndarray, footprint: Polygon) -> List[np.ndarray]:
    """Triangles ``(K, 3, 3)`` covering the part of ``triangle`` inside ``footprint``."""
    clipped = Polygon(triangle[:, :2]).intersection(footprint)
    pieces = []
    for part in getattr(clipped, "geoms", [clipped]):
        if part.geom_type != "Polygon" or part.area <= 0:
            continue
        for tri in triangulate(part):
            if not part.contains(tri.representative_point()):
                continue
            xy = np.asarray(tri.exterior.coords)[:3]
            pieces.append(np.column_stack([xy, _plane_z(triangle, xy)]))
    return pieces


def crop(vertices: np.ndarray, faces: np.ndarray, footprint: Polygon) -> MeshArrays:
    """Trim a mesh to a planar footprint.

    Triangles fully inside are kept as they are.  Triangles crossing the
    outline are replaced by the triangulated portion lying inside; the
    new vertices sit on the plane of the original triangle.  Triangles
    fully outside are discarded.
    """
    if len(faces) == 0:
        return vertices[:0].copy(), faces.copy()
    vertex_in = shapely.intersects_xy(footprint, vertices[:, 0], vertices[:, 1])
    inside = vertex_in[faces].all(axis=1)

    tri = vertices[faces]
    min_x, min_y, max_x, max_y = footprint.bounds
    overlaps = (
        (tri[:, :, 0].max(axis=1) >= min_x) & (tri[:, :, 0].min(axis=1) <= max_x)
        & (tri[:, :, 1].max(axis=1) >= min_y) & (tri[:, :, 1].min(axis=1) <= max_y)
    )
    crossing = np.flatnonzero(~inside & overlaps)

    new_tris = [piece for f in crossing for piece in _inside_pieces(tri[f], footprint)]
    kept = faces[inside]
    used, remap = np.unique(kept, return_inverse=True)
    out_vertices = vertices[used]
    out_faces = remap.reshape(-1, 3)
    if new_tris:
        extra = np.concatenate(new_tris).reshape(-1, 3)
        start = len(out_vertices)
        out_vertices = np.concatenate([out_vertices, extra])
        out_faces = np.concatenate([out_faces, np.arange(start, start + len(extra)).reshape(-1, 3)])
    return out_vertices, out_faces
