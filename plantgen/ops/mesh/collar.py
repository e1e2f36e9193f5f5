"""
Branch collar synthesis.

A collar fuses the base of a child stem into its parent's surface. The
child's first ring is swollen by the collar scale, both the swollen ring
and the original ring are projected onto the parent's triangles, and a
cubic curve from the projected points to the first regular ring fills a
block of vertices reserved between them.

Vertex layout of a collar (``R`` radial divisions, ``D`` collar rings):

    [ first ring: R + 1 ][ reserved: D * (R + 1) ][ post-collar ring: R + 1 ]
"""

from typing import Optional, Tuple
import logging
import math
import numpy as np

from ...core.path import cubic_bezier
from ...core.stem import StemNode
from ...core.types import Segment
from ...utils.geometry import EPSILON, intersects_triangles, normalize
from .buffers import IndexBuffer, VertexBuffer

logger = logging.getLogger(__name__)


def collar_size(node: StemNode) -> int:
    """Number of reserved vertices between the first and post-collar rings."""
    return (node.section_divisions + 1) * node.collar_divisions


def collar_scale(child: StemNode, parent: StemNode) -> Optional[np.ndarray]:
    """
    Swelling matrix for the child's first ring.

    The axes are the child direction made perpendicular to the parent (x),
    the parent direction (y) and their cross product (z). ``y`` is scaled by
    ``swelling[1]`` and ``z`` by ``swelling[0]``. Returns None when the child
    runs parallel to the parent.
    """
    y_axis = normalize(parent.path.direction_at(child.distance))
    x_axis = np.cross(np.cross(y_axis, child.path.direction(0)), y_axis)
    if np.linalg.norm(x_axis) < EPSILON:
        return None
    x_axis = normalize(x_axis)
    z_axis = normalize(np.cross(y_axis, x_axis))

    axes = np.column_stack([x_axis, y_axis, z_axis])
    scale = np.diag([1.0, child.swelling[1], child.swelling[0]])
    return axes @ scale @ axes.T


def move_to_surface(
    point: np.ndarray,
    origin: np.ndarray,
    triangles: np.ndarray,
) -> Optional[Tuple[np.ndarray, np.ndarray]]:
    """
    Project ``point`` onto a triangle set along the ray from ``origin``.

    The ray starts at ``origin`` and passes through ``point``; the nearest
    positive hit wins.

    Returns
    -------
    (position, normal) or None
        Surface point and the hit triangle's normal facing the ray origin,
        or None when nothing is hit.
    """
    direction = normalize(point - origin)
    if len(triangles) == 0 or np.linalg.norm(direction) < EPSILON:
        return None
    hits = intersects_triangles(origin, direction, triangles)
    positive = hits > 0.0
    if not np.any(positive):
        return None
    nearest = int(np.flatnonzero(positive)[np.argmin(hits[positive])])
    p1, p2, p3 = triangles[nearest]
    normal = normalize(np.cross(p1 - p2, p1 - p3))
    if np.dot(normal, direction) > 0.0:
        normal = -normal
    return origin + hits[nearest] * direction, normal


def add_triangle_ring(indices: IndexBuffer, prev_index: int, index: int, divisions: int) -> None:
    """Connect the ring at ``prev_index`` to the ring at ``index`` with a strip."""
    i = np.arange(divisions)
    n = index + i
    p = prev_index + i
    tris = np.stack([n, n + 1, p, p, n + 1, p + 1], axis=1)
    indices.extend(tris.reshape(-1))


def connect_collar(
    vertices: VertexBuffer,
    indices: IndexBuffer,
    parent_vertices: VertexBuffer,
    parent_indices: IndexBuffer,
    parent_segment: Segment,
    child: StemNode,
    vertex_start: int,
    index_start: int,
    collar_start: int,
    scale: np.ndarray,
    uv_radius: float,
    aspect: float,
) -> int:
    """
    Fill the reserved collar block and stitch it.

    Returns
    -------
    int
        First path sample still to emit after the collar, or 0 when a
        projection missed the parent, in which case both buffers are
        truncated back to ``vertex_start`` and ``index_start``.
    """
    resolution = child.section_divisions
    divisions = child.collar_divisions
    ring = resolution + 1
    size = collar_size(child)
    post_start = collar_start + size

    tangent = None
    spline = child.path.spline
    if spline.degree == 3 and len(spline.controls) >= 4:
        tangent = spline.controls[3] - spline.controls[2]

    parent_tris = parent_indices.triangles(parent_segment.index_start, parent_segment.index_count)
    triangles = parent_vertices.array["position"][parent_tris].astype(float)

    data = vertices.array
    location = child.location
    for i in range(ring):
        index = vertex_start + i
        post = data["position"][post_start + i].astype(float)
        initial = data["position"][index].astype(float)
        scaled = scale @ (initial - location) + location

        scaled_hit = move_to_surface(scaled, post, triangles)
        initial_hit = move_to_surface(initial, post, triangles) if scaled_hit is not None else None
        if scaled_hit is None or initial_hit is None:
            vertices.truncate(vertex_start)
            indices.truncate(index_start)
            return 0

        data["position"][index] = scaled_hit[0]
        data["normal"][index] = scaled_hit[1]

        third = post - tangent if tangent is not None else post
        for j in range(divisions):
            t = (j + 1) / (divisions + 1)
            offset = collar_start + i + ring * j
            data["position"][offset] = cubic_bezier(scaled_hit[0], initial_hit[0], third, post, t)
            data["indices"][offset] = data["indices"][index]
            data["weights"][offset] = data["weights"][index]

    first = vertex_start
    second = vertex_start + ring
    for _ in range(divisions + 1):
        add_triangle_ring(indices, first, second, resolution)
        first = second
        second += ring

    _set_collar_normals(data, vertex_start, post_start, resolution, divisions)
    _set_collar_uvs(data, post_start, resolution, divisions, uv_radius, aspect)
    return child.path.divisions + 2


def _set_collar_normals(data: np.ndarray, first: int, post: int, resolution: int, divisions: int) -> None:
    """Blend normals from the first ring to the post-collar ring."""
    ring = resolution + 1
    n1 = data["normal"][first:first + ring].astype(float)
    n2 = data["normal"][post:post + ring].astype(float)
    for j in range(1, divisions + 1):
        t = j / (divisions + 1)
        blended = (1.0 - t) * n1 + t * n2
        lengths = np.linalg.norm(blended, axis=1, keepdims=True)
        blended = np.divide(blended, lengths, out=n2.copy(), where=lengths > EPSILON)
        data["normal"][first + j * ring:first + (j + 1) * ring] = blended


def _set_collar_uvs(
    data: np.ndarray,
    post: int,
    resolution: int,
    divisions: int,
    radius: float,
    aspect: float,
) -> None:
    """Assign V coordinates walking backward from the post-collar ring."""
    ring = resolution + 1
    circumference = radius * 2.0 * math.pi
    for i in range(ring):
        u, v = data["uv"][post + i].astype(float)
        index = post + i
        for _ in range(divisions + 1):
            p1 = data["position"][index].astype(float)
            index -= ring
            p2 = data["position"][index].astype(float)
            if circumference > 0.0:
                v -= np.linalg.norm(p2 - p1) * aspect / circumference
            data["uv"][index] = (u, v)


__all__ = [
    "collar_size",
    "collar_scale",
    "move_to_surface",
    "add_triangle_ring",
    "connect_collar",
]
