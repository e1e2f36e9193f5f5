"""
Canonical geometry utilities for stem and mesh operations.

This module provides the single source of truth for the vector, rotation and
intersection primitives used by the growth allocator and the mesh
synthesizer. Rotations are represented by scipy's Rotation objects.

INTERSECTION CONVENTION
-----------------------
Intersection predicates return the ray parameter of the hit. A value of
0.0 means "no hit"; hits behind the ray origin are reported as no hit.
"""

import numpy as np
from typing import Tuple
from scipy.spatial.transform import Rotation

EPSILON = 1e-9


def normalize(v: np.ndarray) -> np.ndarray:
    """
    Return ``v`` scaled to unit length.

    Zero-length vectors are returned unchanged.
    """
    v = np.asarray(v, dtype=float)
    length = np.linalg.norm(v)
    if length < EPSILON:
        return v.copy()
    return v / length


def project_onto_plane(v: np.ndarray, normal: np.ndarray) -> np.ndarray:
    """Project ``v`` onto the plane through the origin with unit ``normal``."""
    v = np.asarray(v, dtype=float)
    normal = normalize(normal)
    return v - np.dot(v, normal) * normal


def perpendicular(v: np.ndarray) -> np.ndarray:
    """Return an arbitrary unit vector perpendicular to ``v``."""
    v = normalize(v)
    axis = np.array([1.0, 0.0, 0.0]) if abs(v[0]) < 0.9 else np.array([0.0, 1.0, 0.0])
    return normalize(np.cross(v, axis))


def rotate_into_vec(a: np.ndarray, b: np.ndarray) -> Rotation:
    """
    Compute the minimal rotation that takes direction ``a`` to direction ``b``.

    Parameters
    ----------
    a, b : np.ndarray
        Source and target directions (need not be unit length)

    Returns
    -------
    Rotation
        Rotation about ``a x b``. Opposite directions rotate half a turn
        about an arbitrary perpendicular axis.
    """
    a = normalize(a)
    b = normalize(b)
    axis = np.cross(a, b)
    s = np.linalg.norm(axis)
    c = float(np.dot(a, b))

    if s < EPSILON:
        if c > 0.0:
            return Rotation.identity()
        return Rotation.from_rotvec(np.pi * perpendicular(a))

    return Rotation.from_rotvec(axis / s * np.arctan2(s, c))


def intersects_triangles(
    origin: np.ndarray,
    direction: np.ndarray,
    triangles: np.ndarray,
) -> np.ndarray:
    """
    Intersect one ray with many triangles (Moller-Trumbore).

    Parameters
    ----------
    origin : np.ndarray
        Ray origin (shape (3,))
    direction : np.ndarray
        Ray direction (shape (3,)), unit length for metric parameters
    triangles : np.ndarray
        Triangle corners (shape (N, 3, 3))

    Returns
    -------
    np.ndarray
        Hit parameters (shape (N,)); 0.0 where the ray misses or the hit lies
        behind the origin.
    """
    triangles = np.asarray(triangles, dtype=float).reshape(-1, 3, 3)
    if len(triangles) == 0:
        return np.zeros(0)

    p1 = triangles[:, 0]
    edge1 = triangles[:, 1] - p1
    edge2 = triangles[:, 2] - p1

    pvec = np.cross(direction, edge2)
    det = np.einsum("ij,ij->i", edge1, pvec)
    valid = np.abs(det) > EPSILON
    inv_det = np.zeros_like(det)
    inv_det[valid] = 1.0 / det[valid]

    tvec = origin - p1
    u = np.einsum("ij,ij->i", tvec, pvec) * inv_det
    qvec = np.cross(tvec, edge1)
    v = np.einsum("j,ij->i", direction, qvec) * inv_det
    t = np.einsum("ij,ij->i", edge2, qvec) * inv_det

    hit = valid & (u >= 0.0) & (v >= 0.0) & (u + v <= 1.0) & (t > EPSILON)
    return np.where(hit, t, 0.0)


def intersects_triangle(
    origin: np.ndarray,
    direction: np.ndarray,
    p1: np.ndarray,
    p2: np.ndarray,
    p3: np.ndarray,
) -> float:
    """Intersect a ray with a single triangle; 0.0 means no hit."""
    triangle = np.array([p1, p2, p3], dtype=float).reshape(1, 3, 3)
    return float(intersects_triangles(origin, direction, triangle)[0])


def intersects_aabbs(
    origins: np.ndarray,
    direction: np.ndarray,
    box_min: np.ndarray,
    box_max: np.ndarray,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Slab test of parallel rays against an axis-aligned box.

    Parameters
    ----------
    origins : np.ndarray
        Ray origins (shape (N, 3))
    direction : np.ndarray
        Shared ray direction (shape (3,))
    box_min, box_max : np.ndarray
        Box corners (shape (3,))

    Returns
    -------
    t_near : np.ndarray
        Entry parameters (shape (N,)); 0.0 where the ray misses the box.
        Rays starting inside the box also report 0.0 and must be checked
        with ``t_far``.
    t_far : np.ndarray
        Exit parameters (shape (N,)); 0.0 where the ray misses the box.
    """
    origins = np.atleast_2d(np.asarray(origins, dtype=float))
    direction = np.asarray(direction, dtype=float)

    with np.errstate(divide="ignore", invalid="ignore"):
        inv = np.where(np.abs(direction) > EPSILON, 1.0 / direction, np.inf)
        t1 = (box_min - origins) * inv
        t2 = (box_max - origins) * inv
    # Axis-parallel rays: inside the slab spans everything, outside spans nothing
    parallel = np.abs(direction) <= EPSILON
    inside_slab = (origins >= box_min) & (origins <= box_max)
    t1 = np.where(parallel, np.where(inside_slab, -np.inf, np.inf), t1)
    t2 = np.where(parallel, np.inf, t2)

    t_near = np.max(np.minimum(t1, t2), axis=1)
    t_far = np.min(np.maximum(t1, t2), axis=1)
    hit = (t_far >= t_near) & (t_far > 0.0)
    t_near = np.where(hit, np.maximum(t_near, 0.0), 0.0)
    t_far = np.where(hit, t_far, 0.0)
    return t_near, t_far


def intersects_aabb(
    origin: np.ndarray,
    direction: np.ndarray,
    box_min: np.ndarray,
    box_max: np.ndarray,
) -> float:
    """Entry parameter of a single ray into a box; 0.0 means no hit or inside."""
    t_near, _ = intersects_aabbs(np.asarray(origin).reshape(1, 3), direction, box_min, box_max)
    return float(t_near[0])


__all__ = [
    "normalize",
    "project_onto_plane",
    "perpendicular",
    "rotate_into_vec",
    "intersects_triangles",
    "intersects_triangle",
    "intersects_aabbs",
    "intersects_aabb",
]
