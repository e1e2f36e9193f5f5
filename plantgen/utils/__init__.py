"""Geometry helpers."""

from .geometry import (
    normalize,
    project_onto_plane,
    perpendicular,
    rotate_into_vec,
    intersects_triangle,
    intersects_triangles,
    intersects_aabb,
    intersects_aabbs,
)

__all__ = [
    "normalize",
    "project_onto_plane",
    "perpendicular",
    "rotate_into_vec",
    "intersects_triangle",
    "intersects_triangles",
    "intersects_aabb",
    "intersects_aabbs",
]
