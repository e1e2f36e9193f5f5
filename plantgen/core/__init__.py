"""Core data structures for the plant skeleton."""

from .types import (
    VERTEX_DTYPE,
    INDEX_DTYPE,
    Segment,
    Joint,
    Material,
    Geometry,
    UnknownMaterialError,
    UnknownLeafMeshError,
    StaleHandleError,
)
from .path import Spline, Curve, Path
from .leaf import Leaf, TIP
from .stem import StemHandle, StemNode
from .plant import Plant, StemPool, Extraction

__all__ = [
    "VERTEX_DTYPE",
    "INDEX_DTYPE",
    "Segment",
    "Joint",
    "Material",
    "Geometry",
    "UnknownMaterialError",
    "UnknownLeafMeshError",
    "StaleHandleError",
    "Spline",
    "Curve",
    "Path",
    "Leaf",
    "TIP",
    "StemHandle",
    "StemNode",
    "Plant",
    "StemPool",
    "Extraction",
]
