"""
Shared data types for the plant generator.

Includes the vertex layout consumed by renderers, buffer segments, skinning
joints, materials, leaf-mesh templates and the lookup errors raised for
unknown identifiers.
"""

from dataclasses import dataclass, field
from typing import Dict, Any, Optional
import numpy as np
from scipy.spatial.transform import Rotation


# Interleaved vertex layout: position, normal, texture coordinates, two
# joint indices and two blend weights.
VERTEX_DTYPE = np.dtype([
    ("position", np.float32, (3,)),
    ("normal", np.float32, (3,)),
    ("uv", np.float32, (2,)),
    ("indices", np.float32, (2,)),
    ("weights", np.float32, (2,)),
])

INDEX_DTYPE = np.uint32


class UnknownMaterialError(KeyError):
    """Raised when a material id has not been registered with the plant."""


class UnknownLeafMeshError(KeyError):
    """Raised when a leaf-mesh id has not been registered with the plant."""


class StaleHandleError(KeyError):
    """Raised when a stem handle refers to a freed or reused slot."""


@dataclass
class Segment:
    """Sub-range of one material buffer occupied by a stem or a leaf."""

    mesh: int = 0
    vertex_start: int = 0
    vertex_count: int = 0
    index_start: int = 0
    index_count: int = 0

    def to_dict(self) -> dict:
        return {
            "mesh": self.mesh,
            "vertex_start": self.vertex_start,
            "vertex_count": self.vertex_count,
            "index_start": self.index_start,
            "index_count": self.index_count,
        }


@dataclass(frozen=True)
class Joint:
    """Skinning joint placed at a path sample of its stem."""

    id: int
    path_index: int


@dataclass
class Material:
    """
    Surface material.

    ``ratio`` is the texture aspect ratio (width / height) used to keep the
    texture tiling along a stem consistent with its circumference.
    """

    id: int
    name: str = ""
    ratio: float = 1.0
    textures: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "ratio": self.ratio, "textures": dict(self.textures)}

    @classmethod
    def from_dict(cls, d: dict) -> "Material":
        return cls(
            id=d["id"],
            name=d.get("name", ""),
            ratio=d.get("ratio", 1.0),
            textures=d.get("textures", {}),
        )


class Geometry:
    """
    Triangle-list template used for leaves.

    Parameters
    ----------
    positions : np.ndarray
        Vertex positions (shape (N, 3))
    normals : np.ndarray
        Vertex normals (shape (N, 3))
    uvs : np.ndarray
        Texture coordinates (shape (N, 2))
    indices : np.ndarray
        Triangle indices into the vertex arrays (flat, length multiple of 3)
    name : str, optional
        Display name of the template
    """

    def __init__(
        self,
        positions: np.ndarray,
        normals: np.ndarray,
        uvs: np.ndarray,
        indices: np.ndarray,
        name: str = "",
    ):
        self.positions = np.asarray(positions, dtype=float).reshape(-1, 3)
        self.normals = np.asarray(normals, dtype=float).reshape(-1, 3)
        self.uvs = np.asarray(uvs, dtype=float).reshape(-1, 2)
        self.indices = np.asarray(indices, dtype=INDEX_DTYPE).reshape(-1)
        self.name = name
        if not (len(self.positions) == len(self.normals) == len(self.uvs)):
            raise ValueError("positions, normals and uvs must have the same length")
        if len(self.indices) % 3 != 0:
            raise ValueError(f"index count must be a multiple of 3, got {len(self.indices)}")

    @classmethod
    def plane(cls) -> "Geometry":
        """Unit quad extending along +Z from the origin, facing +Y."""
        positions = [
            [-0.5, 0.0, 0.0],
            [0.5, 0.0, 0.0],
            [0.5, 0.0, 1.0],
            [-0.5, 0.0, 1.0],
        ]
        normals = [[0.0, 1.0, 0.0]] * 4
        uvs = [[0.0, 0.0], [1.0, 0.0], [1.0, 1.0], [0.0, 1.0]]
        indices = [0, 2, 1, 0, 3, 2]
        return cls(positions, normals, uvs, indices, name="plane")

    @property
    def vertex_count(self) -> int:
        return len(self.positions)

    @property
    def index_count(self) -> int:
        return len(self.indices)

    def transform(
        self,
        rotation: Optional[Rotation] = None,
        scale: Optional[np.ndarray] = None,
        translation: Optional[np.ndarray] = None,
    ) -> "Geometry":
        """Return a copy scaled, then rotated, then translated."""
        scale = np.ones(3) if scale is None else np.asarray(scale, dtype=float)
        rotation = Rotation.identity() if rotation is None else rotation
        translation = np.zeros(3) if translation is None else np.asarray(translation, dtype=float)

        positions = rotation.apply(self.positions * scale) + translation
        safe_scale = np.where(np.abs(scale) > 1e-12, scale, 1.0)
        normals = rotation.apply(self.normals / safe_scale)
        lengths = np.linalg.norm(normals, axis=1, keepdims=True)
        normals = np.divide(normals, lengths, out=np.zeros_like(normals), where=lengths > 0)
        return Geometry(positions, normals, self.uvs.copy(), self.indices.copy(), self.name)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "positions": self.positions.tolist(),
            "normals": self.normals.tolist(),
            "uvs": self.uvs.tolist(),
            "indices": self.indices.tolist(),
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Geometry":
        return cls(d["positions"], d["normals"], d["uvs"], d["indices"], d.get("name", ""))


__all__ = [
    "VERTEX_DTYPE",
    "INDEX_DTYPE",
    "UnknownMaterialError",
    "UnknownLeafMeshError",
    "StaleHandleError",
    "Segment",
    "Joint",
    "Material",
    "Geometry",
]
