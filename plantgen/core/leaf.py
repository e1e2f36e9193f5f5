"""
Leaf entities attached to stems.
"""

from dataclasses import dataclass, field
from typing import Dict, Any
import numpy as np
from scipy.spatial.transform import Rotation

from ..utils.geometry import EPSILON, normalize, perpendicular, rotate_into_vec

# Position sentinel meaning "at the end of the stem's path"
TIP = -1.0


@dataclass
class Leaf:
    """
    Leaf attached to a stem.

    Attributes
    ----------
    id : int
        Identifier unique within the owning stem
    position : float
        Arc length along the stem's path; negative places the leaf at the tip
    rotation : Rotation
        Rotation applied after the path-derived default orientation
    scale : np.ndarray
        Non-uniform scale of the leaf mesh
    material : int
        Material id (0 is the default material)
    mesh : int
        Leaf-mesh template id (0 is the built-in plane)
    """

    id: int = 0
    position: float = TIP
    rotation: Rotation = field(default_factory=Rotation.identity)
    scale: np.ndarray = field(default_factory=lambda: np.ones(3))
    material: int = 0
    mesh: int = 0

    def __post_init__(self):
        self.scale = np.asarray(self.scale, dtype=float).reshape(3)

    @staticmethod
    def default_orientation(stem_direction: np.ndarray) -> Rotation:
        """
        Orientation placing the leaf sideways from the stem with its face up.

        The template's +Z axis is turned perpendicular to the stem and the
        template normal (+Y) is then turned toward the side of the stem facing
        away from gravity.
        """
        normal = np.array([0.0, 1.0, 0.0])
        forward = np.array([0.0, 0.0, 1.0])
        leaf_direction = np.cross(stem_direction, normal)
        if np.linalg.norm(leaf_direction) < EPSILON:
            leaf_direction = perpendicular(stem_direction)
        q = rotate_into_vec(forward, leaf_direction)

        up = np.array([0.0, -1.0, 0.0])
        d = np.cross(np.cross(up, stem_direction), stem_direction)
        if np.linalg.norm(d) < EPSILON:
            # Vertical stem: keep the template facing up
            d = normal
        k = rotate_into_vec(normal, normalize(d))
        return k * q

    def at_tip(self) -> bool:
        return self.position < 0.0

    def __eq__(self, other) -> bool:
        if not isinstance(other, Leaf):
            return NotImplemented
        return (
            self.id == other.id
            and self.position == other.position
            and np.allclose(self.rotation.as_quat(), other.rotation.as_quat())
            and np.array_equal(self.scale, other.scale)
            and self.material == other.material
            and self.mesh == other.mesh
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "position": self.position,
            "rotation": self.rotation.as_quat().tolist(),
            "scale": self.scale.tolist(),
            "material": self.material,
            "mesh": self.mesh,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Leaf":
        return cls(
            id=d.get("id", 0),
            position=d.get("position", TIP),
            rotation=Rotation.from_quat(d["rotation"]) if "rotation" in d else Rotation.identity(),
            scale=d.get("scale", [1.0, 1.0, 1.0]),
            material=d.get("material", 0),
            mesh=d.get("mesh", 0),
        )


__all__ = ["Leaf", "TIP"]
