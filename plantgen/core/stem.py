"""
Stem records stored in the plant's arena.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any
import bisect
import numpy as np

from .path import Path, Curve
from .leaf import Leaf
from .types import Joint

SEED_BOUND = 2 ** 32


@dataclass(frozen=True, order=True)
class StemHandle:
    """
    Stable, generation-checked reference to a stem slot.

    A handle stays valid until the stem it names is deallocated; afterwards
    the slot's generation differs and lookups raise ``StaleHandleError``.
    """

    index: int
    generation: int = 0

    def to_list(self) -> List[int]:
        return [self.index, self.generation]

    @classmethod
    def from_list(cls, values: List[int]) -> "StemHandle":
        return cls(int(values[0]), int(values[1]))


def entropy_seed() -> int:
    """Draw a root seed from system entropy."""
    return int(np.random.SeedSequence().generate_state(1)[0])


@dataclass(eq=False)
class StemNode:
    """
    One branch of the plant skeleton.

    Structural links are handles into the owning plant's arena; everything
    else is the stem's value state.

    Attributes
    ----------
    path : Path
        Sampled centre line, local to ``location``
    radius_curve : Curve
        Radius profile over the normalized arc length
    max_radius, min_radius : float
        Radius at the base and the floor along the path (0 leaves the tip open)
    section_divisions : int
        Vertices per cross-section ring
    collar_divisions : int
        Intermediate rings in the branch collar
    swelling : np.ndarray
        Collar scale along the two axes transverse to the child
    depth : int
        Distance from the root in stems
    distance : float
        Arc-length attachment offset on the parent's path
    location : np.ndarray
        World position of the path origin; non-finite hides the stem
    seed : int
        Seed of the stem's random stream
    dichotomous : bool
        True for the two stems forming a fork at the parent's tip
    """

    path: Path = field(default_factory=Path)
    radius_curve: Curve = field(default_factory=Curve)
    max_radius: float = 0.1
    min_radius: float = 0.0
    section_divisions: int = 8
    collar_divisions: int = 4
    swelling: np.ndarray = field(default_factory=lambda: np.array([1.5, 3.0]))
    depth: int = 0
    distance: float = 0.0
    location: np.ndarray = field(default_factory=lambda: np.zeros(3))
    seed: int = 0
    dichotomous: bool = False
    outer_material: int = 0
    inner_material: int = 0
    joints: List[Joint] = field(default_factory=list)
    leaves: Dict[int, Leaf] = field(default_factory=dict)

    parent: Optional[StemHandle] = None
    child: Optional[StemHandle] = None
    next_sibling: Optional[StemHandle] = None
    prev_sibling: Optional[StemHandle] = None

    def __post_init__(self):
        self.swelling = np.asarray(self.swelling, dtype=float).reshape(2)
        self.location = np.asarray(self.location, dtype=float).reshape(3)
        self.rng = np.random.default_rng(self.seed)
        self._leaf_counter = max(self.leaves, default=0)

    def reseed(self, seed: int) -> None:
        self.seed = int(seed)
        self.rng = np.random.default_rng(self.seed)

    def next_seed(self) -> int:
        """Draw the seed for a new child stem from this stem's stream."""
        return int(self.rng.integers(0, SEED_BOUND))

    def has_collar(self) -> bool:
        return bool(self.swelling[0] >= 1.0 and self.swelling[1] >= 1.0 and self.collar_divisions > 0)

    def add_leaf(self, leaf: Leaf) -> int:
        """Attach ``leaf``, assigning it the next id of this stem."""
        self._leaf_counter += 1
        leaf.id = self._leaf_counter
        self.leaves[leaf.id] = leaf
        return leaf.id

    def get_leaf(self, leaf_id: int) -> Optional[Leaf]:
        return self.leaves.get(leaf_id)

    def remove_leaf(self, leaf_id: int) -> Leaf:
        return self.leaves.pop(leaf_id)

    def add_joint(self, joint: Joint) -> None:
        """Insert ``joint`` keeping joints ordered by path index."""
        keys = [j.path_index for j in self.joints]
        self.joints.insert(bisect.bisect_right(keys, joint.path_index), joint)

    def clear_links(self) -> None:
        self.parent = None
        self.child = None
        self.next_sibling = None
        self.prev_sibling = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize value fields (structural links excluded)."""
        return {
            "path": self.path.to_dict(),
            "radius_curve": self.radius_curve.to_dict(),
            "max_radius": self.max_radius,
            "min_radius": self.min_radius,
            "section_divisions": self.section_divisions,
            "collar_divisions": self.collar_divisions,
            "swelling": self.swelling.tolist(),
            "depth": self.depth,
            "distance": self.distance,
            "location": self.location.tolist(),
            "seed": self.seed,
            "dichotomous": self.dichotomous,
            "outer_material": self.outer_material,
            "inner_material": self.inner_material,
            "joints": [[j.id, j.path_index] for j in self.joints],
            "leaves": [leaf.to_dict() for leaf in self.leaves.values()],
        }


__all__ = ["StemHandle", "StemNode", "entropy_seed", "SEED_BOUND"]
