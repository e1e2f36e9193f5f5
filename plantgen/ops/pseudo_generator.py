"""
Rule-based plant generator.

Instead of simulating light, the plant is produced by a derivation tree:
every node of the tree holds production rules (lateral density, branch
angle, phyllotaxis, leaf placement) for one order of stems, and its
children describe the laterals spawned from stems of that order.
"""

from dataclasses import dataclass, asdict, field
from typing import Any, Dict, List, Optional, Tuple
import logging
import math
import numpy as np
from scipy.spatial.transform import Rotation

from ..core.leaf import Leaf
from ..core.path import Path, Spline
from ..core.plant import Plant
from ..core.stem import StemHandle
from ..rules.radius import update_radii
from ..utils.geometry import normalize, perpendicular

logger = logging.getLogger(__name__)

UP = np.array([0.0, 1.0, 0.0])


@dataclass
class Derivation:
    """
    Production rules for one order of stems.

    Lengths are scene units, densities are per unit of arc length and
    angles are degrees.
    """
    stem_density: float = 0.0
    stem_start: float = 0.0
    arrangement: float = 137.5
    stem_angle: float = 45.0
    length_factor: float = 0.5
    leaf_density: float = 0.0
    leaves_per_node: int = 1
    leaf_scale: Tuple[float, float, float] = (1.0, 1.0, 1.0)
    leaf_rotation: float = 180.0

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["leaf_scale"] = list(self.leaf_scale)
        return d

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "Derivation":
        derivation = Derivation(**{k: v for k, v in d.items() if k in Derivation.__dataclass_fields__})
        derivation.leaf_scale = tuple(derivation.leaf_scale)
        return derivation

    def validate(self) -> List[str]:
        errors = []
        if self.stem_density < 0:
            errors.append(f"stem_density must be >= 0, got {self.stem_density}")
        if self.leaf_density < 0:
            errors.append(f"leaf_density must be >= 0, got {self.leaf_density}")
        if self.leaves_per_node < 1:
            errors.append(f"leaves_per_node must be >= 1, got {self.leaves_per_node}")
        if not 0.0 < self.length_factor <= 1.0:
            errors.append(f"length_factor must be in (0, 1], got {self.length_factor}")
        return errors


@dataclass
class DerivationNode:
    """A derivation plus the rules of the laterals it spawns."""
    derivation: Derivation = field(default_factory=Derivation)
    children: List["DerivationNode"] = field(default_factory=list)

    def add_child(self, derivation: Optional[Derivation] = None) -> "DerivationNode":
        child = DerivationNode(derivation or Derivation())
        self.children.append(child)
        return child

    def to_dict(self) -> Dict[str, Any]:
        return {
            "derivation": self.derivation.to_dict(),
            "children": [child.to_dict() for child in self.children],
        }

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "DerivationNode":
        return DerivationNode(
            Derivation.from_dict(d.get("derivation", {})),
            [DerivationNode.from_dict(c) for c in d.get("children", [])],
        )

    def depth(self) -> int:
        return 1 + max((child.depth() for child in self.children), default=0)


@dataclass
class DerivationTree:
    """
    Root of the production rules plus the trunk parameters.

    JSON Schema:
    {
        "seed": int,
        "root_length": float,
        "min_radius": float,
        "root": DerivationNode
    }
    """
    seed: int = 0
    root_length: float = 4.0
    min_radius: float = 0.01
    root: DerivationNode = field(default_factory=DerivationNode)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "seed": self.seed,
            "root_length": self.root_length,
            "min_radius": self.min_radius,
            "root": self.root.to_dict(),
        }

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "DerivationTree":
        return DerivationTree(
            seed=d.get("seed", 0),
            root_length=d.get("root_length", 4.0),
            min_radius=d.get("min_radius", 0.01),
            root=DerivationNode.from_dict(d.get("root", {})),
        )

    def validate(self) -> List[str]:
        errors = []
        if self.root_length <= 0:
            errors.append(f"root_length must be > 0, got {self.root_length}")
        if self.min_radius <= 0:
            errors.append(f"min_radius must be > 0, got {self.min_radius}")
        stack = [self.root]
        while stack:
            node = stack.pop()
            errors.extend(node.derivation.validate())
            stack.extend(node.children)
        return errors


class PseudoGenerator:
    """
    Populates a plant from a ``DerivationTree``.

    Output is a pure function of the derivation tree: the random stream is
    reseeded from the tree's seed by ``reset`` before every full growth.
    """

    def __init__(self, plant: Plant, derivation: Optional[DerivationTree] = None):
        self.plant = plant
        self.derivation = derivation or DerivationTree()
        self.rng = np.random.default_rng(self.derivation.seed)

    def set_derivation(self, derivation: DerivationTree) -> None:
        self.derivation = derivation
        self.reset()

    def get_derivation(self) -> DerivationTree:
        return self.derivation

    def reset(self) -> None:
        self.rng = np.random.default_rng(self.derivation.seed)

    def grow(self, stem: Optional[StemHandle] = None) -> StemHandle:
        """
        Grow the whole plant, or regrow the laterals of ``stem``.

        With no argument a new root replaces the current tree. With a stem,
        its existing lateral stems and leaves are replaced using the
        top-level derivation. Both the random stream and the stem's own
        stream restart from the stem's seed, so regrowing a stem always
        yields the same laterals.
        """
        if stem is None:
            self.reset()
            stem = self.plant.create_root(seed=self.derivation.seed)
            self._set_path(stem, UP, self.derivation.root_length)
        else:
            self._remove_laterals(stem)
            node = self.plant.get(stem)
            node.reseed(node.seed)
            self.rng = np.random.default_rng(node.seed)

        self._grow(stem, self.derivation.root)
        update_radii(self.plant, stem, self.derivation.min_radius)
        logger.info(f"Derived plant with {self.plant.stem_count()} stems")
        return stem

    def _grow(self, stem: StemHandle, rule: DerivationNode) -> None:
        self.add_lateral_stems(stem, rule)
        self.add_leaves(stem, rule.derivation)

    def _remove_laterals(self, stem: StemHandle) -> None:
        for child in self.plant.children(stem):
            if not self.plant.get(child).dichotomous:
                self.plant.delete_stem(child)
        self.plant.get(stem).leaves.clear()

    def _set_path(self, stem: StemHandle, direction: np.ndarray, length: float) -> None:
        """Cubic path of ``length`` along ``direction`` bending slightly upward."""
        direction = normalize(direction)
        bend = normalize(direction + 0.3 * UP)
        controls = [
            np.zeros(3),
            direction * length / 3.0,
            direction * length * 2.0 / 3.0,
            direction * length * 2.0 / 3.0 + bend * length / 3.0,
        ]
        node = self.plant.get(stem)
        node.min_radius = self.derivation.min_radius
        self.plant.set_path(stem, Path(Spline(3, controls), divisions=6))

    def get_stem_direction(self, parent: StemHandle, position: float, azimuth: float, angle: float) -> np.ndarray:
        """Direction of a lateral at ``position`` rotated ``azimuth`` around the parent."""
        parent_direction = self.plant.get(parent).path.direction_at(position)
        side = Rotation.from_rotvec(parent_direction * azimuth).apply(perpendicular(parent_direction))
        return Rotation.from_rotvec(side * angle).apply(parent_direction)

    def add_lateral_stems(self, stem: StemHandle, rule: DerivationNode) -> List[StemHandle]:
        """Spawn laterals along ``stem`` following ``rule``'s density."""
        derivation = rule.derivation
        if not rule.children or derivation.stem_density <= 0:
            return []
        length = self.plant.get(stem).path.length()
        step = 1.0 / derivation.stem_density
        position = derivation.stem_start
        azimuth = self.rng.uniform(0.0, 2.0 * math.pi)
        added = []
        while position < length:
            child_rule = rule.children[len(added) % len(rule.children)]
            added.append(self.add_lateral_stem(stem, position, azimuth, derivation, child_rule))
            azimuth += math.radians(derivation.arrangement)
            position += step
        return added

    def add_lateral_stem(
        self,
        parent: StemHandle,
        position: float,
        azimuth: float,
        derivation: Derivation,
        rule: DerivationNode,
    ) -> StemHandle:
        stem = self.plant.add_stem(parent)
        parent_node = self.plant.get(parent)
        self.plant.set_distance(stem, position)

        angle = math.radians(derivation.stem_angle) + self.rng.normal(0.0, 0.05)
        direction = self.get_stem_direction(parent, position, azimuth, angle)
        length = max(parent_node.path.length() - position, 0.0) * derivation.length_factor
        length = max(length, self.derivation.min_radius * 4.0)

        node = self.plant.get(stem)
        node.section_divisions = max(3, parent_node.section_divisions - 2)
        node.outer_material = parent_node.outer_material
        node.inner_material = parent_node.inner_material
        self._set_path(stem, direction, length)
        self._grow(stem, rule)
        return stem

    def add_leaves(self, stem: StemHandle, derivation: Derivation) -> int:
        """Place whorls of leaves along ``stem``, alternating between nodes."""
        if derivation.leaf_density <= 0:
            return 0
        node = self.plant.get(stem)
        length = node.path.length()
        step = 1.0 / derivation.leaf_density
        position = derivation.stem_start
        angle = 0.0
        count = 0
        while position < length:
            for k in range(derivation.leaves_per_node):
                spread = angle + 2.0 * math.pi * k / derivation.leaves_per_node
                self.add_leaf(stem, derivation, position, spread)
                count += 1
            angle = self.alternate(angle, derivation)
            position += step
        return count

    def add_leaf(self, stem: StemHandle, derivation: Derivation, position: float, angle: float) -> int:
        """
        Attach a leaf at ``position`` turned ``angle`` radians around the stem.

        The turn is stored relative to the leaf's default orientation.
        """
        node = self.plant.get(stem)
        direction = node.path.direction_at(position)
        default = Leaf.default_orientation(direction)
        turn = Rotation.from_rotvec(direction * angle)
        leaf = Leaf(
            position=position,
            rotation=default.inv() * turn * default,
            scale=np.array(derivation.leaf_scale, dtype=float),
        )
        return node.add_leaf(leaf)

    @staticmethod
    def alternate(angle: float, derivation: Derivation) -> float:
        """Advance the whorl angle to the next leaf node."""
        return (angle + math.radians(derivation.leaf_rotation)) % (2.0 * math.pi)


__all__ = ["Derivation", "DerivationNode", "DerivationTree", "PseudoGenerator"]
