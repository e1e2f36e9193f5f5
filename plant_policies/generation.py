"""
Generation policies for the plant generator.

This module contains the policy dataclasses used by the growth allocator,
the light volume, the mesh synthesizer and the exporters. All policies are
JSON-serializable and support the "requested vs effective" pattern.

UNIT CONVENTIONS
----------------
Lengths are in scene units (the same units the stem paths are authored in).
Angles are in degrees.
"""

from dataclasses import dataclass, asdict
from typing import Optional, Dict, Any, List, Literal, Tuple
from .base import alias_fields, coerce_vec3, validate_policy


# Field aliases for backward compatibility
GROWTH_ALIASES = {
    "nodes": "nodes_per_cycle",
    "rays": "ray_count",
    "levels": "ray_levels",
}


@dataclass
class GrowthPolicy:
    """
    Policy for the light-driven growth allocator.

    Controls how many cycles are simulated, how far stems extend per cycle
    (primary growth), how thick they become (secondary growth) and how
    densely the light volume is sampled.

    JSON Schema:
    {
        "cycles": int,
        "nodes_per_cycle": int,
        "primary_growth_rate": float,
        "secondary_growth_rate": float,
        "min_radius": float,
        "ray_count": int,
        "ray_levels": int,
        "node_length": float,
        "efficiency_threshold": float (0-1),
        "max_nodes_per_stem": int,
        "max_depth": int,
        "lateral_probability": float (0-1),
        "branch_angle_deg": float,
        "light_bias": float,
        "gravitropism": float,
        "leaves_per_stem": int,
        "leaf_scale": [float, float, float],
        "seed": int | null,
        "show_progress": bool
    }
    """
    cycles: int = 5
    nodes_per_cycle: int = 4
    primary_growth_rate: float = 1.0
    secondary_growth_rate: float = 1.0
    min_radius: float = 0.01
    ray_count: int = 8
    ray_levels: int = 3
    node_length: float = 0.1
    efficiency_threshold: float = 0.2
    max_nodes_per_stem: int = 24
    max_depth: int = 4
    lateral_probability: float = 0.35
    branch_angle_deg: float = 45.0
    light_bias: float = 0.5
    gravitropism: float = 0.2
    leaves_per_stem: int = 1
    leaf_scale: Tuple[float, float, float] = (0.15, 0.15, 0.15)
    seed: Optional[int] = None
    show_progress: bool = False

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["leaf_scale"] = list(self.leaf_scale)
        return d

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "GrowthPolicy":
        d = alias_fields(d, GROWTH_ALIASES)
        policy = GrowthPolicy(**{k: v for k, v in d.items() if k in GrowthPolicy.__dataclass_fields__})
        policy.leaf_scale = coerce_vec3(policy.leaf_scale, (0.15, 0.15, 0.15))
        return policy

    def validate(self) -> List[str]:
        return validate_policy(
            self,
            positive_fields=["min_radius", "node_length", "primary_growth_rate"],
            bounds={
                "cycles": (0, None),
                "nodes_per_cycle": (0, None),
                "ray_count": (1, None),
                "ray_levels": (0, None),
                "secondary_growth_rate": (0, None),
                "max_depth": (0, None),
                "leaves_per_stem": (0, None),
                "lateral_probability": (0.0, 1.0),
                "efficiency_threshold": (0.0, 1.0),
            },
        )


@dataclass
class VolumePolicy:
    """
    Policy for the volumetric light estimator.

    JSON Schema:
    {
        "depth": int (finest octree level),
        "padding": float (fraction of the bounding box added on each side),
        "absorption": float (attenuation per unit density),
        "min_size": float (smallest edge length of the volume)
    }
    """
    depth: int = 4
    padding: float = 0.25
    absorption: float = 4.0
    min_size: float = 1.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "VolumePolicy":
        return VolumePolicy(**{k: v for k, v in d.items() if k in VolumePolicy.__dataclass_fields__})

    def validate(self) -> List[str]:
        return validate_policy(
            self,
            positive_fields=["min_size"],
            bounds={"depth": (0, 8), "absorption": (0.0, None), "padding": (0.0, None)},
        )


@dataclass
class MeshSynthesisPolicy:
    """
    Policy for mesh synthesis from a stem graph.

    JSON Schema:
    {
        "cap_ends": bool,
        "include_leaves": bool,
        "include_collars": bool
    }

    cap_ends only allows caps; a stem is capped when its minimum radius is
    greater than zero.
    """
    cap_ends: bool = True
    include_leaves: bool = True
    include_collars: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "MeshSynthesisPolicy":
        return MeshSynthesisPolicy(**{k: v for k, v in d.items() if k in MeshSynthesisPolicy.__dataclass_fields__})


@dataclass
class OutputPolicy:
    """
    Policy for output file handling.

    JSON Schema:
    {
        "output_dir": str,
        "file_format": "obj" | "ply" | "glb" | "stl",
        "naming_convention": "timestamped" | "fixed"
    }
    """
    output_dir: str = "./output"
    file_format: Literal["obj", "ply", "glb", "stl"] = "obj"
    naming_convention: Literal["timestamped", "fixed"] = "timestamped"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "OutputPolicy":
        return OutputPolicy(**{k: v for k, v in d.items() if k in OutputPolicy.__dataclass_fields__})

    def validate(self) -> List[str]:
        errors = validate_policy(self, ["output_dir", "file_format"])
        if self.file_format not in ("obj", "ply", "glb", "stl"):
            errors.append(f"file_format must be one of obj, ply, glb, stl, got {self.file_format}")
        if self.naming_convention not in ("timestamped", "fixed"):
            errors.append(f"naming_convention must be timestamped or fixed, got {self.naming_convention}")
        return errors


__all__ = [
    "GrowthPolicy",
    "VolumePolicy",
    "MeshSynthesisPolicy",
    "OutputPolicy",
]
