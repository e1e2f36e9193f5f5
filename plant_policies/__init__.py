"""
Plant Policies - Centralized policy definitions for the plant generator.

This package provides all policy dataclasses used by the growth allocator,
the mesh synthesizer and the exporters. All policies are JSON-serializable
and support the "requested vs effective" pattern for tracking runtime
adjustments.

Usage:
    from plant_policies import GrowthPolicy, MeshSynthesisPolicy, OperationReport
"""

from .base import (
    OperationReport,
    validate_policy,
    coerce_vec3,
    alias_fields,
)

from .generation import (
    GrowthPolicy,
    VolumePolicy,
    MeshSynthesisPolicy,
    OutputPolicy,
)

__all__ = [
    "OperationReport",
    "validate_policy",
    "coerce_vec3",
    "alias_fields",
    "GrowthPolicy",
    "VolumePolicy",
    "MeshSynthesisPolicy",
    "OutputPolicy",
]
