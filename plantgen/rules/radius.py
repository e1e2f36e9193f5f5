"""
Pipe-model radius rule.

A stem's cross-sectional area must be at least the sum of the areas of the
stems it supports. Both the light-driven and the rule-based generators
update radii through this module.
"""

import math

from ..core.plant import Plant
from ..core.stem import StemHandle


def apply_pipe_model(
    plant: Plant,
    handle: StemHandle,
    min_radius: float,
    secondary_growth_rate: float = 1.0,
) -> float:
    """
    Set the base radius of one stem from its children.

    Children must already hold their final radii (call in post-order).

    Parameters
    ----------
    plant : Plant
        Plant owning the stem
    handle : StemHandle
        Stem to update
    min_radius : float
        Lower bound for the radius
    secondary_growth_rate : float
        Scales the stem's own contribution to its cross-section

    Returns
    -------
    float
        The new radius
    """
    area = 0.0
    for child in plant.children(handle):
        r = plant.get(child).max_radius
        area += math.pi * r * r
    own = min_radius * secondary_growth_rate
    area += math.pi * own * own

    radius = max(min_radius, math.sqrt(area / math.pi))
    plant.get(handle).max_radius = radius
    return radius


def update_radii(
    plant: Plant,
    handle: StemHandle,
    min_radius: float,
    secondary_growth_rate: float = 1.0,
) -> float:
    """Apply the pipe model to the subtree rooted at ``handle``, bottom-up."""
    for child in plant.children(handle):
        update_radii(plant, child, min_radius, secondary_growth_rate)
    return apply_pipe_model(plant, handle, min_radius, secondary_growth_rate)


__all__ = ["apply_pipe_model", "update_radii"]
