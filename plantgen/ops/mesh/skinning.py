"""
Skinning weights for stem and leaf vertices.

Every vertex references up to two joints with blend weights summing to 1.
Between two joints of a stem, a vertex is fully bound to the nearer joint
over the first and last half-intervals of the stem, and blends linearly
toward the midpoint elsewhere. Vertices exactly on a joint sample split
evenly between that joint and its predecessor.
"""

from typing import List, Tuple

from ...core.path import Path
from ...core.types import Joint

Binding = Tuple[Tuple[float, float], Tuple[float, float]]


def full_weight(joint_id: int) -> Binding:
    return (float(joint_id), float(joint_id)), (1.0, 0.0)


def get_joint(path: Path, joints: List[Joint], position: float) -> Tuple[int, Joint]:
    """Joint governing arc length ``position``: the last one at or before it."""
    index = path.index_at(position)
    for joint_index, joint in enumerate(joints):
        if joint.path_index > index:
            if joint_index > 0:
                return joint_index - 1, joints[joint_index - 1]
            return 0, joint
    return len(joints) - 1, joints[-1]


def advance_joint(joints: List[Joint], joint_index: int, section: int) -> int:
    """Move past every joint whose path index has been reached."""
    while joint_index + 1 < len(joints) and joints[joint_index + 1].path_index <= section:
        joint_index += 1
    return joint_index


def set_joint_info(path: Path, joints: List[Joint], offset: float, joint_index: int) -> Binding:
    """
    Binding for a point ``offset`` arc length past ``joints[joint_index]``.

    Parameters
    ----------
    path : Path
        Path of the stem owning the joints
    joints : list of Joint
        Joints sorted by path index
    offset : float
        Arc length from the joint's sample to the point
    joint_index : int
        Index of the governing joint

    Returns
    -------
    ((float, float), (float, float))
        Joint ids and blend weights
    """
    joint = joints[joint_index]
    last = joint_index + 1 >= len(joints)
    end = len(path) - 1 if last else joints[joint_index + 1].path_index
    distance = path.distance_between(joint.path_index, end)
    ratio = offset / distance if distance > 0.0 else 0.5
    ratio = min(max(ratio, 0.0), 1.0)

    first = ratio < 0.5 and joint_index == 0
    final = ratio > 0.5 and last
    if ratio == 0.5 or first or final:
        return full_weight(joint.id)
    if ratio > 0.5:
        blend = ratio - 0.5
        next_id = joints[joint_index + 1].id
        return (float(joint.id), float(next_id)), (1.0 - blend, blend)
    prev_id = joints[joint_index - 1].id
    return (float(joint.id), float(prev_id)), (0.5 + ratio, 0.5 - ratio)


def section_binding(path: Path, joints: List[Joint], joint_index: int, section: int) -> Tuple[Binding, int]:
    """
    Binding for the ring at path sample ``section``.

    Returns the binding and the (possibly advanced) joint index.
    """
    joint_index = advance_joint(joints, joint_index, section)
    joint = joints[joint_index]

    if joint_index == 0 and section <= joint.path_index:
        return full_weight(joint.id), joint_index
    if section == 0 or section == len(path) - 1:
        return full_weight(joint.id), joint_index
    if section == joint.path_index:
        prev_id = joints[joint_index - 1].id
        return ((float(joint.id), float(prev_id)), (0.5, 0.5)), joint_index

    offset = path.distance_between(joint.path_index, section)
    return set_joint_info(path, joints, offset, joint_index), joint_index


def leaf_binding(path: Path, joints: List[Joint], position: float, inherited_id: int) -> Binding:
    """Binding for a leaf at arc length ``position`` (negative means the tip)."""
    if not joints:
        return full_weight(inherited_id)
    if position < 0.0:
        position = path.length()
    joint_index, joint = get_joint(path, joints, position)
    offset = position - path.distance(joint.path_index)
    return set_joint_info(path, joints, offset, joint_index)


__all__ = [
    "get_joint",
    "advance_joint",
    "set_joint_info",
    "section_binding",
    "leaf_binding",
    "full_weight",
]
