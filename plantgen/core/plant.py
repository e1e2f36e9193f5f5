"""
Plant: stem arena, tree structure and registries.

Stems live in a ``StemPool`` and are linked through ``StemHandle`` values.
Handles survive unrelated insertions and removals; a deallocated slot bumps
its generation so stale handles are detected instead of silently aliasing
a new stem.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple, Any
import copy
import logging
import numpy as np
import networkx as nx

from .stem import StemHandle, StemNode, entropy_seed
from .path import Path
from .types import Geometry, Material, StaleHandleError, UnknownLeafMeshError, UnknownMaterialError

logger = logging.getLogger(__name__)


class StemPool:
    """Slot arena for stem records."""

    def __init__(self):
        self._slots: List[Optional[StemNode]] = []
        self._generations: List[int] = []
        self._free: List[int] = []

    def allocate(self, node: StemNode) -> StemHandle:
        if self._free:
            index = self._free.pop()
        else:
            index = len(self._slots)
            self._slots.append(None)
            self._generations.append(0)
        self._slots[index] = node
        return StemHandle(index, self._generations[index])

    def allocate_at(self, handle: StemHandle, node: StemNode) -> StemHandle:
        """
        Place ``node`` in the slot named by ``handle`` and revive the handle.

        Raises
        ------
        ValueError
            If the slot is occupied.
        """
        while len(self._slots) <= handle.index:
            self._free.append(len(self._slots))
            self._slots.append(None)
            self._generations.append(0)
        if self._slots[handle.index] is not None:
            raise ValueError(f"Slot {handle.index} is occupied; cannot reallocate {handle}")
        self._free.remove(handle.index)
        self._slots[handle.index] = node
        self._generations[handle.index] = handle.generation
        return handle

    def deallocate(self, handle: StemHandle) -> StemNode:
        node = self.get(handle)
        self._slots[handle.index] = None
        self._generations[handle.index] += 1
        self._free.append(handle.index)
        return node

    def is_valid(self, handle: Optional[StemHandle]) -> bool:
        return (
            handle is not None
            and 0 <= handle.index < len(self._slots)
            and self._slots[handle.index] is not None
            and self._generations[handle.index] == handle.generation
        )

    def get(self, handle: StemHandle) -> StemNode:
        if not self.is_valid(handle):
            raise StaleHandleError(f"Stale or unknown stem handle {handle}")
        return self._slots[handle.index]

    def __len__(self) -> int:
        return len(self._slots) - len(self._free)


@dataclass
class Extraction:
    """
    Detached subtree kept for later reinsertion.

    Attributes
    ----------
    handle : StemHandle
        Address the stem occupied and will occupy again
    parent : StemHandle, optional
        Parent at extraction time (None for the root)
    position : int
        Index in the parent's child list
    value : StemNode
        Copy of the stem's value state with structural links cleared
    children : list of Extraction
        Records of the stem's children in child-list order
    """

    handle: StemHandle
    parent: Optional[StemHandle]
    position: int
    value: StemNode
    children: List["Extraction"] = field(default_factory=list)


class Plant:
    """
    Owner of the stem tree and of the material and leaf-mesh registries.

    Examples
    --------
    >>> plant = Plant()
    >>> root = plant.create_root(seed=1)
    >>> branch = plant.add_stem(root)
    >>> plant.get_parent(branch) == root
    True
    """

    def __init__(self):
        self.pool = StemPool()
        self.root: Optional[StemHandle] = None
        self.materials: Dict[int, Material] = {}
        self.leaf_meshes: Dict[int, Geometry] = {}
        self._default_material = Material(0, "default")
        self._default_leaf_mesh = Geometry.plane()

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    def get(self, handle: StemHandle) -> StemNode:
        """Return the stem record for ``handle`` (raises ``StaleHandleError``)."""
        return self.pool.get(handle)

    def is_valid(self, handle: Optional[StemHandle]) -> bool:
        return self.pool.is_valid(handle)

    def get_parent(self, handle: StemHandle) -> Optional[StemHandle]:
        return self.get(handle).parent

    def children(self, handle: StemHandle) -> List[StemHandle]:
        """Child handles in child-list order (dichotomous pair first)."""
        result = []
        current = self.get(handle).child
        while current is not None:
            result.append(current)
            current = self.get(current).next_sibling
        return result

    def iter_stems(self, start: Optional[StemHandle] = None) -> Iterator[StemHandle]:
        """Pre-order traversal from ``start`` (the root by default)."""
        start = self.root if start is None else start
        if start is None:
            return
        stack = [start]
        while stack:
            handle = stack.pop()
            yield handle
            stack.extend(reversed(self.children(handle)))

    def iter_post_order(self, start: Optional[StemHandle] = None) -> Iterator[StemHandle]:
        """Children before parents."""
        order = list(self.iter_stems(start))
        return reversed(order)

    def stem_count(self) -> int:
        return len(self.pool)

    def is_lateral(self, handle: StemHandle) -> bool:
        node = self.get(handle)
        return node.parent is not None and not node.dichotomous

    def is_descendant_of(self, handle: StemHandle, ancestor: StemHandle) -> bool:
        current = self.get(handle).parent
        while current is not None:
            if current == ancestor:
                return True
            current = self.get(current).parent
        return False

    def has_dichotomous_stems(self, handle: StemHandle) -> bool:
        first = self.get(handle).child
        return first is not None and self.get(first).dichotomous

    # ------------------------------------------------------------------
    # Linking
    # ------------------------------------------------------------------

    def _insert_child(self, parent: StemHandle, child: StemHandle, position: int) -> None:
        """Link ``child`` into ``parent``'s child list at ``position``."""
        parent_node = self.get(parent)
        child_node = self.get(child)
        siblings = self.children(parent)
        position = max(0, min(position, len(siblings)))

        prev = siblings[position - 1] if position > 0 else None
        nxt = siblings[position] if position < len(siblings) else None

        child_node.parent = parent
        child_node.prev_sibling = prev
        child_node.next_sibling = nxt
        if prev is None:
            parent_node.child = child
        else:
            self.get(prev).next_sibling = child
        if nxt is not None:
            self.get(nxt).prev_sibling = child

    def decouple(self, handle: StemHandle) -> None:
        """Unlink ``handle`` from its parent and siblings without freeing it."""
        node = self.get(handle)
        if node.prev_sibling is not None:
            self.get(node.prev_sibling).next_sibling = node.next_sibling
        elif node.parent is not None:
            self.get(node.parent).child = node.next_sibling
        if node.next_sibling is not None:
            self.get(node.next_sibling).prev_sibling = node.prev_sibling
        if self.root == handle:
            self.root = None
        node.parent = None
        node.prev_sibling = None
        node.next_sibling = None

    def _deallocate_subtree(self, handle: StemHandle) -> None:
        for child in self.children(handle):
            self._deallocate_subtree(child)
        self.pool.deallocate(handle)

    def _sibling_position(self, handle: StemHandle) -> int:
        node = self.get(handle)
        if node.parent is None:
            return 0
        return self.children(node.parent).index(handle)

    # ------------------------------------------------------------------
    # Structural mutation
    # ------------------------------------------------------------------

    def create_root(self, seed: Optional[int] = None) -> StemHandle:
        """Replace the current tree with a single new root stem."""
        if self.root is not None:
            self.remove_root()
        node = StemNode()
        node.reseed(entropy_seed() if seed is None else seed)
        self.root = self.pool.allocate(node)
        logger.debug(f"Created root {self.root} with seed {node.seed}")
        return self.root

    def remove_root(self) -> None:
        if self.root is not None:
            self.delete_stem(self.root)

    def add_stem(self, parent: StemHandle) -> StemHandle:
        """
        Allocate a lateral stem at the head of ``parent``'s child list.

        The new stem follows the dichotomous pair when the parent has one.
        Its seed is drawn from the parent's random stream.
        """
        parent_node = self.get(parent)
        node = StemNode(depth=parent_node.depth + 1)
        node.reseed(parent_node.next_seed())
        handle = self.pool.allocate(node)
        position = 2 if self.has_dichotomous_stems(parent) else 0
        self._insert_child(parent, handle, position)
        self._update_location(handle)
        return handle

    def delete_stem(self, handle: StemHandle) -> None:
        """Decouple ``handle`` and free its whole subtree."""
        self.decouple(handle)
        self._deallocate_subtree(handle)

    def _record(self, handle: StemHandle) -> Extraction:
        node = self.get(handle)
        value = copy.deepcopy(node)
        value.clear_links()
        record = Extraction(
            handle=handle,
            parent=node.parent,
            position=self._sibling_position(handle),
            value=value,
        )
        record.children = [self._record(child) for child in self.children(handle)]
        return record

    def extract_stem(self, handle: StemHandle) -> Extraction:
        """Cut ``handle``'s subtree out of the tree, keeping it for reinsertion."""
        record = self._record(handle)
        self.delete_stem(handle)
        return record

    def reinsert_stem(self, record: Extraction) -> StemHandle:
        """
        Restore an extracted subtree at its recorded addresses.

        The recorded parent must be present; a record without a parent
        becomes the root, which requires the plant to have no root.
        """
        if record.parent is None and self.root is not None:
            raise ValueError("Cannot reinsert a root stem while the plant has a root")
        if record.parent is not None and not self.is_valid(record.parent):
            raise StaleHandleError(f"Parent {record.parent} of {record.handle} is not in the plant")

        self.pool.allocate_at(record.handle, copy.deepcopy(record.value))
        if record.parent is None:
            self.root = record.handle
        else:
            self._insert_child(record.parent, record.handle, record.position)
        for child in record.children:
            self.reinsert_stem(child)
        return record.handle

    def extract_stems(self, handles: List[StemHandle]) -> List[Extraction]:
        """Extract several subtrees; stems inside another selected subtree travel with it."""
        selected = set(handles)
        top = [
            handle for handle in handles
            if not any(self.is_descendant_of(handle, other) for other in selected if other != handle)
        ]
        return [self.extract_stem(handle) for handle in top]

    def reinsert_stems(self, records: List[Extraction]) -> List[StemHandle]:
        """Reinsert records produced by ``extract_stems`` (latest first)."""
        return [self.reinsert_stem(record) for record in reversed(records)][::-1]

    def add_dichotomous_stems(self, parent: StemHandle) -> Tuple[StemHandle, StemHandle]:
        """Add the two fork stems at the head of ``parent``'s child list."""
        if self.has_dichotomous_stems(parent):
            raise ValueError(f"Stem {parent} already has dichotomous stems")
        parent_node = self.get(parent)
        handles = []
        for position in range(2):
            node = StemNode(depth=parent_node.depth + 1, dichotomous=True)
            node.reseed(parent_node.next_seed())
            node.section_divisions = parent_node.section_divisions
            node.distance = parent_node.path.length()
            handle = self.pool.allocate(node)
            self._insert_child(parent, handle, position)
            self._update_location(handle)
            handles.append(handle)
        return handles[0], handles[1]

    def remove_dichotomous_stems(self, parent: StemHandle) -> None:
        """Delete the fork stems of ``parent``; other children keep their order."""
        if not self.has_dichotomous_stems(parent):
            return
        first, second = self.children(parent)[:2]
        self.delete_stem(first)
        self.delete_stem(second)

    # ------------------------------------------------------------------
    # Placement
    # ------------------------------------------------------------------

    def _update_location(self, handle: StemHandle) -> None:
        node = self.get(handle)
        if node.parent is None:
            return
        parent_node = self.get(node.parent)
        point = parent_node.path.point_at(node.distance)
        if not np.all(np.isfinite(point)):
            node.location = np.full(3, np.inf)
        else:
            node.location = parent_node.location + point

    def _update_positions(self, handle: StemHandle) -> None:
        node = self.get(handle)
        for child in self.children(handle):
            child_node = self.get(child)
            if child_node.dichotomous:
                child_node.distance = node.path.length()
            self._update_location(child)
            self._update_positions(child)

    def set_distance(self, handle: StemHandle, distance: float) -> None:
        """
        Move a stem along its parent's path.

        Distances outside the parent's path give a non-finite location,
        which hides the stem from mesh synthesis.
        """
        node = self.get(handle)
        node.distance = float(distance)
        self._update_location(handle)
        self._update_positions(handle)

    def set_location(self, handle: StemHandle, location) -> None:
        """Set the location of a root stem and move its subtree."""
        node = self.get(handle)
        node.location = np.asarray(location, dtype=float).reshape(3)
        self._update_positions(handle)

    def set_path(self, handle: StemHandle, path: Path) -> None:
        self.get(handle).path = path
        self._update_positions(handle)

    def refresh_positions(self, handle: Optional[StemHandle] = None) -> None:
        """Recompute child locations after paths were edited in place."""
        handle = self.root if handle is None else handle
        if handle is not None:
            self._update_positions(handle)

    def set_section_divisions(self, handle: StemHandle, divisions: int) -> None:
        """Set ring resolution, shared along a chain of dichotomous forks."""
        if divisions < 3:
            raise ValueError(f"section divisions must be >= 3, got {divisions}")
        node = self.get(handle)
        if node.dichotomous and node.parent is not None:
            self.set_section_divisions(node.parent, divisions)
            return
        node.section_divisions = divisions
        self._propagate_divisions(handle, divisions)

    def _propagate_divisions(self, handle: StemHandle, divisions: int) -> None:
        if not self.has_dichotomous_stems(handle):
            return
        for child in self.children(handle)[:2]:
            self.get(child).section_divisions = divisions
            self._propagate_divisions(child, divisions)

    def get_radius(self, handle: StemHandle, index: int) -> float:
        """Radius at path sample ``index`` from the stem's radius profile."""
        node = self.get(handle)
        length = node.path.length()
        t = node.path.distance(index) / length if length > 0.0 else 0.0
        return max(node.min_radius, node.max_radius * node.radius_curve(t))

    # ------------------------------------------------------------------
    # Registries
    # ------------------------------------------------------------------

    def add_material(self, material: Material) -> None:
        """Register ``material``, replacing any material with the same id."""
        self.materials[material.id] = material

    def get_material(self, material_id: int) -> Material:
        if material_id == 0:
            return self.materials.get(0, self._default_material)
        if material_id not in self.materials:
            raise UnknownMaterialError(material_id)
        return self.materials[material_id]

    def remove_material(self, material_id: int) -> None:
        """Unregister a material and reset every reference to it to 0."""
        self.materials.pop(material_id, None)
        for handle in self.iter_stems():
            node = self.get(handle)
            if node.outer_material == material_id:
                node.outer_material = 0
            if node.inner_material == material_id:
                node.inner_material = 0
            for leaf in node.leaves.values():
                if leaf.material == material_id:
                    leaf.material = 0

    def add_leaf_mesh(self, mesh_id: int, geometry: Geometry) -> None:
        self.leaf_meshes[mesh_id] = geometry

    def get_leaf_mesh(self, mesh_id: int) -> Geometry:
        if mesh_id == 0:
            return self.leaf_meshes.get(0, self._default_leaf_mesh)
        if mesh_id not in self.leaf_meshes:
            raise UnknownLeafMeshError(mesh_id)
        return self.leaf_meshes[mesh_id]

    def remove_leaf_mesh(self, mesh_id: int) -> None:
        self.leaf_meshes.pop(mesh_id, None)
        for handle in self.iter_stems():
            for leaf in self.get(handle).leaves.values():
                if leaf.mesh == mesh_id:
                    leaf.mesh = 0

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def to_graph(self) -> nx.DiGraph:
        """Directed parent -> child graph keyed by ``StemHandle``."""
        graph = nx.DiGraph()
        for handle in self.iter_stems():
            node = self.get(handle)
            graph.add_node(
                handle,
                depth=node.depth,
                length=node.path.length(),
                radius=node.max_radius,
                dichotomous=node.dichotomous,
                leaves=len(node.leaves),
            )
            if node.parent is not None:
                graph.add_edge(node.parent, handle, distance=node.distance)
        return graph

    def to_dict(self, start: Optional[StemHandle] = None) -> Optional[Dict[str, Any]]:
        """Nested tree of stem value fields and handles."""
        start = self.root if start is None else start
        if start is None:
            return None
        d = self.get(start).to_dict()
        d["handle"] = start.to_list()
        d["children"] = [self.to_dict(child) for child in self.children(start)]
        return d


__all__ = ["StemPool", "Extraction", "Plant"]
