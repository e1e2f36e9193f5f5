"""
Mesh synthesis from a stem graph.

``Mesh.generate`` walks the plant depth-first and writes every stem, cap
and leaf into the buffer of its material. Synthesis always works with
buffer-local offsets; ``update_segments`` then shifts indices and segment
offsets so all buffers can be concatenated into one vertex array and one
index array with one draw range per material.
"""

from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Tuple
import logging
import math
import numpy as np
from scipy.spatial.transform import Rotation

from plant_policies import MeshSynthesisPolicy
from ...core.plant import Plant
from ...core.stem import StemHandle, StemNode
from ...core.types import Segment, UnknownMaterialError, VERTEX_DTYPE, INDEX_DTYPE
from ...utils.geometry import EPSILON, normalize, project_onto_plane, rotate_into_vec
from .buffers import IndexBuffer, VertexBuffer
from .collar import add_triangle_ring, collar_scale, collar_size, connect_collar
from .cross_section import CrossSection
from .skinning import full_weight, get_joint, leaf_binding, section_binding

logger = logging.getLogger(__name__)

UP = np.array([0.0, 1.0, 0.0])
SIDEWAYS = np.array([1.0, 0.0, 0.0])

LeafID = Tuple[StemHandle, int]


@dataclass
class SynthesisState:
    """Per-stem cursor while emitting rings."""
    mesh: int = 0
    stem: Optional[StemHandle] = None
    segment: Segment = field(default_factory=Segment)
    prev_rotation: Rotation = field(default_factory=Rotation.identity)
    prev_direction: np.ndarray = field(default_factory=lambda: UP.copy())
    tex_offset: float = 0.0
    section: int = 0
    prev_index: int = 0
    joint_id: int = 0
    joint_index: int = 0


class Mesh:
    """
    Triangle mesh of a plant, split into one buffer per material.

    Parameters
    ----------
    plant : Plant
        Source stem graph and registries
    policy : MeshSynthesisPolicy, optional
        Toggles for caps, leaves and branch collars

    Notes
    -----
    Buffer ``0`` always holds the default material; the remaining buffers
    follow the registered material ids in ascending order.
    """

    def __init__(self, plant: Plant, policy: Optional[MeshSynthesisPolicy] = None):
        self.plant = plant
        self.policy = policy or MeshSynthesisPolicy()
        self.cross_section = CrossSection()
        self.material_ids: List[int] = [0]
        self.vertices: List[VertexBuffer] = []
        self.indices: List[IndexBuffer] = []
        self.stem_segments: List[Dict[StemHandle, Segment]] = []
        self.leaf_segments: List[Dict[LeafID, Segment]] = []
        self.collar_fallbacks = 0
        self.hidden_stems = 0

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def generate(self) -> None:
        """Rebuild all buffers from the current state of the plant."""
        self.init_buffers()
        if self.plant.root is not None:
            self.add_stem(self.plant.root, SynthesisState())
            self.update_segments()
        logger.debug(
            f"Generated {self.get_vertex_count()} vertices and {self.get_index_count()} indices "
            f"in {self.get_mesh_count()} buffers"
        )

    def init_buffers(self) -> None:
        self.material_ids = [0] + sorted(m for m in self.plant.materials if m != 0)
        count = len(self.material_ids)
        self.vertices = [VertexBuffer() for _ in range(count)]
        self.indices = [IndexBuffer() for _ in range(count)]
        self.stem_segments = [{} for _ in range(count)]
        self.leaf_segments = [{} for _ in range(count)]
        self.collar_fallbacks = 0
        self.hidden_stems = 0

    def select_buffer(self, material_id: int) -> int:
        """Buffer index for ``material_id`` (0 is always valid)."""
        if material_id == 0:
            return 0
        try:
            return self.material_ids.index(material_id)
        except ValueError:
            raise UnknownMaterialError(material_id) from None

    @staticmethod
    def has_valid_location(node: StemNode) -> bool:
        return bool(np.all(np.isfinite(node.location)))

    def add_stem(self, handle: StemHandle, parent_state: SynthesisState) -> Optional[Segment]:
        """
        Emit ``handle`` and then its subtree.

        A stem with a non-finite location emits nothing; each of its children
        is still emitted when its own location is valid.
        """
        node = self.plant.get(handle)
        state = parent_state
        segment = None

        if self.has_valid_location(node) and len(node.path) > 0:
            state = SynthesisState(mesh=self.select_buffer(node.outer_material), stem=handle)
            state.segment = Segment(
                mesh=state.mesh,
                vertex_start=len(self.vertices[state.mesh]),
                index_start=len(self.indices[state.mesh]),
            )
            self.set_initial_joint_state(state, parent_state)
            self.add_sections(state)
            segment = state.segment
            segment.vertex_count = len(self.vertices[state.mesh]) - segment.vertex_start
            segment.index_count = len(self.indices[state.mesh]) - segment.index_start
            self.stem_segments[state.mesh][handle] = segment
            if self.policy.include_leaves:
                self.add_leaves(handle, state)
        else:
            self.hidden_stems += 1

        for child in self.plant.children(handle):
            self.add_stem(child, state)
        return segment

    def add_sections(self, state: SynthesisState) -> None:
        node = self.plant.get(state.stem)
        path = node.path
        divisions = node.section_divisions
        if divisions != self.cross_section.resolution:
            self.cross_section.generate(divisions)

        self.set_initial_rotation(state)
        state.tex_offset = 0.0
        state.prev_index = len(self.vertices[state.mesh])
        state.section = self.create_branch_collar(state)
        sections = len(path)

        if 0 < state.section < sections:
            add_triangle_ring(self.indices[state.mesh], state.prev_index, len(self.vertices[state.mesh]), divisions)

        while state.section < sections:
            rotation = self.rotate_section(state)
            state.prev_index = len(self.vertices[state.mesh])
            self.add_section(state, rotation)
            if state.section + 1 < sections:
                add_triangle_ring(
                    self.indices[state.mesh], state.prev_index, len(self.vertices[state.mesh]), divisions
                )
            state.section += 1

        if self.policy.cap_ends and node.min_radius > 0.0:
            self.cap_stem(state.stem, state.mesh, state.prev_index)

    def set_initial_rotation(self, state: SynthesisState) -> None:
        """
        Orient the first ring.

        A child ring turns +Y into its initial direction and then rolls
        about that direction so its first vertex points along the parent's
        direction, which anchors the branch visually to its parent.
        """
        node = self.plant.get(state.stem)
        if node.parent is None:
            state.prev_rotation = Rotation.identity()
            state.prev_direction = UP.copy()
            return

        parent = self.plant.get(node.parent)
        parent_direction = parent.path.direction_at(node.distance)
        stem_direction = node.path.direction(0)
        rotation = rotate_into_vec(UP, stem_direction)
        state.prev_direction = stem_direction

        sideways = normalize(rotation.apply(SIDEWAYS))
        target = project_onto_plane(parent_direction, stem_direction)
        if np.linalg.norm(target) > EPSILON:
            target = normalize(target)
            angle = math.atan2(np.dot(np.cross(sideways, target), stem_direction), np.dot(sideways, target))
            rotation = Rotation.from_rotvec(stem_direction * angle) * rotation
        state.prev_rotation = rotation

    def rotate_section(self, state: SynthesisState) -> Rotation:
        """Carry the previous ring's frame to the current sample's direction."""
        path = self.plant.get(state.stem).path
        direction = path.average_direction(state.section)
        rotation = rotate_into_vec(state.prev_direction, direction) * state.prev_rotation
        state.prev_rotation = rotation
        state.prev_direction = direction
        return rotation

    def get_aspect(self, node: StemNode) -> float:
        if node.outer_material > 0:
            return self.plant.get_material(node.outer_material).ratio
        return 1.0

    def get_texture_length(self, handle: StemHandle, section: int) -> float:
        """V distance covered by the path edge ending at ``section``."""
        if section <= 0:
            return 0.0
        node = self.plant.get(handle)
        radius = self.plant.get_radius(handle, section - 1)
        if radius <= 0.0:
            return 0.0
        length = node.path.segment_length(section)
        return length * self.get_aspect(node) / (radius * 2.0 * math.pi)

    def add_section(self, state: SynthesisState, rotation: Rotation) -> int:
        """Emit the ring for ``state.section``; returns its first vertex offset."""
        node = self.plant.get(state.stem)
        v = self.get_texture_length(state.stem, state.section) + state.tex_offset
        state.tex_offset = v

        location = node.location + node.path.point(state.section)
        if node.joints:
            (joints, weights), state.joint_index = section_binding(
                node.path, node.joints, state.joint_index, state.section
            )
        else:
            joints, weights = (float(state.joint_id), 0.0), (1.0, 0.0)

        radius = self.plant.get_radius(state.stem, state.section)
        cs = self.cross_section
        positions = rotation.apply(radius * cs.positions) + location
        normals = rotation.apply(cs.normals)
        normals /= np.linalg.norm(normals, axis=1, keepdims=True)
        uvs = np.stack([cs.u, np.full(len(cs.u), v)], axis=1)
        return self.vertices[state.mesh].append_vertices(positions, normals, uvs, joints, weights)

    # ------------------------------------------------------------------
    # Branch collars
    # ------------------------------------------------------------------

    def create_branch_collar(self, state: SynthesisState) -> int:
        """
        Emit the collar of ``state.stem`` if it has one.

        Returns the next path sample to emit: 0 when there is no collar (or
        the collar fell back), otherwise the sample after the post-collar ring.
        """
        node = self.plant.get(state.stem)
        if not self.policy.include_collars or not node.has_collar() or node.parent is None:
            return 0
        parent_segment = self.find_stem(node.parent)
        if parent_segment is None:
            return 0
        if len(node.path) <= node.path.divisions + 1:
            return 0
        scale = collar_scale(node, self.plant.get(node.parent))
        if scale is None:
            return 0

        saved = replace(state)
        vertices = self.vertices[state.mesh]
        indices = self.indices[state.mesh]

        state.section = 0
        state.prev_index = len(vertices)
        self.add_section(state, self.rotate_section(state))

        collar_start = vertices.reserve(collar_size(node))
        state.tex_offset = 0.0
        state.section = node.path.divisions + 1
        state.prev_index = len(vertices)
        self.add_section(state, self.rotate_section(state))

        section = connect_collar(
            vertices,
            indices,
            self.vertices[parent_segment.mesh],
            self.indices[parent_segment.mesh],
            parent_segment,
            node,
            state.segment.vertex_start,
            state.segment.index_start,
            collar_start,
            scale,
            self.plant.get_radius(state.stem, 1),
            self.get_aspect(node),
        )
        if section == 0:
            self.collar_fallbacks += 1
            logger.warning(f"Branch collar of stem {state.stem} missed its parent; emitting plain rings")
            for name in SynthesisState.__dataclass_fields__:
                setattr(state, name, getattr(saved, name))
            state.prev_index = len(vertices)
        return section

    # ------------------------------------------------------------------
    # Caps and leaves
    # ------------------------------------------------------------------

    def cap_stem(self, handle: StemHandle, stem_mesh: int, section_start: int) -> None:
        """Close the last ring with a strip in the inner-material buffer."""
        node = self.plant.get(handle)
        mesh = self.select_buffer(node.inner_material)
        divisions = node.section_divisions
        ring = self.vertices[stem_mesh].array[section_start:section_start + divisions + 1].copy()

        angles = np.arange(divisions + 1) * (2.0 * math.pi / divisions)
        ring["uv"] = np.stack([np.cos(angles) * 0.5 + 0.5, np.sin(angles) * 0.5 + 0.5], axis=1)
        ring["normal"] = node.path.direction(len(node.path) - 1)
        start = self.vertices[mesh].extend(ring)

        indices = self.indices[mesh]
        last = divisions // 2 - 1
        for i in range(last):
            indices.add_triangle(start + i, start + divisions - i - 1, start + i + 1)
            indices.add_triangle(start + i + 1, start + divisions - i - 1, start + divisions - i - 2)
        if divisions % 2 == 1:
            base = start + last
            indices.add_triangle(base, base + 2, base + 1)

    def add_leaves(self, handle: StemHandle, state: SynthesisState) -> None:
        node = self.plant.get(handle)
        for leaf_id in node.leaves:
            self.add_leaf(handle, leaf_id, state)

    def transform_leaf(self, handle: StemHandle, leaf_id: int):
        """Leaf template placed on the stem path."""
        node = self.plant.get(handle)
        leaf = node.leaves[leaf_id]
        path = node.path
        location = node.location.copy()

        if 0.0 <= leaf.position < path.length():
            direction = path.direction_at(leaf.position)
            location += path.point_at(leaf.position)
        else:
            direction = path.direction(len(path) - 1)
            location += path.points[-1]

        geometry = self.plant.get_leaf_mesh(leaf.mesh)
        rotation = leaf.default_orientation(direction) * leaf.rotation
        return geometry.transform(rotation, leaf.scale, location)

    def add_leaf(self, handle: StemHandle, leaf_id: int, state: SynthesisState) -> Segment:
        node = self.plant.get(handle)
        leaf = node.leaves[leaf_id]
        mesh = self.select_buffer(leaf.material)
        segment = Segment(
            mesh=mesh,
            vertex_start=len(self.vertices[mesh]),
            index_start=len(self.indices[mesh]),
        )
        joints, weights = leaf_binding(node.path, node.joints, leaf.position, state.joint_id)
        geometry = self.transform_leaf(handle, leaf_id)
        start = self.vertices[mesh].append_vertices(
            geometry.positions, geometry.normals, geometry.uvs, joints, weights
        )
        self.indices[mesh].extend(geometry.indices + start)

        segment.vertex_count = len(self.vertices[mesh]) - segment.vertex_start
        segment.index_count = len(self.indices[mesh]) - segment.index_start
        self.leaf_segments[mesh][(handle, leaf_id)] = segment
        return segment

    # ------------------------------------------------------------------
    # Skinning state
    # ------------------------------------------------------------------

    def set_initial_joint_state(self, state: SynthesisState, parent_state: SynthesisState) -> None:
        """
        Choose the joint a stem starts on.

        Stems without joints inherit the joint their parent used, or the
        parent's joint governing the attachment point.
        """
        node = self.plant.get(state.stem)
        parent = self.plant.get(node.parent) if node.parent is not None else None
        state.joint_id = 0
        state.joint_index = 0

        if not node.joints and (parent is None or not parent.joints):
            state.joint_id = parent_state.joint_id
        elif not node.joints:
            _, joint = get_joint(parent.path, parent.joints, node.distance)
            state.joint_id = joint.id
        else:
            state.joint_id = node.joints[0].id

    # ------------------------------------------------------------------
    # Segments
    # ------------------------------------------------------------------

    def update_segments(self) -> None:
        """
        Rewrite indices and segment offsets for the concatenated buffers.

        Buffer ``m``'s indices and segment starts are shifted by the total
        size of buffers ``0 .. m - 1``.
        """
        vertex_offset = len(self.vertices[0])
        index_offset = len(self.indices[0])
        for mesh in range(1, len(self.indices)):
            self.indices[mesh].array[:] += INDEX_DTYPE(vertex_offset)
            for segments in (self.stem_segments[mesh], self.leaf_segments[mesh]):
                for segment in segments.values():
                    segment.vertex_start += vertex_offset
                    segment.index_start += index_offset
            vertex_offset += len(self.vertices[mesh])
            index_offset += len(self.indices[mesh])

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    def get_mesh_count(self) -> int:
        return len(self.indices)

    def get_vertex_count(self) -> int:
        return sum(len(buffer) for buffer in self.vertices)

    def get_index_count(self) -> int:
        return sum(len(buffer) for buffer in self.indices)

    def get_material_id(self, mesh: int) -> int:
        return self.material_ids[mesh]

    def get_vertices(self, mesh: Optional[int] = None) -> np.ndarray:
        """Vertices of one buffer, or of all buffers concatenated."""
        if mesh is not None:
            return self.vertices[mesh].copy()
        if not self.vertices:
            return np.zeros(0, dtype=VERTEX_DTYPE)
        return np.concatenate([buffer.array for buffer in self.vertices])

    def get_indices(self, mesh: Optional[int] = None) -> np.ndarray:
        """Indices of one buffer, or of all buffers concatenated."""
        if mesh is not None:
            return self.indices[mesh].copy()
        if not self.indices:
            return np.zeros(0, dtype=INDEX_DTYPE)
        return np.concatenate([buffer.array for buffer in self.indices])

    def find_stem(self, handle: StemHandle) -> Optional[Segment]:
        """Segment of a stem, or None when the stem emitted nothing."""
        for segments in self.stem_segments:
            if handle in segments:
                return segments[handle]
        return None

    def find_leaf(self, leaf: LeafID) -> Optional[Segment]:
        for segments in self.leaf_segments:
            if leaf in segments:
                return segments[leaf]
        return None

    def get_leaves(self, mesh: int) -> Dict[LeafID, Segment]:
        return dict(self.leaf_segments[mesh])

    def get_leaf_count(self, mesh: int) -> int:
        return len(self.leaf_segments[mesh])


__all__ = ["Mesh", "SynthesisState", "LeafID"]
