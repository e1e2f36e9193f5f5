"""
Light-driven growth allocator.

Each growth cycle rebuilds a light volume from the current stems, casts
parallel ray bundles through it, converts the flux at each stem tip into a
growth budget, extends the stems, spawns laterals and leaves, and finally
restores the pipe-model radii bottom-up.

All random decisions are drawn from the per-stem random streams, so two
runs from identical plants with identical root seeds produce identical
plants.
"""

from dataclasses import replace
from typing import Dict, List, Optional, Tuple
import logging
import math
import numpy as np
from scipy.spatial.transform import Rotation
from tqdm import tqdm

from plant_policies import GrowthPolicy, VolumePolicy
from ..core.leaf import Leaf, TIP
from ..core.path import Path, Spline
from ..core.plant import Plant
from ..core.stem import StemHandle, StemNode
from ..rules.radius import update_radii
from ..spatial.volume import Volume
from ..utils.geometry import intersects_aabbs, normalize, perpendicular

logger = logging.getLogger(__name__)

UP = np.array([0.0, 1.0, 0.0])
GOLDEN_ANGLE = math.pi * (3.0 - math.sqrt(5.0))
DIRECTION_JITTER = 0.1


def sky_directions(count: int) -> np.ndarray:
    """
    Deterministic directions spread over the upper hemisphere.

    Directions point from the plant toward the sky, steepest first.
    """
    directions = []
    for i in range(count):
        y = 1.0 - (i + 0.5) / count * 0.8
        r = math.sqrt(max(0.0, 1.0 - y * y))
        phi = i * GOLDEN_ANGLE
        directions.append([r * math.cos(phi), y, r * math.sin(phi)])
    return np.array(directions).reshape(-1, 3)


class Generator:
    """
    Grows a plant toward the light.

    Parameters
    ----------
    plant : Plant
        Plant to grow; a root is created on the first cycle if missing
    policy : GrowthPolicy, optional
        Growth parameters (copied; the setters modify the copy)
    volume_policy : VolumePolicy, optional
        Light volume parameters
    """

    def __init__(
        self,
        plant: Plant,
        policy: Optional[GrowthPolicy] = None,
        volume_policy: Optional[VolumePolicy] = None,
    ):
        self.plant = plant
        self.policy = replace(policy) if policy is not None else GrowthPolicy()
        self.volume_policy = volume_policy or VolumePolicy()
        self.volume: Optional[Volume] = None
        self.bounding_box: Tuple[np.ndarray, np.ndarray] = (np.zeros(3), np.zeros(3))
        self.stats: Dict[str, int] = {
            "cycles_run": 0,
            "nodes_added": 0,
            "stems_added": 0,
            "leaves_added": 0,
        }
        self.stopped_early = False

    # ------------------------------------------------------------------
    # Tunables
    # ------------------------------------------------------------------

    def set_primary_growth_rate(self, rate: float) -> None:
        """Scale the length added per node."""
        if rate <= 0:
            raise ValueError(f"primary growth rate must be > 0, got {rate}")
        self.policy.primary_growth_rate = float(rate)

    def set_secondary_growth_rate(self, rate: float) -> None:
        """Scale the radius contributed by each stem itself."""
        if rate < 0:
            raise ValueError(f"secondary growth rate must be >= 0, got {rate}")
        self.policy.secondary_growth_rate = float(rate)

    def set_ray_density(self, base_count: int, levels: int) -> None:
        """
        Set the number of ray bundles and the bundle resolution.

        Each bundle holds ``(2 ** levels) ** 2`` parallel rays.
        """
        if base_count < 1:
            raise ValueError(f"ray count must be >= 1, got {base_count}")
        if levels < 0:
            raise ValueError(f"ray levels must be >= 0, got {levels}")
        self.policy.ray_count = int(base_count)
        self.policy.ray_levels = int(levels)

    # ------------------------------------------------------------------
    # Growth loop
    # ------------------------------------------------------------------

    def init_root(self) -> StemHandle:
        """Create a short vertical root when the plant has none."""
        if self.plant.root is not None:
            return self.plant.root
        root = self.plant.create_root(seed=self.policy.seed)
        node = self.plant.get(root)
        length = self.policy.node_length * self.policy.primary_growth_rate
        node.path = Path(Spline(1, [np.zeros(3), UP * length]))
        node.min_radius = self.policy.min_radius
        node.max_radius = self.policy.min_radius
        logger.info(f"Initialized root stem with seed {node.seed}")
        return root

    def grow(self, cycles: Optional[int] = None, nodes: Optional[int] = None) -> int:
        """
        Run growth cycles.

        Parameters
        ----------
        cycles : int, optional
            Number of cycles (policy value by default)
        nodes : int, optional
            Maximum nodes added per stem per cycle (policy value by default)

        Returns
        -------
        int
            Total number of path nodes added
        """
        cycles = self.policy.cycles if cycles is None else cycles
        nodes = self.policy.nodes_per_cycle if nodes is None else nodes
        root = self.init_root()
        for stem in self.plant.iter_stems():
            self.seed_path(stem)
        self.update_bounding_box()
        total = 0

        pbar = tqdm(total=cycles, desc="Growth", unit="cycle", disable=not self.policy.show_progress)
        for cycle in range(cycles):
            self.volume = self.create_volume()
            for stem in self.plant.iter_stems():
                self.add_to_volume(self.volume, stem)
            self.volume.generalize_density()
            self.cast_rays(self.volume)

            added = 0
            for stem in list(self.plant.iter_stems()):
                node = self.plant.get(stem)
                if not np.all(np.isfinite(node.location)) or len(node.path) < 2:
                    continue
                efficiency = self.evaluate_efficiency(self.volume, stem)
                budget = self.node_budget(stem, efficiency, nodes)
                start = len(self.plant.get(stem).path) - 1
                count = self.add_nodes(self.volume, stem, budget)
                if count > 0:
                    self.add_stems(stem, self.volume, start)
                else:
                    self.add_leaves(stem)
                added += count

            self.update_radius(root)
            self.update_bounding_box()

            total += added
            self.stats["cycles_run"] += 1
            pbar.update(1)
            logger.info(f"Cycle {cycle + 1}/{cycles}: {added} nodes added, {self.plant.stem_count()} stems")
            if added == 0:
                self.stopped_early = cycle + 1 < cycles
                logger.info(f"No growth in cycle {cycle + 1}; stopping")
                break
        pbar.close()

        self.stats["nodes_added"] += total
        return total

    def node_budget(self, stem: StemHandle, efficiency: float, nodes: int) -> int:
        """Nodes a stem may add this cycle given its efficiency."""
        if efficiency < self.policy.efficiency_threshold:
            return 0
        existing = len(self.plant.get(stem).path.spline.controls) - 1
        remaining = max(0, self.policy.max_nodes_per_stem - existing)
        return min(remaining, int(round(efficiency * nodes)))

    # ------------------------------------------------------------------
    # Light volume
    # ------------------------------------------------------------------

    def create_volume(self) -> Volume:
        box_min, box_max = self.bounding_box
        return Volume.from_bounds(box_min, box_max, self.volume_policy)

    def add_to_volume(self, volume: Volume, stem: StemHandle) -> None:
        """Add the wood swept by ``stem`` to the finest density level."""
        node = self.plant.get(stem)
        if not np.all(np.isfinite(node.location)) or len(node.path) < 2:
            return
        step_limit = volume.cell_size() / 2.0
        cell_volume = volume.cell_volume()
        points = node.path.points + node.location

        for i in range(1, len(points)):
            span = node.path.segment_length(i)
            if span <= 0.0:
                continue
            steps = max(1, int(math.ceil(span / step_limit)))
            step = span / steps
            r0 = self.plant.get_radius(stem, i - 1)
            r1 = self.plant.get_radius(stem, i)
            for k in range(steps):
                t = (k + 0.5) / steps
                radius = (1.0 - t) * r0 + t * r1
                point = (1.0 - t) * points[i - 1] + t * points[i]
                volume.add_density(point, math.pi * radius * radius * step / cell_volume)

    def cast_rays(self, volume: Volume) -> None:
        """Cast one bundle of parallel rays per sky direction, then average flux."""
        for sky in sky_directions(self.policy.ray_count):
            self.update_radiant_energy(volume, -sky)
        volume.resolve_flux()
        volume.generalize_flux()

    def update_radiant_energy(self, volume: Volume, direction: np.ndarray) -> None:
        """
        March a bundle of rays travelling along ``direction`` through the volume.

        Energy starts at 1.0 and is multiplied by ``exp(-absorption * density)``
        for every cell crossed, after being deposited in that cell.
        """
        direction = normalize(direction)
        n = 2 ** self.policy.ray_levels
        u = perpendicular(direction)
        v = np.cross(direction, u)
        half = volume.size * math.sqrt(3.0) / 2.0
        offsets = (np.arange(n) + 0.5) / n * 2.0 * half - half
        a, b = np.meshgrid(offsets, offsets, indexing="ij")
        origins = (
            volume.center
            - direction * 2.0 * half
            + a.reshape(-1, 1) * u
            + b.reshape(-1, 1) * v
        )

        t_near, t_far = intersects_aabbs(origins, direction, volume.min_corner, volume.max_corner)
        hit = t_far > 0.0
        if not np.any(hit):
            return
        origins, t_near, t_far = origins[hit], t_near[hit], t_far[hit]

        cell = volume.cell_size()
        step = cell / 2.0
        density = volume.density[volume.depth]
        absorption = self.volume_policy.absorption
        energy = np.ones(len(origins))
        max_steps = int(math.ceil(float(np.max(t_far - t_near)) / step))

        for k in range(max_steps):
            t = t_near + (k + 0.5) * step
            active = t < t_far
            if not np.any(active):
                break
            points = origins[active] + t[active, None] * direction
            cells, inside = volume.points_to_cells(points)
            idx = np.flatnonzero(active)[inside]
            cells = cells[inside]
            volume.deposit_flux(cells, energy[idx])
            local = density[cells[:, 0], cells[:, 1], cells[:, 2]]
            energy[idx] *= np.exp(-absorption * local * step / cell)

    def evaluate_efficiency(self, volume: Volume, stem: StemHandle) -> float:
        """Flux at the stem tip, read at a level coarse relative to a node."""
        node = self.plant.get(stem)
        tip = node.location + node.path.points[-1]
        level = volume.level_for_size(2.0 * self.policy.node_length)
        return float(np.clip(volume.flux_at(tip, level), 0.0, 1.0))

    # ------------------------------------------------------------------
    # Stem extension
    # ------------------------------------------------------------------

    def add_nodes(self, volume: Volume, stem: StemHandle, count: int) -> int:
        """Extend ``stem`` by up to ``count`` nodes; returns nodes added."""
        for _ in range(count):
            self.add_node(volume, stem)
        if count > 0:
            self.plant.refresh_positions(stem)
            logger.debug(f"Stem {stem} extended by {count} nodes")
        return count

    def _gradient(self, volume: Volume, point: np.ndarray, level: int, field: str) -> np.ndarray:
        h = volume.cell_size(level)
        sample = volume.flux_at if field == "flux" else volume.density_at
        gradient = np.zeros(3)
        for axis in range(3):
            offset = np.zeros(3)
            offset[axis] = h
            gradient[axis] = sample(point + offset, level) - sample(point - offset, level)
        return gradient

    def add_node(self, volume: Volume, stem: StemHandle) -> np.ndarray:
        """
        Append one node to ``stem``'s path.

        The direction continues the previous one, bends toward light and
        away from dense wood, and rises with gravitropism.
        """
        node = self.plant.get(stem)
        path = node.path
        previous = path.direction(len(path) - 1)
        tip = node.location + path.points[-1]
        level = volume.level_for_size(2.0 * self.policy.node_length)

        light = self._gradient(volume, tip, level, "flux")
        crowding = self._gradient(volume, tip, level, "density")
        jitter = node.rng.normal(0.0, DIRECTION_JITTER, 3)
        direction = (
            previous
            + self.policy.light_bias * light
            - crowding
            + self.policy.gravitropism * UP
            + jitter
        )
        direction = normalize(direction)
        if np.linalg.norm(direction) < 0.5:
            direction = previous

        point = path.points[-1] + direction * self.policy.node_length * self.policy.primary_growth_rate
        path.spline.add_control(point)
        path.generate()
        return point

    def add_stems(self, stem: StemHandle, volume: Volume, start: int = 0) -> List[StemHandle]:
        """Spawn laterals at the path samples added since ``start``."""
        node = self.plant.get(stem)
        if node.depth >= self.policy.max_depth:
            return []
        added = []
        for index in range(max(start, 1), len(node.path) - 1):
            if node.rng.random() < self.policy.lateral_probability:
                added.append(self.add_stem(stem, index))
        return added

    def add_stem(self, parent: StemHandle, index: int) -> StemHandle:
        """Add a one-node lateral at path sample ``index`` of ``parent``."""
        parent_node = self.plant.get(parent)
        stem = self.plant.add_stem(parent)
        node = self.plant.get(stem)

        direction = self.lateral_direction(node, parent_node.path.direction(index))
        length = self.policy.node_length * self.policy.primary_growth_rate
        node.path = Path(Spline(1, [np.zeros(3), direction * length]))
        node.min_radius = self.policy.min_radius
        node.max_radius = self.policy.min_radius
        node.section_divisions = max(3, parent_node.section_divisions - 2)
        node.outer_material = parent_node.outer_material
        node.inner_material = parent_node.inner_material
        self.plant.set_distance(stem, parent_node.path.distance(index))
        self.stats["stems_added"] += 1
        return stem

    def lateral_direction(self, node: StemNode, parent_direction: np.ndarray) -> np.ndarray:
        """Tilt ``parent_direction`` by the branch angle around a random side axis."""
        axis_angle = node.rng.uniform(0.0, 2.0 * math.pi)
        axis = Rotation.from_rotvec(parent_direction * axis_angle).apply(perpendicular(parent_direction))
        angle = math.radians(self.policy.branch_angle_deg)
        return Rotation.from_rotvec(axis * angle).apply(parent_direction)

    def seed_path(self, stem: StemHandle) -> bool:
        """
        Give a stem created through the plant API a one-node path.

        Roots point up; laterals leave their parent at the branch angle.
        Stems that already have samples are left alone.

        Returns
        -------
        bool
            True if a path was assigned
        """
        node = self.plant.get(stem)
        if len(node.path) > 0:
            return False
        if node.parent is None:
            direction = UP
        else:
            parent_path = self.plant.get(node.parent).path
            direction = self.lateral_direction(node, parent_path.direction_at(node.distance))
        length = self.policy.node_length * self.policy.primary_growth_rate
        self.plant.set_path(stem, Path(Spline(1, [np.zeros(3), direction * length])))
        logger.debug(f"Seeded empty path of stem {stem}")
        return True

    def add_leaves(self, stem: StemHandle) -> int:
        """Attach leaves to a stem that stopped extending and has none."""
        node = self.plant.get(stem)
        if node.leaves:
            return 0
        for k in range(self.policy.leaves_per_stem):
            self.create_leaf(stem, k)
        return self.policy.leaves_per_stem

    def create_leaf(self, stem: StemHandle, order: int = 0) -> int:
        """
        Attach one leaf: the first at the tip, later ones spaced toward the base.
        """
        node = self.plant.get(stem)
        length = node.path.length()
        if order == 0:
            position = TIP
        else:
            position = length * (1.0 - order / (self.policy.leaves_per_stem + 1))
        roll = node.rng.uniform(-0.5, 0.5)
        leaf = Leaf(
            position=position,
            rotation=Rotation.from_euler("y", roll),
            scale=np.array(self.policy.leaf_scale, dtype=float),
        )
        self.stats["leaves_added"] += 1
        return node.add_leaf(leaf)

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------

    def update_radius(self, stem: StemHandle) -> float:
        """Pipe-model radii for the subtree of ``stem``, children first."""
        return update_radii(self.plant, stem, self.policy.min_radius, self.policy.secondary_growth_rate)

    def update_bounding_box(self) -> Tuple[np.ndarray, np.ndarray]:
        """Axis-aligned box around every visible path sample."""
        box_min = np.full(3, np.inf)
        box_max = np.full(3, -np.inf)
        for stem in self.plant.iter_stems():
            node = self.plant.get(stem)
            if not np.all(np.isfinite(node.location)) or len(node.path) == 0:
                continue
            points = node.path.points + node.location
            box_min = np.minimum(box_min, points.min(axis=0))
            box_max = np.maximum(box_max, points.max(axis=0))
        if not np.all(np.isfinite(box_min)):
            box_min, box_max = np.zeros(3), np.zeros(3)
        self.bounding_box = (box_min, box_max)
        return self.bounding_box


__all__ = ["Generator", "sky_directions"]
