"""
Unit tests for the stem arena and tree editing.

These tests cover handle stability, extraction/reinsertion, dichotomous
forks, placement along parent paths and the material/leaf-mesh registries.
"""

import pytest
import numpy as np

from plantgen.core.path import Path, Spline
from plantgen.core.plant import Plant
from plantgen.core.leaf import Leaf
from plantgen.core.types import Geometry, Material, StaleHandleError, UnknownLeafMeshError, UnknownMaterialError


def vertical(length: float) -> Path:
    return Path(Spline(1, [[0, 0, 0], [0, length / 2.0, 0], [0, length, 0]]))


def build_plant():
    """Root of length 4 with three laterals; the middle one has a child."""
    plant = Plant()
    root = plant.create_root(seed=11)
    plant.set_path(root, vertical(4.0))
    laterals = []
    for distance in (1.0, 2.0, 3.0):
        stem = plant.add_stem(root)
        plant.set_path(stem, Path(Spline(1, [[0, 0, 0], [1, 0, 0]])))
        plant.set_distance(stem, distance)
        laterals.append(stem)
    grandchild = plant.add_stem(laterals[1])
    plant.set_distance(grandchild, 0.5)
    plant.get(laterals[1]).add_leaf(Leaf(position=0.5))
    return plant, root, laterals, grandchild


class TestStemHandles:
    """Tests for generation-checked handles."""

    def test_add_stem_links_parent(self):
        """New stems are children of their parent."""
        plant, root, laterals, _ = build_plant()

        assert plant.get_parent(laterals[0]) == root
        assert set(plant.children(root)) == set(laterals)
        assert plant.stem_count() == 5

    def test_add_stem_inserts_at_head(self):
        """Laterals are pushed to the front of the child list."""
        plant, root, laterals, _ = build_plant()

        assert plant.children(root) == list(reversed(laterals))

    def test_deleted_handle_is_stale(self):
        """Deleting a stem invalidates its handle and its subtree's handles."""
        plant, root, laterals, grandchild = build_plant()
        plant.delete_stem(laterals[1])

        assert not plant.is_valid(laterals[1])
        assert not plant.is_valid(grandchild)
        with pytest.raises(StaleHandleError):
            plant.get(laterals[1])
        assert plant.stem_count() == 3

    def test_reused_slot_does_not_alias(self):
        """A new stem in a freed slot gets a new generation."""
        plant, root, laterals, _ = build_plant()
        plant.delete_stem(laterals[0])
        replacement = plant.add_stem(root)

        assert replacement.index == laterals[0].index
        assert replacement.generation == laterals[0].generation + 1
        assert not plant.is_valid(laterals[0])

    def test_other_handles_survive_removal(self):
        """Unrelated handles keep working after a deletion."""
        plant, root, laterals, grandchild = build_plant()
        plant.delete_stem(laterals[0])

        assert plant.is_valid(laterals[2])
        assert plant.get_parent(grandchild) == laterals[1]

    def test_child_seeds_are_deterministic(self):
        """Equal root seeds give equal child seeds."""
        first, *_ = build_plant()
        second, *_ = build_plant()

        seeds_a = [first.get(h).seed for h in first.iter_stems()]
        seeds_b = [second.get(h).seed for h in second.iter_stems()]
        assert seeds_a == seeds_b
        assert len(set(seeds_a)) == len(seeds_a)


class TestExtraction:
    """Tests for extract/reinsert round trips."""

    def test_extract_and_reinsert_restores_tree(self):
        """Reinsertion restores handles, order and values."""
        plant, root, laterals, grandchild = build_plant()
        before = plant.to_dict()

        record = plant.extract_stem(laterals[1])
        assert plant.stem_count() == 3
        assert not plant.is_valid(grandchild)

        handle = plant.reinsert_stem(record)
        assert handle == laterals[1]
        assert plant.is_valid(grandchild)
        assert plant.to_dict() == before

    def test_extract_many_skips_descendants(self):
        """A stem inside another selected subtree travels with it."""
        plant, root, laterals, grandchild = build_plant()
        before = plant.to_dict()

        records = plant.extract_stems([grandchild, laterals[1], laterals[2]])
        assert len(records) == 2
        assert plant.stem_count() == 2

        plant.reinsert_stems(records)
        assert plant.to_dict() == before

    def test_reinsert_into_occupied_slot_raises(self):
        """A reused slot cannot take the extracted stem back."""
        plant, root, laterals, _ = build_plant()
        record = plant.extract_stem(laterals[0])
        plant.add_stem(root)

        with pytest.raises(ValueError):
            plant.reinsert_stem(record)

    def test_reinsert_without_parent_raises(self):
        """The recorded parent must still exist."""
        plant, root, laterals, grandchild = build_plant()
        child_record = plant.extract_stem(grandchild)
        plant.delete_stem(laterals[1])

        with pytest.raises(StaleHandleError):
            plant.reinsert_stem(child_record)

    def test_root_round_trip(self):
        """Extracting the root empties the plant; reinserting restores it."""
        plant, root, laterals, _ = build_plant()
        before = plant.to_dict()

        record = plant.extract_stem(root)
        assert plant.root is None
        assert plant.stem_count() == 0

        plant.reinsert_stem(record)
        assert plant.root == root
        assert plant.to_dict() == before


class TestDichotomousStems:
    """Tests for fork stems at a parent's tip."""

    def test_fork_precedes_laterals(self):
        """Fork stems occupy the first two child positions."""
        plant, root, laterals, _ = build_plant()
        first, second = plant.add_dichotomous_stems(root)
        later = plant.add_stem(root)

        children = plant.children(root)
        assert children[:2] == [first, second]
        assert children[2] == later
        assert plant.has_dichotomous_stems(root)
        assert not plant.is_lateral(first)
        assert plant.is_lateral(later)

    def test_fork_sits_at_tip(self):
        """Fork stems attach at the end of the parent's path."""
        plant, root, _, _ = build_plant()
        first, _ = plant.add_dichotomous_stems(root)

        np.testing.assert_allclose(plant.get(first).location, [0, 4, 0])

    def test_fork_follows_parent_growth(self):
        """Extending the parent moves the fork to the new tip."""
        plant, root, _, _ = build_plant()
        first, _ = plant.add_dichotomous_stems(root)
        plant.set_path(root, vertical(6.0))

        assert plant.get(first).distance == pytest.approx(6.0)
        np.testing.assert_allclose(plant.get(first).location, [0, 6, 0])

    def test_second_fork_raises(self):
        """A stem has at most one dichotomous pair."""
        plant, root, _, _ = build_plant()
        plant.add_dichotomous_stems(root)

        with pytest.raises(ValueError):
            plant.add_dichotomous_stems(root)

    def test_remove_fork_keeps_laterals(self):
        """Removing the fork leaves the laterals in order."""
        plant, root, laterals, _ = build_plant()
        order = plant.children(root)
        plant.add_dichotomous_stems(root)
        plant.remove_dichotomous_stems(root)

        assert plant.children(root) == order
        assert not plant.has_dichotomous_stems(root)

    def test_section_divisions_shared_along_fork(self):
        """Ring resolution is shared by a stem and its forks."""
        plant, root, _, _ = build_plant()
        first, second = plant.add_dichotomous_stems(root)
        plant.set_section_divisions(first, 12)

        assert plant.get(root).section_divisions == 12
        assert plant.get(second).section_divisions == 12

    def test_section_divisions_minimum(self):
        """Fewer than three ring vertices is rejected."""
        plant, root, _, _ = build_plant()

        with pytest.raises(ValueError):
            plant.set_section_divisions(root, 2)


class TestPlacement:
    """Tests for stem locations along parent paths."""

    def test_location_follows_distance(self):
        """A lateral sits on its parent's path."""
        plant, root, laterals, grandchild = build_plant()

        np.testing.assert_allclose(plant.get(laterals[0]).location, [0, 1, 0])
        np.testing.assert_allclose(plant.get(grandchild).location, [0.5, 2, 0])

    def test_set_location_moves_subtree(self):
        """Moving the root moves every descendant."""
        plant, root, laterals, grandchild = build_plant()
        plant.set_location(root, [1.0, 0.0, 0.0])

        np.testing.assert_allclose(plant.get(laterals[0]).location, [1, 1, 0])
        np.testing.assert_allclose(plant.get(grandchild).location, [1.5, 2, 0])

    def test_distance_outside_parent_hides_stem(self):
        """An out-of-range distance gives a non-finite location."""
        plant, root, laterals, grandchild = build_plant()
        plant.set_distance(laterals[1], 10.0)

        assert not np.all(np.isfinite(plant.get(laterals[1]).location))
        assert not np.all(np.isfinite(plant.get(grandchild).location))

    def test_get_radius_follows_curve(self):
        """Radii follow the profile over normalized arc length."""
        plant, root, _, _ = build_plant()
        node = plant.get(root)
        node.max_radius = 0.2
        node.min_radius = 0.01

        assert plant.get_radius(root, 0) == pytest.approx(0.2)
        assert plant.get_radius(root, 1) == pytest.approx(0.1)
        assert plant.get_radius(root, 2) == pytest.approx(0.01)


class TestRegistries:
    """Tests for materials and leaf meshes."""

    def test_default_material(self):
        """Material 0 always exists."""
        plant = Plant()

        assert plant.get_material(0).id == 0

    def test_unknown_material_raises(self):
        """Unregistered ids raise UnknownMaterialError."""
        plant = Plant()

        with pytest.raises(UnknownMaterialError):
            plant.get_material(4)

    def test_remove_material_resets_references(self):
        """Stems and leaves using a removed material fall back to 0."""
        plant, root, laterals, _ = build_plant()
        plant.add_material(Material(3, "bark", ratio=2.0))
        plant.get(root).outer_material = 3
        leaf = next(iter(plant.get(laterals[1]).leaves.values()))
        leaf.material = 3

        assert plant.get_material(3).ratio == 2.0
        plant.remove_material(3)

        assert plant.get(root).outer_material == 0
        assert leaf.material == 0
        with pytest.raises(UnknownMaterialError):
            plant.get_material(3)

    def test_leaf_meshes(self):
        """Leaf mesh 0 is the built-in plane; others must be registered."""
        plant, _, laterals, _ = build_plant()
        quad = Geometry.plane()
        plant.add_leaf_mesh(2, quad)
        leaf = next(iter(plant.get(laterals[1]).leaves.values()))
        leaf.mesh = 2

        assert plant.get_leaf_mesh(0).vertex_count == 4
        assert plant.get_leaf_mesh(2) is quad
        with pytest.raises(UnknownLeafMeshError):
            plant.get_leaf_mesh(5)

        plant.remove_leaf_mesh(2)
        assert leaf.mesh == 0

    def test_leaf_ids_are_per_stem(self):
        """Leaf ids count up within a stem."""
        plant, root, _, _ = build_plant()
        node = plant.get(root)

        assert node.add_leaf(Leaf()) == 1
        assert node.add_leaf(Leaf()) == 2
        node.remove_leaf(1)
        assert node.add_leaf(Leaf()) == 3


class TestViews:
    """Tests for graph and dictionary views."""

    def test_to_graph(self):
        """The graph has one edge per parent/child link."""
        plant, root, laterals, grandchild = build_plant()
        graph = plant.to_graph()

        assert graph.number_of_nodes() == 5
        assert graph.number_of_edges() == 4
        assert graph.has_edge(laterals[1], grandchild)
        assert graph.nodes[root]["length"] == pytest.approx(4.0)

    def test_to_dict_nests_children(self):
        """The dictionary view nests children in child-list order."""
        plant, root, laterals, _ = build_plant()
        d = plant.to_dict()

        assert d["handle"] == root.to_list()
        assert [c["handle"] for c in d["children"]] == [h.to_list() for h in plant.children(root)]

    def test_empty_plant(self):
        """An empty plant has no stems."""
        plant = Plant()

        assert plant.to_dict() is None
        assert list(plant.iter_stems()) == []
