"""
End-to-end tests: grow or derive a plant, synthesize its mesh and export it.
"""

import json
import pytest
import numpy as np

from plant_policies import GrowthPolicy, VolumePolicy, MeshSynthesisPolicy, OutputPolicy
from plantgen.api import (
    grow_plant,
    derive_plant,
    synthesize_mesh,
    export_mesh,
    to_trimesh,
    split_by_material,
    save_plant,
    write_json,
)
from plantgen.core.types import Material


def derivation_dict():
    return {
        "seed": 11,
        "root_length": 3.0,
        "root": {
            "derivation": {"stem_density": 1.0, "stem_start": 0.5, "stem_angle": 40.0},
            "children": [
                {"derivation": {"leaf_density": 2.0, "leaves_per_node": 1}, "children": []},
            ],
        },
    }


@pytest.fixture
def grown():
    plant, report = grow_plant(growth_policy=GrowthPolicy(cycles=2, seed=5), volume_policy=VolumePolicy(depth=3))
    return plant, report


class TestGrowToExport:
    """Grow, synthesize and export in one run."""

    def test_grow_report(self, grown):
        plant, report = grown

        assert report.success
        assert report.operation == "grow_plant"
        assert report.metadata["seed"] == 5
        assert report.metadata["stem_count"] == plant.stem_count()
        assert report.effective_policy["seed"] == 5

    def test_seed_argument_overrides_policy(self):
        plant, report = grow_plant(growth_policy=GrowthPolicy(cycles=1, seed=5), seed=8)

        assert plant.get(plant.root).seed == 8
        assert report.requested_policy["seed"] == 5
        assert report.effective_policy["seed"] == 8

    def test_invalid_policy_raises(self):
        with pytest.raises(ValueError):
            grow_plant(growth_policy=GrowthPolicy(cycles=-1))

    def test_mesh_and_trimesh_agree(self, grown):
        plant, _ = grown
        mesh, report = synthesize_mesh(plant)
        tm = to_trimesh(mesh)

        assert report.metadata["vertex_count"] == mesh.get_vertex_count()
        assert len(tm.vertices) == mesh.get_vertex_count()
        assert len(tm.faces) == mesh.get_index_count() // 3
        assert np.all(np.isfinite(tm.vertices))

    def test_export_writes_files(self, grown, tmp_path):
        plant, _ = grown
        mesh, _ = synthesize_mesh(plant)
        policy = OutputPolicy(output_dir=str(tmp_path), file_format="obj", naming_convention="fixed")

        paths, report = export_mesh(mesh, policy)

        assert report.success
        assert len(paths) >= 1
        assert all(p.exists() for p in paths)
        assert paths[0].name == "plant.obj"
        assert paths[0].parent == tmp_path / "run"

    def test_export_rejects_unknown_format(self, grown, tmp_path):
        plant, _ = grown
        mesh, _ = synthesize_mesh(plant)

        with pytest.raises(ValueError):
            export_mesh(mesh, OutputPolicy(output_dir=str(tmp_path), file_format="fbx"))

    def test_split_by_material(self, grown, tmp_path):
        plant, _ = grown
        plant.add_material(Material(2, "bark"))
        for handle in plant.iter_stems():
            if plant.get(handle).depth > 0:
                plant.get(handle).outer_material = 2
        mesh, _ = synthesize_mesh(plant, MeshSynthesisPolicy(include_leaves=False))

        parts = split_by_material(mesh)

        assert 0 in parts
        assert sum(len(p.vertices) for p in parts.values()) == mesh.get_vertex_count()
        for part in parts.values():
            if len(part.faces):
                assert part.faces.max() < len(part.vertices)

    def test_save_plant_and_report(self, grown, tmp_path):
        plant, report = grown
        policy = OutputPolicy(output_dir=str(tmp_path), naming_convention="fixed")

        plant_path = save_plant(plant, "plant.json", policy)
        report_path = write_json(report, "report.json", policy)

        with open(plant_path) as f:
            data = json.load(f)
        with open(report_path) as f:
            saved = json.load(f)
        assert data["stems"]["handle"] == plant.root.to_list()
        assert saved["operation"] == "grow_plant"


class TestDeriveToMesh:
    """Derive a plant from rules and synthesize it."""

    def test_derive_from_dict(self):
        plant, report = derive_plant(derivation_dict())

        assert report.success
        assert report.metadata["stem_count"] == plant.stem_count() == 4
        assert report.metadata["rule_depth"] == 2
        assert report.metadata["leaf_count"] > 0

    def test_invalid_derivation_raises(self):
        d = derivation_dict()
        d["root_length"] = 0.0

        with pytest.raises(ValueError):
            derive_plant(d)

    def test_derived_mesh(self):
        plant, _ = derive_plant(derivation_dict())
        mesh, report = synthesize_mesh(plant)

        assert mesh.get_index_count() > 0
        assert mesh.get_indices().max() < mesh.get_vertex_count()
        assert report.metadata["hidden_stems"] == 0
        assert report.metadata["triangle_count"] == mesh.get_index_count() // 3


class TestReportWarnings:
    """Conditions that do not fail an operation are reported as warnings."""

    def test_growth_stopped_early(self, monkeypatch):
        from plantgen.ops.generator import Generator

        def darken(self, volume):
            volume.flux[volume.depth].fill(0.0)
            volume.generalize_flux()

        monkeypatch.setattr(Generator, "cast_rays", darken)
        policy = GrowthPolicy(cycles=3, seed=1, efficiency_threshold=1.0)

        plant, report = grow_plant(growth_policy=policy, volume_policy=VolumePolicy(depth=2))

        assert report.success
        assert report.metadata["cycles_run"] == 1
        assert report.warnings == ["Growth stopped after 1 of 3 cycles because no stem could grow"]

    def test_empty_mesh_exports_nothing(self, tmp_path):
        from plantgen.core.plant import Plant

        mesh, mesh_report = synthesize_mesh(Plant())
        paths, report = export_mesh(mesh, OutputPolicy(output_dir=str(tmp_path), naming_convention="fixed"))

        assert mesh_report.warnings == []
        assert paths == []
        assert report.metadata["files"] == []
        assert report.warnings == ["Mesh has no triangles; nothing was exported"]
        assert not list((tmp_path / "run").glob("*.obj"))

    def test_grow_plant_with_user_root(self):
        """A plant whose root was created by hand grows through the API."""
        from plantgen.core.plant import Plant

        plant = Plant()
        root = plant.create_root(seed=6)
        plant, report = grow_plant(plant, GrowthPolicy(cycles=2), VolumePolicy(depth=3))

        assert report.success
        assert plant.root == root
        assert report.metadata["seed"] == 6
        assert len(plant.get(root).path) >= 2
