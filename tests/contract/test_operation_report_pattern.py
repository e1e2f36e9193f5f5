"""
Test that public API functions return OperationReport with requested/effective policy.

This module validates the contract that all public API functions return
OperationReport objects containing both the requested and effective policies.
"""

import json
import pytest


def small_growth_policy():
    from plant_policies import GrowthPolicy

    return GrowthPolicy(cycles=1, nodes_per_cycle=2, seed=7, ray_count=2, ray_levels=2)


class TestGrowPlantReturnsOperationReport:
    """Test grow_plant returns OperationReport."""

    def test_grow_plant_returns_operation_report(self):
        """Test grow_plant returns OperationReport."""
        from plantgen.api import grow_plant
        from plant_policies import OperationReport, VolumePolicy

        plant, report = grow_plant(growth_policy=small_growth_policy(), volume_policy=VolumePolicy(depth=2))

        assert isinstance(report, OperationReport)
        assert report.operation == "grow_plant"
        assert isinstance(report.requested_policy, dict)
        assert isinstance(report.effective_policy, dict)

    def test_grow_plant_report_is_json_serializable(self):
        """Test grow_plant report is JSON-serializable."""
        from plantgen.api import grow_plant
        from plant_policies import VolumePolicy

        plant, report = grow_plant(growth_policy=small_growth_policy(), volume_policy=VolumePolicy(depth=2))

        restored = json.loads(json.dumps(report.to_dict()))

        assert restored["operation"] == "grow_plant"
        assert restored["requested_policy"]["cycles"] == 1


class TestDerivePlantReturnsOperationReport:
    """Test derive_plant returns OperationReport."""

    def test_derive_plant_returns_operation_report(self):
        """Test derive_plant returns OperationReport."""
        from plantgen.api import derive_plant
        from plantgen.ops import DerivationTree
        from plant_policies import OperationReport

        plant, report = derive_plant(DerivationTree(seed=3))

        assert isinstance(report, OperationReport)
        assert report.operation == "derive_plant"
        assert isinstance(report.requested_policy, dict)
        assert report.effective_policy["seed"] == 3
        assert json.loads(report.to_json())["metadata"]["stem_count"] == 1


class TestSynthesizeMeshReturnsOperationReport:
    """Test synthesize_mesh returns OperationReport."""

    def test_synthesize_mesh_returns_operation_report(self):
        """Test synthesize_mesh returns OperationReport."""
        from plantgen.api import derive_plant, synthesize_mesh
        from plant_policies import MeshSynthesisPolicy, OperationReport

        plant, _ = derive_plant({"seed": 1})
        mesh, report = synthesize_mesh(plant, MeshSynthesisPolicy(cap_ends=False))

        assert isinstance(report, OperationReport)
        assert report.operation == "synthesize_mesh"
        assert report.requested_policy["cap_ends"] is False
        assert isinstance(report.effective_policy, dict)
        assert json.loads(report.to_json())["metadata"]["vertex_count"] == mesh.get_vertex_count()


class TestExportMeshReturnsOperationReport:
    """Test export_mesh returns OperationReport."""

    def test_export_mesh_returns_operation_report(self, tmp_path):
        """Test export_mesh returns OperationReport."""
        from plantgen.api import derive_plant, synthesize_mesh, export_mesh
        from plant_policies import OutputPolicy, OperationReport

        plant, _ = derive_plant({"seed": 1})
        mesh, _ = synthesize_mesh(plant)
        paths, report = export_mesh(mesh, OutputPolicy(output_dir=str(tmp_path), file_format="stl"))

        assert isinstance(report, OperationReport)
        assert report.operation == "export_mesh"
        assert report.requested_policy["file_format"] == "stl"
        assert isinstance(report.effective_policy, dict)
        assert json.loads(report.to_json())["metadata"]["files"] == [str(p) for p in paths]
