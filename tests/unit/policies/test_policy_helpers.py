"""
Unit tests for the shared policy helpers and OperationReport.
"""

import logging
import pytest
from dataclasses import dataclass
from typing import Optional

from plant_policies import (
    GrowthPolicy,
    OperationReport,
    VolumePolicy,
    alias_fields,
    coerce_vec3,
    validate_policy,
)


@dataclass
class Sample:
    size: float = 1.0
    ratio: float = 0.5
    count: int = 2
    name: Optional[str] = "a"


class TestValidatePolicy:
    """Tests for the generic field checks."""

    def test_valid(self):
        errors = validate_policy(
            Sample(),
            required_fields=["name"],
            positive_fields=["size"],
            bounds={"ratio": (0.0, 1.0), "count": (0, None)},
        )

        assert errors == []

    def test_required(self):
        errors = validate_policy(Sample(name=None), required_fields=["name"])

        assert errors == ["name is required"]

    def test_positive(self):
        errors = validate_policy(Sample(size=0.0), positive_fields=["size"])

        assert errors == ["size must be > 0, got 0.0"]

    def test_bounds(self):
        sample = Sample(ratio=1.5, count=-1)
        errors = validate_policy(sample, bounds={"ratio": (0.0, 1.0), "count": (0, None), "size": (None, 0.5)})

        assert "ratio must be in [0.0, 1.0], got 1.5" in errors
        assert "count must be >= 0, got -1" in errors
        assert "size must be <= 0.5, got 1.0" in errors
        assert len(errors) == 3


class TestGrowthPolicyValidation:
    """Policies report every bad field at once."""

    def test_defaults_are_valid(self):
        assert GrowthPolicy().validate() == []
        assert VolumePolicy().validate() == []

    def test_bad_fields(self):
        errors = GrowthPolicy(primary_growth_rate=0.0, lateral_probability=2.0, ray_count=0).validate()

        assert len(errors) == 3
        assert any(e.startswith("primary_growth_rate") for e in errors)
        assert any(e.startswith("lateral_probability") for e in errors)
        assert any(e.startswith("ray_count") for e in errors)

    def test_volume_depth_limit(self):
        errors = VolumePolicy(depth=9).validate()

        assert errors == ["depth must be in [0, 8], got 9"]


class TestCoerceVec3:
    """Tests for reading 3-vectors from JSON values."""

    def test_scalar_is_uniform(self):
        assert coerce_vec3(0.5) == (0.5, 0.5, 0.5)

    def test_list_and_dict(self):
        assert coerce_vec3([1, 2, 3]) == (1.0, 2.0, 3.0)
        assert coerce_vec3({"x": 1, "y": 2, "z": 3}) == (1.0, 2.0, 3.0)

    def test_none_is_default(self):
        assert coerce_vec3(None, (0.1, 0.2, 0.3)) == (0.1, 0.2, 0.3)

    def test_bad_value_falls_back(self, caplog):
        with caplog.at_level(logging.WARNING, logger="plant_policies.base"):
            assert coerce_vec3([1, 2]) == (1.0, 1.0, 1.0)
            assert coerce_vec3({"x": 1, "y": "up", "z": 0}) == (1.0, 1.0, 1.0)
            assert coerce_vec3(True) == (1.0, 1.0, 1.0)

        assert len(caplog.records) == 3

    def test_growth_policy_reads_leaf_scale(self):
        policy = GrowthPolicy.from_dict({"leaf_scale": 0.3})

        assert policy.leaf_scale == (0.3, 0.3, 0.3)


class TestAliasFields:
    """Tests for short key renaming."""

    def test_alias_renamed(self):
        assert alias_fields({"nodes": 3}, {"nodes": "nodes_per_cycle"}) == {"nodes_per_cycle": 3}

    def test_field_name_wins(self):
        d = {"nodes": 3, "nodes_per_cycle": 6}
        result = alias_fields(d, {"nodes": "nodes_per_cycle"})

        assert result == {"nodes_per_cycle": 6}
        assert d == {"nodes": 3, "nodes_per_cycle": 6}

    def test_growth_policy_aliases(self):
        policy = GrowthPolicy.from_dict({"rays": 5, "levels": 2})

        assert policy.ray_count == 5
        assert policy.ray_levels == 2


class TestOperationReport:
    """Tests for warnings, errors and merging."""

    def test_warning_keeps_success(self, caplog):
        report = OperationReport(operation="grow_plant")
        with caplog.at_level(logging.WARNING, logger="plant_policies.base"):
            report.add_warning("stopped early")

        assert report.success
        assert report.warnings == ["stopped early"]
        assert "grow_plant: stopped early" in caplog.text

    def test_error_marks_failure(self):
        report = OperationReport(operation="export_mesh")
        report.add_error("nothing written")

        assert not report.success
        assert report.errors == ["nothing written"]
        assert report.to_dict()["success"] is False

    def test_merge(self):
        report = OperationReport(operation="grow_plant")
        report.add_warning("first")
        other = OperationReport(operation="export_mesh")
        other.add_warning("second")
        other.add_error("failed")

        report.merge(other)

        assert report.warnings == ["first", "second"]
        assert report.errors == ["failed"]
        assert not report.success

    def test_merge_successful_report(self):
        report = OperationReport()
        report.merge(OperationReport(warnings=["w"]))

        assert report.success
        assert report.warnings == ["w"]
