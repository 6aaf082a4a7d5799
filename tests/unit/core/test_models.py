# tests/unit/core/test_models.py - v1
"""Tests for core/models.py: shared Pydantic models.

Also covers version.py import validation.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from sheetgate.core.models import (
    STAGES,
    Artifact,
    ArtifactTarget,
    Checklist,
    DeployNotes,
    Run,
    Validation,
)


class TestVersion:
    def test_version_exported(self):
        import sheetgate

        assert sheetgate.__version__ == "0.1.0"


class TestArtifactTarget:
    def test_no_placement(self):
        assert not ArtifactTarget().has_placement()
        assert not ArtifactTarget(sheet="  ").has_placement()

    def test_placement_any_field(self):
        assert ArtifactTarget(sheet="Orders").has_placement()
        assert ArtifactTarget(column="D").has_placement()

    def test_output_column_precedence(self):
        target = ArtifactTarget(column="e", cell="D2", range="F2:F")
        assert target.output_column() == "E"

    def test_output_column_from_cell(self):
        assert ArtifactTarget(cell="$D$2").output_column() == "D"

    def test_output_column_from_range_with_sheet(self):
        assert ArtifactTarget(range="Orders!AB2:AB").output_column() == "AB"

    def test_output_column_unknown(self):
        assert ArtifactTarget(sheet="Orders").output_column() is None

    def test_multi_cell(self):
        assert ArtifactTarget(range="D2:D100").is_multi_cell()
        assert not ArtifactTarget(range="D2:$D$2").is_multi_cell()
        assert not ArtifactTarget(cell="D2").is_multi_cell()


class TestArtifact:
    def test_executable_requires_content(self):
        assert not Artifact(id="a", content="   ").is_executable
        assert Artifact(id="a", content="=1").is_executable

    def test_invalid_platform_rejected(self):
        with pytest.raises(ValidationError):
            Artifact(id="a", platform="numbers")


class TestDeployNotes:
    def test_empty(self):
        assert DeployNotes().is_empty()
        assert not DeployNotes(permissions=["editors"]).is_empty()


class TestChecklist:
    def test_empty_is_incomplete(self):
        checklist = Checklist.empty()
        assert not checklist.is_complete()
        assert len(checklist.missing_items()) == 7

    def test_complete(self):
        checklist = Checklist(**{name: True for name in Checklist.model_fields})
        assert checklist.is_complete()
        assert checklist.missing_items() == []

    def test_single_false_blocks(self):
        for name in Checklist.model_fields:
            values = {field: True for field in Checklist.model_fields}
            values[name] = False
            assert not Checklist(**values).is_complete()

    def test_items_in_field_order(self):
        items = Checklist(has_fallback_plan=True).items()
        assert len(items) == 7
        assert items[5] == ("fallback plan", True)


class TestValidation:
    def test_status_helpers(self):
        v = Validation(rule_id="X", category="structure", name="x", status="WARN")
        assert v.warned and not v.failed


class TestRun:
    def test_defaults(self):
        run = Run(user_id="u", task_id="t")
        assert run.stage == STAGES[0] == "INIT"
        assert run.iteration == 0
        assert run.max_iterations == 8
        assert run.run_id.startswith("run_")

    def test_unique_ids(self):
        assert Run(user_id="u", task_id="t").run_id != Run(user_id="u", task_id="t").run_id

    def test_unknown_stage_rejected(self):
        run = Run(user_id="u", task_id="t")
        with pytest.raises(ValidationError):
            run.stage = "FINISHED"

    def test_record_message(self):
        run = Run(user_id="u", task_id="t")
        before = run.updated_at
        message = run.record_message("system", "hello", audience="model")
        assert run.history == [message]
        assert message.metadata == {"audience": "model"}
        assert run.updated_at >= before
