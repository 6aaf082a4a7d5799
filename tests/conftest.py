# tests/conftest.py - v1
"""Shared test fixtures for all unit and integration tests.

Provides sample model outputs, artifacts, submissions and runs.
No I/O beyond pytest's tmp_path.
"""

from __future__ import annotations

import pytest

from sheetgate.core.models import (
    AcceptanceTest,
    Artifact,
    ArtifactTarget,
    DeployNotes,
    FallbackPlan,
    NextAction,
    Run,
    Submission,
)

# === SAMPLE MODEL OUTPUTS ===

COMPLETE_OUTPUT = """\
[STATE]
current_state=EXECUTED
next_state=VERIFIED

[ARTIFACTS]
- type=FORMULA platform=excel target_sheet=Orders target_column=D content==[@Qty]*[@Price]

[ACCEPTANCE_TESTS]
1) Qty 2 and Price 5 gives 10 in column D
2) A newly added table row is calculated automatically
3) Text in Qty shows #VALUE! and is flagged

[FALLBACK]
- if the table is converted back to a range then use =B2*C2 in D2 and fill down

[DEPLOY_NOTES]
- protect_ranges: Orders!D:D
- naming_conventions: tblOrders
- permissions: editors only

[NEXT_ACTION]
- system_will_validate: formula rules and placement
- user_needs_to_provide: confirmation that Orders is a table
- if_fail_agent_will: redesign the formula
"""

SELF_REFERENCE_OUTPUT = COMPLETE_OUTPUT.replace("content==[@Qty]*[@Price]", "content==B2+D2")

SHEETS_OPEN_RANGE_OUTPUT = COMPLETE_OUTPUT.replace(
    "- type=FORMULA platform=excel target_sheet=Orders target_column=D content==[@Qty]*[@Price]",
    "- type=FORMULA platform=google_sheets target_sheet=Orders target_cell=D2 "
    "content==ARRAYFORMULA(B2:B100*C2:C100)",
)

TWO_TESTS_OUTPUT = COMPLETE_OUTPUT.replace(
    "3) Text in Qty shows #VALUE! and is flagged\n", ""
)

NO_NEXT_ACTION_OUTPUT = COMPLETE_OUTPUT.split("[NEXT_ACTION]")[0]

NO_PLACEMENT_OUTPUT = COMPLETE_OUTPUT.replace(
    "type=FORMULA platform=excel target_sheet=Orders target_column=D ",
    "type=FORMULA platform=excel ",
)

FREE_TEXT_OUTPUT = "Done! Just put =SUM(B:B) somewhere and you're good."


@pytest.fixture
def complete_output() -> str:
    """Model output that satisfies every gate."""
    return COMPLETE_OUTPUT


@pytest.fixture
def self_reference_output() -> str:
    """Complete output whose formula reads its own output column D."""
    return SELF_REFERENCE_OUTPUT


@pytest.fixture
def sheets_open_range_output() -> str:
    """Complete Google Sheets output with a hard-coded A2:A100 style range."""
    return SHEETS_OPEN_RANGE_OUTPUT


@pytest.fixture
def two_tests_output() -> str:
    return TWO_TESTS_OUTPUT


@pytest.fixture
def no_next_action_output() -> str:
    return NO_NEXT_ACTION_OUTPUT


@pytest.fixture
def no_placement_output() -> str:
    return NO_PLACEMENT_OUTPUT


@pytest.fixture
def free_text_output() -> str:
    return FREE_TEXT_OUTPUT


# === SAMPLE MODELS ===


@pytest.fixture
def table_artifact() -> Artifact:
    """Excel formula using structured references, placed in Orders!D."""
    return Artifact(
        id="artifact_0",
        type="FORMULA",
        platform="excel",
        target=ArtifactTarget(sheet="Orders", column="D"),
        content="=[@Qty]*[@Price]",
    )


@pytest.fixture
def sheets_artifact() -> Artifact:
    return Artifact(
        id="artifact_0",
        type="FORMULA",
        platform="google_sheets",
        target=ArtifactTarget(sheet="Orders", cell="D2"),
        content="=ARRAYFORMULA(B2:B*C2:C)",
    )


@pytest.fixture
def complete_submission(table_artifact: Artifact) -> Submission:
    """Submission whose every part satisfies the completion contract."""
    return Submission(
        proposed_stage="VERIFIED",
        reported_stage="EXECUTED",
        artifacts=[table_artifact],
        acceptance_tests=[
            AcceptanceTest(id="test_0", description="normal case"),
            AcceptanceTest(id="test_1", description="new row"),
            AcceptanceTest(id="test_2", description="text in Qty"),
        ],
        fallback=[FallbackPlan(condition="table removed", action="fill down")],
        deploy_notes=DeployNotes(protected_ranges=["Orders!D:D"]),
        next_action=NextAction(),
    )


@pytest.fixture
def empty_submission() -> Submission:
    return Submission()


@pytest.fixture
def run() -> Run:
    return Run(user_id="user_1", task_id="task_1")
