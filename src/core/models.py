# src/core/models.py - v1
"""Shared Pydantic domain models used across the gates.

No module redefines these types; all imports come from core.models.
"""

from __future__ import annotations

import secrets
import time
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# === CLOSED VALUE SETS ===

Stage = Literal["INIT", "ANALYZED", "DESIGNED", "EXECUTED", "VERIFIED", "DEPLOYED"]

# Ordered progression; index order is the forward direction.
STAGES: tuple[Stage, ...] = (
    "INIT",
    "ANALYZED",
    "DESIGNED",
    "EXECUTED",
    "VERIFIED",
    "DEPLOYED",
)

Platform = Literal["excel", "google_sheets"]

ArtifactType = Literal["FORMULA", "STEPS", "TEMPLATE", "SCHEMA_PLAN"]

ValidationStatus = Literal["PASS", "FAIL", "WARN"]

RuleCategory = Literal[
    # per-artifact formula rules
    "self_reference",
    "auto_expand",
    "open_range",
    "array_output",
    "drag_fill",
    # submission-level rules
    "structure",
    "artifact",
    "placement",
    "acceptance_tests",
    "fallback",
    "deploy_notes",
]

MessageRole = Literal["user", "assistant", "system", "tool"]


# === ARTIFACTS ===


class ArtifactTarget(BaseModel):
    """Where an artifact lands in the workbook. Any combination may be set."""

    sheet: str | None = None
    cell: str | None = None
    range: str | None = None
    column: str | None = None

    def has_placement(self) -> bool:
        return any(
            v and v.strip() for v in (self.sheet, self.cell, self.range, self.column)
        )

    def output_column(self) -> str | None:
        """Column letters the artifact writes into, if derivable.

        Precedence: explicit column, then cell address, then range start.
        """
        if self.column and self.column.strip():
            letters = _leading_letters(self.column)
            return letters or self.column.strip().upper()
        for addr in (self.cell, self.range):
            if addr:
                letters = _leading_letters(addr)
                if letters:
                    return letters
        return None

    def is_multi_cell(self) -> bool:
        """True when the target range spans more than one cell."""
        if not self.range or ":" not in self.range:
            return False
        start, _, end = _strip_sheet(self.range).partition(":")
        return start.replace("$", "").upper() != end.replace("$", "").upper()


def _strip_sheet(addr: str) -> str:
    return addr.rsplit("!", 1)[-1].strip()


def _leading_letters(addr: str) -> str | None:
    body = _strip_sheet(addr).lstrip("$")
    letters = ""
    for ch in body:
        if ch.isascii() and ch.isalpha():
            letters += ch
        else:
            break
    return letters.upper() or None


class Artifact(BaseModel):
    """One concrete deliverable proposed by the model."""

    id: str
    type: ArtifactType = "FORMULA"
    platform: Platform = "excel"
    target: ArtifactTarget = Field(default_factory=ArtifactTarget)
    content: str = ""
    version: str = "1.0"
    created_at: datetime = Field(default_factory=_utcnow)
    # Set when the parser recovered the artifact from a bare formula.
    inferred: bool = False

    @property
    def is_executable(self) -> bool:
        return bool(self.content.strip())


# === SUBMISSION PARTS ===


class AcceptanceTest(BaseModel):
    id: str
    description: str
    expected_result: str = "pass"
    passed: bool | None = None


class FallbackPlan(BaseModel):
    condition: str
    action: str


class DeployNotes(BaseModel):
    """Deployment and error-proofing notes."""

    protected_ranges: list[str] = Field(default_factory=list)
    naming_conventions: list[str] = Field(default_factory=list)
    permissions: list[str] = Field(default_factory=list)
    change_impact: list[str] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not (
            self.protected_ranges
            or self.naming_conventions
            or self.permissions
            or self.change_impact
        )


class NextAction(BaseModel):
    system_will_validate: str = "validate the submitted artifacts"
    user_needs_to_provide: str | None = None
    if_fail_agent_will: str | None = None


class Submission(BaseModel):
    """Structured form of one model turn. Built per turn, then discarded."""

    proposed_stage: Stage = "EXECUTED"
    reported_stage: Stage | None = None
    artifacts: list[Artifact] = Field(default_factory=list)
    acceptance_tests: list[AcceptanceTest] = Field(default_factory=list)
    fallback: list[FallbackPlan] = Field(default_factory=list)
    deploy_notes: DeployNotes | None = None
    next_action: NextAction | None = None
    raw_output: str = ""


# === CHECKLIST ===

_CHECKLIST_LABELS: dict[str, str] = {
    "has_executable_artifact": "executable artifact (formula or steps)",
    "has_placement_info": "placement for every artifact (sheet/cell/range/column)",
    "supports_auto_expand": "automatic range growth for new rows",
    "avoids_self_reference": "no self-referencing output column",
    "has_acceptance_tests": "at least 3 acceptance tests",
    "has_fallback_plan": "fallback plan",
    "has_deploy_notes": "deploy notes",
}


class Checklist(BaseModel):
    """Seven-property completion contract. All must hold to finish."""

    has_executable_artifact: bool = False
    has_placement_info: bool = False
    supports_auto_expand: bool = False
    avoids_self_reference: bool = False
    has_acceptance_tests: bool = False
    has_fallback_plan: bool = False
    has_deploy_notes: bool = False

    @classmethod
    def empty(cls) -> Checklist:
        return cls()

    def is_complete(self) -> bool:
        return all(getattr(self, name) for name in _CHECKLIST_LABELS)

    def missing_items(self) -> list[str]:
        """Human labels of every false property, in field order."""
        return [
            label for name, label in _CHECKLIST_LABELS.items() if not getattr(self, name)
        ]

    def items(self) -> list[tuple[str, bool]]:
        """(label, value) pairs in field order, for rendering."""
        return [(label, getattr(self, name)) for name, label in _CHECKLIST_LABELS.items()]


# === VALIDATION ===


class Validation(BaseModel):
    """One rule's verdict against an artifact or the whole submission."""

    rule_id: str
    category: RuleCategory
    name: str
    status: ValidationStatus
    reason: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)

    @property
    def failed(self) -> bool:
        return self.status == "FAIL"

    @property
    def warned(self) -> bool:
        return self.status == "WARN"


# === RUN ===


class Message(BaseModel):
    role: MessageRole
    content: str
    timestamp: datetime = Field(default_factory=_utcnow)
    metadata: dict[str, Any] = Field(default_factory=dict)


def _new_run_id() -> str:
    return f"run_{int(time.time() * 1000)}_{secrets.token_hex(3)}"


class Run(BaseModel):
    """Mutable container for one task attempt.

    Mutated in place by the controller every turn. At most one turn may be in
    flight per Run; callers serialize by run identity.
    """

    run_id: str = Field(default_factory=_new_run_id)
    user_id: str
    task_id: str
    stage: Stage = "INIT"
    iteration: int = 0
    max_iterations: int = 8
    artifacts: list[Artifact] = Field(default_factory=list)
    checklist: Checklist = Field(default_factory=Checklist)
    validations: list[Validation] = Field(default_factory=list)
    last_output: str = ""
    history: list[Message] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    model_config = {"validate_assignment": True}

    def record_message(self, role: MessageRole, content: str, **metadata: Any) -> Message:
        """Append a message to the history and return it."""
        message = Message(role=role, content=content, metadata=metadata)
        self.history.append(message)
        self.touch()
        return message

    def touch(self) -> None:
        self.updated_at = _utcnow()
