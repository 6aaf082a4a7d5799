# src/gates/completion_gate.py - v1
"""Completion gate: the system, never the model, decides whether a run may finish.

Each check yields a Validation. A failing check also contributes one
self-contained fail reason and one imperative required action, so the
force-continue message can be assembled verbatim.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from sheetgate.core.checklist import DEFAULT_MIN_ACCEPTANCE_TESTS, derive_checklist
from sheetgate.core.models import Checklist, Run, Submission, Validation

if TYPE_CHECKING:
    from sheetgate.config.settings import Settings
    from sheetgate.gates.validation_engine import ValidationReport

logger = logging.getLogger(__name__)


class GateResult(BaseModel):
    """Outcome of one completion check."""

    passed: bool
    checklist: Checklist = Field(default_factory=Checklist)
    validations: list[Validation] = Field(default_factory=list)
    fail_reasons: list[str] = Field(default_factory=list)
    required_actions: list[str] = Field(default_factory=list)


class CompletionGate:
    """Checks a submission against the completion contract."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._min_tests = (
            DEFAULT_MIN_ACCEPTANCE_TESTS
            if settings is None
            else settings.gate_min_acceptance_tests
        )

    def check(
        self,
        run: Run,
        submission: Submission,
        report: ValidationReport | None = None,
    ) -> GateResult:
        """Evaluate the submission.

        Args:
            run: Run the submission belongs to (used for logging only).
            submission: Parsed submission.
            report: Validation report for the same submission. Without it the
                self-reference and auto-expand properties cannot be satisfied.

        Returns:
            GateResult; passed only when every check holds and the checklist
            is complete.
        """
        validations: list[Validation] = []
        fail_reasons: list[str] = []
        required_actions: list[str] = []

        for validation, action in self._run_checks(submission):
            validations.append(validation)
            if validation.failed:
                fail_reasons.append(validation.reason or validation.name)
                required_actions.append(action)

        checklist = derive_checklist(
            submission,
            report.validations if report is not None else [],
            verified=report is not None,
            min_acceptance_tests=self._min_tests,
        )
        passed = checklist.is_complete() and not any(v.failed for v in validations)

        logger.info(
            "Gate %s for %s: %d fail reason(s), missing %s",
            "passed" if passed else "rejected",
            run.run_id,
            len(fail_reasons),
            checklist.missing_items() or "nothing",
        )
        return GateResult(
            passed=passed,
            checklist=checklist,
            validations=validations,
            fail_reasons=fail_reasons,
            required_actions=required_actions,
        )

    def _run_checks(self, submission: Submission) -> list[tuple[Validation, str]]:
        checks = [self._check_artifacts(submission)]
        if submission.artifacts:
            checks.append(self._check_placement(submission))
        checks.append(self._check_acceptance_tests(submission))
        checks.append(self._check_fallback(submission))
        checks.append(self._check_deploy_notes(submission))
        return checks

    # --- Checks ---

    def _check_artifacts(self, submission: Submission) -> tuple[Validation, str]:
        ok = any(a.is_executable for a in submission.artifacts)
        return (
            Validation(
                rule_id="R1_ARTIFACT_REQUIRED",
                category="artifact",
                name="Artifact check",
                status="PASS" if ok else "FAIL",
                reason=None
                if ok
                else "No executable artifact was provided (formula, steps or template)",
            ),
            "Provide an executable formula or step list with its placement",
        )

    def _check_placement(self, submission: Submission) -> tuple[Validation, str]:
        missing = [a.id for a in submission.artifacts if not a.target.has_placement()]
        return (
            Validation(
                rule_id="R1_PLACEMENT_REQUIRED",
                category="placement",
                name="Placement check",
                status="FAIL" if missing else "PASS",
                reason=f"{len(missing)} artifact(s) lack placement information"
                if missing
                else None,
                details={"artifact_ids": missing} if missing else {},
            ),
            "State the target sheet and cell, range or column for every artifact",
        )

    def _check_acceptance_tests(self, submission: Submission) -> tuple[Validation, str]:
        count = len(submission.acceptance_tests)
        ok = count >= self._min_tests
        return (
            Validation(
                rule_id="R4_ACCEPTANCE_TESTS",
                category="acceptance_tests",
                name="Acceptance test check",
                status="PASS" if ok else "FAIL",
                reason=None
                if ok
                else f"Not enough acceptance tests: need at least {self._min_tests}, got {count}",
                details={"count": count, "required": self._min_tests},
            ),
            f"Provide at least {self._min_tests} acceptance tests "
            "(normal case, edge case, error case)",
        )

    def _check_fallback(self, submission: Submission) -> tuple[Validation, str]:
        ok = bool(submission.fallback)
        return (
            Validation(
                rule_id="R5_FALLBACK_PLAN",
                category="fallback",
                name="Fallback plan check",
                status="PASS" if ok else "FAIL",
                reason=None if ok else "No fallback plan was provided",
            ),
            "Provide a fallback plan: what to do if the formula fails",
        )

    def _check_deploy_notes(self, submission: Submission) -> tuple[Validation, str]:
        notes = submission.deploy_notes
        ok = notes is not None and not notes.is_empty()
        return (
            Validation(
                rule_id="R6_DEPLOY_NOTES",
                category="deploy_notes",
                name="Deploy notes check",
                status="PASS" if ok else "FAIL",
                reason=None if ok else "No deploy notes were provided",
            ),
            "Provide deploy notes: protected ranges, naming conventions, permissions",
        )


def force_continue_message(
    result: GateResult, report: ValidationReport | None = None
) -> str:
    """Render the message that refuses completion and lists what to fix."""
    lines = ["You may not finish yet. The submission did not pass the completion gate.", ""]

    if result.fail_reasons:
        lines.append("Problems:")
        lines.extend(f"  - {reason}" for reason in result.fail_reasons)

    if report is not None:
        if report.critical_fails:
            lines.append("Validation failures:")
            lines.extend(f"  - {v.name}: {v.reason}" for v in report.critical_fails)
        if report.warnings:
            lines.append("Validation warnings:")
            lines.extend(f"  - {v.name}: {v.reason}" for v in report.warnings)

    missing = result.checklist.missing_items()
    if missing:
        lines.append("Checklist items still missing:")
        lines.extend(f"  - {item}" for item in missing)

    if result.required_actions:
        lines.append("")
        lines.append("Required actions:")
        lines.extend(f"  {i}. {action}" for i, action in enumerate(result.required_actions, 1))

    lines.append("")
    lines.append("Resubmit the complete output using every required block.")
    return "\n".join(lines)
