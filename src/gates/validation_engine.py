# src/gates/validation_engine.py - v1
"""Validation engine: formula rules plus structural completeness, one report.

The structural check repeats the completion gate checklist items, so the
report and the gate read the same evidence independently.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from sheetgate.core.checklist import DEFAULT_MIN_ACCEPTANCE_TESTS, derive_checklist
from sheetgate.core.models import (
    Checklist,
    RuleCategory,
    Submission,
    Validation,
    ValidationStatus,
)
from sheetgate.gates.formula_validator import FormulaValidator

if TYPE_CHECKING:
    from sheetgate.config.settings import Settings

logger = logging.getLogger(__name__)


class ValidationReport(BaseModel):
    """Aggregated verdicts for one submission."""

    all_passed: bool
    critical_fails: list[Validation] = Field(default_factory=list)
    warnings: list[Validation] = Field(default_factory=list)
    passes: list[Validation] = Field(default_factory=list)
    checklist: Checklist = Field(default_factory=Checklist)
    summary: str = ""
    # Every verdict in evaluation order.
    validations: list[Validation] = Field(default_factory=list)

    def has_category(
        self, category: RuleCategory, status: ValidationStatus = "FAIL"
    ) -> bool:
        return any(
            v.category == category and v.status == status for v in self.validations
        )


class ValidationEngine:
    """Run every check over a submission and aggregate the results."""

    def __init__(
        self,
        settings: Settings | None = None,
        formula_validator: FormulaValidator | None = None,
    ) -> None:
        self._formula_validator = formula_validator or FormulaValidator(settings)
        self._min_tests = (
            DEFAULT_MIN_ACCEPTANCE_TESTS
            if settings is None
            else settings.gate_min_acceptance_tests
        )

    def validate(self, submission: Submission) -> ValidationReport:
        validations = self._formula_validator.validate_all(submission.artifacts)
        validations.append(self._validate_structure(submission))

        critical_fails = [v for v in validations if v.status == "FAIL"]
        warnings = [v for v in validations if v.status == "WARN"]
        passes = [v for v in validations if v.status == "PASS"]

        checklist = derive_checklist(
            submission,
            validations,
            verified=True,
            min_acceptance_tests=self._min_tests,
        )
        report = ValidationReport(
            all_passed=not critical_fails,
            critical_fails=critical_fails,
            warnings=warnings,
            passes=passes,
            checklist=checklist,
            summary=_summarize(critical_fails, warnings, passes),
            validations=validations,
        )
        logger.info(
            "Validation: %d passed, %d warnings, %d failed",
            len(passes),
            len(warnings),
            len(critical_fails),
        )
        return report

    def _validate_structure(self, submission: Submission) -> Validation:
        issues: list[str] = []
        if not any(a.is_executable for a in submission.artifacts):
            issues.append("no executable artifact")
        if len(submission.acceptance_tests) < self._min_tests:
            issues.append(f"fewer than {self._min_tests} acceptance tests")
        if not submission.fallback:
            issues.append("no fallback plan")
        if submission.deploy_notes is None or submission.deploy_notes.is_empty():
            issues.append("no deploy notes")

        if issues:
            return Validation(
                rule_id="STRUCTURE_CHECK",
                category="structure",
                name="Structural completeness check",
                status="FAIL",
                reason="; ".join(issues),
                details={"issues": issues},
            )
        return Validation(
            rule_id="STRUCTURE_CHECK",
            category="structure",
            name="Structural completeness check",
            status="PASS",
        )


def _summarize(
    critical_fails: list[Validation],
    warnings: list[Validation],
    passes: list[Validation],
) -> str:
    lines: list[str] = []
    if not critical_fails and not warnings:
        lines.append("All validations passed")
    if critical_fails:
        lines.append(f"{len(critical_fails)} critical issue(s) must be fixed:")
        lines.extend(f"  - {v.name}: {v.reason}" for v in critical_fails)
    if warnings:
        lines.append(f"{len(warnings)} warning(s):")
        lines.extend(f"  - {v.name}: {v.reason}" for v in warnings)
    lines.append(
        f"Passed: {len(passes)}, warnings: {len(warnings)}, failed: {len(critical_fails)}"
    )
    return "\n".join(lines)
