# src/gates/interceptors.py - v1
"""Interceptors: short-circuit a turn before the completion gate runs.

Evaluated by the controller in a fixed order:
    1. MaxIterationsInterceptor  iteration budget spent, hand off to the user
    2. CompletionInterceptor     protocol blocks missing or too thin
    3. SelfReferenceInterceptor  formula reads its own output column
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel

from sheetgate.core.checklist import DEFAULT_MIN_ACCEPTANCE_TESTS
from sheetgate.gates.templates import PROTOCOL_TEMPLATE

if TYPE_CHECKING:
    from sheetgate.config.settings import Settings
    from sheetgate.core.models import Run
    from sheetgate.gates.submission_parser import ParseResult
    from sheetgate.gates.validation_engine import ValidationReport

logger = logging.getLogger(__name__)

Audience = Literal["model", "user"]


class InterceptResult(BaseModel):
    intercepted: bool
    reason: str | None = None
    message: str | None = None
    audience: Audience = "model"

    @classmethod
    def clear(cls) -> InterceptResult:
        return cls(intercepted=False)


def _with_template(*lines: str) -> str:
    return "\n".join(lines) + "\n\n" + PROTOCOL_TEMPLATE


class MaxIterationsInterceptor:
    """Stop the loop once the iteration budget is spent."""

    def intercept(self, run: Run) -> InterceptResult:
        if run.iteration < run.max_iterations:
            return InterceptResult.clear()

        lines = [
            f"Reached the maximum of {run.max_iterations} iterations without a "
            "verified solution.",
            "",
            "Still missing:",
        ]
        missing = run.checklist.missing_items()
        lines.extend(f"  - {item}" for item in missing or ["nothing on the checklist"])
        lines.append("")
        lines.append(
            "Please review the last proposal manually or provide more details "
            "about the sheet layout before continuing."
        )
        logger.info("Iteration budget exhausted for %s", run.run_id)
        return InterceptResult(
            intercepted=True,
            reason="max_iterations",
            message="\n".join(lines),
            audience="user",
        )


class CompletionInterceptor:
    """Reject outputs that do not follow the submission protocol."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._min_tests = (
            DEFAULT_MIN_ACCEPTANCE_TESTS
            if settings is None
            else settings.gate_min_acceptance_tests
        )

    def intercept(self, parse_result: ParseResult) -> InterceptResult:
        if not parse_result.success or parse_result.submission is None:
            missing = ", ".join(parse_result.missing_blocks)
            logger.info("Protocol defect: missing %s", missing)
            return InterceptResult(
                intercepted=True,
                reason="missing_blocks",
                message=_with_template(
                    f"Your output is missing required blocks: {missing}.",
                    "Resubmit using exactly this format:",
                ),
            )

        submission = parse_result.submission
        count = len(submission.acceptance_tests)
        if count < self._min_tests:
            logger.info("Protocol defect: %d acceptance test(s)", count)
            return InterceptResult(
                intercepted=True,
                reason="insufficient_tests",
                message=_with_template(
                    f"Only {count} acceptance test(s) provided; at least "
                    f"{self._min_tests} are required.",
                    "Include a normal case, an edge case (a new row, an empty "
                    "cell) and an error case (wrong data type).",
                    "Resubmit using this format:",
                ),
            )

        if submission.next_action is None:
            logger.info("Protocol defect: no next action")
            return InterceptResult(
                intercepted=True,
                reason="missing_next_action",
                message=_with_template(
                    "Your output has no [NEXT_ACTION] block.",
                    "State what the system will validate, what the user must "
                    "provide and what you will do if validation fails.",
                    "Resubmit using this format:",
                ),
            )

        return InterceptResult.clear()


class SelfReferenceInterceptor:
    """Force a redesign when a formula reads its own output column."""

    def intercept(self, report: ValidationReport) -> InterceptResult:
        fails = [v for v in report.critical_fails if v.category == "self_reference"]
        if not fails:
            return InterceptResult.clear()

        lines = ["Self-reference detected. Redesign the formula:"]
        lines.extend(f"  - {v.reason}" for v in fails)
        lines.extend(
            [
                "",
                "The formula must not read any cell in its own output column.",
                "Move the result to another column, or compute from the input "
                "columns only.",
            ]
        )
        logger.info("Self-reference in %d artifact(s)", len(fails))
        return InterceptResult(
            intercepted=True,
            reason="self_reference",
            message="\n".join(lines),
        )
