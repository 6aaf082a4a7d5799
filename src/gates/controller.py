# src/gates/controller.py - v1
"""Gate controller: one model turn in, one decision out.

Orchestrates parser, validation engine, interceptors, completion gate and
state machine in a strictly sequential order. The controller owns no state
beyond its collaborators; everything about a task lives on the Run.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel

from sheetgate.core.models import Run, Stage
from sheetgate.gates.completion_gate import CompletionGate, GateResult, force_continue_message
from sheetgate.gates.interceptors import (
    Audience,
    CompletionInterceptor,
    MaxIterationsInterceptor,
    SelfReferenceInterceptor,
)
from sheetgate.gates.state_machine import StateMachine
from sheetgate.gates.submission_parser import ParseResult, SubmissionParser
from sheetgate.gates.validation_engine import ValidationEngine, ValidationReport
from sheetgate.logging.context import set_run_context, set_stage_context

if TYPE_CHECKING:
    from sheetgate.config.settings import Settings
    from sheetgate.core.models import Submission

logger = logging.getLogger(__name__)

Outcome = Literal[
    "deployed",
    "already_deployed",
    "budget_exhausted",
    "protocol_defect",
    "rule_violation",
    "incomplete",
]


class TurnResult(BaseModel):
    """Decision for one model turn.

    The message goes either back to the model (system) or to the human (user);
    never both.
    """

    allow_finish: bool
    stage: Stage
    outcome: Outcome
    message: str
    audience: Audience
    parse_result: ParseResult | None = None
    validation_report: ValidationReport | None = None
    gate_result: GateResult | None = None

    @property
    def system_message(self) -> str | None:
        return self.message if self.audience == "model" else None

    @property
    def user_message(self) -> str | None:
        return self.message if self.audience == "user" else None


class GateController:
    """Drive runs through the completion gates."""

    def __init__(
        self,
        settings: Settings | None = None,
        parser: SubmissionParser | None = None,
        engine: ValidationEngine | None = None,
        gate: CompletionGate | None = None,
        state_machine: StateMachine | None = None,
        max_iterations_interceptor: MaxIterationsInterceptor | None = None,
        completion_interceptor: CompletionInterceptor | None = None,
        self_reference_interceptor: SelfReferenceInterceptor | None = None,
    ) -> None:
        self._max_iterations = 8 if settings is None else settings.gate_max_iterations
        self._parser = parser or SubmissionParser(settings)
        self._engine = engine or ValidationEngine(settings)
        self._gate = gate or CompletionGate(settings)
        self._state_machine = state_machine or StateMachine()
        self._max_iterations_interceptor = (
            max_iterations_interceptor or MaxIterationsInterceptor()
        )
        self._completion_interceptor = completion_interceptor or CompletionInterceptor(
            settings
        )
        self._self_reference_interceptor = (
            self_reference_interceptor or SelfReferenceInterceptor()
        )

    # --- Entry points ---

    def create_run(self, user_id: str, task_id: str) -> Run:
        run = Run(user_id=user_id, task_id=task_id, max_iterations=self._max_iterations)
        logger.info("Created %s for task %s", run.run_id, task_id)
        return run

    def handle_user_message(self, run: Run, text: str) -> None:
        """Record a user turn; each one spends one iteration of the budget."""
        run.record_message("user", text)
        run.iteration += 1
        run.touch()

    def handle_model_output(self, run: Run, text: str) -> TurnResult:
        """Decide whether the model may finish after this output."""
        set_run_context(run.run_id, run.task_id)
        set_stage_context(run.stage, component="controller")

        if run.stage == "DEPLOYED":
            return self._finish(
                run, True, "already_deployed", self.get_run_summary(run), "user"
            )

        run.record_message("assistant", text)
        run.last_output = text

        intercept = self._max_iterations_interceptor.intercept(run)
        if intercept.intercepted:
            return self._finish(
                run, False, "budget_exhausted", intercept.message or "", "user"
            )

        parse_result = self._parser.parse(text)
        intercept = self._completion_interceptor.intercept(parse_result)
        if intercept.intercepted:
            return self._finish(
                run,
                False,
                "protocol_defect",
                intercept.message or "",
                "model",
                parse_result=parse_result,
            )

        submission = parse_result.submission
        if submission is None:
            return self._finish(
                run,
                False,
                "protocol_defect",
                self._parser.missing_blocks_message(parse_result.missing_blocks),
                "model",
                parse_result=parse_result,
            )
        report = self._engine.validate(submission)

        intercept = self._self_reference_interceptor.intercept(report)
        if intercept.intercepted:
            run.checklist = report.checklist
            run.validations = list(report.validations)
            self._state_machine.retreat_to(
                run, self._state_machine.next_stage_after_fail(run, report.checklist)
            )
            return self._finish(
                run,
                False,
                "rule_violation",
                intercept.message or "",
                "model",
                parse_result=parse_result,
                validation_report=report,
            )

        gate_result = self._gate.check(run, submission, report)
        run.artifacts = list(submission.artifacts)
        run.checklist = gate_result.checklist
        run.validations = list(report.validations) + list(gate_result.validations)

        if gate_result.passed and report.all_passed:
            self._state_machine.walk_to(run, "VERIFIED")
            self._state_machine.walk_to(run, "DEPLOYED")
            return self._finish(
                run,
                True,
                "deployed",
                self._success_message(submission, report),
                "user",
                parse_result=parse_result,
                validation_report=report,
                gate_result=gate_result,
            )

        self._state_machine.retreat_to(
            run, self._state_machine.next_stage_after_fail(run, gate_result.checklist)
        )
        return self._finish(
            run,
            False,
            "rule_violation"
            if any(v.category != "structure" for v in report.critical_fails)
            else "incomplete",
            force_continue_message(gate_result, report),
            "model",
            parse_result=parse_result,
            validation_report=report,
            gate_result=gate_result,
        )

    def get_run_summary(self, run: Run) -> str:
        lines = [
            f"Run {run.run_id}",
            f"Stage: {run.stage} ({self._state_machine.describe(run.stage)})",
            f"Iterations: {run.iteration}/{run.max_iterations}",
            f"Artifacts: {len(run.artifacts)}",
            "Checklist:",
        ]
        lines.extend(
            f"  [{'x' if value else ' '}] {label}" for label, value in run.checklist.items()
        )
        return "\n".join(lines)

    def can_finish(self, run: Run) -> bool:
        return self._state_machine.can_finish(run) and run.checklist.is_complete()

    # --- Internals ---

    def _finish(
        self,
        run: Run,
        allow_finish: bool,
        outcome: Outcome,
        message: str,
        audience: Audience,
        **results: object,
    ) -> TurnResult:
        if outcome != "already_deployed":
            run.record_message("system", message, audience=audience)
        set_stage_context(run.stage, component="controller")
        logger.info(
            "Turn %d of %s: %s (allow_finish=%s, stage=%s)",
            run.iteration,
            run.run_id,
            outcome,
            allow_finish,
            run.stage,
        )
        return TurnResult(
            allow_finish=allow_finish,
            stage=run.stage,
            outcome=outcome,
            message=message,
            audience=audience,
            **results,
        )

    @staticmethod
    def _success_message(submission: Submission, report: ValidationReport) -> str:
        lines = ["Verified and deployed.", "", "Artifacts:"]
        for artifact in submission.artifacts:
            target = artifact.target
            where = "!".join(
                part for part in (target.sheet, target.cell or target.range or target.column) if part
            )
            lines.append(f"  - {artifact.type} on {artifact.platform} at {where}: {artifact.content}")
        if report.warnings:
            lines.append("Warnings:")
            lines.extend(f"  - {v.name}: {v.reason}" for v in report.warnings)
        lines.append("Acceptance tests to run:")
        lines.extend(f"  {i}. {t.description}" for i, t in enumerate(submission.acceptance_tests, 1))
        return "\n".join(lines)
