# src/gates/state_machine.py - v1
"""Run stage state machine.

Holds adjacency only; every decision about why a run moves lives in the
completion gate and the controller. Stages never skip: INIT -> DEPLOYED is
always rejected, and walk_to() reaches distant stages one legal hop at a time.
"""

from __future__ import annotations

import logging

from pydantic import BaseModel

from sheetgate.core.models import STAGES, Checklist, Run, Stage

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[Stage, tuple[Stage, ...]] = {
    "INIT": ("ANALYZED",),
    "ANALYZED": ("DESIGNED", "INIT"),
    "DESIGNED": ("EXECUTED", "ANALYZED"),
    "EXECUTED": ("VERIFIED", "DESIGNED"),
    "VERIFIED": ("DEPLOYED", "EXECUTED"),
    "DEPLOYED": (),
}

_DESCRIPTIONS: dict[Stage, str] = {
    "INIT": "Initialized, waiting for user input",
    "ANALYZED": "Analyzed, request understood",
    "DESIGNED": "Designed, solution planned",
    "EXECUTED": "Executed, artifacts produced",
    "VERIFIED": "Verified, system validation passed",
    "DEPLOYED": "Deployed, task complete",
}


class TransitionResult(BaseModel):
    success: bool
    previous: Stage
    current: Stage
    reason: str | None = None


class StateMachine:
    """Enforce legal stage transitions on a Run."""

    def transition(self, run: Run, target: Stage) -> TransitionResult:
        """Move run to target if the edge is legal; otherwise leave it unchanged."""
        previous = run.stage
        if target not in ALLOWED_TRANSITIONS[previous]:
            reason = f"Transition from {previous} to {target} is not allowed"
            logger.debug(reason)
            return TransitionResult(
                success=False, previous=previous, current=previous, reason=reason
            )

        run.stage = target
        run.touch()
        logger.debug("Stage %s -> %s", previous, target)
        return TransitionResult(success=True, previous=previous, current=target)

    def walk_to(self, run: Run, target: Stage) -> list[TransitionResult]:
        """Move toward target through adjacent stages, stopping on first refusal.

        Returns one TransitionResult per attempted hop; empty when already there.
        """
        results: list[TransitionResult] = []
        while run.stage != target:
            here = STAGES.index(run.stage)
            step = 1 if STAGES.index(target) > here else -1
            result = self.transition(run, STAGES[here + step])
            results.append(result)
            if not result.success:
                break
        return results

    def retreat_to(self, run: Run, target: Stage) -> list[TransitionResult]:
        """Walk back to target; a run already at or behind it stays put."""
        if STAGES.index(target) >= STAGES.index(run.stage):
            return []
        return self.walk_to(run, target)

    def next_stage_after_fail(self, run: Run, checklist: Checklist) -> Stage:
        """Where a failed submission sends the run.

        No deliverable at all means redesign; a deliverable that failed
        verification only needs to be re-executed.
        """
        if not checklist.has_executable_artifact:
            return "DESIGNED"
        return "EXECUTED"

    def can_finish(self, run: Run) -> bool:
        return run.stage == "DEPLOYED"

    def is_max_iterations_reached(self, run: Run) -> bool:
        return run.iteration >= run.max_iterations

    @staticmethod
    def describe(stage: Stage) -> str:
        return _DESCRIPTIONS[stage]
