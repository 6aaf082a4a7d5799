# src/logging/context.py - v1
"""Contextual logging support: attach run_id, task_id, stage to log records."""

from __future__ import annotations

import contextvars
from dataclasses import dataclass
from typing import Any

# Context variables for structured logging, set per handled turn.
_run_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "run_id", default=None
)
_task_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "task_id", default=None
)
_stage: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "stage", default=None
)
_component: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "component", default=None
)


@dataclass
class LogContext:
    """Immutable snapshot of current logging context."""

    run_id: str | None = None
    task_id: str | None = None
    stage: str | None = None
    component: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        run_id=_run_id.get(),
        task_id=_task_id.get(),
        stage=_stage.get(),
        component=_component.get(),
    )


def set_run_context(run_id: str, task_id: str) -> None:
    """Set run-level context (called once per handled turn)."""
    _run_id.set(run_id)
    _task_id.set(task_id)


def set_stage_context(stage: str, component: str | None = None) -> None:
    """Set stage-level context, optionally naming the active gate component."""
    _stage.set(stage)
    _component.set(component)


def clear_context() -> None:
    """Reset all context variables."""
    _run_id.set(None)
    _task_id.set(None)
    _stage.set(None)
    _component.set(None)
