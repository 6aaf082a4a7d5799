# src/gates/__init__.py - v1
"""Completion gates: parser, validators, gate, interceptors and controller."""

from sheetgate.gates.completion_gate import CompletionGate, GateResult
from sheetgate.gates.controller import GateController, TurnResult
from sheetgate.gates.submission_parser import ParseResult, SubmissionParser
from sheetgate.gates.validation_engine import ValidationEngine, ValidationReport

__all__ = [
    "CompletionGate",
    "GateController",
    "GateResult",
    "ParseResult",
    "SubmissionParser",
    "TurnResult",
    "ValidationEngine",
    "ValidationReport",
]
