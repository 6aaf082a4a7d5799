# src/core/checklist.py - v1
"""Canonical Checklist derivation.

The completion gate, the validation engine and the controller's success path
all derive the Checklist through derive_checklist(), so they cannot disagree.
"""

from __future__ import annotations

from collections.abc import Iterable

from sheetgate.core.models import Checklist, RuleCategory, Submission, Validation

DEFAULT_MIN_ACCEPTANCE_TESTS = 3


def _any_failed(validations: Iterable[Validation], category: RuleCategory) -> bool:
    return any(v.category == category and v.failed for v in validations)


def derive_checklist(
    submission: Submission,
    validations: Iterable[Validation] = (),
    *,
    verified: bool = True,
    min_acceptance_tests: int = DEFAULT_MIN_ACCEPTANCE_TESTS,
) -> Checklist:
    """Compute the seven completion properties from one submission.

    Args:
        submission: Parsed submission.
        validations: Formula and structural validations for the submission.
        verified: Whether formula verification has run. Without verification
            evidence the self-reference and auto-expand properties stay false.
        min_acceptance_tests: Required number of acceptance tests.

    Returns:
        Checklist with every property computed independently.
    """
    validations = list(validations)
    artifacts = submission.artifacts
    has_executable = any(a.is_executable for a in artifacts)

    return Checklist(
        has_executable_artifact=has_executable,
        has_placement_info=bool(artifacts)
        and all(a.target.has_placement() for a in artifacts),
        supports_auto_expand=verified
        and has_executable
        and not _any_failed(validations, "auto_expand"),
        avoids_self_reference=verified
        and not _any_failed(validations, "self_reference"),
        has_acceptance_tests=len(submission.acceptance_tests) >= min_acceptance_tests,
        has_fallback_plan=len(submission.fallback) >= 1,
        has_deploy_notes=submission.deploy_notes is not None
        and not submission.deploy_notes.is_empty(),
    )
