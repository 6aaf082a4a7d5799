# src/gates/submission_parser.py - v1
"""Submission parser: model output text -> Submission.

The model is asked to answer in six labelled sections:

    [STATE] [ARTIFACTS] [ACCEPTANCE_TESTS] [FALLBACK] [DEPLOY_NOTES] [NEXT_ACTION]

Markers are case-insensitive and may appear anywhere, in any order. Each
section runs to the next recognised marker or end of text. Parsing is
best-effort: the producer is a language model, so every section is scanned
permissively and parse() never raises. Rejecting weak submissions is the job
of the interceptors and the completion gate.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from sheetgate.core.models import (
    STAGES,
    AcceptanceTest,
    Artifact,
    ArtifactTarget,
    ArtifactType,
    DeployNotes,
    FallbackPlan,
    NextAction,
    Platform,
    Stage,
    Submission,
)
from sheetgate.gates.templates import REQUIRED_BLOCKS, block_template

if TYPE_CHECKING:
    from sheetgate.config.settings import Settings

logger = logging.getLogger(__name__)

_MARKER_RE = re.compile(
    r"\[\s*(STATE|ARTIFACTS?|ACCEPTANCE[_ ]TESTS?|FALLBACK|DEPLOY[_ ]NOTES?|NEXT[_ ]ACTION)\s*\]",
    re.IGNORECASE,
)

_BULLET = r"(?:[-*•]\s*|\d+[.)]\s*)"
_ITEM_RE = re.compile(rf"^\s*{_BULLET}(.*)$")

_STATE_KEY_RE = {
    "next": re.compile(r"\bnext_state\s*[=:]\s*([A-Za-z_]+)", re.IGNORECASE),
    "current": re.compile(r"\bcurrent_state\s*[=:]\s*([A-Za-z_]+)", re.IGNORECASE),
}

_ATTR_RE = re.compile(
    r"\b(type|platform|target_sheet|sheet|target_range|range|target_column|column"
    r"|target_cell|cell)\s*[=:]\s*(\"[^\"]*\"|'[^']*'|[^\s,;]+)",
    re.IGNORECASE,
)
_CONTENT_RE = re.compile(r"\bcontent\s*[=:]\s*", re.IGNORECASE)
_FORMULA_RE = re.compile(r"(?:^|(?<=[\s:`\"']))(=(?=[^\s=])[^\n`]*)", re.MULTILINE)

_IF_THEN_RE = re.compile(
    rf"^(?:{_BULLET})?if\s+(.+?)\s+then\s+(.+)$", re.IGNORECASE
)
_BULLET_THEN_RE = re.compile(rf"^{_BULLET}(.+?)\s+then\s+(.+)$", re.IGNORECASE)
_BULLET_MAP_RE = re.compile(rf"^{_BULLET}(.+?)\s*(?::|→|->|=>)\s*(.+)$")

_DEPLOY_KEYS: dict[str, re.Pattern[str]] = {
    "protected_ranges": re.compile(
        r"protect(?:ed)?[_\s]*ranges?\s*[:=]\s*(.+)", re.IGNORECASE
    ),
    "naming_conventions": re.compile(
        r"naming[_\s]*conventions?\s*[:=]\s*(.+)", re.IGNORECASE
    ),
    "permissions": re.compile(r"permissions?\s*[:=]\s*(.+)", re.IGNORECASE),
    "change_impact": re.compile(r"change[_\s]*impacts?\s*[:=]\s*(.+)", re.IGNORECASE),
}

_NEXT_ACTION_KEYS: dict[str, re.Pattern[str]] = {
    "system_will_validate": re.compile(
        r"system[_\s]*will[_\s]*validate\s*[:=]\s*(.+)", re.IGNORECASE
    ),
    "user_needs_to_provide": re.compile(
        r"user[_\s]*needs[_\s]*to[_\s]*provide\s*[:=]\s*(.+)", re.IGNORECASE
    ),
    "if_fail_agent_will": re.compile(
        r"if[_\s]*fail(?:[_\s]*agent[_\s]*will)?\s*[:=]\s*(.+)", re.IGNORECASE
    ),
}


class SubmissionParseError(Exception):
    """Raised by parse_strict() when required sections are missing."""

    def __init__(self, missing_blocks: list[str]):
        self.missing_blocks = missing_blocks
        super().__init__(f"Missing required blocks: {', '.join(missing_blocks)}")


class ParseResult(BaseModel):
    """Outcome of parsing one model turn."""

    success: bool
    submission: Submission | None = None
    missing_blocks: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)


def _canonical_marker(name: str) -> str:
    key = name.upper().replace(" ", "_")
    if key.startswith("ARTIFACT"):
        return "[ARTIFACTS]"
    if key.startswith("ACCEPTANCE"):
        return "[ACCEPTANCE_TESTS]"
    if key.startswith("DEPLOY"):
        return "[DEPLOY_NOTES]"
    return f"[{key}]"


def split_sections(text: str) -> dict[str, str]:
    """Map each canonical marker found in text to its body.

    Repeated markers have their bodies concatenated in order of appearance.
    """
    matches = list(_MARKER_RE.finditer(text))
    sections: dict[str, str] = {}
    for i, match in enumerate(matches):
        end = matches[i + 1].start() if i + 1 < len(matches) else len(text)
        marker = _canonical_marker(match.group(1))
        body = text[match.end():end]
        sections[marker] = sections[marker] + "\n" + body if marker in sections else body
    return sections


def _unquote(value: str) -> str:
    value = value.strip()
    while len(value) >= 2 and value[0] == value[-1] and value[0] in "`\"'":
        value = value[1:-1].strip()
    return value.strip("`").strip()


def _split_list(value: str) -> list[str]:
    return [part.strip() for part in re.split(r"[,;]", value) if part.strip()]


def _collect_items(body: str) -> list[tuple[str, list[str]]]:
    """Group bullet lines with their continuation lines."""
    items: list[tuple[str, list[str]]] = []
    for line in body.splitlines():
        if not line.strip():
            continue
        match = _ITEM_RE.match(line)
        if match:
            items.append((match.group(1).strip(), []))
        elif items:
            items[-1][1].append(line.strip())
    return items


class SubmissionParser:
    """Parse model output into a Submission, reporting missing sections."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._default_platform: Platform = (
            "excel" if settings is None else settings.parser_default_platform
        )

    def parse(self, model_output: str) -> ParseResult:
        """Parse one model turn. Never raises."""
        text = model_output or ""
        sections = split_sections(text)
        missing = [block for block in REQUIRED_BLOCKS if block not in sections]

        if missing:
            logger.debug("Submission missing blocks: %s", ", ".join(missing))
            return ParseResult(
                success=False,
                missing_blocks=missing,
                errors=[f"Missing required blocks: {', '.join(missing)}"],
            )

        proposed, reported = self._parse_state(sections["[STATE]"])
        submission = Submission(
            proposed_stage=proposed,
            reported_stage=reported,
            artifacts=self._parse_artifacts(sections["[ARTIFACTS]"]),
            acceptance_tests=self._parse_acceptance_tests(sections["[ACCEPTANCE_TESTS]"]),
            fallback=self._parse_fallback(sections["[FALLBACK]"]),
            deploy_notes=self._parse_deploy_notes(sections["[DEPLOY_NOTES]"]),
            next_action=(
                self._parse_next_action(sections["[NEXT_ACTION]"])
                if "[NEXT_ACTION]" in sections
                else None
            ),
            raw_output=text,
        )
        logger.debug(
            "Parsed submission: %d artifacts, %d tests, %d fallbacks",
            len(submission.artifacts),
            len(submission.acceptance_tests),
            len(submission.fallback),
        )
        return ParseResult(success=True, submission=submission)

    def parse_strict(self, model_output: str) -> Submission:
        """Parse and raise SubmissionParseError instead of returning a failure."""
        result = self.parse(model_output)
        if not result.success or result.submission is None:
            raise SubmissionParseError(result.missing_blocks)
        return result.submission

    def missing_blocks_message(self, missing_blocks: list[str]) -> str:
        """Render templates for the absent blocks."""
        lines = [
            "Output does not follow the submission protocol. "
            "Resubmit using this format:",
            "",
        ]
        lines.extend(block_template(block) + "\n" for block in missing_blocks)
        return "\n".join(lines).rstrip()

    # --- Sections ---

    def _parse_state(self, body: str) -> tuple[Stage, Stage | None]:
        values: dict[str, Stage | None] = {}
        for key, pattern in _STATE_KEY_RE.items():
            match = pattern.search(body)
            value = match.group(1).upper() if match else None
            values[key] = value if value in STAGES else None  # type: ignore[assignment]
        proposed = values["next"] or values["current"] or "EXECUTED"
        return proposed, values["current"]

    def _parse_artifacts(self, body: str) -> list[Artifact]:
        artifacts: list[Artifact] = []
        for head, continuation in _collect_items(body):
            artifact = self._parse_artifact_item(head, continuation, len(artifacts))
            if artifact is not None:
                artifacts.append(artifact)

        if artifacts:
            return artifacts

        # No structured item: fall back to bare formulas anywhere in the block.
        for match in _FORMULA_RE.finditer(body):
            content = _unquote(match.group(1))
            if not content:
                continue
            artifacts.append(
                Artifact(
                    id=f"artifact_{len(artifacts)}",
                    type="FORMULA",
                    platform=self._default_platform,
                    content=content,
                    inferred=True,
                )
            )
        return artifacts

    def _parse_artifact_item(
        self, head: str, continuation: list[str], index: int
    ) -> Artifact | None:
        content_match = _CONTENT_RE.search(head)
        attr_text = head[: content_match.start()] if content_match else head
        attrs = {
            key.lower().removeprefix("target_"): _unquote(value)
            for key, value in _ATTR_RE.findall(attr_text)
        }
        if not attrs and content_match is None:
            return None

        if content_match is not None:
            content = "\n".join([head[content_match.end():], *continuation])
        else:
            content = "\n".join(continuation)

        return Artifact(
            id=f"artifact_{index}",
            type=_artifact_type(attrs.get("type")),
            platform=_platform(attrs.get("platform"), self._default_platform),
            target=ArtifactTarget(
                sheet=attrs.get("sheet") or None,
                cell=attrs.get("cell") or None,
                range=attrs.get("range") or None,
                column=attrs.get("column") or None,
            ),
            content=_unquote(content),
        )

    def _parse_acceptance_tests(self, body: str) -> list[AcceptanceTest]:
        tests: list[AcceptanceTest] = []
        for line in body.splitlines():
            match = _ITEM_RE.match(line)
            if match and match.group(1).strip():
                tests.append(
                    AcceptanceTest(
                        id=f"test_{len(tests)}",
                        description=match.group(1).strip(),
                    )
                )
        return tests

    def _parse_fallback(self, body: str) -> list[FallbackPlan]:
        plans: list[FallbackPlan] = []
        for raw in body.splitlines():
            line = raw.strip()
            if not line:
                continue
            match = (
                _IF_THEN_RE.match(line)
                or _BULLET_THEN_RE.match(line)
                or _BULLET_MAP_RE.match(line)
            )
            if match:
                condition = match.group(1).strip().rstrip(",;").strip()
                action = match.group(2).strip()
                if condition and action:
                    plans.append(FallbackPlan(condition=condition, action=action))
        return plans

    def _parse_deploy_notes(self, body: str) -> DeployNotes:
        values: dict[str, list[str]] = {key: [] for key in _DEPLOY_KEYS}
        for line in body.splitlines():
            for key, pattern in _DEPLOY_KEYS.items():
                match = pattern.search(line)
                if match:
                    values[key].extend(_split_list(match.group(1)))
                    break
        return DeployNotes(**values)

    def _parse_next_action(self, body: str) -> NextAction:
        found: dict[str, str] = {}
        for key, pattern in _NEXT_ACTION_KEYS.items():
            match = pattern.search(body)
            if match and match.group(1).strip():
                found[key] = match.group(1).strip()
        return NextAction(**found)


def _artifact_type(value: str | None) -> ArtifactType:
    if not value:
        return "FORMULA"
    upper = value.upper()
    if "STEP" in upper:
        return "STEPS"
    if "TEMPLATE" in upper:
        return "TEMPLATE"
    if "SCHEMA" in upper:
        return "SCHEMA_PLAN"
    return "FORMULA"


def _platform(value: str | None, default: Platform) -> Platform:
    if not value:
        return default
    lower = value.lower()
    if "google" in lower or "sheets" in lower or lower == "gs":
        return "google_sheets"
    if "excel" in lower or lower in ("xl", "xlsx"):
        return "excel"
    return default
