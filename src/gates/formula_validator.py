# src/gates/formula_validator.py - v1
"""Formula validator: fixed rule set run over each FORMULA artifact.

The model never validates its own output; these rules decide. Each rule
carries a stable id and a closed RuleCategory so callers dispatch on the
category rather than on substrings of the id.

Rules:
    R2_SELF_REFERENCE        formula reads its own output column (FAIL)
    R3_AUTO_EXPAND           uses a construct that grows with the data
    GS1_ARRAYFORMULA_OUTPUT  ARRAYFORMULA written into a multi-cell range (FAIL)
    GS4_OPEN_RANGE           hard-coded bounded range such as A2:A100 (WARN)
    XL1_NO_DRAG              Excel formula that needs drag-fill (WARN)
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from sheetgate.core.models import (
    Artifact,
    Platform,
    RuleCategory,
    Validation,
    ValidationStatus,
)

if TYPE_CHECKING:
    from sheetgate.config.settings import Settings

logger = logging.getLogger(__name__)

_BOTH: tuple[Platform, ...] = ("excel", "google_sheets")

_SHEETS_EXPANDING = ("ARRAYFORMULA", "QUERY", "FILTER", "MAP", "BYROW", "SCAN")
_EXCEL_DYNAMIC = (
    "FILTER",
    "SORT",
    "SORTBY",
    "UNIQUE",
    "XLOOKUP",
    "LET",
    "LAMBDA",
    "SEQUENCE",
    "RANDARRAY",
    "MAP",
    "BYROW",
)

_STRING_LITERAL_RE = re.compile(r'"(?:[^"]|"")*"')
_BRACKET_RE = re.compile(r"\[[^\]]*\]")
_STRUCTURED_REF_RE = re.compile(r"\[[^\]]+\]")
_SPILL_REF_RE = re.compile(r"\$?[A-Z]{1,3}\$?\d+#")
_CELL_REF_RE = re.compile(
    r"(?<![A-Z0-9_.$])"
    r"(?:(?P<sheet>'[^']+'|[A-Z_][A-Z0-9_.]*)!)?"
    r"\$?(?P<col>[A-Z]{1,3})\$?(?P<row>\d*)"
    r"(?![A-Z0-9_(])"
)


@dataclass(frozen=True)
class RuleOutcome:
    status: ValidationStatus
    reason: str | None = None
    details: dict[str, Any] | None = None


RuleCheck = Callable[[Artifact], RuleOutcome]


@dataclass(frozen=True)
class FormulaRule:
    """One validation rule bound to the platforms it applies to."""

    rule_id: str
    name: str
    category: RuleCategory
    platforms: tuple[Platform, ...]
    check: RuleCheck

    def applies_to(self, artifact: Artifact) -> bool:
        return artifact.platform in self.platforms


def mask_formula(formula: str) -> str:
    """Upper-case formula with string literals and bracket contents blanked.

    Keeps character offsets stable so matches can be reported verbatim.
    """
    upper = formula.upper()
    upper = _STRING_LITERAL_RE.sub(lambda m: " " * len(m.group(0)), upper)
    return _BRACKET_RE.sub(lambda m: "[" + " " * (len(m.group(0)) - 2) + "]", upper)


def _calls_any(formula: str, names: tuple[str, ...]) -> list[str]:
    return [name for name in names if re.search(rf"\b{name}\s*\(", formula)]


def _normalize_sheet(name: str) -> str:
    return name.strip().strip("'").upper()


class FormulaValidator:
    """Run the formula rule set over artifacts."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._require_auto_expand = (
            False if settings is None else settings.validator_require_auto_expand
        )
        min_digits = 2 if settings is None else settings.validator_open_range_min_digits
        self._bounded_range_re = re.compile(
            r"(?<![A-Z0-9_$])\$?[A-Z]{1,3}\$?\d+:\$?[A-Z]{1,3}\$?\d{%d,}(?!\d)" % min_digits
        )
        disabled = set() if settings is None else set(settings.validator_disabled_rules_list)
        self._rules = [r for r in self._build_rules() if r.rule_id not in disabled]

    @property
    def rules(self) -> list[FormulaRule]:
        return list(self._rules)

    def _build_rules(self) -> list[FormulaRule]:
        return [
            FormulaRule(
                "R2_SELF_REFERENCE", "Self-reference check", "self_reference",
                _BOTH, self._check_self_reference,
            ),
            FormulaRule(
                "R3_AUTO_EXPAND", "Auto-expand check", "auto_expand",
                _BOTH, self._check_auto_expand,
            ),
            FormulaRule(
                "GS1_ARRAYFORMULA_OUTPUT", "ARRAYFORMULA output check", "array_output",
                ("google_sheets",), self._check_array_formula_output,
            ),
            FormulaRule(
                "GS4_OPEN_RANGE", "Open range check", "open_range",
                ("google_sheets",), self._check_open_range,
            ),
            FormulaRule(
                "XL1_NO_DRAG", "Excel no-drag check", "drag_fill",
                ("excel",), self._check_excel_no_drag,
            ),
        ]

    def validate(self, artifact: Artifact) -> list[Validation]:
        """Validate one artifact. Non-formula artifacts yield no results."""
        if artifact.type != "FORMULA":
            return []

        results: list[Validation] = []
        for rule in self._rules:
            if not rule.applies_to(artifact):
                continue
            outcome = rule.check(artifact)
            details = {"artifact_id": artifact.id, **(outcome.details or {})}
            results.append(
                Validation(
                    rule_id=rule.rule_id,
                    category=rule.category,
                    name=rule.name,
                    status=outcome.status,
                    reason=outcome.reason,
                    details=details,
                )
            )
        logger.debug(
            "Validated %s: %s",
            artifact.id,
            ", ".join(f"{v.rule_id}={v.status}" for v in results),
        )
        return results

    def validate_all(self, artifacts: list[Artifact]) -> list[Validation]:
        results: list[Validation] = []
        for artifact in artifacts:
            results.extend(self.validate(artifact))
        return results

    # --- Rules ---

    def _check_self_reference(self, artifact: Artifact) -> RuleOutcome:
        column = artifact.target.output_column()
        if column is None:
            return RuleOutcome(
                "WARN",
                "Cannot determine the output column; check the formula for self-reference",
            )

        target_sheet = artifact.target.sheet
        hits: list[str] = []
        for match in _CELL_REF_RE.finditer(mask_formula(artifact.content)):
            if match.group("col") != column:
                continue
            sheet = match.group("sheet")
            if sheet and target_sheet and _normalize_sheet(sheet) != _normalize_sheet(target_sheet):
                continue
            hits.append(match.group(0))

        if hits:
            return RuleOutcome(
                "FAIL",
                f"Formula references its own output column {column} ({', '.join(hits)}), "
                "which creates a circular reference",
                {"output_column": column, "references": hits, "formula": artifact.content},
            )
        return RuleOutcome("PASS")

    def _check_auto_expand(self, artifact: Artifact) -> RuleOutcome:
        formula = artifact.content.upper()
        if artifact.platform == "google_sheets":
            constructs = _calls_any(formula, _SHEETS_EXPANDING)
            advice = "wrap the formula in ARRAYFORMULA or use QUERY/FILTER"
        else:
            constructs = _calls_any(formula, _EXCEL_DYNAMIC)
            if _STRUCTURED_REF_RE.search(artifact.content):
                constructs.append("structured reference")
            if _SPILL_REF_RE.search(formula):
                constructs.append("spill reference")
            advice = "use a table (structured references) or a dynamic array function"

        if constructs:
            return RuleOutcome("PASS", details={"constructs": constructs})
        return RuleOutcome(
            "FAIL" if self._require_auto_expand else "WARN",
            f"Formula may not extend to new rows; {advice}",
        )

    def _check_array_formula_output(self, artifact: Artifact) -> RuleOutcome:
        if not _calls_any(artifact.content.upper(), ("ARRAYFORMULA",)):
            return RuleOutcome("PASS", "Not an ARRAYFORMULA")
        if artifact.target.is_multi_cell():
            return RuleOutcome(
                "FAIL",
                f"ARRAYFORMULA placed into range {artifact.target.range} collides with "
                "its own output; place it in the single top cell of the column",
                {"target_range": artifact.target.range},
            )
        return RuleOutcome("PASS")

    def _check_open_range(self, artifact: Artifact) -> RuleOutcome:
        matches = [m.group(0) for m in self._bounded_range_re.finditer(mask_formula(artifact.content))]
        if matches:
            return RuleOutcome(
                "WARN",
                f"Hard-coded row bounds found: {', '.join(matches)}. "
                "Use open ranges such as A2:A so new rows are included",
                {"hardcoded_ranges": matches},
            )
        return RuleOutcome("PASS")

    def _check_excel_no_drag(self, artifact: Artifact) -> RuleOutcome:
        formula = artifact.content.upper()
        if (
            _STRUCTURED_REF_RE.search(artifact.content)
            or _SPILL_REF_RE.search(formula)
            or _calls_any(formula, _EXCEL_DYNAMIC)
        ):
            return RuleOutcome("PASS")
        return RuleOutcome(
            "WARN",
            "Formula needs drag-fill; use an Excel table (structured references) "
            "or a dynamic array function",
        )
