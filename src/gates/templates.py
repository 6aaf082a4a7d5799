# src/gates/templates.py - v1
"""Submission protocol markers and the templates the model is asked to fill."""

from __future__ import annotations

# Required markers, in the order missing blocks are reported.
REQUIRED_BLOCKS: tuple[str, ...] = (
    "[STATE]",
    "[ARTIFACTS]",
    "[ACCEPTANCE_TESTS]",
    "[FALLBACK]",
    "[DEPLOY_NOTES]",
)

NEXT_ACTION_BLOCK = "[NEXT_ACTION]"

ALL_BLOCKS: tuple[str, ...] = REQUIRED_BLOCKS + (NEXT_ACTION_BLOCK,)

BLOCK_TEMPLATES: dict[str, str] = {
    "[STATE]": (
        "[STATE]\n"
        "current_state=EXECUTED\n"
        "next_state=VERIFIED"
    ),
    "[ARTIFACTS]": (
        "[ARTIFACTS]\n"
        "- type=FORMULA platform=excel target_sheet=Sheet1 target_range=C2 "
        "content==<formula>"
    ),
    "[ACCEPTANCE_TESTS]": (
        "[ACCEPTANCE_TESTS]\n"
        "1) <normal case>\n"
        "2) <edge case, e.g. a newly added row or an empty cell>\n"
        "3) <error case, e.g. text where a number is expected>"
    ),
    "[FALLBACK]": (
        "[FALLBACK]\n"
        "- if <condition> then <action>"
    ),
    "[DEPLOY_NOTES]": (
        "[DEPLOY_NOTES]\n"
        "- protect_ranges: <comma list>\n"
        "- naming_conventions: <comma list>\n"
        "- permissions: <comma list>"
    ),
    "[NEXT_ACTION]": (
        "[NEXT_ACTION]\n"
        "- system_will_validate: <what the gate will check>\n"
        "- user_needs_to_provide: <what the user must supply>\n"
        "- if_fail_agent_will: <what you will do on failure>"
    ),
}

PROTOCOL_TEMPLATE = "\n\n".join(BLOCK_TEMPLATES[block] for block in ALL_BLOCKS)


def block_template(block: str) -> str:
    """Template for one marker; unknown markers are echoed back."""
    return BLOCK_TEMPLATES.get(block, block)
