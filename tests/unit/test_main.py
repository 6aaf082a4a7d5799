# tests/unit/test_main.py - v1
"""Tests for main.py: CLI entry point."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from sheetgate.main import EXIT_ALLOWED, EXIT_BLOCKED, EXIT_ERROR, _build_parser, main


@pytest.fixture(autouse=True)
def _reset_logging():
    yield
    logging.getLogger("sheetgate").handlers.clear()


@pytest.fixture
def complete_file(tmp_path: Path, complete_output: str) -> Path:
    path = tmp_path / "complete.txt"
    path.write_text(complete_output, encoding="utf-8")
    return path


@pytest.fixture
def free_text_file(tmp_path: Path, free_text_output: str) -> Path:
    path = tmp_path / "free.txt"
    path.write_text(free_text_output, encoding="utf-8")
    return path


# ---------------------------------------------------------------------------
# Parser tests
# ---------------------------------------------------------------------------


class TestBuildParser:
    def test_version_flag(self):
        with pytest.raises(SystemExit) as exc_info:
            _build_parser().parse_args(["--version"])
        assert exc_info.value.code == 0

    def test_check_subcommand(self):
        args = _build_parser().parse_args(
            ["check", "out.txt", "--iteration", "3", "--max-iterations", "5", "--json"]
        )
        assert args.command == "check"
        assert args.file == Path("out.txt")
        assert args.iteration == 3
        assert args.max_iterations == 5
        assert args.as_json

    def test_replay_subcommand(self):
        args = _build_parser().parse_args(["replay", "a.txt", "b.txt"])
        assert args.files == [Path("a.txt"), Path("b.txt")]
        assert not args.as_json


# ---------------------------------------------------------------------------
# Command tests
# ---------------------------------------------------------------------------


class TestMain:
    def test_no_command(self, capsys):
        assert main([]) == EXIT_ERROR

    def test_template(self, capsys):
        assert main(["template"]) == EXIT_ALLOWED
        out = capsys.readouterr().out
        assert "[STATE]" in out
        assert "[NEXT_ACTION]" in out

    def test_check_allowed(self, complete_file, capsys):
        assert main(["check", str(complete_file)]) == EXIT_ALLOWED
        out = capsys.readouterr().out
        assert "Outcome:      deployed" in out

    def test_check_blocked_json(self, free_text_file, capsys):
        assert main(["check", str(free_text_file), "--json"]) == EXIT_BLOCKED
        data = json.loads(capsys.readouterr().out)
        assert data["outcome"] == "protocol_defect"
        assert data["allow_finish"] is False
        assert data["audience"] == "model"

    def test_check_budget_exhausted(self, complete_file, capsys):
        code = main(["check", str(complete_file), "--iteration", "2", "--max-iterations", "2"])
        assert code == EXIT_BLOCKED
        assert "budget_exhausted" in capsys.readouterr().out

    def test_check_missing_file(self, tmp_path):
        assert main(["check", str(tmp_path / "missing.txt")]) == EXIT_ERROR

    def test_check_invalid_budget(self, complete_file):
        assert main(["check", str(complete_file), "--max-iterations", "0"]) == EXIT_ERROR

    def test_replay_repairs(self, free_text_file, complete_file, capsys):
        code = main(["replay", str(free_text_file), str(complete_file), "--json"])
        assert code == EXIT_ALLOWED
        data = json.loads(capsys.readouterr().out)
        assert [t["outcome"] for t in data["turns"]] == ["protocol_defect", "deployed"]
        assert data["final_stage"] == "DEPLOYED"

    def test_replay_text_summary(self, free_text_file, capsys):
        assert main(["replay", str(free_text_file)]) == EXIT_BLOCKED
        out = capsys.readouterr().out
        assert "=== free.txt ===" in out
        assert "Stage: INIT" in out
