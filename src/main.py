# src/main.py - v1
"""CLI entry point: template, check, replay commands.

Usage:
    sheetgate template
    sheetgate check <file> [--iteration N] [--max-iterations N] [--json]
    sheetgate replay <file>... [--json]

Exit codes for check: 0 when the model may finish, 2 when it may not,
1 on error.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from sheetgate.version import __version__

logger = logging.getLogger(__name__)

EXIT_ALLOWED = 0
EXIT_ERROR = 1
EXIT_BLOCKED = 2


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    _setup_logging(args.verbose)

    if not hasattr(args, "func"):
        parser.print_help()
        return EXIT_ERROR

    try:
        return args.func(args)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=args.verbose)
        return EXIT_ERROR


def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="sheetgate",
        description=f"sheetgate v{__version__}: completion gate for spreadsheet agents",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command")

    # --- template ---
    p_template = subparsers.add_parser(
        "template", help="Print the submission protocol template",
    )
    p_template.set_defaults(func=_cmd_template)

    # --- check ---
    p_check = subparsers.add_parser(
        "check", help="Gate a single model output",
    )
    p_check.add_argument("file", type=Path, help="File holding the model output")
    p_check.add_argument(
        "--iteration", type=int, default=0,
        help="Iterations already spent by the run (default: 0)",
    )
    p_check.add_argument(
        "--max-iterations", type=int, default=None,
        help="Iteration budget (default: from settings)",
    )
    p_check.add_argument(
        "--json", action="store_true", dest="as_json",
        help="Print the decision as JSON",
    )
    p_check.set_defaults(func=_cmd_check)

    # --- replay ---
    p_replay = subparsers.add_parser(
        "replay", help="Feed several model outputs to one run, in order",
    )
    p_replay.add_argument(
        "files", type=Path, nargs="+", help="Files holding consecutive model outputs",
    )
    p_replay.add_argument(
        "--json", action="store_true", dest="as_json",
        help="Print each decision as JSON",
    )
    p_replay.set_defaults(func=_cmd_replay)

    return parser


def _cmd_template(args: argparse.Namespace) -> int:
    """Print the protocol template."""
    from sheetgate.gates.templates import PROTOCOL_TEMPLATE

    print(PROTOCOL_TEMPLATE)
    return EXIT_ALLOWED


def _cmd_check(args: argparse.Namespace) -> int:
    """Run one turn of a fresh run against a file."""
    from sheetgate.config.settings import load_settings
    from sheetgate.gates.controller import GateController

    text = _read_output(args.file)
    if text is None:
        return EXIT_ERROR

    overrides: dict[str, Any] = {}
    if args.max_iterations is not None:
        overrides["gate_max_iterations"] = args.max_iterations
    settings = load_settings(**overrides)

    controller = GateController(settings)
    run = controller.create_run(user_id="cli", task_id=args.file.name)
    run.iteration = args.iteration

    result = controller.handle_model_output(run, text)
    if args.as_json:
        print(json.dumps(_turn_to_dict(result), indent=2))
    else:
        _print_turn(result)
    return EXIT_ALLOWED if result.allow_finish else EXIT_BLOCKED


def _cmd_replay(args: argparse.Namespace) -> int:
    """Replay consecutive model outputs through one run."""
    from sheetgate.config.settings import load_settings
    from sheetgate.gates.controller import GateController

    texts: list[str] = []
    for path in args.files:
        text = _read_output(path)
        if text is None:
            return EXIT_ERROR
        texts.append(text)

    controller = GateController(load_settings())
    run = controller.create_run(user_id="cli", task_id="replay")

    result = None
    decisions: list[dict[str, Any]] = []
    for path, text in zip(args.files, texts):
        controller.handle_user_message(run, f"replay {path.name}")
        result = controller.handle_model_output(run, text)
        if args.as_json:
            decisions.append({"file": str(path), **_turn_to_dict(result)})
        else:
            print(f"=== {path.name} ===")
            _print_turn(result)
            print()

    if args.as_json:
        print(json.dumps({"turns": decisions, "final_stage": run.stage}, indent=2))
    else:
        print(controller.get_run_summary(run))

    if result is not None and result.allow_finish:
        return EXIT_ALLOWED
    return EXIT_BLOCKED


def _read_output(path: Path) -> str | None:
    if not path.is_file():
        logger.error("File not found: %s", path)
        return None
    return path.read_text(encoding="utf-8")


def _turn_to_dict(result: Any) -> dict[str, Any]:
    """Flatten a TurnResult into JSON-friendly fields."""
    data: dict[str, Any] = {
        "outcome": result.outcome,
        "allow_finish": result.allow_finish,
        "stage": result.stage,
        "audience": result.audience,
        "message": result.message,
    }
    if result.gate_result is not None:
        data["missing"] = result.gate_result.checklist.missing_items()
    if result.validation_report is not None:
        data["validations"] = [
            {"rule_id": v.rule_id, "status": v.status, "reason": v.reason}
            for v in result.validation_report.validations
        ]
    return data


def _print_turn(result: Any) -> None:
    """Print a human-readable decision."""
    print(f"Outcome:      {result.outcome}")
    print(f"Allow finish: {result.allow_finish}")
    print(f"Stage:        {result.stage}")
    print(f"Message to:   {result.audience}")
    print()
    print(result.message)


def _setup_logging(verbose: bool) -> None:
    """Configure logging for CLI usage."""
    from sheetgate.logging.logger import setup_logging

    if verbose:
        setup_logging(level="DEBUG", log_format="text")
    else:
        setup_logging(level="WARNING", log_format="text")


if __name__ == "__main__":
    sys.exit(main())
