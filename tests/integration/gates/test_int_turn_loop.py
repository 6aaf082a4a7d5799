# tests/integration/gates/test_int_turn_loop.py - v1
"""Integration tests for the multi-turn gate loop.

Covers: gates/controller.py end to end with real parser, validators, gate,
interceptors and state machine. Flows: reject, repair, deploy.
"""

from __future__ import annotations

import json
import logging
from unittest.mock import patch

from sheetgate.config.settings import Settings
from sheetgate.core.models import STAGES
from sheetgate.gates.controller import GateController
from sheetgate.gates.state_machine import StateMachine
from sheetgate.logging.context import clear_context
from sheetgate.logging.logger import JsonFormatter


def _turn(controller, run, user_text, model_text):
    controller.handle_user_message(run, user_text)
    return controller.handle_model_output(run, model_text)


class TestRejectRepairDeploy:
    def test_free_text_then_complete(self, free_text_output, complete_output):
        controller = GateController()
        run = controller.create_run("user_1", "totals")

        first = _turn(controller, run, "add a total column", free_text_output)
        assert first.outcome == "protocol_defect"
        assert not controller.can_finish(run)

        second = _turn(controller, run, "try again", complete_output)
        assert second.outcome == "deployed"
        assert controller.can_finish(run)
        assert run.iteration == 2

    def test_self_reference_then_fixed(self, self_reference_output, complete_output):
        controller = GateController()
        run = controller.create_run("user_1", "totals")

        first = _turn(controller, run, "add a total column", self_reference_output)
        assert first.outcome == "rule_violation"
        assert run.stage == "INIT"

        second = _turn(controller, run, "fix it", complete_output)
        assert second.allow_finish
        assert run.stage == "DEPLOYED"

    def test_protocol_thin_outputs_each_rejected(
        self, two_tests_output, no_next_action_output, complete_output
    ):
        controller = GateController()
        run = controller.create_run("user_1", "totals")
        reasons = []
        for text in (two_tests_output, no_next_action_output):
            result = _turn(controller, run, "continue", text)
            assert result.outcome == "protocol_defect"
            reasons.append(result.system_message.splitlines()[0])
        assert reasons[0].startswith("Only 2 acceptance test(s)")
        assert "[NEXT_ACTION]" in reasons[1]
        assert _turn(controller, run, "continue", complete_output).allow_finish

    def test_open_range_warning_does_not_block(self, sheets_open_range_output):
        controller = GateController()
        run = controller.create_run("user_1", "totals")
        result = _turn(controller, run, "use google sheets", sheets_open_range_output)
        assert result.allow_finish
        assert result.validation_report.has_category("open_range", "WARN")
        assert "Warnings:" in result.user_message


class TestStageMonotonicity:
    def test_every_hop_moves_between_neighbours(
        self, free_text_output, no_placement_output, self_reference_output, complete_output
    ):
        hops = []
        original = StateMachine.transition

        def _record(machine, run, target):
            result = original(machine, run, target)
            hops.append(result)
            return result

        controller = GateController()
        run = controller.create_run("user_1", "totals")
        stages = [run.stage]
        with patch.object(StateMachine, "transition", autospec=True, side_effect=_record):
            for text in (
                free_text_output, no_placement_output, self_reference_output, complete_output
            ):
                _turn(controller, run, "next", text)
                stages.append(run.stage)

        assert stages == ["INIT", "INIT", "INIT", "INIT", "DEPLOYED"]
        assert hops and all(hop.success for hop in hops)
        for hop in hops:
            assert abs(STAGES.index(hop.previous) - STAGES.index(hop.current)) == 1


class TestIterationBudget:
    def test_budget_exhausted_after_failures(self, free_text_output, complete_output):
        controller = GateController(Settings(_env_file=None, gate_max_iterations=2))
        run = controller.create_run("user_1", "totals")

        assert _turn(controller, run, "one", free_text_output).outcome == "protocol_defect"
        result = _turn(controller, run, "two", complete_output)
        assert result.outcome == "budget_exhausted"
        assert result.user_message is not None
        assert "Reached the maximum of 2 iterations" in result.user_message
        assert run.stage == "INIT"
        assert not controller.can_finish(run)


class TestDeployedIsTerminal:
    def test_later_turns_short_circuit(self, complete_output, free_text_output):
        controller = GateController()
        run = controller.create_run("user_1", "totals")
        _turn(controller, run, "go", complete_output)
        result = _turn(controller, run, "more", free_text_output)
        assert result.outcome == "already_deployed"
        assert run.stage == "DEPLOYED"
        assert run.checklist.is_complete()


class TestTurnLogging:
    def test_decision_logged_with_context(self, complete_output):
        records: list[logging.LogRecord] = []
        formatted: list[str] = []

        class _Collect(logging.Handler):
            def emit(self, record):
                records.append(record)
                formatted.append(JsonFormatter().format(record))

        gate_logger = logging.getLogger("sheetgate")
        handler = _Collect(level=logging.INFO)
        previous_level = gate_logger.level
        gate_logger.addHandler(handler)
        gate_logger.setLevel(logging.INFO)
        try:
            controller = GateController()
            run = controller.create_run("user_1", "totals")
            controller.handle_model_output(run, complete_output)
        finally:
            gate_logger.removeHandler(handler)
            gate_logger.setLevel(previous_level)
            clear_context()

        decisions = [json.loads(f) for f in formatted if "deployed" in f and "Turn" in f]
        assert decisions
        assert decisions[-1]["context"]["run_id"] == run.run_id
        assert decisions[-1]["context"]["stage"] == "DEPLOYED"
