"""Tests for run, adjustment and payslip state machines."""

import pytest

from payroll_runner.services.state_machine import (
    AdjustmentStateMachine,
    InvalidTransitionError,
    PayrollRunStateMachine,
    PayrollRunStatus,
    PayslipStateMachine,
)


class TestPayrollRunStateMachine:
    """Test run status transitions."""

    def test_valid_transitions(self):
        """Test that valid transitions are allowed."""
        assert PayrollRunStateMachine.can_transition("queued", "running") is True
        assert PayrollRunStateMachine.can_transition("queued", "cancelled") is True
        assert PayrollRunStateMachine.can_transition("running", "completed") is True
        assert PayrollRunStateMachine.can_transition("running", "failed") is True
        assert PayrollRunStateMachine.can_transition("running", "cancelled") is True

    def test_invalid_transitions(self):
        """Terminal states have no way out and queued cannot complete directly."""
        assert PayrollRunStateMachine.can_transition("queued", "completed") is False
        assert PayrollRunStateMachine.can_transition("completed", "running") is False
        assert PayrollRunStateMachine.can_transition("failed", "completed") is False
        assert PayrollRunStateMachine.can_transition("cancelled", "queued") is False

    def test_validate_transition_raises(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            PayrollRunStateMachine.validate_transition("completed", "failed")

        assert exc_info.value.from_status == "completed"
        assert exc_info.value.to_status == "failed"

    def test_enum_and_string_statuses_mix(self):
        assert PayrollRunStateMachine.can_transition(
            PayrollRunStatus.RUNNING, "completed"
        ) is True

    def test_terminal_statuses(self):
        assert PayrollRunStateMachine.is_terminal("completed")
        assert PayrollRunStateMachine.is_terminal("failed")
        assert not PayrollRunStateMachine.is_terminal("running")


class TestAdjustmentStateMachine:
    """Test adjustment lifecycle."""

    def test_pending_can_be_applied_or_cancelled(self):
        assert AdjustmentStateMachine.get_next_statuses("pending") == ["applied", "cancelled"]

    def test_only_pending_is_editable(self):
        assert AdjustmentStateMachine.can_edit("pending")
        assert not AdjustmentStateMachine.can_edit("applied")
        assert not AdjustmentStateMachine.can_edit("cancelled")

    def test_applied_cannot_be_cancelled(self):
        with pytest.raises(InvalidTransitionError):
            AdjustmentStateMachine.validate_transition("applied", "cancelled")


class TestPayslipStateMachine:
    """Test payslip release transitions."""

    def test_draft_releases(self):
        assert PayslipStateMachine.can_transition("draft", "released")

    def test_released_is_final(self):
        with pytest.raises(InvalidTransitionError):
            PayslipStateMachine.validate_transition("released", "draft")
