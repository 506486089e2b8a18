"""Lifecycle state machines for payroll runs, adjustments and payslips."""

from __future__ import annotations

from enum import Enum
from typing import ClassVar


class PayrollRunStatus(str, Enum):
    """Payroll run status values."""

    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class AdjustmentStatus(str, Enum):
    """Payroll adjustment status values."""

    PENDING = "pending"
    APPLIED = "applied"
    CANCELLED = "cancelled"


class ReleaseStatus(str, Enum):
    """Payslip release status."""

    DRAFT = "draft"
    APPROVED = "approved"
    RELEASED = "released"


class ProcessingStatus(str, Enum):
    """Payslip processing status."""

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class PayslipKind(str, Enum):
    """Why a payslip exists."""

    REGULAR = "regular"
    ADJUSTMENT = "adjustment"


class InvalidTransitionError(Exception):
    """Raised when an invalid state transition is attempted."""

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class _StateMachine:
    VALID_TRANSITIONS: ClassVar[dict[str, list[str]]] = {}

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(from_status, to_status)

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return cls.VALID_TRANSITIONS.get(current_status, [])

    @classmethod
    def is_terminal(cls, status: str) -> bool:
        return not cls.VALID_TRANSITIONS.get(status)


class PayrollRunStateMachine(_StateMachine):
    """State machine for payroll run status transitions.

    Allowed transitions:
    - queued → running
    - queued → cancelled
    - running → completed
    - running → failed
    - running → cancelled

    completed, failed and cancelled are terminal. Counters are only updated
    while the run is running.
    """

    VALID_TRANSITIONS: ClassVar[dict[str, list[str]]] = {
        PayrollRunStatus.QUEUED: [PayrollRunStatus.RUNNING, PayrollRunStatus.CANCELLED],
        PayrollRunStatus.RUNNING: [
            PayrollRunStatus.COMPLETED,
            PayrollRunStatus.FAILED,
            PayrollRunStatus.CANCELLED,
        ],
        PayrollRunStatus.COMPLETED: [],
        PayrollRunStatus.FAILED: [],
        PayrollRunStatus.CANCELLED: [],
    }


class AdjustmentStateMachine(_StateMachine):
    """State machine for payroll adjustments.

    pending → applied (consumed by a released payslip)
    pending → cancelled

    Only a pending adjustment may be edited.
    """

    VALID_TRANSITIONS: ClassVar[dict[str, list[str]]] = {
        AdjustmentStatus.PENDING: [AdjustmentStatus.APPLIED, AdjustmentStatus.CANCELLED],
        AdjustmentStatus.APPLIED: [],
        AdjustmentStatus.CANCELLED: [],
    }

    @classmethod
    def can_edit(cls, status: str) -> bool:
        return status == AdjustmentStatus.PENDING


class PayslipStateMachine(_StateMachine):
    """Release state machine for payslips.

    draft → approved → released, or draft → released directly when no
    high-severity anomaly blocks it. A released payslip is final.
    """

    VALID_TRANSITIONS: ClassVar[dict[str, list[str]]] = {
        ReleaseStatus.DRAFT: [ReleaseStatus.APPROVED, ReleaseStatus.RELEASED],
        ReleaseStatus.APPROVED: [ReleaseStatus.RELEASED],
        ReleaseStatus.RELEASED: [],
    }
