"""Business services for the payroll runner."""

from payroll_runner.services.adjustment_service import (
    AdjustmentNotPendingError,
    AdjustmentService,
)
from payroll_runner.services.anomaly_review import (
    AnomalyReviewService,
    PayslipSupersededError,
    ReviewDecision,
)
from payroll_runner.services.assignment_service import AssignmentOverlapError, AssignmentService
from payroll_runner.services.eligibility import EligibilityBuilder, RunListEntry
from payroll_runner.services.locking_service import RunInProgressError, RunLeaseService
from payroll_runner.services.maintenance import OrphanSweeper, SweepResult
from payroll_runner.services.run_orchestrator import RunOrchestrator, RunValidationError
from payroll_runner.services.state_machine import (
    InvalidTransitionError,
    PayrollRunStateMachine,
    PayrollRunStatus,
)

__all__ = [
    "AdjustmentNotPendingError",
    "AdjustmentService",
    "AnomalyReviewService",
    "AssignmentOverlapError",
    "AssignmentService",
    "EligibilityBuilder",
    "InvalidTransitionError",
    "OrphanSweeper",
    "PayrollRunStateMachine",
    "PayrollRunStatus",
    "PayslipSupersededError",
    "ReviewDecision",
    "RunInProgressError",
    "RunLeaseService",
    "RunListEntry",
    "RunOrchestrator",
    "RunValidationError",
    "SweepResult",
]
