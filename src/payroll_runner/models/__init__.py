"""ORM models for the payroll runner."""

from payroll_runner.models.base import Base, TimestampMixin, UpdatedAtMixin
from payroll_runner.models.paycode import Paycode, PaycodeAssignment
from payroll_runner.models.payroll import (
    PayrollAdjustment,
    PayrollAnomaly,
    PayrollRun,
    PayrollRunLease,
    PayrollSchedule,
    Payslip,
    PayslipLine,
)
from payroll_runner.models.people import LeaveRequest, OvertimeRequest, User

__all__ = [
    "Base",
    "TimestampMixin",
    "UpdatedAtMixin",
    "Paycode",
    "PaycodeAssignment",
    "PayrollAdjustment",
    "PayrollAnomaly",
    "PayrollRun",
    "PayrollRunLease",
    "PayrollSchedule",
    "Payslip",
    "PayslipLine",
    "LeaveRequest",
    "OvertimeRequest",
    "User",
]
