"""Pydantic schemas for run requests and results."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from payroll_runner.period import Period


# ============================================================================
# Run schemas
# ============================================================================


class RunRequest(BaseModel):
    """Input of a payroll run."""

    period: str = Field(pattern=r"^\d{4}-(0[1-9]|1[0-2])$")
    pay_date: date
    employee_ids: list[UUID] = Field(min_length=1)
    created_by_user_id: UUID | None = None

    @field_validator("employee_ids")
    @classmethod
    def dedupe_employee_ids(cls, value: list[UUID]) -> list[UUID]:
        return list(dict.fromkeys(value))

    @property
    def parsed_period(self) -> Period:
        return Period.parse(self.period)


class EmployeeOutcome(str, Enum):
    """What happened to one employee in a run."""

    SKIPPED = "skipped"
    RELEASED = "released"
    BLOCKED = "blocked"
    FAILED = "failed"


class EmployeeRunResult(BaseModel):
    """Outcome of processing one employee."""

    employee_id: UUID
    outcome: EmployeeOutcome
    payslip_id: UUID | None = None
    anomaly_count: int = 0
    email_sent: bool = False
    alert_sent: bool = False
    error: str | None = None


class RunSummary(BaseModel):
    """Counters of a finished run."""

    model_config = ConfigDict(from_attributes=True)

    payroll_run_id: UUID
    period: str
    status: str
    employees_considered: int = 0
    payslips_created: int = 0
    payslips_released: int = 0
    payslips_blocked: int = 0
    payslips_failed: int = 0
    payslips_skipped: int = 0
    anomalies_found: int = 0
    emails_sent: int = 0
    anomaly_alerts_sent: int = 0
    outcomes: list[EmployeeRunResult] = Field(default_factory=list)


class RunPreview(BaseModel):
    """What a run for a period would find right now."""

    period: str
    eligible_employees: int
    released_payslips: int
    pending_adjustments: int
    pending_adjustment_total: Decimal
    open_high_anomalies: int


# ============================================================================
# Adjustment schemas
# ============================================================================


class AdjustmentCreate(BaseModel):
    """Schema for creating a payroll adjustment."""

    employee_id: UUID
    period: str = Field(pattern=r"^\d{4}-(0[1-9]|1[0-2])$")
    paycode_code: str = Field(min_length=1)
    paycode_name: str = ""
    adjustment_type: str = Field(pattern=r"^(earning|deduction)$")
    amount: Decimal = Field(ge=0)
    note: str = ""

    @field_validator("paycode_code")
    @classmethod
    def upper_code(cls, value: str) -> str:
        return value.strip().upper()


class AdjustmentUpdate(BaseModel):
    """Schema for editing a pending adjustment. Unset fields are kept."""

    paycode_code: str | None = None
    paycode_name: str | None = None
    adjustment_type: str | None = Field(default=None, pattern=r"^(earning|deduction)$")
    amount: Decimal | None = Field(default=None, ge=0)
    note: str | None = None

    @field_validator("paycode_code")
    @classmethod
    def upper_code(cls, value: str | None) -> str | None:
        return value.strip().upper() if value is not None else None


# ============================================================================
# Assignment schemas
# ============================================================================


class AssignmentCreate(BaseModel):
    """Schema for assigning a paycode to an employee."""

    employee_id: UUID
    paycode_id: UUID
    calc_kind: str | None = Field(
        default=None, pattern=r"^(fixed|percentage|hourly_rate|manual)$"
    )
    amount: Decimal | None = None
    percentage: Decimal | None = None
    hourly_rate: Decimal | None = None
    effective_from: str = Field(pattern=r"^\d{4}-(0[1-9]|1[0-2])$")
    effective_to: str | None = Field(default=None, pattern=r"^\d{4}-(0[1-9]|1[0-2])$")
    note: str = ""
