"""Payroll run, payslip, adjustment, anomaly and schedule models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payroll_runner.models.base import Base, TimestampMixin, UpdatedAtMixin


# ===== Adjustments =====


class PayrollAdjustment(Base, TimestampMixin, UpdatedAtMixin):
    """One-off earning or deduction for one employee in one period."""

    __tablename__ = "payroll_adjustment"

    adjustment_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid4
    )
    employee_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("app_user.user_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    paycode_code: Mapped[str] = mapped_column(String, nullable=False)
    paycode_name: Mapped[str] = mapped_column(String, nullable=False, default="")
    adjustment_type: Mapped[str] = mapped_column(String, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    period: Mapped[str] = mapped_column(String(7), nullable=False, index=True)
    note: Mapped[str] = mapped_column(String, nullable=False, default="")
    status: Mapped[str] = mapped_column(String, nullable=False, default="pending")
    applied_payslip_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("payslip.payslip_id"),
        nullable=True,
    )
    created_by_user_id: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    cancelled_by_user_id: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "adjustment_type IN ('earning', 'deduction')",
            name="payroll_adjustment_type_check",
        ),
        CheckConstraint(
            "status IN ('pending', 'applied', 'cancelled')",
            name="payroll_adjustment_status_check",
        ),
        CheckConstraint("amount >= 0", name="payroll_adjustment_amount_check"),
    )


# ===== Payslips =====


class Payslip(Base, TimestampMixin, UpdatedAtMixin):
    """Computed pay for one employee and one period."""

    __tablename__ = "payslip"

    payslip_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("app_user.user_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    payroll_run_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("payroll_run.payroll_run_id"),
        nullable=True,
        index=True,
    )

    # Identity snapshot at computation time
    employee_full_name: Mapped[str] = mapped_column(String, nullable=False)
    employee_email: Mapped[str] = mapped_column(String, nullable=False)
    employee_code: Mapped[str] = mapped_column(String, nullable=False, default="")
    employee_address: Mapped[str] = mapped_column(String, nullable=False, default="")

    period: Mapped[str] = mapped_column(String(7), nullable=False, index=True)
    pay_date: Mapped[date] = mapped_column(Date, nullable=False)

    gross_pay: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    total_deductions: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0")
    )
    net_pay: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))

    processing_status: Mapped[str] = mapped_column(String, nullable=False, default="in_progress")
    status: Mapped[str] = mapped_column(String, nullable=False, default="draft")
    payslip_kind: Mapped[str] = mapped_column(String, nullable=False, default="regular")
    adjustment_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    released_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "processing_status IN ('in_progress', 'completed', 'failed')",
            name="payslip_processing_status_check",
        ),
        CheckConstraint(
            "status IN ('draft', 'approved', 'released')",
            name="payslip_status_check",
        ),
        CheckConstraint(
            "payslip_kind IN ('regular', 'adjustment')",
            name="payslip_kind_check",
        ),
    )

    # Relationships
    lines: Mapped[list[PayslipLine]] = relationship(
        back_populates="payslip",
        order_by="PayslipLine.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def earnings(self) -> list[PayslipLine]:
        return [line for line in self.lines if line.line_type == "earning"]

    @property
    def deductions(self) -> list[PayslipLine]:
        return [line for line in self.lines if line.line_type == "deduction"]


class PayslipLine(Base):
    """Ordered earning or deduction line on a payslip."""

    __tablename__ = "payslip_line"

    payslip_line_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid4
    )
    payslip_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("payslip.payslip_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    line_type: Mapped[str] = mapped_column(String, nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    paycode_code: Mapped[str] = mapped_column(String, nullable=False)
    label: Mapped[str] = mapped_column(String, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    visible_on_payslip: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint(
            "line_type IN ('earning', 'deduction')",
            name="payslip_line_type_check",
        ),
        CheckConstraint("amount >= 0", name="payslip_line_amount_check"),
    )

    # Relationships
    payslip: Mapped[Payslip] = relationship(back_populates="lines")


# ===== Anomalies =====


class PayrollAnomaly(Base, TimestampMixin, UpdatedAtMixin):
    """All findings for one payslip, merged into a single reviewable record."""

    __tablename__ = "payroll_anomaly"

    anomaly_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    period: Mapped[str] = mapped_column(String(7), nullable=False, index=True)
    payroll_run_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("payroll_run.payroll_run_id"),
        nullable=True,
    )
    employee_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("app_user.user_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    payslip_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("payslip.payslip_id"),
        nullable=True,
        index=True,
    )

    employee_full_name: Mapped[str] = mapped_column(String, nullable=False, default="")
    employee_email: Mapped[str] = mapped_column(String, nullable=False, default="")
    employee_code: Mapped[str] = mapped_column(String, nullable=False, default="")

    items: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    anomaly_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    severity: Mapped[str] = mapped_column(String, nullable=False, default="medium")
    anomaly_type: Mapped[str] = mapped_column(String, nullable=False, default="MULTI")
    message: Mapped[str] = mapped_column(Text, nullable=False)

    status: Mapped[str] = mapped_column(String, nullable=False, default="open")
    decision: Mapped[str] = mapped_column(String, nullable=False, default="")
    reviewed_by_user_id: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "period",
            "payroll_run_id",
            "employee_id",
            "payslip_id",
            name="payroll_anomaly_payslip_unique",
        ),
        CheckConstraint(
            "severity IN ('low', 'medium', 'high')",
            name="payroll_anomaly_severity_check",
        ),
        CheckConstraint(
            "status IN ('open', 'reviewed', 'dismissed')",
            name="payroll_anomaly_status_check",
        ),
    )


# ===== Runs =====


class PayrollRun(Base, TimestampMixin):
    """One execution attempt of the payroll engine for a period."""

    __tablename__ = "payroll_run"

    payroll_run_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid4
    )
    period: Mapped[str] = mapped_column(String(7), nullable=False, index=True)
    pay_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="queued")
    created_by_user_id: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    selected_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Aggregate counters
    employees_considered: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    payslips_created: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    payslips_released: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    payslips_failed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    payslips_blocked: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    payslips_skipped: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    anomalies_found: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    emails_sent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    anomaly_alerts_sent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    error: Mapped[str] = mapped_column(Text, nullable=False, default="")

    __table_args__ = (
        CheckConstraint(
            "status IN ('queued', 'running', 'completed', 'failed', 'cancelled')",
            name="payroll_run_status_check",
        ),
    )


class PayrollRunLease(Base):
    """Exclusive right to run payroll for one period."""

    __tablename__ = "payroll_run_lease"

    period: Mapped[str] = mapped_column(String(7), primary_key=True)
    payroll_run_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    acquired_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


# ===== Schedule =====


class PayrollSchedule(Base, TimestampMixin, UpdatedAtMixin):
    """Automatic run configuration. The most recently created row is active."""

    __tablename__ = "payroll_schedule"

    schedule_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    day_of_month: Mapped[int] = mapped_column(Integer, nullable=False, default=25)
    move_back_if_non_working: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    run_hour: Mapped[int] = mapped_column(Integer, nullable=False, default=9)
    run_minute: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    holidays: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    # One-off overrides, cleared after a successful triggered run
    override_period: Mapped[str | None] = mapped_column(String(7), nullable=True)
    override_run_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    updated_by_user_id: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "day_of_month BETWEEN 1 AND 31",
            name="payroll_schedule_day_check",
        ),
        CheckConstraint("run_hour BETWEEN 0 AND 23", name="payroll_schedule_hour_check"),
        CheckConstraint("run_minute BETWEEN 0 AND 59", name="payroll_schedule_minute_check"),
    )
