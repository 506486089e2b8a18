"""Paycode definitions and employee assignments."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payroll_runner.models.base import Base, TimestampMixin


class Paycode(Base, TimestampMixin):
    """A named category of pay (earning or deduction)."""

    __tablename__ = "paycode"

    paycode_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    code: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    paycode_type: Mapped[str] = mapped_column(String, nullable=False)
    calc_kind: Mapped[str] = mapped_column(String, nullable=False, default="fixed")
    role: Mapped[str] = mapped_column(String, nullable=False, default="none")
    visible_on_payslip: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    archived_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    default_priority: Mapped[int] = mapped_column(Integer, nullable=False, default=100)

    __table_args__ = (
        CheckConstraint(
            "paycode_type IN ('earning', 'deduction')",
            name="paycode_type_check",
        ),
        CheckConstraint(
            "calc_kind IN ('fixed', 'percentage', 'hourly_rate', 'manual')",
            name="paycode_calc_kind_check",
        ),
        CheckConstraint(
            "role IN ('none', 'overtime', 'unpaid_leave')",
            name="paycode_role_check",
        ),
    )

    @property
    def is_usable(self) -> bool:
        """Active and not archived."""
        return self.is_active and self.archived_at is None


class PaycodeAssignment(Base, TimestampMixin):
    """Time-bounded binding of an employee to a paycode.

    ``effective_from``/``effective_to`` are ``YYYY-MM`` strings; both ends are
    inclusive and an open end is ``None``.
    """

    __tablename__ = "paycode_assignment"

    assignment_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid4
    )
    employee_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("app_user.user_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    paycode_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("paycode.paycode_id"),
        nullable=False,
        index=True,
    )
    calc_kind: Mapped[str | None] = mapped_column(String, nullable=True)
    amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    percentage: Mapped[Decimal | None] = mapped_column(Numeric(7, 4), nullable=True)
    hourly_rate: Mapped[Decimal | None] = mapped_column(Numeric(12, 4), nullable=True)
    effective_from: Mapped[str] = mapped_column(String(7), nullable=False)
    effective_to: Mapped[str | None] = mapped_column(String(7), nullable=True)
    note: Mapped[str] = mapped_column(String, nullable=False, default="")

    __table_args__ = (
        CheckConstraint(
            "calc_kind IS NULL OR calc_kind IN ('fixed', 'percentage', 'hourly_rate', 'manual')",
            name="paycode_assignment_calc_kind_check",
        ),
        CheckConstraint(
            "effective_to IS NULL OR effective_to >= effective_from",
            name="paycode_assignment_interval_check",
        ),
    )

    # Relationships
    paycode: Mapped[Paycode] = relationship()

    @property
    def effective_kind(self) -> str:
        """Assignment override, falling back to the paycode's kind."""
        return self.calc_kind or self.paycode.calc_kind or "fixed"

    def overlaps(self, effective_from: str, effective_to: str | None) -> bool:
        """Check whether an interval overlaps this assignment's interval."""
        if self.effective_to is not None and effective_from > self.effective_to:
            return False
        if effective_to is not None and effective_to < self.effective_from:
            return False
        return True
