"""Eligibility for a payroll run."""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import exists, select
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_runner.models import PayrollAdjustment, Payslip, User
from payroll_runner.period import Period


@dataclass(frozen=True)
class RunListEntry:
    """An employee with the two facts that decide eligibility."""

    employee_id: UUID
    full_name: str
    email: str
    employee_code: str
    has_released_payslip: bool
    has_pending_adjustments: bool

    @property
    def is_eligible(self) -> bool:
        return not self.has_released_payslip or self.has_pending_adjustments


class EligibilityBuilder:
    """Decides which employees a run for a period must include.

    An active employee is eligible when they have no released payslip for
    the period yet, or at least one pending adjustment for it.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def build(self, period: Period) -> list[UUID]:
        """Ids of eligible employees, ordered by name."""
        return [entry.employee_id for entry in await self.run_list(period) if entry.is_eligible]

    async def run_list(self, period: Period) -> list[RunListEntry]:
        """Every active employee with their released/pending flags."""
        key = str(period)
        released = (
            exists()
            .where(
                Payslip.employee_id == User.user_id,
                Payslip.period == key,
                Payslip.status == "released",
            )
            .label("has_released")
        )
        pending = (
            exists()
            .where(
                PayrollAdjustment.employee_id == User.user_id,
                PayrollAdjustment.period == key,
                PayrollAdjustment.status == "pending",
            )
            .label("has_pending")
        )
        result = await self.session.execute(
            select(
                User.user_id,
                User.full_name,
                User.email,
                User.employee_code,
                released,
                pending,
            )
            .where(User.role == "employee", User.is_active.is_(True))
            .order_by(User.full_name, User.user_id)
        )
        return [
            RunListEntry(
                employee_id=row.user_id,
                full_name=row.full_name,
                email=row.email,
                employee_code=row.employee_code,
                has_released_payslip=bool(row.has_released),
                has_pending_adjustments=bool(row.has_pending),
            )
            for row in result.all()
        ]
