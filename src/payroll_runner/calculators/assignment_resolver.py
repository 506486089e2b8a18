"""Paycode assignment resolution by effective period."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import contains_eager

from payroll_runner.models import Paycode, PaycodeAssignment
from payroll_runner.period import Period


class AssignmentResolver:
    """Resolves the compensation assignments effective for a period.

    An assignment applies when:
    - effective_from <= period
    - effective_to is open or effective_to >= period
    - its paycode is active and not archived

    Periods are stored as ``YYYY-MM`` strings, so string comparison is
    chronological. An empty result is valid (no compensation).
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def resolve(self, employee_id: UUID, period: Period) -> list[PaycodeAssignment]:
        """Get assignments effective for an employee in a period.

        Ordered by paycode priority, then code, so payslip lines are stable.
        """
        key = str(period)
        result = await self.session.execute(
            select(PaycodeAssignment)
            .join(PaycodeAssignment.paycode)
            .where(
                PaycodeAssignment.employee_id == employee_id,
                PaycodeAssignment.effective_from <= key,
                (
                    PaycodeAssignment.effective_to.is_(None)
                    | (PaycodeAssignment.effective_to >= key)
                ),
                Paycode.is_active.is_(True),
                Paycode.archived_at.is_(None),
            )
            .options(contains_eager(PaycodeAssignment.paycode))
            .order_by(Paycode.default_priority, Paycode.code, PaycodeAssignment.effective_from)
        )
        return list(result.scalars().all())
