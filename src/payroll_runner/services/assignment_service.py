"""Paycode assignment write paths."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from payroll_runner.models import Paycode, PaycodeAssignment
from payroll_runner.period import Period
from payroll_runner.schemas import AssignmentCreate


class AssignmentOverlapError(Exception):
    """Raised when a new assignment interval overlaps an existing one."""

    def __init__(self, employee_id: UUID, paycode_code: str, existing_id: UUID):
        self.employee_id = employee_id
        self.paycode_code = paycode_code
        self.existing_id = existing_id
        super().__init__(
            f"Employee {employee_id} already has paycode {paycode_code} "
            f"in an overlapping interval (assignment {existing_id})"
        )


class AssignmentService:
    """Assign paycodes to employees over period intervals.

    Intervals of the same employee and paycode never overlap. Assignments
    are never deleted; ending one closes its interval.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def assign(self, data: AssignmentCreate) -> PaycodeAssignment:
        """Create an assignment, rejecting overlaps."""
        if data.effective_to is not None and data.effective_to < data.effective_from:
            raise ValueError("effective_to must not be before effective_from")

        paycode = await self.session.get(Paycode, data.paycode_id)
        if paycode is None:
            raise ValueError(f"Paycode {data.paycode_id} not found")
        if not paycode.is_usable:
            raise ValueError(f"Paycode {paycode.code} is inactive or archived")

        existing = await self._for_employee_paycode(data.employee_id, data.paycode_id)
        for current in existing:
            if current.overlaps(data.effective_from, data.effective_to):
                raise AssignmentOverlapError(data.employee_id, paycode.code, current.assignment_id)

        assignment = PaycodeAssignment(
            employee_id=data.employee_id,
            paycode_id=data.paycode_id,
            calc_kind=data.calc_kind,
            amount=data.amount,
            percentage=data.percentage,
            hourly_rate=data.hourly_rate,
            effective_from=data.effective_from,
            effective_to=data.effective_to,
            note=data.note,
        )
        assignment.paycode = paycode
        self.session.add(assignment)
        await self.session.flush()
        return assignment

    async def end(self, assignment_id: UUID, effective_to: Period) -> PaycodeAssignment:
        """Close an open assignment at a period on or after its start."""
        result = await self.session.execute(
            select(PaycodeAssignment)
            .where(PaycodeAssignment.assignment_id == assignment_id)
            .options(selectinload(PaycodeAssignment.paycode))
        )
        assignment = result.scalar_one_or_none()
        if assignment is None:
            raise ValueError(f"Assignment {assignment_id} not found")
        if assignment.effective_to is not None:
            raise ValueError(f"Assignment {assignment_id} already ended at {assignment.effective_to}")

        key = str(effective_to)
        if key < assignment.effective_from:
            raise ValueError(
                f"Cannot end assignment at {key}, before it starts at {assignment.effective_from}"
            )
        assignment.effective_to = key
        await self.session.flush()
        return assignment

    async def _for_employee_paycode(
        self, employee_id: UUID, paycode_id: UUID
    ) -> list[PaycodeAssignment]:
        result = await self.session.execute(
            select(PaycodeAssignment).where(
                PaycodeAssignment.employee_id == employee_id,
                PaycodeAssignment.paycode_id == paycode_id,
            )
        )
        return list(result.scalars().all())
