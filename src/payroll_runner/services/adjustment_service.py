"""Payroll adjustment write paths."""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_runner.models import PayrollAdjustment
from payroll_runner.schemas import AdjustmentCreate, AdjustmentUpdate
from payroll_runner.services.state_machine import (
    AdjustmentStateMachine,
    AdjustmentStatus,
    InvalidTransitionError,
)


class AdjustmentNotPendingError(Exception):
    """Raised when editing or cancelling an adjustment that is no longer pending."""

    def __init__(self, adjustment_id: UUID, status: str):
        self.adjustment_id = adjustment_id
        self.status = status
        super().__init__(f"Adjustment {adjustment_id} is {status}; only pending adjustments can change")


class AdjustmentService:
    """Create, edit and cancel one-off payroll adjustments.

    Only pending adjustments may change. Applying happens when a payslip
    consuming the adjustment is released.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, adjustment_id: UUID) -> PayrollAdjustment | None:
        result = await self.session.execute(
            select(PayrollAdjustment).where(PayrollAdjustment.adjustment_id == adjustment_id)
        )
        return result.scalar_one_or_none()

    async def create(
        self, data: AdjustmentCreate, created_by_user_id: UUID | None = None
    ) -> PayrollAdjustment:
        """Create a pending adjustment."""
        adjustment = PayrollAdjustment(
            employee_id=data.employee_id,
            period=data.period,
            paycode_code=data.paycode_code,
            paycode_name=data.paycode_name,
            adjustment_type=data.adjustment_type,
            amount=data.amount,
            note=data.note,
            status=AdjustmentStatus.PENDING.value,
            created_by_user_id=created_by_user_id,
        )
        self.session.add(adjustment)
        await self.session.flush()
        return adjustment

    async def update(self, adjustment_id: UUID, data: AdjustmentUpdate) -> PayrollAdjustment:
        """Edit a pending adjustment."""
        adjustment = await self._get_pending(adjustment_id)
        for key, value in data.model_dump(exclude_unset=True, exclude_none=True).items():
            setattr(adjustment, key, value)
        await self.session.flush()
        return adjustment

    async def cancel(
        self, adjustment_id: UUID, cancelled_by_user_id: UUID | None = None
    ) -> PayrollAdjustment:
        """Cancel a pending adjustment, recording who and when."""
        adjustment = await self._get_pending(adjustment_id)
        try:
            AdjustmentStateMachine.validate_transition(
                adjustment.status, AdjustmentStatus.CANCELLED
            )
        except InvalidTransitionError as exc:
            raise AdjustmentNotPendingError(adjustment_id, adjustment.status) from exc

        adjustment.status = AdjustmentStatus.CANCELLED.value
        adjustment.cancelled_by_user_id = cancelled_by_user_id
        adjustment.cancelled_at = datetime.now(timezone.utc)
        await self.session.flush()
        return adjustment

    async def list_pending(self, period: str) -> list[PayrollAdjustment]:
        result = await self.session.execute(
            select(PayrollAdjustment)
            .where(
                PayrollAdjustment.period == period,
                PayrollAdjustment.status == AdjustmentStatus.PENDING.value,
            )
            .order_by(PayrollAdjustment.employee_id, PayrollAdjustment.created_at)
        )
        return list(result.scalars().all())

    async def _get_pending(self, adjustment_id: UUID) -> PayrollAdjustment:
        adjustment = await self.get(adjustment_id)
        if adjustment is None:
            raise ValueError(f"Adjustment {adjustment_id} not found")
        if not AdjustmentStateMachine.can_edit(adjustment.status):
            raise AdjustmentNotPendingError(adjustment_id, adjustment.status)
        return adjustment
