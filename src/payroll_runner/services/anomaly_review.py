"""Human review of anomaly records."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_runner.models import PayrollAdjustment, PayrollAnomaly, Payslip
from payroll_runner.notifications import (
    LoggingNotificationDispatcher,
    NotificationDispatcher,
    PayslipReleasedIntent,
)
from payroll_runner.services.run_orchestrator import apply_adjustments, release_payslip
from payroll_runner.services.state_machine import AdjustmentStatus, ReleaseStatus

logger = logging.getLogger(__name__)


class PayslipSupersededError(Exception):
    """Raised when approving a draft whose employee and period already have a released payslip."""

    def __init__(self, payslip_id: UUID, released_payslip_id: UUID):
        self.payslip_id = payslip_id
        self.released_payslip_id = released_payslip_id
        super().__init__(
            f"Payslip {payslip_id} is superseded by released payslip {released_payslip_id}; "
            "dismiss the anomaly instead"
        )


class ReviewDecision(str, Enum):
    """Reviewer decision on an anomaly."""

    APPROVE = "approve"
    DISMISS = "dismiss"
    OVERRIDE = "override"


class AnomalyReviewService:
    """Resolves open anomalies.

    - dismiss: record closed as dismissed, payslip untouched
    - override: record reviewed, payslip untouched
    - approve: record reviewed, draft payslip released, its pending
      adjustments applied, employee notified. Refused with
      PayslipSupersededError when a later run already released a payslip
      for the same employee and period.

    Other open records of the same payslip get the same decision.
    """

    def __init__(
        self,
        session: AsyncSession,
        dispatcher: NotificationDispatcher | None = None,
    ):
        self.session = session
        self.dispatcher = dispatcher or LoggingNotificationDispatcher()

    async def resolve(
        self,
        anomaly_id: UUID,
        decision: ReviewDecision | str,
        reviewer_id: UUID | None = None,
    ) -> PayrollAnomaly:
        """Apply a review decision and commit it."""
        decision = ReviewDecision(decision)
        anomaly = await self.session.get(PayrollAnomaly, anomaly_id)
        if anomaly is None:
            raise ValueError(f"Anomaly {anomaly_id} not found")
        if anomaly.status != "open":
            raise ValueError(f"Anomaly {anomaly_id} is already {anomaly.status}")
        if decision == ReviewDecision.APPROVE and anomaly.payslip_id is not None:
            await self._ensure_not_superseded(anomaly.payslip_id)

        status = "dismissed" if decision == ReviewDecision.DISMISS else "reviewed"
        reviewed_at = datetime.now(timezone.utc)
        anomaly.status = status
        anomaly.decision = decision.value
        anomaly.reviewed_by_user_id = reviewer_id
        anomaly.reviewed_at = reviewed_at

        if anomaly.payslip_id is not None:
            await self.session.execute(
                update(PayrollAnomaly)
                .where(
                    PayrollAnomaly.payslip_id == anomaly.payslip_id,
                    PayrollAnomaly.anomaly_id != anomaly.anomaly_id,
                    PayrollAnomaly.status == "open",
                )
                .values(
                    status=status,
                    decision=decision.value,
                    reviewed_by_user_id=reviewer_id,
                    reviewed_at=reviewed_at,
                )
            )

        released: Payslip | None = None
        if decision == ReviewDecision.APPROVE and anomaly.payslip_id is not None:
            released = await self._release(anomaly.payslip_id)

        await self.session.commit()

        if released is not None:
            await self._notify_released(released)
        return anomaly

    async def list_open(self, period: str | None = None) -> list[PayrollAnomaly]:
        query = select(PayrollAnomaly).where(PayrollAnomaly.status == "open")
        if period is not None:
            query = query.where(PayrollAnomaly.period == period)
        result = await self.session.execute(
            query.order_by(PayrollAnomaly.period.desc(), PayrollAnomaly.employee_full_name)
        )
        return list(result.scalars().all())

    async def _ensure_not_superseded(self, payslip_id: UUID) -> None:
        payslip = await self.session.get(Payslip, payslip_id)
        if payslip is None or payslip.status == ReleaseStatus.RELEASED.value:
            return
        released_id = await self.session.scalar(
            select(Payslip.payslip_id)
            .where(
                Payslip.employee_id == payslip.employee_id,
                Payslip.period == payslip.period,
                Payslip.payslip_id != payslip_id,
                Payslip.status == ReleaseStatus.RELEASED.value,
            )
            .limit(1)
        )
        if released_id is not None:
            raise PayslipSupersededError(payslip_id, released_id)

    async def _release(self, payslip_id: UUID) -> Payslip | None:
        payslip = await self.session.get(Payslip, payslip_id)
        if payslip is None:
            logger.warning("Approved anomaly points at missing payslip %s", payslip_id)
            return None
        if payslip.status == ReleaseStatus.RELEASED.value:
            return None

        ids = [UUID(value) for value in payslip.adjustment_ids or []]
        adjustments: list[PayrollAdjustment] = []
        if ids:
            result = await self.session.execute(
                select(PayrollAdjustment).where(
                    PayrollAdjustment.adjustment_id.in_(ids),
                    PayrollAdjustment.status == AdjustmentStatus.PENDING.value,
                )
            )
            adjustments = list(result.scalars().all())

        apply_adjustments(adjustments, payslip.payslip_id)
        release_payslip(payslip)
        return payslip

    async def _notify_released(self, payslip: Payslip) -> None:
        try:
            await self.dispatcher.dispatch(
                PayslipReleasedIntent(
                    employee_id=payslip.employee_id,
                    email=payslip.employee_email,
                    full_name=payslip.employee_full_name,
                    period=payslip.period,
                    payslip_id=payslip.payslip_id,
                    payslip_kind=payslip.payslip_kind,
                )
            )
        except Exception as exc:
            logger.warning("Failed to notify release of payslip %s: %s", payslip.payslip_id, exc)
