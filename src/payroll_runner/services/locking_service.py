"""Per-period run lease."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_runner.config import get_settings
from payroll_runner.models import PayrollRunLease
from payroll_runner.period import Period

logger = logging.getLogger(__name__)


class RunInProgressError(Exception):
    """Raised when another run holds the lease for a period."""

    def __init__(self, period: str, holder_run_id: UUID | None = None):
        self.period = period
        self.holder_run_id = holder_run_id
        msg = f"A payroll run is already in progress for {period}"
        if holder_run_id is not None:
            msg += f" (run {holder_run_id})"
        super().__init__(msg)


class RunLeaseService:
    """Mutual exclusion for payroll runs of the same period.

    One lease row per period. A lease whose expiry has passed belongs to a
    run that died without releasing it and is taken over. Acquire and release
    only flush; the caller owns the transaction.
    """

    def __init__(self, session: AsyncSession, ttl_seconds: int | None = None):
        self.session = session
        if ttl_seconds is None:
            ttl_seconds = get_settings().run_lease_ttl_seconds
        self.ttl = timedelta(seconds=ttl_seconds)

    async def acquire(
        self, period: Period, payroll_run_id: UUID, now: datetime | None = None
    ) -> PayrollRunLease:
        """Take the lease for a period, raising RunInProgressError if held."""
        now = now or datetime.now(timezone.utc)
        key = str(period)

        expired = await self.session.execute(
            delete(PayrollRunLease).where(
                PayrollRunLease.period == key,
                PayrollRunLease.expires_at <= now,
            )
            .execution_options(synchronize_session="fetch")
        )
        if expired.rowcount:
            logger.warning("Took over expired run lease for %s", key)

        result = await self.session.execute(
            select(PayrollRunLease).where(PayrollRunLease.period == key)
        )
        holder = result.scalar_one_or_none()
        if holder is not None:
            raise RunInProgressError(key, holder.payroll_run_id)

        lease = PayrollRunLease(
            period=key,
            payroll_run_id=payroll_run_id,
            acquired_at=now,
            expires_at=now + self.ttl,
        )
        self.session.add(lease)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            raise RunInProgressError(key) from exc
        return lease

    async def release(self, period: Period, payroll_run_id: UUID) -> bool:
        """Drop the lease if this run still holds it."""
        result = await self.session.execute(
            delete(PayrollRunLease).where(
                PayrollRunLease.period == str(period),
                PayrollRunLease.payroll_run_id == payroll_run_id,
            )
        )
        return bool(result.rowcount)

    async def is_held(self, period: Period, now: datetime | None = None) -> bool:
        now = now or datetime.now(timezone.utc)
        result = await self.session.execute(
            select(PayrollRunLease.period).where(
                PayrollRunLease.period == str(period),
                PayrollRunLease.expires_at > now,
            )
        )
        return result.first() is not None
