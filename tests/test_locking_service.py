"""Tests for the per-period run lease."""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from payroll_runner.period import Period
from payroll_runner.services import RunInProgressError, RunLeaseService

pytestmark = pytest.mark.asyncio

JANUARY = Period.parse("2026-01")
NOW = datetime(2026, 1, 23, 9, 0, tzinfo=timezone.utc)


class TestRunLease:
    """Test lease acquire and release."""

    async def test_acquire_then_conflict(self, session):
        service = RunLeaseService(session, ttl_seconds=600)
        first = uuid4()
        await service.acquire(JANUARY, first, now=NOW)

        with pytest.raises(RunInProgressError) as exc_info:
            await service.acquire(JANUARY, uuid4(), now=NOW + timedelta(minutes=1))

        assert exc_info.value.holder_run_id == first
        assert exc_info.value.period == "2026-01"

    async def test_other_period_is_independent(self, session):
        service = RunLeaseService(session, ttl_seconds=600)
        await service.acquire(JANUARY, uuid4(), now=NOW)

        await service.acquire(Period.parse("2026-02"), uuid4(), now=NOW)

        assert await service.is_held(Period.parse("2026-02"), now=NOW)

    async def test_expired_lease_is_taken_over(self, session):
        service = RunLeaseService(session, ttl_seconds=600)
        await service.acquire(JANUARY, uuid4(), now=NOW)
        later = NOW + timedelta(minutes=11)
        assert not await service.is_held(JANUARY, now=later)

        second = uuid4()
        lease = await service.acquire(JANUARY, second, now=later)

        assert lease.payroll_run_id == second
        assert await service.is_held(JANUARY, now=later)

    async def test_release_only_by_holder(self, session):
        service = RunLeaseService(session, ttl_seconds=600)
        holder = uuid4()
        await service.acquire(JANUARY, holder, now=NOW)

        assert not await service.release(JANUARY, uuid4())
        assert await service.release(JANUARY, holder)
        assert not await service.is_held(JANUARY, now=NOW)

        await service.acquire(JANUARY, uuid4(), now=NOW)
