"""Cleanup of work left behind by interrupted runs."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_runner.config import get_settings
from payroll_runner.models import PayrollRun, Payslip
from payroll_runner.services.state_machine import PayrollRunStatus, ProcessingStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SweepResult:
    payslips_failed: int
    runs_failed: int


class OrphanSweeper:
    """Fails payslips and runs stuck in progress past a timeout."""

    def __init__(self, session: AsyncSession, timeout_minutes: int | None = None):
        self.session = session
        if timeout_minutes is None:
            timeout_minutes = get_settings().orphan_timeout_minutes
        self.timeout = timedelta(minutes=timeout_minutes)

    async def sweep(self, now: datetime | None = None) -> SweepResult:
        """Mark stale in-progress work failed. Flushes, caller commits."""
        now = now or datetime.now(timezone.utc)
        cutoff = now - self.timeout

        payslips = await self.session.execute(
            update(Payslip)
            .where(
                Payslip.processing_status == ProcessingStatus.IN_PROGRESS.value,
                Payslip.created_at < cutoff,
            )
            .values(processing_status=ProcessingStatus.FAILED.value)
            .execution_options(synchronize_session="fetch")
        )
        runs = await self.session.execute(
            update(PayrollRun)
            .where(
                PayrollRun.status == PayrollRunStatus.RUNNING.value,
                PayrollRun.started_at < cutoff,
            )
            .values(
                status=PayrollRunStatus.FAILED.value,
                completed_at=now,
                error="Run did not finish before the orphan timeout",
            )
            .execution_options(synchronize_session="fetch")
        )

        result = SweepResult(
            payslips_failed=payslips.rowcount or 0,
            runs_failed=runs.rowcount or 0,
        )
        if result.payslips_failed or result.runs_failed:
            logger.warning(
                "Orphan sweep failed %d payslip(s) and %d run(s) older than %s",
                result.payslips_failed,
                result.runs_failed,
                cutoff.isoformat(),
            )
        return result
