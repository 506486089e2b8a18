"""Recurring payroll scheduler."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payroll_runner.config import get_settings
from payroll_runner.models import PayrollSchedule
from payroll_runner.notifications import NotificationDispatcher
from payroll_runner.schemas import RunSummary
from payroll_runner.scheduling.rules import ScheduleConfig, TickPlan, plan_tick
from payroll_runner.services.eligibility import EligibilityBuilder
from payroll_runner.services.maintenance import OrphanSweeper
from payroll_runner.services.run_orchestrator import RunOrchestrator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TickOutcome:
    """What one tick did."""

    ran: bool
    reason: str
    summary: RunSummary | None = None


async def load_schedule(session: AsyncSession) -> PayrollSchedule | None:
    """The active schedule row: the most recently created one."""
    result = await session.execute(
        select(PayrollSchedule)
        .order_by(PayrollSchedule.created_at.desc(), PayrollSchedule.schedule_id)
        .limit(1)
    )
    return result.scalar_one_or_none()


class PayrollScheduler:
    """Checks once per interval whether the automatic payroll run is due.

    A tick never raises: failures are logged and the schedule is left as it
    was, so the next tick on the same day may try again.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        dispatcher: NotificationDispatcher | None = None,
        check_interval: int | None = None,
        window_seconds: int | None = None,
    ):
        settings = get_settings()
        self.session_factory = session_factory
        self.dispatcher = dispatcher
        self.check_interval = check_interval or settings.scheduler_tick_seconds
        self.window_seconds = (
            window_seconds if window_seconds is not None else settings.run_window_seconds
        )
        self.is_running = False

    async def start(self) -> None:
        """Sweep orphans, then tick until stopped."""
        if self.is_running:
            logger.warning("PayrollScheduler is already running")
            return

        self.is_running = True
        logger.info("PayrollScheduler started (every %ss)", self.check_interval)
        await self.sweep_orphans()

        while self.is_running:
            await self.tick(datetime.now())
            await asyncio.sleep(self.check_interval)

    async def stop(self) -> None:
        self.is_running = False
        logger.info("PayrollScheduler stopped")

    async def sweep_orphans(self) -> None:
        try:
            async with self.session_factory() as session:
                await OrphanSweeper(session).sweep()
                await session.commit()
        except Exception:
            logger.exception("Orphan sweep failed")

    async def tick(self, now: datetime) -> TickOutcome:
        """Run payroll if ``now`` is the scheduled run time of a pay day."""
        try:
            return await self._tick(now)
        except Exception as exc:
            logger.exception("Payroll scheduler tick failed")
            return TickOutcome(ran=False, reason=f"error: {exc}")

    async def _tick(self, now: datetime) -> TickOutcome:
        async with self.session_factory() as session:
            row = await load_schedule(session)
            config = ScheduleConfig.from_model(row) if row is not None else None
            plan: TickPlan = plan_tick(config, now, self.window_seconds)
            if not plan.should_run:
                logger.debug("Payroll tick at %s: %s", now.isoformat(), plan.reason)
                return TickOutcome(ran=False, reason=plan.reason)
            schedule_id = row.schedule_id

            employee_ids = await EligibilityBuilder(session).build(plan.period)
            if not employee_ids:
                logger.info("Payroll due for %s but no employee is eligible", plan.period)
                return TickOutcome(ran=False, reason="no eligible employees")

            logger.info(
                "Scheduled payroll for %s (pay date %s): %d eligible employee(s)",
                plan.period,
                plan.pay_date,
                len(employee_ids),
            )
            summary = await RunOrchestrator(session, dispatcher=self.dispatcher).run(
                plan.period, plan.pay_date, employee_ids
            )

            if config is not None and config.has_overrides:
                await session.execute(
                    update(PayrollSchedule)
                    .where(PayrollSchedule.schedule_id == schedule_id)
                    .values(override_period=None, override_run_date=None)
                )
                await session.commit()
                logger.info("Cleared one-off schedule overrides after run %s", summary.payroll_run_id)

            return TickOutcome(ran=True, reason="completed", summary=summary)
