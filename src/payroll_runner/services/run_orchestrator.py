"""Run orchestrator - drives a payroll run for one period."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Sequence
from uuid import UUID, uuid4

from pydantic import ValidationError
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_runner.calculators import (
    AnomalyDetector,
    CalculationResult,
    EarningsCalculator,
    LineItemBuilder,
)
from payroll_runner.models import (
    PayrollAdjustment,
    PayrollAnomaly,
    PayrollRun,
    Payslip,
    PayslipLine,
    User,
)
from payroll_runner.notifications import (
    AnomalyAlertIntent,
    LoggingNotificationDispatcher,
    NotificationDispatcher,
    NotificationIntent,
    PayslipReleasedIntent,
)
from payroll_runner.period import Period
from payroll_runner.schemas import (
    EmployeeOutcome,
    EmployeeRunResult,
    RunPreview,
    RunRequest,
    RunSummary,
)
from payroll_runner.services.eligibility import EligibilityBuilder
from payroll_runner.services.locking_service import RunInProgressError, RunLeaseService
from payroll_runner.services.state_machine import (
    AdjustmentStateMachine,
    AdjustmentStatus,
    PayrollRunStateMachine,
    PayrollRunStatus,
    PayslipKind,
    PayslipStateMachine,
    ProcessingStatus,
    ReleaseStatus,
)

logger = logging.getLogger(__name__)

ALERT_ROLES = ("admin", "payroll_manager")


class RunValidationError(ValueError):
    """Raised when run input is invalid. Nothing has been persisted."""


@dataclass(frozen=True)
class EmployeeSnapshot:
    """Identity captured once per run and copied onto payslips."""

    employee_id: UUID
    full_name: str
    email: str
    employee_code: str
    address: str


@dataclass
class _Counters:
    employees_considered: int = 0
    payslips_created: int = 0
    payslips_released: int = 0
    payslips_blocked: int = 0
    payslips_failed: int = 0
    payslips_skipped: int = 0
    anomalies_found: int = 0
    emails_sent: int = 0
    anomaly_alerts_sent: int = 0

    def add(self, result: EmployeeRunResult) -> None:
        outcome = result.outcome
        if outcome == EmployeeOutcome.SKIPPED:
            self.payslips_skipped += 1
        elif outcome == EmployeeOutcome.FAILED:
            self.payslips_failed += 1
        else:
            self.payslips_created += 1
            self.anomalies_found += result.anomaly_count
            if outcome == EmployeeOutcome.RELEASED:
                self.payslips_released += 1
            else:
                self.payslips_blocked += 1
        if result.email_sent:
            self.emails_sent += 1
        if result.alert_sent:
            self.anomaly_alerts_sent += 1

    def as_values(self) -> dict[str, int]:
        return dict(self.__dict__)


class RunOrchestrator:
    """Processes a payroll run employee by employee.

    Operations:
    - run: compute, check and release payslips for selected employees
    - preview: read-only counts for a period

    Each employee is committed on its own. A failure for one employee marks
    that employee's in-progress payslips of the run failed and the run moves
    on. Only a run that cannot start ends up failed.
    """

    def __init__(
        self,
        session: AsyncSession,
        dispatcher: NotificationDispatcher | None = None,
        lease_ttl_seconds: int | None = None,
    ):
        self.session = session
        self.dispatcher = dispatcher or LoggingNotificationDispatcher()
        self.calculator = EarningsCalculator(session)
        self.detector = AnomalyDetector(session)
        self.lease = RunLeaseService(session, ttl_seconds=lease_ttl_seconds)

    @staticmethod
    def validate_request(
        period: Period | str,
        pay_date: date,
        employee_ids: Sequence[UUID],
        created_by_user_id: UUID | None = None,
    ) -> RunRequest:
        """Validate run input, raising RunValidationError."""
        try:
            return RunRequest(
                period=str(period),
                pay_date=pay_date,
                employee_ids=list(employee_ids or []),
                created_by_user_id=created_by_user_id,
            )
        except ValidationError as exc:
            raise RunValidationError(f"Invalid payroll run request: {exc}") from exc

    async def run(
        self,
        period: Period | str,
        pay_date: date,
        employee_ids: Sequence[UUID],
        created_by_user_id: UUID | None = None,
    ) -> RunSummary:
        """Run payroll for the given employees.

        Raises:
            RunValidationError: bad input, before anything is written
            RunInProgressError: another run holds the period
        """
        request = self.validate_request(period, pay_date, employee_ids, created_by_user_id)
        target = request.parsed_period
        run_id = await self._start_run(request, target)

        counters = _Counters()
        outcomes: list[EmployeeRunResult] = []
        try:
            employees = await self._load_employees(request.employee_ids)
            recipients = await self._load_alert_recipients()
            counters.employees_considered = len(employees)
            await self._write_counters(run_id, counters)
            await self.session.commit()

            logger.info(
                "Payroll run %s for %s started: %d of %d selected employees active",
                run_id,
                target,
                len(employees),
                len(request.employee_ids),
            )

            for employee in employees:
                result = await self._process_employee_safely(
                    run_id, target, request.pay_date, employee, recipients
                )
                outcomes.append(result)
                counters.add(result)
                await self._write_counters(run_id, counters)
                await self.session.commit()

            await self._finish_run(run_id, target, PayrollRunStatus.COMPLETED, counters)
        except Exception as exc:
            logger.exception("Payroll run %s for %s failed", run_id, target)
            await self.session.rollback()
            await self._finish_run(
                run_id, target, PayrollRunStatus.FAILED, counters, error=str(exc) or repr(exc)
            )
            raise

        logger.info(
            "Payroll run %s for %s completed: %d released, %d blocked, %d failed, %d skipped",
            run_id,
            target,
            counters.payslips_released,
            counters.payslips_blocked,
            counters.payslips_failed,
            counters.payslips_skipped,
        )
        return RunSummary(
            payroll_run_id=run_id,
            period=str(target),
            status=PayrollRunStatus.COMPLETED.value,
            outcomes=outcomes,
            **counters.as_values(),
        )

    async def preview(self, period: Period) -> RunPreview:
        """Counts a run for the period would start from. Read only."""
        key = str(period)
        eligible = await EligibilityBuilder(self.session).build(period)

        released = await self.session.scalar(
            select(func.count())
            .select_from(Payslip)
            .where(Payslip.period == key, Payslip.status == ReleaseStatus.RELEASED.value)
        )
        pending = (
            await self.session.execute(
                select(func.count(), func.coalesce(func.sum(PayrollAdjustment.amount), 0)).where(
                    PayrollAdjustment.period == key,
                    PayrollAdjustment.status == AdjustmentStatus.PENDING.value,
                )
            )
        ).one()
        open_high = await self.session.scalar(
            select(func.count())
            .select_from(PayrollAnomaly)
            .where(
                PayrollAnomaly.period == key,
                PayrollAnomaly.status == "open",
                PayrollAnomaly.severity == "high",
            )
        )
        return RunPreview(
            period=key,
            eligible_employees=len(eligible),
            released_payslips=released or 0,
            pending_adjustments=pending[0] or 0,
            pending_adjustment_total=LineItemBuilder.round_to_cents(Decimal(str(pending[1] or 0))),
            open_high_anomalies=open_high or 0,
        )

    # === Run lifecycle ===

    async def _start_run(self, request: RunRequest, period: Period) -> UUID:
        run_id = uuid4()
        try:
            await self.lease.acquire(period, run_id)
        except RunInProgressError:
            await self.session.rollback()
            raise

        run = PayrollRun(
            payroll_run_id=run_id,
            period=str(period),
            pay_date=request.pay_date,
            status=PayrollRunStatus.QUEUED.value,
            created_by_user_id=request.created_by_user_id,
            selected_count=len(request.employee_ids),
        )
        PayrollRunStateMachine.validate_transition(run.status, PayrollRunStatus.RUNNING)
        run.status = PayrollRunStatus.RUNNING.value
        run.started_at = datetime.now(timezone.utc)
        self.session.add(run)
        await self.session.commit()
        return run_id

    async def _finish_run(
        self,
        run_id: UUID,
        period: Period,
        status: PayrollRunStatus,
        counters: _Counters,
        error: str = "",
    ) -> None:
        current = await self.session.scalar(
            select(PayrollRun.status).where(PayrollRun.payroll_run_id == run_id)
        )
        PayrollRunStateMachine.validate_transition(current, status)
        await self.session.execute(
            update(PayrollRun)
            .where(PayrollRun.payroll_run_id == run_id)
            .values(
                status=status.value,
                completed_at=datetime.now(timezone.utc),
                error=error,
                **counters.as_values(),
            )
        )
        await self.lease.release(period, run_id)
        await self.session.commit()

    async def _write_counters(self, run_id: UUID, counters: _Counters) -> None:
        await self.session.execute(
            update(PayrollRun)
            .where(PayrollRun.payroll_run_id == run_id)
            .values(**counters.as_values())
        )

    # === Per-employee processing ===

    async def _process_employee_safely(
        self,
        run_id: UUID,
        period: Period,
        pay_date: date,
        employee: EmployeeSnapshot,
        recipients: tuple[str, ...],
    ) -> EmployeeRunResult:
        try:
            return await self.process_employee(run_id, period, pay_date, employee, recipients)
        except Exception as exc:
            logger.exception(
                "Payroll run %s: employee %s failed", run_id, employee.employee_id
            )
            await self.session.rollback()
            await self._mark_in_progress_failed(run_id, period, employee.employee_id)
            await self.session.commit()
            return EmployeeRunResult(
                employee_id=employee.employee_id,
                outcome=EmployeeOutcome.FAILED,
                error=str(exc) or repr(exc),
            )

    async def process_employee(
        self,
        run_id: UUID,
        period: Period,
        pay_date: date,
        employee: EmployeeSnapshot,
        recipients: tuple[str, ...],
    ) -> EmployeeRunResult:
        """Compute, check and release (or block) one employee's payslip."""
        employee_id = employee.employee_id

        if await self._has_released_payslip(employee_id, period):
            if not await self._has_pending_adjustments(employee_id, period):
                return EmployeeRunResult(employee_id=employee_id, outcome=EmployeeOutcome.SKIPPED)

        calc = await self.calculator.calculate(employee_id, period)
        payslip = await self._create_payslip(run_id, period, pay_date, employee, calc)
        payslip_id = payslip.payslip_id
        # In-progress payslip is durable so a crash below leaves a trace to mark failed
        await self.session.commit()

        totals = calc.totals
        report = await self.detector.detect(employee_id, period, totals)
        await self.detector.record(report, period=period, payroll_run_id=run_id, payslip=payslip)
        payslip.processing_status = ProcessingStatus.COMPLETED.value

        if report.has_high:
            await self.session.commit()
            alert_sent = False
            if recipients:
                alert_sent = await self._notify(
                    AnomalyAlertIntent(
                        recipients=recipients,
                        period=str(period),
                        employee_id=employee_id,
                        employee_name=employee.full_name,
                        payslip_id=payslip_id,
                        anomaly_count=report.count,
                        severity=report.severity.value,
                        messages=tuple(f.message for f in report.findings),
                    )
                )
            else:
                logger.warning(
                    "Payslip %s blocked but there are no active admins or payroll managers",
                    payslip_id,
                )
            return EmployeeRunResult(
                employee_id=employee_id,
                outcome=EmployeeOutcome.BLOCKED,
                payslip_id=payslip_id,
                anomaly_count=report.count,
                alert_sent=alert_sent,
            )

        apply_adjustments(calc.adjustments, payslip_id)
        release_payslip(payslip)
        await self.session.commit()

        email_sent = await self._notify(
            PayslipReleasedIntent(
                employee_id=employee_id,
                email=employee.email,
                full_name=employee.full_name,
                period=str(period),
                payslip_id=payslip_id,
                payslip_kind=payslip.payslip_kind,
            )
        )
        return EmployeeRunResult(
            employee_id=employee_id,
            outcome=EmployeeOutcome.RELEASED,
            payslip_id=payslip_id,
            anomaly_count=report.count,
            email_sent=email_sent,
        )

    async def _create_payslip(
        self,
        run_id: UUID,
        period: Period,
        pay_date: date,
        employee: EmployeeSnapshot,
        calc: CalculationResult,
    ) -> Payslip:
        candidates = calc.earnings + calc.deductions
        errors = LineItemBuilder.validate_lines(candidates)
        if errors:
            raise ValueError("; ".join(errors))

        totals = calc.totals
        payslip = Payslip(
            payslip_id=uuid4(),
            employee_id=employee.employee_id,
            payroll_run_id=run_id,
            employee_full_name=employee.full_name,
            employee_email=employee.email,
            employee_code=employee.employee_code,
            employee_address=employee.address,
            period=str(period),
            pay_date=pay_date,
            gross_pay=totals.gross,
            total_deductions=totals.deductions,
            net_pay=totals.net,
            processing_status=ProcessingStatus.IN_PROGRESS.value,
            status=ReleaseStatus.DRAFT.value,
            payslip_kind=(
                PayslipKind.ADJUSTMENT.value if calc.has_adjustments else PayslipKind.REGULAR.value
            ),
            adjustment_ids=[str(a.adjustment_id) for a in calc.adjustments],
            lines=[
                PayslipLine(
                    line_type=line.line_type.value,
                    position=position,
                    paycode_code=line.paycode_code,
                    label=line.label,
                    amount=line.amount,
                    visible_on_payslip=line.visible_on_payslip,
                )
                for position, line in enumerate(candidates)
            ],
        )
        self.session.add(payslip)
        await self.session.flush()
        return payslip

    async def _mark_in_progress_failed(
        self, run_id: UUID, period: Period, employee_id: UUID
    ) -> int:
        result = await self.session.execute(
            update(Payslip)
            .where(
                Payslip.employee_id == employee_id,
                Payslip.period == str(period),
                Payslip.payroll_run_id == run_id,
                Payslip.processing_status == ProcessingStatus.IN_PROGRESS.value,
            )
            .values(processing_status=ProcessingStatus.FAILED.value)
        )
        return result.rowcount or 0

    async def _notify(self, intent: NotificationIntent) -> bool:
        try:
            await self.dispatcher.dispatch(intent)
        except Exception as exc:
            logger.warning("Failed to dispatch %s notification: %s", intent.intent_type, exc)
            return False
        return True

    # === Data Loading Methods ===

    async def _load_employees(self, employee_ids: list[UUID]) -> list[EmployeeSnapshot]:
        """Active employees among the ids, in request order."""
        result = await self.session.execute(
            select(User).where(
                User.user_id.in_(employee_ids),
                User.role == "employee",
                User.is_active.is_(True),
            )
        )
        by_id = {
            user.user_id: EmployeeSnapshot(
                employee_id=user.user_id,
                full_name=user.full_name,
                email=user.email,
                employee_code=user.employee_code or "",
                address=user.address or "",
            )
            for user in result.scalars().all()
        }
        return [by_id[i] for i in employee_ids if i in by_id]

    async def _load_alert_recipients(self) -> tuple[str, ...]:
        result = await self.session.execute(
            select(User.email)
            .where(User.role.in_(ALERT_ROLES), User.is_active.is_(True))
            .order_by(User.email)
        )
        return tuple(email for email in result.scalars().all() if email)

    async def _has_released_payslip(self, employee_id: UUID, period: Period) -> bool:
        result = await self.session.execute(
            select(Payslip.payslip_id)
            .where(
                Payslip.employee_id == employee_id,
                Payslip.period == str(period),
                Payslip.status == ReleaseStatus.RELEASED.value,
            )
            .limit(1)
        )
        return result.first() is not None

    async def _has_pending_adjustments(self, employee_id: UUID, period: Period) -> bool:
        result = await self.session.execute(
            select(PayrollAdjustment.adjustment_id)
            .where(
                PayrollAdjustment.employee_id == employee_id,
                PayrollAdjustment.period == str(period),
                PayrollAdjustment.status == AdjustmentStatus.PENDING.value,
            )
            .limit(1)
        )
        return result.first() is not None


def apply_adjustments(adjustments: Sequence[PayrollAdjustment], payslip_id: UUID) -> None:
    """Mark pending adjustments as consumed by a released payslip."""
    for adjustment in adjustments:
        AdjustmentStateMachine.validate_transition(adjustment.status, AdjustmentStatus.APPLIED)
        adjustment.status = AdjustmentStatus.APPLIED.value
        adjustment.applied_payslip_id = payslip_id


def release_payslip(payslip: Payslip) -> None:
    PayslipStateMachine.validate_transition(payslip.status, ReleaseStatus.RELEASED)
    payslip.status = ReleaseStatus.RELEASED.value
    payslip.processing_status = ProcessingStatus.COMPLETED.value
    payslip.released_at = datetime.now(timezone.utc)
