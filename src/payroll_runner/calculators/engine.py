"""Earnings and deductions calculator."""

from __future__ import annotations

import logging
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_runner.calculators.assignment_resolver import AssignmentResolver
from payroll_runner.calculators.line_builder import BONUS_CODE, LineItemBuilder
from payroll_runner.calculators.types import (
    CalcKind,
    CalculationResult,
    LineCandidate,
    PaycodeRole,
    PaycodeType,
)
from payroll_runner.models import (
    LeaveRequest,
    OvertimeRequest,
    Paycode,
    PaycodeAssignment,
    PayrollAdjustment,
)
from payroll_runner.period import Period

logger = logging.getLogger(__name__)

UNPAID_LEAVE_TYPE = "unpaid"
UNPAID_LEAVE_CODE = "UNPAID_LEAVE"
BONUS_PAYCODE_NAME = "December Bonus"


class PaycodeConfigurationError(Exception):
    """Raised when a paycode's role contradicts its type."""

    def __init__(self, paycode_code: str, reason: str):
        self.paycode_code = paycode_code
        self.reason = reason
        super().__init__(f"Paycode {paycode_code} is misconfigured: {reason}")


def format_number(value: Decimal | None) -> str:
    """Render a decimal for a line label without trailing zeros."""
    if value is None:
        return "0"
    return f"{value.normalize():f}"


def validate_paycode(paycode: Paycode) -> None:
    """Reject role/type combinations the calculator cannot interpret."""
    if paycode.role == PaycodeRole.OVERTIME and paycode.paycode_type != PaycodeType.EARNING:
        raise PaycodeConfigurationError(paycode.code, "overtime paycodes must be earnings")
    if (
        paycode.role == PaycodeRole.UNPAID_LEAVE
        and paycode.paycode_type != PaycodeType.DEDUCTION
    ):
        raise PaycodeConfigurationError(paycode.code, "unpaid leave paycodes must be deductions")


class EarningsCalculator:
    """Turns assignments and period inputs into payslip lines.

    Calculation pipeline (order matters, later steps use earlier totals):
    1) Fixed, manual and hourly-rate assignments
    2) Classify as earning/deduction; accumulate the proration base
       (fixed/manual earnings that are not overtime)
    3) Pending adjustments for the period (not consumed here)
    4) Unpaid leave deduction = base / days in month * unpaid days
    5) December bonus equal to the base, once per payslip
    6) Percentage assignments against gross accumulated through step 5
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.assignment_resolver = AssignmentResolver(session)

    async def calculate(self, employee_id: UUID, period: Period) -> CalculationResult:
        """Calculate pay for one employee and one period."""
        assignments = await self.assignment_resolver.resolve(employee_id, period)
        adjustments = await self._get_pending_adjustments(employee_id, period)
        overtime_hours = await self._get_accepted_overtime_hours(employee_id, period)
        unpaid_days = await self._get_unpaid_leave_days(employee_id, period)

        result = CalculationResult(
            employee_id=employee_id,
            period=period,
            adjustments=adjustments,
            overtime_hours=overtime_hours,
            unpaid_days=unpaid_days,
        )

        # 1) + 2) Non-percentage assignments
        percentage_assignments: list[PaycodeAssignment] = []
        proration_base = Decimal("0")
        overtime_paid = False

        for assignment in assignments:
            paycode = assignment.paycode
            validate_paycode(paycode)

            kind = CalcKind(assignment.effective_kind)
            if kind == CalcKind.PERCENTAGE:
                percentage_assignments.append(assignment)
                continue

            line = self._build_assignment_line(assignment, kind, overtime_hours)
            if paycode.role == PaycodeRole.OVERTIME and kind == CalcKind.HOURLY_RATE:
                overtime_paid = True

            if line.line_type == PaycodeType.EARNING:
                result.earnings.append(line)
                if kind in (CalcKind.FIXED, CalcKind.MANUAL) and paycode.role != PaycodeRole.OVERTIME:
                    proration_base += line.amount
            else:
                result.deductions.append(line)

        if overtime_hours > 0 and not overtime_paid:
            logger.warning(
                "Employee %s has %s accepted overtime hours in %s but no overtime paycode",
                employee_id,
                overtime_hours,
                period,
            )

        # 3) Pending adjustments
        for adj in adjustments:
            self._append(result, self._build_adjustment_line(adj))

        # 4) Unpaid leave
        if unpaid_days > 0:
            result.deductions.append(
                self._build_unpaid_leave_line(assignments, proration_base, period, unpaid_days)
            )

        # 5) December bonus
        if (
            period.is_december
            and proration_base > 0
            and not LineItemBuilder.has_bonus_line(result.earnings)
        ):
            bonus_paycode = await self.ensure_bonus_paycode()
            result.earnings.append(
                LineItemBuilder.create_earning_line(
                    paycode_code=BONUS_CODE,
                    label=f"{BONUS_CODE} - {bonus_paycode.name}",
                    amount=proration_base,
                    visible_on_payslip=bonus_paycode.visible_on_payslip,
                )
            )

        # 6) Percentage of gross so far
        gross_so_far = LineItemBuilder.sum_lines(result.earnings)
        for assignment in percentage_assignments:
            self._append(result, self._build_percentage_line(assignment, gross_so_far))

        return result

    async def ensure_bonus_paycode(self) -> Paycode:
        """Get the BONUS paycode, creating it if missing. Never overwrites."""
        result = await self.session.execute(select(Paycode).where(Paycode.code == BONUS_CODE))
        paycode = result.scalar_one_or_none()
        if paycode is not None:
            return paycode

        paycode = Paycode(
            code=BONUS_CODE,
            name=BONUS_PAYCODE_NAME,
            paycode_type=PaycodeType.EARNING.value,
            calc_kind=CalcKind.FIXED.value,
            role=PaycodeRole.NONE.value,
            visible_on_payslip=True,
            is_active=True,
            default_priority=60,
        )
        self.session.add(paycode)
        await self.session.flush()
        logger.info("Created %s paycode on first use", BONUS_CODE)
        return paycode

    # === Line Builders ===

    def _append(self, result: CalculationResult, line: LineCandidate) -> None:
        if line.line_type == PaycodeType.EARNING:
            result.earnings.append(line)
        else:
            result.deductions.append(line)

    def _build_assignment_line(
        self,
        assignment: PaycodeAssignment,
        kind: CalcKind,
        overtime_hours: Decimal,
    ) -> LineCandidate:
        paycode = assignment.paycode
        rate = assignment.hourly_rate or Decimal("0")
        label = f"{paycode.code} - {paycode.name}"

        if kind == CalcKind.HOURLY_RATE and paycode.role == PaycodeRole.OVERTIME:
            amount = rate * overtime_hours
            label += f" ({format_number(overtime_hours)}h x {format_number(rate)})"
        elif kind == CalcKind.HOURLY_RATE:
            units = assignment.amount or Decimal("0")
            amount = units * rate
            label += f" ({format_number(units)} x {format_number(rate)})"
        else:
            amount = assignment.amount or Decimal("0")

        return LineItemBuilder.create_line(
            line_type=PaycodeType(paycode.paycode_type),
            paycode_code=paycode.code,
            label=label,
            amount=amount,
            visible_on_payslip=paycode.visible_on_payslip,
        )

    def _build_adjustment_line(self, adj: PayrollAdjustment) -> LineCandidate:
        return LineItemBuilder.create_line(
            line_type=PaycodeType(adj.adjustment_type),
            paycode_code=adj.paycode_code,
            label=f"{adj.paycode_code} - {adj.paycode_name or 'Adjustment'}",
            amount=adj.amount,
        )

    def _build_unpaid_leave_line(
        self,
        assignments: list[PaycodeAssignment],
        proration_base: Decimal,
        period: Period,
        unpaid_days: int,
    ) -> LineCandidate:
        daily_rate = proration_base / Decimal(period.days_in_month)
        amount = daily_rate * Decimal(unpaid_days)

        paycode = next(
            (
                a.paycode
                for a in assignments
                if a.paycode.role == PaycodeRole.UNPAID_LEAVE
                and a.paycode.paycode_type == PaycodeType.DEDUCTION
            ),
            None,
        )
        if paycode is not None:
            return LineItemBuilder.create_deduction_line(
                paycode_code=paycode.code,
                label=f"{paycode.code} - {paycode.name} ({unpaid_days} day(s))",
                amount=amount,
                visible_on_payslip=paycode.visible_on_payslip,
            )
        return LineItemBuilder.create_deduction_line(
            paycode_code=UNPAID_LEAVE_CODE,
            label=f"{UNPAID_LEAVE_CODE} - Unpaid Leave ({unpaid_days} day(s))",
            amount=amount,
        )

    def _build_percentage_line(
        self, assignment: PaycodeAssignment, gross_so_far: Decimal
    ) -> LineCandidate:
        paycode = assignment.paycode
        percentage = assignment.percentage or Decimal("0")
        return LineItemBuilder.create_line(
            line_type=PaycodeType(paycode.paycode_type),
            paycode_code=paycode.code,
            label=f"{paycode.code} - {paycode.name} ({format_number(percentage)}%)",
            amount=gross_so_far * percentage / Decimal("100"),
            visible_on_payslip=paycode.visible_on_payslip,
        )

    # === Data Loading Methods ===

    async def _get_pending_adjustments(
        self, employee_id: UUID, period: Period
    ) -> list[PayrollAdjustment]:
        result = await self.session.execute(
            select(PayrollAdjustment)
            .where(
                PayrollAdjustment.employee_id == employee_id,
                PayrollAdjustment.period == str(period),
                PayrollAdjustment.status == "pending",
            )
            .order_by(PayrollAdjustment.created_at, PayrollAdjustment.adjustment_id)
        )
        return list(result.scalars().all())

    async def _get_accepted_overtime_hours(self, employee_id: UUID, period: Period) -> Decimal:
        """Total accepted overtime hours dated within the period, rounded to 2dp."""
        result = await self.session.execute(
            select(OvertimeRequest.hours).where(
                OvertimeRequest.employee_id == employee_id,
                OvertimeRequest.status == "accepted",
                OvertimeRequest.work_date >= period.first_day,
                OvertimeRequest.work_date <= period.last_day,
            )
        )
        total = Decimal("0")
        for hours in result.scalars().all():
            total += hours or Decimal("0")
        return LineItemBuilder.round_to_cents(total)

    async def _get_unpaid_leave_days(self, employee_id: UUID, period: Period) -> int:
        """Days of accepted unpaid leave overlapping the period."""
        first, last = period.first_day, period.last_day
        result = await self.session.execute(
            select(LeaveRequest).where(
                LeaveRequest.employee_id == employee_id,
                LeaveRequest.status == "accepted",
                LeaveRequest.leave_type == UNPAID_LEAVE_TYPE,
                LeaveRequest.start_date <= last,
                LeaveRequest.end_date >= first,
            )
        )
        days = 0
        for leave in result.scalars().all():
            overlap_start = max(leave.start_date, first)
            overlap_end = min(leave.end_date, last)
            if overlap_end >= overlap_start:
                days += (overlap_end - overlap_start).days + 1
        return days
