"""Tests for run eligibility."""

from datetime import date
from decimal import Decimal

import pytest

from payroll_runner.models import PayrollAdjustment, Payslip
from payroll_runner.period import Period
from payroll_runner.services import EligibilityBuilder

pytestmark = pytest.mark.asyncio

JANUARY = Period.parse("2026-01")


async def add_payslip(session, employee, period="2026-01", status="released"):
    session.add(
        Payslip(
            employee_id=employee.user_id,
            employee_full_name=employee.full_name,
            employee_email=employee.email,
            period=period,
            pay_date=date(2026, 1, 23),
            status=status,
            processing_status="completed",
        )
    )
    await session.flush()


async def add_adjustment(session, employee, period="2026-01", status="pending"):
    session.add(
        PayrollAdjustment(
            employee_id=employee.user_id,
            paycode_code="ADJ",
            adjustment_type="earning",
            amount=Decimal("10"),
            period=period,
            status=status,
        )
    )
    await session.flush()


class TestEligibilityBuilder:
    """Test who must be included in a run."""

    async def test_unpaid_employees_are_eligible(self, session, make_user):
        a = await make_user(full_name="Alice")
        b = await make_user(full_name="Bob")

        assert await EligibilityBuilder(session).build(JANUARY) == [a.user_id, b.user_id]

    async def test_released_employee_is_excluded(self, session, make_user):
        paid = await make_user(full_name="Paid")
        await add_payslip(session, paid)

        assert await EligibilityBuilder(session).build(JANUARY) == []

    async def test_draft_payslip_does_not_exclude(self, session, make_user):
        blocked = await make_user(full_name="Blocked")
        await add_payslip(session, blocked, status="draft")

        assert await EligibilityBuilder(session).build(JANUARY) == [blocked.user_id]

    async def test_pending_adjustment_reincludes_released_employee(self, session, make_user):
        paid = await make_user(full_name="Paid")
        await add_payslip(session, paid)
        await add_adjustment(session, paid)

        assert await EligibilityBuilder(session).build(JANUARY) == [paid.user_id]

    async def test_other_period_facts_do_not_count(self, session, make_user):
        paid = await make_user(full_name="Paid")
        await add_payslip(session, paid)
        await add_adjustment(session, paid, period="2026-02")
        await add_adjustment(session, paid, status="cancelled")

        assert await EligibilityBuilder(session).build(JANUARY) == []

    async def test_inactive_and_non_employees_are_excluded(self, session, make_user, admin):
        await make_user(is_active=False)

        assert await EligibilityBuilder(session).build(JANUARY) == []


class TestRunList:
    """Test the run list view."""

    async def test_run_list_reports_flags(self, session, make_user):
        paid = await make_user(full_name="Paid")
        fresh = await make_user(full_name="Fresh")
        await add_payslip(session, paid)
        await add_adjustment(session, paid)

        entries = await EligibilityBuilder(session).run_list(JANUARY)

        by_id = {e.employee_id: e for e in entries}
        assert by_id[paid.user_id].has_released_payslip
        assert by_id[paid.user_id].has_pending_adjustments
        assert by_id[paid.user_id].is_eligible
        assert not by_id[fresh.user_id].has_released_payslip
        assert by_id[fresh.user_id].employee_code.startswith("E")
