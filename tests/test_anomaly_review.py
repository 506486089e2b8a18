"""Tests for anomaly review decisions."""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from payroll_runner.models import PayrollAdjustment, PayrollAnomaly, Payslip
from payroll_runner.services import AnomalyReviewService, PayslipSupersededError, RunOrchestrator

pytestmark = pytest.mark.asyncio


@pytest.fixture
def blocked_run(session, employee, admin, make_paycode, assign, dispatcher):
    """Run payroll for an employee whose deductions block release."""

    async def _run():
        salary = await make_paycode("EARN1", "Base Salary", default_priority=10)
        loan = await make_paycode("LOAN", "Loan Repayment", paycode_type="deduction")
        await assign(employee, salary, amount="1000")
        await assign(employee, loan, amount="650")
        adjustment = PayrollAdjustment(
            employee_id=employee.user_id,
            paycode_code="ADJ",
            adjustment_type="earning",
            amount=Decimal("20"),
            period="2026-01",
        )
        session.add(adjustment)
        await session.flush()
        await RunOrchestrator(session, dispatcher).run("2026-01", date(2026, 1, 23), [employee.user_id])
        anomaly = (await session.execute(select(PayrollAnomaly))).scalar_one()
        return anomaly, adjustment

    return _run


class TestAnomalyReview:
    """Test reviewer decisions."""

    async def test_approve_releases_payslip_and_applies_adjustments(
        self, session, admin, blocked_run, dispatcher
    ):
        anomaly, adjustment = await blocked_run()
        dispatcher.intents.clear()

        resolved = await AnomalyReviewService(session, dispatcher).resolve(
            anomaly.anomaly_id, "approve", admin.user_id
        )

        assert resolved.status == "reviewed"
        assert resolved.decision == "approve"
        assert resolved.reviewed_by_user_id == admin.user_id
        payslip = await session.get(Payslip, anomaly.payslip_id)
        assert payslip.status == "released"
        assert payslip.released_at is not None
        assert adjustment.status == "applied"
        assert adjustment.applied_payslip_id == payslip.payslip_id
        (intent,) = dispatcher.of_type("payslip_released")
        assert intent.payslip_kind == "adjustment"

    async def test_dismiss_leaves_payslip_draft(self, session, admin, blocked_run, dispatcher):
        anomaly, adjustment = await blocked_run()

        resolved = await AnomalyReviewService(session, dispatcher).resolve(
            anomaly.anomaly_id, "dismiss", admin.user_id
        )

        assert resolved.status == "dismissed"
        payslip = await session.get(Payslip, anomaly.payslip_id)
        assert payslip.status == "draft"
        assert adjustment.status == "pending"

    async def test_override_is_reviewed_without_release(
        self, session, admin, blocked_run, dispatcher
    ):
        anomaly, _ = await blocked_run()

        resolved = await AnomalyReviewService(session, dispatcher).resolve(
            anomaly.anomaly_id, "override", admin.user_id
        )

        assert resolved.status == "reviewed"
        assert resolved.decision == "override"
        assert (await session.get(Payslip, anomaly.payslip_id)).status == "draft"

    async def test_unknown_decision_is_rejected(self, session, blocked_run, dispatcher):
        anomaly, _ = await blocked_run()

        with pytest.raises(ValueError):
            await AnomalyReviewService(session, dispatcher).resolve(anomaly.anomaly_id, "escalate")

    async def test_already_resolved_is_rejected(self, session, admin, blocked_run, dispatcher):
        anomaly, _ = await blocked_run()
        service = AnomalyReviewService(session, dispatcher)
        await service.resolve(anomaly.anomaly_id, "dismiss", admin.user_id)

        with pytest.raises(ValueError):
            await service.resolve(anomaly.anomaly_id, "approve", admin.user_id)

    async def test_list_open(self, session, blocked_run, dispatcher):
        anomaly, _ = await blocked_run()

        open_items = await AnomalyReviewService(session, dispatcher).list_open("2026-01")

        assert [a.anomaly_id for a in open_items] == [anomaly.anomaly_id]

    async def test_approving_draft_superseded_by_later_release_is_refused(
        self, session, employee, admin, make_paycode, assign, dispatcher
    ):
        salary = await make_paycode("EARN1", "Base Salary", default_priority=10)
        loan = await make_paycode("LOAN", "Loan Repayment", paycode_type="deduction")
        await assign(employee, salary, amount="1000")
        repayment = await assign(employee, loan, amount="900")
        orchestrator = RunOrchestrator(session, dispatcher)

        first = await orchestrator.run("2026-03", date(2026, 3, 25), [employee.user_id])
        assert first.payslips_blocked == 1
        anomaly = (await session.execute(select(PayrollAnomaly))).scalar_one()

        repayment.amount = Decimal("100")
        await session.commit()
        second = await orchestrator.run("2026-03", date(2026, 3, 25), [employee.user_id])
        assert second.payslips_released == 1

        with pytest.raises(PayslipSupersededError):
            await AnomalyReviewService(session, dispatcher).resolve(
                anomaly.anomaly_id, "approve", admin.user_id
            )

        released = (
            await session.execute(
                select(Payslip).where(Payslip.period == "2026-03", Payslip.status == "released")
            )
        ).scalars().all()
        assert [p.net_pay for p in released] == [Decimal("900.00")]
        assert anomaly.status == "open"

        dismissed = await AnomalyReviewService(session, dispatcher).resolve(
            anomaly.anomaly_id, "dismiss", admin.user_id
        )
        assert dismissed.status == "dismissed"
