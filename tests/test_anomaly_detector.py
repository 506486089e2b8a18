"""Tests for anomaly detection."""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from payroll_runner.calculators import AnomalyDetector
from payroll_runner.calculators.types import HistoricalPay, PayTotals, Severity
from payroll_runner.models import PayrollAnomaly, Payslip
from payroll_runner.period import Period


def totals(gross: str, deductions: str) -> PayTotals:
    return PayTotals(gross=Decimal(gross), deductions=Decimal(deductions))


def history(*pairs: tuple[str, str]) -> list[HistoricalPay]:
    return [
        HistoricalPay(period=f"2025-{i + 1:02d}", gross=Decimal(g), net=Decimal(n))
        for i, (g, n) in enumerate(pairs)
    ]


def finding_types(report) -> list[str]:
    return [f.finding_type for f in report.findings]


class TestRules:
    """Test the fixed rules."""

    def test_normal_payslip_has_no_findings(self):
        report = AnomalyDetector.evaluate(totals("1000", "50"), [])
        assert not report.has_findings
        assert report.count == 0

    def test_deductions_over_gross_raise_three_high_findings(self):
        """Negative net implies deductions over gross and over 60%."""
        report = AnomalyDetector.evaluate(totals("100", "150"), [])

        assert finding_types(report) == [
            "NEGATIVE_NET",
            "DEDUCTIONS_GT_GROSS",
            "DEDUCTIONS_TOO_HIGH",
        ]
        assert report.has_high
        assert report.severity == Severity.HIGH
        assert report.message == "Multiple anomalies detected (3)"

    def test_deduction_ratio_without_history(self):
        """The 60% rule applies even for a first payslip."""
        report = AnomalyDetector.evaluate(totals("1000", "601"), [])

        assert finding_types(report) == ["DEDUCTIONS_TOO_HIGH"]
        assert report.findings[0].meta["ratio"] == 0.6
        assert report.message == "Deductions exceed 60% of gross pay"

    def test_exactly_sixty_percent_is_allowed(self):
        assert not AnomalyDetector.evaluate(totals("1000", "600"), []).has_findings

    def test_zero_gross_with_zero_deductions_is_clean(self):
        assert not AnomalyDetector.evaluate(totals("0", "0"), []).has_findings


class TestHistory:
    """Test comparisons against recent released payslips."""

    def test_net_and_gross_spike_are_medium(self):
        past = history(("1000", "950"), ("1000", "950"), ("1000", "950"))
        report = AnomalyDetector.evaluate(totals("2000", "100"), past)

        assert finding_types(report) == ["NET_SPIKE", "GROSS_SPIKE"]
        assert report.severity == Severity.MEDIUM
        assert not report.has_high

    def test_below_multiplier_is_not_a_spike(self):
        past = history(("1000", "950"))
        assert not AnomalyDetector.evaluate(totals("1400", "70"), past).has_findings

    def test_zero_average_skips_comparison(self):
        past = history(("0", "0"))
        assert not AnomalyDetector.evaluate(totals("1000", "50"), past).has_findings


@pytest.mark.asyncio
class TestPersistence:
    """Test history loading and anomaly upsert."""

    async def _payslip(self, session, employee, period, gross, net, status="released"):
        payslip = Payslip(
            employee_id=employee.user_id,
            employee_full_name=employee.full_name,
            employee_email=employee.email,
            period=period,
            pay_date=date(2025, 1, 25),
            gross_pay=Decimal(gross),
            total_deductions=Decimal(gross) - Decimal(net),
            net_pay=Decimal(net),
            processing_status="completed",
            status=status,
        )
        session.add(payslip)
        await session.flush()
        return payslip

    async def test_history_uses_three_most_recent_released_earlier_periods(
        self, session, employee
    ):
        for period in ("2025-06", "2025-07", "2025-08", "2025-09"):
            await self._payslip(session, employee, period, "1000", "900")
        await self._payslip(session, employee, "2025-10", "1000", "900", status="draft")
        await self._payslip(session, employee, "2025-11", "1000", "900")

        past = await AnomalyDetector(session).load_history(
            employee.user_id, Period.parse("2025-11")
        )

        assert [h.period for h in past] == ["2025-09", "2025-08", "2025-07"]

    async def test_record_upserts_one_row_per_payslip(self, session, employee):
        payslip = await self._payslip(session, employee, "2026-01", "100", "-50", status="draft")
        detector = AnomalyDetector(session)
        period = Period.parse("2026-01")

        first = await detector.record(
            detector.evaluate(totals("100", "150"), []),
            period=period,
            payroll_run_id=None,
            payslip=payslip,
        )
        first.status = "dismissed"
        await session.flush()

        second = await detector.record(
            detector.evaluate(totals("1000", "700"), []),
            period=period,
            payroll_run_id=None,
            payslip=payslip,
        )

        count = await session.scalar(select(func.count()).select_from(PayrollAnomaly))
        assert count == 1
        assert second.anomaly_id == first.anomaly_id
        assert second.status == "open"
        assert second.anomaly_count == 1
        assert second.anomaly_type == "MULTI"
        assert second.items[0]["type"] == "DEDUCTIONS_TOO_HIGH"

    async def test_clean_report_is_not_persisted(self, session, employee):
        payslip = await self._payslip(session, employee, "2026-01", "1000", "950", status="draft")
        detector = AnomalyDetector(session)

        result = await detector.record(
            detector.evaluate(totals("1000", "50"), []),
            period=Period.parse("2026-01"),
            payroll_run_id=None,
            payslip=payslip,
        )

        assert result is None
        assert await session.scalar(select(func.count()).select_from(PayrollAnomaly)) == 0
