"""Anomaly detection for computed payslips."""

from __future__ import annotations

from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_runner.calculators.types import (
    AnomalyFinding,
    AnomalyReport,
    HistoricalPay,
    PayTotals,
    Severity,
)
from payroll_runner.models import PayrollAnomaly, Payslip
from payroll_runner.period import Period


def _ratio(numerator: Decimal, denominator: Decimal) -> float:
    return round(float(numerator / denominator), 2)


class AnomalyDetector:
    """Inspects a computed payslip against fixed rules and recent history.

    Findings are independent; one payslip may raise several:
    - NEGATIVE_NET (high): net pay below zero
    - DEDUCTIONS_GT_GROSS (high): deductions exceed gross
    - DEDUCTIONS_TOO_HIGH (high): deductions exceed 60% of gross
    - NET_SPIKE (medium): net above 1.4x the recent released average
    - GROSS_SPIKE (medium): gross above 1.4x the recent released average

    History comparison uses the last released payslips of earlier periods
    and is skipped when there are none. A high finding blocks release.
    """

    HISTORY_SIZE = 3
    SPIKE_MULTIPLIER = Decimal("1.4")
    DEDUCTION_RATIO_LIMIT = Decimal("0.6")

    def __init__(self, session: AsyncSession):
        self.session = session

    async def detect(
        self, employee_id: UUID, period: Period, totals: PayTotals
    ) -> AnomalyReport:
        """Load history and evaluate a computed payslip."""
        history = await self.load_history(employee_id, period)
        return self.evaluate(totals, history)

    @classmethod
    def evaluate(cls, totals: PayTotals, history: list[HistoricalPay]) -> AnomalyReport:
        """Evaluate totals against the rules. Pure, no I/O."""
        gross = totals.gross
        deductions = totals.deductions
        net = totals.net
        findings: list[AnomalyFinding] = []

        if net < 0:
            findings.append(
                AnomalyFinding(
                    severity=Severity.HIGH,
                    finding_type="NEGATIVE_NET",
                    message="Net pay is negative",
                    meta={"net": str(net)},
                )
            )

        if deductions > gross:
            findings.append(
                AnomalyFinding(
                    severity=Severity.HIGH,
                    finding_type="DEDUCTIONS_GT_GROSS",
                    message="Deductions exceed gross pay",
                    meta={"gross": str(gross), "deductions": str(deductions)},
                )
            )

        if gross > 0 and deductions > gross * cls.DEDUCTION_RATIO_LIMIT:
            findings.append(
                AnomalyFinding(
                    severity=Severity.HIGH,
                    finding_type="DEDUCTIONS_TOO_HIGH",
                    message="Deductions exceed 60% of gross pay",
                    meta={
                        "gross": str(gross),
                        "deductions": str(deductions),
                        "ratio": _ratio(deductions, gross),
                    },
                )
            )

        findings.extend(cls._historical_findings(totals, history))
        return AnomalyReport(findings=findings)

    @classmethod
    def _historical_findings(
        cls, totals: PayTotals, history: list[HistoricalPay]
    ) -> list[AnomalyFinding]:
        if not history:
            return []

        count = Decimal(len(history))
        avg_net = sum((h.net for h in history), Decimal("0")) / count
        avg_gross = sum((h.gross for h in history), Decimal("0")) / count
        findings: list[AnomalyFinding] = []

        if avg_net > 0 and totals.net > avg_net * cls.SPIKE_MULTIPLIER:
            findings.append(
                AnomalyFinding(
                    severity=Severity.MEDIUM,
                    finding_type="NET_SPIKE",
                    message="Net pay unusually high vs recent history",
                    meta={
                        "net": str(totals.net),
                        "average_net": str(avg_net.quantize(Decimal("0.01"))),
                        "multiplier": _ratio(totals.net, avg_net),
                    },
                )
            )

        if avg_gross > 0 and totals.gross > avg_gross * cls.SPIKE_MULTIPLIER:
            findings.append(
                AnomalyFinding(
                    severity=Severity.MEDIUM,
                    finding_type="GROSS_SPIKE",
                    message="Gross pay unusually high vs recent history",
                    meta={
                        "gross": str(totals.gross),
                        "average_gross": str(avg_gross.quantize(Decimal("0.01"))),
                        "multiplier": _ratio(totals.gross, avg_gross),
                    },
                )
            )

        return findings

    async def load_history(self, employee_id: UUID, period: Period) -> list[HistoricalPay]:
        """Released payslips of earlier periods, most recent first."""
        result = await self.session.execute(
            select(Payslip.period, Payslip.gross_pay, Payslip.net_pay)
            .where(
                Payslip.employee_id == employee_id,
                Payslip.period < str(period),
                Payslip.status == "released",
            )
            .order_by(Payslip.period.desc(), Payslip.created_at.desc())
            .limit(self.HISTORY_SIZE)
        )
        return [
            HistoricalPay(period=row.period, gross=row.gross_pay, net=row.net_pay)
            for row in result.all()
        ]

    async def record(
        self,
        report: AnomalyReport,
        *,
        period: Period,
        payroll_run_id: UUID | None,
        payslip: Payslip,
    ) -> PayrollAnomaly | None:
        """Upsert the single anomaly record for a payslip.

        Reports without findings are not persisted. An existing record for the
        same (period, run, employee, payslip) is overwritten and reopened.
        """
        if not report.has_findings:
            return None

        result = await self.session.execute(
            select(PayrollAnomaly).where(
                PayrollAnomaly.period == str(period),
                PayrollAnomaly.payroll_run_id == payroll_run_id,
                PayrollAnomaly.employee_id == payslip.employee_id,
                PayrollAnomaly.payslip_id == payslip.payslip_id,
            )
        )
        anomaly = result.scalar_one_or_none()
        if anomaly is None:
            anomaly = PayrollAnomaly(
                period=str(period),
                payroll_run_id=payroll_run_id,
                employee_id=payslip.employee_id,
                payslip_id=payslip.payslip_id,
            )
            self.session.add(anomaly)

        values: dict[str, Any] = {
            "employee_full_name": payslip.employee_full_name,
            "employee_email": payslip.employee_email,
            "employee_code": payslip.employee_code,
            "items": [f.to_dict() for f in report.findings],
            "anomaly_count": report.count,
            "severity": report.severity.value,
            "anomaly_type": "MULTI",
            "message": report.message,
            "status": "open",
            "decision": "",
            "reviewed_by_user_id": None,
            "reviewed_at": None,
        }
        for key, value in values.items():
            setattr(anomaly, key, value)

        await self.session.flush()
        return anomaly
