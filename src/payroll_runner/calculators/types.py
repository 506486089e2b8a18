"""Type definitions for the calculation pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import UUID

if TYPE_CHECKING:
    from payroll_runner.models import PayrollAdjustment
    from payroll_runner.period import Period


class PaycodeType(str, Enum):
    """Whether a paycode (or line) adds to or subtracts from pay."""

    EARNING = "earning"
    DEDUCTION = "deduction"


class CalcKind(str, Enum):
    """How an assignment's amount is computed."""

    FIXED = "fixed"
    PERCENTAGE = "percentage"
    HOURLY_RATE = "hourly_rate"
    MANUAL = "manual"


class PaycodeRole(str, Enum):
    """Explicit special-case classification of a paycode."""

    NONE = "none"
    OVERTIME = "overtime"
    UNPAID_LEAVE = "unpaid_leave"


class Severity(str, Enum):
    """Anomaly severity, ordered low < medium < high."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {Severity.LOW: 1, Severity.MEDIUM: 2, Severity.HIGH: 3}


@dataclass
class LineCandidate:
    """A payslip line before persistence. Amounts are never negative."""

    line_type: PaycodeType
    paycode_code: str
    label: str
    amount: Decimal
    visible_on_payslip: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "line_type": self.line_type.value,
            "paycode_code": self.paycode_code,
            "label": self.label,
            "amount": str(self.amount),
            "visible_on_payslip": self.visible_on_payslip,
        }


@dataclass(frozen=True)
class PayTotals:
    """Payslip totals. ``net`` is always gross minus deductions."""

    gross: Decimal
    deductions: Decimal

    @property
    def net(self) -> Decimal:
        return self.gross - self.deductions


@dataclass
class CalculationResult:
    """Result of calculating pay for one employee and one period."""

    employee_id: UUID
    period: Period
    earnings: list[LineCandidate] = field(default_factory=list)
    deductions: list[LineCandidate] = field(default_factory=list)
    adjustments: list[PayrollAdjustment] = field(default_factory=list)
    overtime_hours: Decimal = Decimal("0")
    unpaid_days: int = 0

    @property
    def has_adjustments(self) -> bool:
        return len(self.adjustments) > 0

    @property
    def totals(self) -> PayTotals:
        return PayTotals(
            gross=sum((line.amount for line in self.earnings), Decimal("0")),
            deductions=sum((line.amount for line in self.deductions), Decimal("0")),
        )


@dataclass(frozen=True)
class HistoricalPay:
    """Totals of a previously released payslip."""

    period: str
    gross: Decimal
    net: Decimal


@dataclass(frozen=True)
class AnomalyFinding:
    """One detected irregularity."""

    severity: Severity
    finding_type: str
    message: str
    meta: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "severity": self.severity.value,
            "type": self.finding_type,
            "message": self.message,
            "meta": self.meta,
        }


@dataclass
class AnomalyReport:
    """All findings for one computed payslip."""

    findings: list[AnomalyFinding] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.findings)

    @property
    def has_findings(self) -> bool:
        return self.count > 0

    @property
    def has_high(self) -> bool:
        return any(f.severity == Severity.HIGH for f in self.findings)

    @property
    def severity(self) -> Severity:
        """Maximum severity across findings (low when there are none)."""
        best = Severity.LOW
        for finding in self.findings:
            if finding.severity.rank > best.rank:
                best = finding.severity
        return best

    @property
    def message(self) -> str:
        if self.count == 1:
            return self.findings[0].message
        return f"Multiple anomalies detected ({self.count})"
