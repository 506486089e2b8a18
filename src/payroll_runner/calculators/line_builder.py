"""Line item construction and totals."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from payroll_runner.calculators.types import LineCandidate, PayTotals, PaycodeType

BONUS_CODE = "BONUS"


class LineItemBuilder:
    """Builds payslip lines.

    Conventions:
    - Every line amount is >= 0; the line type decides whether it adds to
      gross or to total deductions.
    - Amounts are rounded half-up to cents when the line is created.
      Intermediate ratios (daily rates, percentages) are not rounded.
    - Negative or non-finite computed amounts clamp to zero.
    """

    OUTPUT_PRECISION = Decimal("0.01")

    @staticmethod
    def round_to_cents(amount: Decimal) -> Decimal:
        """Round amount to 2 decimal places (cents)."""
        return amount.quantize(LineItemBuilder.OUTPUT_PRECISION, rounding=ROUND_HALF_UP)

    @staticmethod
    def clamp(amount: Decimal | None) -> Decimal:
        """Clamp a computed amount to a finite, non-negative value."""
        if amount is None or not amount.is_finite() or amount < 0:
            return Decimal("0")
        return amount

    @staticmethod
    def create_line(
        line_type: PaycodeType,
        paycode_code: str,
        label: str,
        amount: Decimal,
        visible_on_payslip: bool = True,
    ) -> LineCandidate:
        """Create a line with a clamped, cent-rounded amount."""
        return LineCandidate(
            line_type=line_type,
            paycode_code=paycode_code,
            label=label,
            amount=LineItemBuilder.round_to_cents(LineItemBuilder.clamp(amount)),
            visible_on_payslip=visible_on_payslip,
        )

    @staticmethod
    def create_earning_line(
        paycode_code: str,
        label: str,
        amount: Decimal,
        visible_on_payslip: bool = True,
    ) -> LineCandidate:
        return LineItemBuilder.create_line(
            PaycodeType.EARNING, paycode_code, label, amount, visible_on_payslip
        )

    @staticmethod
    def create_deduction_line(
        paycode_code: str,
        label: str,
        amount: Decimal,
        visible_on_payslip: bool = True,
    ) -> LineCandidate:
        return LineItemBuilder.create_line(
            PaycodeType.DEDUCTION, paycode_code, label, amount, visible_on_payslip
        )

    @staticmethod
    def sum_lines(lines: list[LineCandidate]) -> Decimal:
        total = Decimal("0")
        for line in lines:
            total += line.amount
        return LineItemBuilder.round_to_cents(total)

    @staticmethod
    def calculate_totals(
        earnings: list[LineCandidate], deductions: list[LineCandidate]
    ) -> PayTotals:
        """Calculate totals from lines.

        GROSS = Σ(earnings), DEDUCTIONS = Σ(deductions), NET = GROSS - DEDUCTIONS
        """
        return PayTotals(
            gross=LineItemBuilder.sum_lines(earnings),
            deductions=LineItemBuilder.sum_lines(deductions),
        )

    @staticmethod
    def has_bonus_line(earnings: list[LineCandidate]) -> bool:
        return any(line.paycode_code.upper() == BONUS_CODE for line in earnings)

    @staticmethod
    def validate_lines(lines: list[LineCandidate]) -> list[str]:
        """Return error messages for lines violating the conventions."""
        errors: list[str] = []
        for i, line in enumerate(lines):
            if not line.amount.is_finite() or line.amount < 0:
                errors.append(f"Line {i} ({line.label}) has invalid amount {line.amount}")
            elif line.amount != LineItemBuilder.round_to_cents(line.amount):
                errors.append(f"Line {i} ({line.label}) is not rounded to cents: {line.amount}")
        return errors
