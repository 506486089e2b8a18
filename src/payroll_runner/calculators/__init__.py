"""Payroll calculation: assignments, line items and anomaly detection."""

from payroll_runner.calculators.anomaly_detector import AnomalyDetector
from payroll_runner.calculators.assignment_resolver import AssignmentResolver
from payroll_runner.calculators.engine import (
    EarningsCalculator,
    PaycodeConfigurationError,
)
from payroll_runner.calculators.line_builder import LineItemBuilder
from payroll_runner.calculators.types import CalculationResult

__all__ = [
    "AnomalyDetector",
    "AssignmentResolver",
    "EarningsCalculator",
    "PaycodeConfigurationError",
    "LineItemBuilder",
    "CalculationResult",
]
