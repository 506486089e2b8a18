"""Payroll run engine: calculation, anomaly gating, orchestration and scheduling."""

__version__ = "1.0.0"
