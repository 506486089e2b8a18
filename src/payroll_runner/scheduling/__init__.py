"""Automatic payroll scheduling."""

from payroll_runner.scheduling.rules import (
    PayDate,
    ScheduleConfig,
    SchedulePreview,
    TickPlan,
    adjust_to_workday,
    calendar,
    is_weekend,
    pay_date_for,
    plan_tick,
    preview,
)
from payroll_runner.scheduling.scheduler import PayrollScheduler, TickOutcome, load_schedule
from payroll_runner.scheduling.holidays import (
    HolidayFetcher,
    HolidayFetchError,
    HolidayRefresh,
    extract_holidays,
    refresh_holidays,
)

__all__ = [
    "HolidayFetchError",
    "HolidayFetcher",
    "HolidayRefresh",
    "PayDate",
    "PayrollScheduler",
    "ScheduleConfig",
    "SchedulePreview",
    "TickOutcome",
    "TickPlan",
    "adjust_to_workday",
    "calendar",
    "extract_holidays",
    "is_weekend",
    "load_schedule",
    "pay_date_for",
    "plan_tick",
    "preview",
    "refresh_holidays",
]
