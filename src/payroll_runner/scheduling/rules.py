"""Pay date rules for the automatic payroll schedule.

Everything here is pure: the scheduler loads a ``ScheduleConfig`` from the
database each tick and asks these functions what to do.
"""

from __future__ import annotations

import calendar as _calendar
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING, Iterable

from payroll_runner.period import Period, is_period_string

if TYPE_CHECKING:
    from payroll_runner.models import PayrollSchedule

DEFAULT_DAY_OF_MONTH = 25
DEFAULT_RUN_HOUR = 9
DEFAULT_RUN_MINUTE = 0


def _parse_holidays(values: Iterable[object] | None) -> frozenset[date]:
    holidays: set[date] = set()
    for value in values or ():
        if isinstance(value, date):
            holidays.add(value)
            continue
        try:
            holidays.add(date.fromisoformat(str(value).strip()))
        except ValueError:
            continue
    return frozenset(holidays)


@dataclass(frozen=True)
class ScheduleConfig:
    """Immutable view of the schedule row for one tick."""

    enabled: bool = True
    day_of_month: int = DEFAULT_DAY_OF_MONTH
    move_back_if_non_working: bool = True
    run_hour: int = DEFAULT_RUN_HOUR
    run_minute: int = DEFAULT_RUN_MINUTE
    holidays: frozenset[date] = frozenset()
    override_period: Period | None = None
    override_run_date: date | None = None

    @classmethod
    def from_model(cls, row: PayrollSchedule) -> ScheduleConfig:
        """Build from a schedule row. Malformed holiday or override values are ignored."""
        override_period = None
        if is_period_string(row.override_period):
            override_period = Period.parse(row.override_period)
        return cls(
            enabled=bool(row.enabled),
            day_of_month=row.day_of_month or DEFAULT_DAY_OF_MONTH,
            move_back_if_non_working=bool(row.move_back_if_non_working),
            run_hour=row.run_hour if row.run_hour is not None else DEFAULT_RUN_HOUR,
            run_minute=row.run_minute if row.run_minute is not None else DEFAULT_RUN_MINUTE,
            holidays=_parse_holidays(row.holidays),
            override_period=override_period,
            override_run_date=row.override_run_date,
        )

    @property
    def has_overrides(self) -> bool:
        return self.override_period is not None or self.override_run_date is not None


def is_weekend(day: date) -> bool:
    return day.weekday() >= 5


def adjust_to_workday(day: date, holidays: frozenset[date] = frozenset()) -> date:
    """Step back until the date is neither a weekend nor a holiday."""
    while is_weekend(day) or day in holidays:
        day -= timedelta(days=1)
    return day


def raw_pay_date(config: ScheduleConfig, year: int, month: int) -> date:
    """Configured day of month, clamped to the month's last day."""
    last = _calendar.monthrange(year, month)[1]
    return date(year, month, min(max(config.day_of_month, 1), last))


@dataclass(frozen=True)
class PayDate:
    """Pay date of one month before and after the roll-back rule."""

    period: Period
    raw: date
    final: date
    reason: str

    @property
    def moved_back(self) -> bool:
        return self.final != self.raw


def pay_date_for(config: ScheduleConfig, year: int, month: int) -> PayDate:
    """Apply the roll-back rule to one month's pay date.

    ``reason`` is none, weekend, holiday or weekend+holiday, describing the
    raw date that forced a move.
    """
    raw = raw_pay_date(config, year, month)
    final = raw
    reason = "none"
    if config.move_back_if_non_working:
        final = adjust_to_workday(raw, config.holidays)
        if final != raw:
            weekend = is_weekend(raw)
            holiday = raw in config.holidays
            if weekend and holiday:
                reason = "weekend+holiday"
            elif weekend:
                reason = "weekend"
            else:
                reason = "holiday"
    return PayDate(period=Period(year, month), raw=raw, final=final, reason=reason)


def run_time_on(config: ScheduleConfig, now: datetime) -> datetime:
    """Today's run time, in the same timezone as ``now``."""
    return now.replace(hour=config.run_hour, minute=config.run_minute, second=0, microsecond=0)


def is_within_run_window(config: ScheduleConfig, now: datetime, window_seconds: int = 60) -> bool:
    return abs((now - run_time_on(config, now)).total_seconds()) <= window_seconds


@dataclass(frozen=True)
class TickPlan:
    """Decision for one scheduler tick."""

    should_run: bool
    reason: str
    period: Period | None = None
    pay_date: date | None = None


def plan_tick(config: ScheduleConfig | None, now: datetime, window_seconds: int = 60) -> TickPlan:
    """Decide whether payroll should run at ``now`` and for which period.

    The period is the override period, else the month of the configured pay
    date. The run date is the override run date, else the rolled-back pay
    date; the run only happens on that day.
    """
    if config is None:
        return TickPlan(False, "no schedule")
    if not config.enabled:
        return TickPlan(False, "disabled")
    if not is_within_run_window(config, now, window_seconds):
        return TickPlan(False, "outside run window")

    today = now.date()
    normal = pay_date_for(config, today.year, today.month)
    run_date = config.override_run_date or normal.final
    if today != run_date:
        return TickPlan(False, "not a pay day")

    period = config.override_period or normal.period
    return TickPlan(True, "due", period=period, pay_date=run_date)


@dataclass(frozen=True)
class SchedulePreview:
    """Where the schedule stands today."""

    enabled: bool
    raw_pay_date: date
    final_pay_date: date
    run_time_today: datetime
    move_back_if_non_working: bool
    holidays_count: int
    override_period: Period | None
    override_run_date: date | None


def preview(config: ScheduleConfig, now: datetime) -> SchedulePreview:
    current = pay_date_for(config, now.year, now.month)
    return SchedulePreview(
        enabled=config.enabled,
        raw_pay_date=current.raw,
        final_pay_date=current.final,
        run_time_today=run_time_on(config, now),
        move_back_if_non_working=config.move_back_if_non_working,
        holidays_count=len(config.holidays),
        override_period=config.override_period,
        override_run_date=config.override_run_date,
    )


def calendar(config: ScheduleConfig, year: int) -> list[PayDate]:
    """Pay dates of every month of a year."""
    if not 2000 <= year <= 2100:
        raise ValueError(f"Invalid year {year}")
    return [pay_date_for(config, year, month) for month in range(1, 13)]
