"""Calendar month periods (``YYYY-MM``)."""

from __future__ import annotations

import calendar
import re
from dataclasses import dataclass
from datetime import date

_PERIOD_RE = re.compile(r"^(\d{4})-(0[1-9]|1[0-2])$")


def is_period_string(value: object) -> bool:
    """Check whether a value is a well-formed ``YYYY-MM`` string."""
    return isinstance(value, str) and _PERIOD_RE.match(value) is not None


@dataclass(frozen=True, order=True)
class Period:
    """A payroll period: one calendar month."""

    year: int
    month: int

    def __post_init__(self) -> None:
        if not 1 <= self.month <= 12:
            raise ValueError(f"Invalid month {self.month} for period")

    @classmethod
    def parse(cls, value: str) -> Period:
        """Parse a ``YYYY-MM`` string, raising ValueError if malformed."""
        match = _PERIOD_RE.match(value) if isinstance(value, str) else None
        if match is None:
            raise ValueError(f"period must be YYYY-MM, got {value!r}")
        return cls(int(match.group(1)), int(match.group(2)))

    @classmethod
    def of(cls, day: date) -> Period:
        """The period containing a date."""
        return cls(day.year, day.month)

    @property
    def days_in_month(self) -> int:
        return calendar.monthrange(self.year, self.month)[1]

    @property
    def first_day(self) -> date:
        return date(self.year, self.month, 1)

    @property
    def last_day(self) -> date:
        return date(self.year, self.month, self.days_in_month)

    @property
    def is_december(self) -> bool:
        return self.month == 12

    def contains(self, day: date) -> bool:
        return self.first_day <= day <= self.last_day

    def __str__(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"
