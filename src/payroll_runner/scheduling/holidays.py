"""Public holiday refresh for the payroll schedule."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date
from typing import Any
from uuid import UUID

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_runner.config import get_settings
from payroll_runner.models import PayrollSchedule
from payroll_runner.scheduling.scheduler import load_schedule

logger = logging.getLogger(__name__)

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_COUNTRY = re.compile(r"^[A-Z]{2}$")


class HolidayFetchError(Exception):
    """Raised when the holiday API cannot be reached or answers badly."""

    def __init__(self, message: str, url: str, status_code: int | None = None):
        self.url = url
        self.status_code = status_code
        super().__init__(message)


@dataclass(frozen=True)
class HolidayRefresh:
    year: int
    country: str
    holidays: list[str]

    @property
    def count(self) -> int:
        return len(self.holidays)


def extract_holidays(payload: Any) -> list[str]:
    """Well-formed ``YYYY-MM-DD`` dates from an API payload, first occurrence kept."""
    if not isinstance(payload, list):
        return []
    seen: set[str] = set()
    holidays: list[str] = []
    for item in payload:
        value = item.get("date") if isinstance(item, dict) else None
        if not isinstance(value, str) or not _ISO_DATE.match(value):
            continue
        try:
            date.fromisoformat(value)
        except ValueError:
            continue
        if value not in seen:
            seen.add(value)
            holidays.append(value)
    return holidays


class HolidayFetcher:
    """Reads public holidays from a Nager.Date compatible API.

    A client may be passed in (tests use ``httpx.MockTransport``); otherwise
    one is opened per call.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        base_url: str | None = None,
        timeout_seconds: float | None = None,
    ):
        settings = get_settings()
        self.client = client
        self.base_url = (base_url or settings.holiday_api_url).rstrip("/")
        self.timeout = httpx.Timeout(timeout_seconds or settings.holiday_api_timeout_seconds)

    def url_for(self, year: int, country: str) -> str:
        return f"{self.base_url}/PublicHolidays/{year}/{country}"

    async def fetch(self, year: int, country: str) -> list[str]:
        """Holiday dates for one year and country."""
        country = country.strip().upper()
        if not 2000 <= year <= 2100:
            raise ValueError(f"Invalid year {year}")
        if not _COUNTRY.match(country):
            raise ValueError(f"Invalid country code {country!r}")

        url = self.url_for(year, country)
        try:
            if self.client is not None:
                response = await self.client.get(url, headers={"Accept": "application/json"})
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(url, headers={"Accept": "application/json"})
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            logger.warning("Holiday API returned HTTP %s for %s", status, url)
            raise HolidayFetchError(f"Holiday API returned HTTP {status}", url, status) from exc
        except httpx.RequestError as exc:
            logger.warning("Holiday API unreachable at %s: %s", url, exc)
            raise HolidayFetchError(f"Holiday API unreachable: {exc}", url) from exc

        try:
            payload = response.json()
        except ValueError:
            # Empty body or non-JSON answer means no holidays
            payload = []
        return extract_holidays(payload)


async def refresh_holidays(
    session: AsyncSession,
    year: int,
    country: str | None = None,
    fetcher: HolidayFetcher | None = None,
    updated_by_user_id: UUID | None = None,
) -> HolidayRefresh:
    """Replace the active schedule's holidays with the fetched list.

    Creates a default schedule when none exists. Flushes; the caller commits.
    A failed fetch leaves the schedule untouched.
    """
    country = (country or get_settings().holiday_country).strip().upper()
    fetcher = fetcher or HolidayFetcher()
    holidays = await fetcher.fetch(year, country)

    schedule = await load_schedule(session)
    if schedule is None:
        schedule = PayrollSchedule()
        session.add(schedule)
    schedule.holidays = holidays
    schedule.updated_by_user_id = updated_by_user_id
    await session.flush()

    logger.info("Loaded %d public holidays for %s %s", len(holidays), country, year)
    return HolidayRefresh(year=year, country=country, holidays=holidays)
