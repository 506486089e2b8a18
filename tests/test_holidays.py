"""Tests for the public holiday refresh."""

from datetime import date

import httpx
import pytest
from sqlalchemy import select

from payroll_runner.models import PayrollSchedule
from payroll_runner.scheduling import (
    HolidayFetcher,
    HolidayFetchError,
    ScheduleConfig,
    extract_holidays,
    refresh_holidays,
)

pytestmark = pytest.mark.asyncio

API_URL = "https://holidays.test/api/v3"

MU_2026 = [
    {"date": "2026-01-01", "localName": "New Year's Day"},
    {"date": "2026-01-02", "localName": "New Year"},
    {"date": "2026-01-01", "localName": "Duplicate entry"},
    {"date": "2026-5-1", "localName": "Badly formatted"},
    {"date": "2026-02-30", "localName": "Not a real day"},
    {"localName": "Missing date"},
    "not-an-object",
    {"date": "2026-05-01", "localName": "Labour Day"},
]


def fetcher_for(handler) -> HolidayFetcher:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HolidayFetcher(client=client, base_url=API_URL)


class TestExtractHolidays:
    """Test payload filtering."""

    def test_keeps_well_formed_unique_dates_in_order(self):
        assert extract_holidays(MU_2026) == ["2026-01-01", "2026-01-02", "2026-05-01"]

    def test_non_list_payload_is_empty(self):
        assert extract_holidays({"error": "unknown country"}) == []


class TestHolidayFetcher:
    """Test the HTTP call."""

    async def test_requests_year_and_upper_cased_country(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=MU_2026)

        holidays = await fetcher_for(handler).fetch(2026, "mu")

        assert str(seen[0].url) == f"{API_URL}/PublicHolidays/2026/MU"
        assert seen[0].headers["accept"] == "application/json"
        assert holidays == ["2026-01-01", "2026-01-02", "2026-05-01"]

    async def test_http_error_raises(self):
        fetcher = fetcher_for(lambda request: httpx.Response(404, text="unknown country"))

        with pytest.raises(HolidayFetchError) as exc_info:
            await fetcher.fetch(2026, "ZZ")

        assert exc_info.value.status_code == 404
        assert exc_info.value.url.endswith("/PublicHolidays/2026/ZZ")

    async def test_network_error_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(HolidayFetchError) as exc_info:
            await fetcher_for(handler).fetch(2026, "MU")
        assert exc_info.value.status_code is None

    async def test_empty_body_means_no_holidays(self):
        fetcher = fetcher_for(lambda request: httpx.Response(204))
        assert await fetcher.fetch(2026, "MU") == []

    @pytest.mark.parametrize("year, country", [(1999, "MU"), (2026, "MUS"), (2026, "")])
    async def test_bad_arguments_never_call_the_api(self, year, country):
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("API called")

        with pytest.raises(ValueError):
            await fetcher_for(handler).fetch(year, country)


class TestRefreshHolidays:
    """Test writing fetched holidays onto the schedule."""

    async def test_replaces_holidays_of_active_schedule(self, session):
        schedule = PayrollSchedule(holidays=["2025-12-25"])
        session.add(schedule)
        await session.flush()
        fetcher = fetcher_for(lambda request: httpx.Response(200, json=MU_2026))

        refresh = await refresh_holidays(session, 2026, "MU", fetcher=fetcher)

        assert refresh.count == 3
        assert schedule.holidays == ["2026-01-01", "2026-01-02", "2026-05-01"]
        assert date(2026, 5, 1) in ScheduleConfig.from_model(schedule).holidays

    async def test_creates_schedule_when_missing(self, session):
        fetcher = fetcher_for(lambda request: httpx.Response(200, json=MU_2026))

        await refresh_holidays(session, 2026, "mu", fetcher=fetcher)

        schedule = (await session.execute(select(PayrollSchedule))).scalar_one()
        assert schedule.holidays == ["2026-01-01", "2026-01-02", "2026-05-01"]
        assert schedule.enabled is True

    async def test_failed_fetch_leaves_schedule_untouched(self, session):
        schedule = PayrollSchedule(holidays=["2025-12-25"])
        session.add(schedule)
        await session.flush()
        fetcher = fetcher_for(lambda request: httpx.Response(503))

        with pytest.raises(HolidayFetchError):
            await refresh_holidays(session, 2026, "MU", fetcher=fetcher)

        assert schedule.holidays == ["2025-12-25"]
