"""Pytest fixtures for payroll runner tests."""

from __future__ import annotations

from decimal import Decimal
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from payroll_runner.database import build_session_factory, create_schema
from payroll_runner.models import (
    Paycode,
    PaycodeAssignment,
    User,
)
from payroll_runner.notifications import NotificationIntent

# In-memory SQLite shared by every session of one test
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class RecordingDispatcher:
    """Notification dispatcher that keeps intents for assertions."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.intents: list[NotificationIntent] = []

    async def dispatch(self, intent: NotificationIntent) -> None:
        if self.fail:
            raise RuntimeError("smtp unavailable")
        self.intents.append(intent)

    def of_type(self, intent_type: str) -> list[NotificationIntent]:
        return [i for i in self.intents if i.intent_type == intent_type]


@pytest_asyncio.fixture
async def engine():
    """Create a fresh test database per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    await create_schema(engine)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(engine)


@pytest_asyncio.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def failing_dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher(fail=True)


@pytest.fixture
def make_user(session):
    """Factory for users. Defaults to an active employee."""
    counter = {"n": 0}

    async def _make(
        full_name: str | None = None,
        role: str = "employee",
        is_active: bool = True,
        email: str | None = None,
    ) -> User:
        counter["n"] += 1
        n = counter["n"]
        user = User(
            full_name=full_name or f"Employee {n}",
            email=email or f"user{n}@example.com",
            employee_code=f"E{n:03d}",
            address=f"{n} Main Street",
            role=role,
            is_active=is_active,
        )
        session.add(user)
        await session.flush()
        return user

    return _make


@pytest_asyncio.fixture
async def employee(make_user) -> User:
    return await make_user(full_name="Jane Doe", email="jane@example.com")


@pytest_asyncio.fixture
async def admin(make_user) -> User:
    return await make_user(full_name="Ada Admin", role="admin", email="admin@example.com")


@pytest.fixture
def make_paycode(session):
    """Factory for paycodes."""

    async def _make(
        code: str,
        name: str,
        paycode_type: str = "earning",
        calc_kind: str = "fixed",
        role: str = "none",
        default_priority: int = 100,
        is_active: bool = True,
        visible_on_payslip: bool = True,
    ) -> Paycode:
        paycode = Paycode(
            code=code,
            name=name,
            paycode_type=paycode_type,
            calc_kind=calc_kind,
            role=role,
            default_priority=default_priority,
            is_active=is_active,
            visible_on_payslip=visible_on_payslip,
        )
        session.add(paycode)
        await session.flush()
        return paycode

    return _make


@pytest.fixture
def assign(session):
    """Factory for paycode assignments."""

    async def _assign(
        employee: User,
        paycode: Paycode,
        amount: Decimal | str | None = None,
        percentage: Decimal | str | None = None,
        hourly_rate: Decimal | str | None = None,
        effective_from: str = "2020-01",
        effective_to: str | None = None,
        calc_kind: str | None = None,
    ) -> PaycodeAssignment:
        assignment = PaycodeAssignment(
            employee_id=employee.user_id,
            paycode_id=paycode.paycode_id,
            calc_kind=calc_kind,
            amount=Decimal(amount) if amount is not None else None,
            percentage=Decimal(percentage) if percentage is not None else None,
            hourly_rate=Decimal(hourly_rate) if hourly_rate is not None else None,
            effective_from=effective_from,
            effective_to=effective_to,
        )
        assignment.paycode = paycode
        session.add(assignment)
        await session.flush()
        return assignment

    return _assign


@pytest_asyncio.fixture
async def salary_setup(employee, make_paycode, assign):
    """Employee on a 1000 fixed salary with a 5% tax deduction."""
    earn = await make_paycode("EARN1", "Base Salary", default_priority=10)
    tax = await make_paycode(
        "TAX1", "Tax", paycode_type="deduction", calc_kind="percentage", default_priority=90
    )
    await assign(employee, earn, amount="1000")
    await assign(employee, tax, percentage="5")
    return employee
