from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from leave_ledger.db import get_session
from leave_ledger.locks import KeyedLocks, set_ledger_locks
from leave_ledger.main import app
from leave_ledger.models import SQLModel
from leave_ledger.services.calendar import WeekdayCalendar, set_calendar
from leave_ledger.services.employee import InMemoryEmployeeService, set_employee_service

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterator
    from pathlib import Path

    from sqlalchemy.ext.asyncio import AsyncEngine


@pytest.fixture
async def engine(tmp_path: Path) -> AsyncIterator[AsyncEngine]:
    """A fresh SQLite database file per test, schema created from the models.

    Every session gets its own connection, so concurrent workflow calls in a
    test behave like concurrent API requests.
    """
    _engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'leave_ledger.db'}")
    async with _engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield _engine
    await _engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncSession]:
    """Yield a database session for calling services directly."""
    async with session_factory() as session:
        yield session


@pytest.fixture
async def async_client(session_factory: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncClient]:
    """Async HTTP client whose requests each get their own session on the test database."""

    async def _override_get_session() -> AsyncIterator[AsyncSession]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = _override_get_session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def _isolate_collaborators() -> Iterator[None]:
    """Fresh lock registry, calendar and employee directory for every test."""
    set_ledger_locks(KeyedLocks())
    set_calendar(WeekdayCalendar())
    set_employee_service(InMemoryEmployeeService())
    yield
    set_ledger_locks(KeyedLocks())
    set_calendar(WeekdayCalendar())
    set_employee_service(InMemoryEmployeeService())
