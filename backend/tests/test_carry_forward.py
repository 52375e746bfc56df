"""Tests for year-end carry-forward and the carried-in expiry sweep."""

from __future__ import annotations

import uuid
from datetime import date
from typing import TYPE_CHECKING

import pytest

from leave_ledger.exceptions import InvalidDateRangeError, UnknownLeaveTypeError
from leave_ledger.models.enums import AuditAction, AuditEntityType, Decision
from leave_ledger.models.leave_type import LeaveType
from leave_ledger.services import ledger, projection
from leave_ledger.services.carry_forward import (
    add_months,
    run_carry_forward,
    run_carry_forward_expiry,
    run_year_end_carry_forward,
)
from leave_ledger.services.ledger import BalanceKey
from leave_ledger.services.request import decide_leave_request, submit_leave_request

if TYPE_CHECKING:
    from httpx import AsyncClient
    from sqlalchemy.ext.asyncio import AsyncSession

    from leave_ledger.schemas.balance import BalanceSnapshot

ADMIN_ID = uuid.uuid4()
MANAGER_ID = uuid.uuid4()
EMPLOYEE_ID = uuid.uuid4()
OTHER_EMPLOYEE_ID = uuid.uuid4()

ADMIN_HEADERS = {"X-User-Id": str(ADMIN_ID), "X-Role": "admin"}
EMPLOYEE_HEADERS = {"X-User-Id": str(EMPLOYEE_ID), "X-Role": "employee"}


# ---------------------------------------------------------------------------
# Test helpers
# ---------------------------------------------------------------------------


async def _leave_type(
    session: AsyncSession,
    name: str = "Casual",
    max_days: int | None = 5,
    expiry_months: int | None = 3,
) -> uuid.UUID:
    leave_type = LeaveType(
        name=name,
        default_annual_days=12,
        carry_forward_max_days=max_days,
        carry_forward_expiry_months=expiry_months if max_days is not None else None,
    )
    session.add(leave_type)
    await session.commit()
    return leave_type.id


async def _allocate(
    session: AsyncSession,
    leave_type_id: uuid.UUID,
    days: int = 12,
    year: int = 2025,
    employee_id: uuid.UUID = EMPLOYEE_ID,
) -> None:
    await ledger.allocate(session, BalanceKey(employee_id, leave_type_id, year), days)
    await session.commit()


async def _balance(
    session: AsyncSession,
    leave_type_id: uuid.UUID,
    year: int,
    employee_id: uuid.UUID = EMPLOYEE_ID,
) -> BalanceSnapshot:
    return await ledger.snapshot(session, BalanceKey(employee_id, leave_type_id, year))


async def _take_leave(session: AsyncSession, leave_type_id: uuid.UUID, start: date, end: date) -> None:
    request = await submit_leave_request(session, EMPLOYEE_ID, leave_type_id, start, end)
    await decide_leave_request(session, request.id, MANAGER_ID, Decision.APPROVE)


# ---------------------------------------------------------------------------
# add_months
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("start", "months", "expected"),
    [
        (date(2026, 1, 1), 3, date(2026, 4, 1)),
        (date(2026, 1, 1), 12, date(2027, 1, 1)),
        (date(2025, 11, 15), 3, date(2026, 2, 15)),
        (date(2025, 1, 31), 1, date(2025, 2, 28)),
        (date(2024, 1, 31), 1, date(2024, 2, 29)),
    ],
)
def test_add_months(start: date, months: int, expected: date) -> None:
    assert add_months(start, months) == expected


# ---------------------------------------------------------------------------
# Single carry-forward
# ---------------------------------------------------------------------------


async def test_carry_forward_capped_by_policy(db_session: AsyncSession) -> None:
    type_id = await _leave_type(db_session, max_days=5, expiry_months=3)
    await _allocate(db_session, type_id)
    # Mon-Thu: 4 days used, 8 left
    await _take_leave(db_session, type_id, date(2025, 3, 3), date(2025, 3, 6))

    outcome = await run_carry_forward(db_session, EMPLOYEE_ID, type_id, 2025, 2026, actor_id=ADMIN_ID)

    assert outcome.applied is True
    assert outcome.record.days_transferred == 5
    assert outcome.record.expires_on == date(2026, 4, 1)
    target = await _balance(db_session, type_id, 2026)
    assert (target.carried_in, target.allocated, target.available) == (5, 0, 5)
    source = await _balance(db_session, type_id, 2025)
    assert (source.used, source.available) == (4, 8)


async def test_carry_forward_below_cap(db_session: AsyncSession) -> None:
    type_id = await _leave_type(db_session, name="Earned", max_days=10, expiry_months=None)
    await _allocate(db_session, type_id)
    await _take_leave(db_session, type_id, date(2025, 3, 3), date(2025, 3, 6))

    outcome = await run_carry_forward(db_session, EMPLOYEE_ID, type_id, 2025, 2026)

    assert outcome.record.days_transferred == 8
    assert outcome.record.expires_on is None
    assert (await _balance(db_session, type_id, 2026)).carried_in == 8


async def test_pending_days_are_not_carried(db_session: AsyncSession) -> None:
    type_id = await _leave_type(db_session, name="Earned", max_days=10)
    await _allocate(db_session, type_id, days=6)
    await submit_leave_request(db_session, EMPLOYEE_ID, type_id, date(2025, 12, 22), date(2025, 12, 24))

    outcome = await run_carry_forward(db_session, EMPLOYEE_ID, type_id, 2025, 2026)

    assert outcome.record.days_transferred == 3


async def test_carry_forward_is_idempotent(db_session: AsyncSession) -> None:
    type_id = await _leave_type(db_session)
    await _allocate(db_session, type_id)

    first = await run_carry_forward(db_session, EMPLOYEE_ID, type_id, 2025, 2026)
    second = await run_carry_forward(db_session, EMPLOYEE_ID, type_id, 2025, 2026)

    assert first.applied is True
    assert second.applied is False
    assert second.record.id == first.record.id
    assert (await _balance(db_session, type_id, 2026)).carried_in == 5
    records = await projection.list_carry_forward_records(db_session, EMPLOYEE_ID)
    assert records.total == 1


async def test_carry_forward_without_policy_records_zero(db_session: AsyncSession) -> None:
    type_id = await _leave_type(db_session, name="Sick", max_days=None)
    await _allocate(db_session, type_id, days=10)

    outcome = await run_carry_forward(db_session, EMPLOYEE_ID, type_id, 2025, 2026)

    assert outcome.applied is True
    assert outcome.record.days_transferred == 0
    assert outcome.record.expires_on is None
    target = await _balance(db_session, type_id, 2026)
    assert (target.carried_in, target.version) == (0, 1)


async def test_carry_forward_from_untouched_balance(db_session: AsyncSession) -> None:
    type_id = await _leave_type(db_session)

    outcome = await run_carry_forward(db_session, EMPLOYEE_ID, type_id, 2025, 2026)

    assert outcome.record.days_transferred == 0


@pytest.mark.parametrize("to_year", [2025, 2027, 2024])
async def test_carry_forward_requires_next_year(db_session: AsyncSession, to_year: int) -> None:
    type_id = await _leave_type(db_session)
    with pytest.raises(InvalidDateRangeError):
        await run_carry_forward(db_session, EMPLOYEE_ID, type_id, 2025, to_year)


async def test_carry_forward_unknown_type(db_session: AsyncSession) -> None:
    with pytest.raises(UnknownLeaveTypeError):
        await run_carry_forward(db_session, EMPLOYEE_ID, uuid.uuid4(), 2025, 2026)


async def test_carry_forward_is_audited(db_session: AsyncSession) -> None:
    type_id = await _leave_type(db_session)
    await _allocate(db_session, type_id)

    outcome = await run_carry_forward(db_session, EMPLOYEE_ID, type_id, 2025, 2026, actor_id=ADMIN_ID)

    entries = await projection.query_audit_log(
        db_session, entity_type=AuditEntityType.CARRY_FORWARD.value, entity_id=outcome.record.id
    )
    assert [e.action for e in entries.items] == [AuditAction.CREATE.value]
    assert entries.items[0].actor_id == ADMIN_ID
    assert entries.items[0].after_json["balance"]["carried_in"] == 5  # type: ignore[index]


# ---------------------------------------------------------------------------
# Year-end batch
# ---------------------------------------------------------------------------


async def test_year_end_processes_every_balance(db_session: AsyncSession) -> None:
    casual = await _leave_type(db_session)
    sick = await _leave_type(db_session, name="Sick", max_days=None)
    for employee_id in (EMPLOYEE_ID, OTHER_EMPLOYEE_ID):
        await _allocate(db_session, casual, employee_id=employee_id)
        await _allocate(db_session, sick, days=10, employee_id=employee_id)
    await _allocate(db_session, casual, year=2024)

    result = await run_year_end_carry_forward(db_session, 2025)

    assert (result.processed, result.skipped, result.errors) == (4, 0, 0)
    assert sorted(d["days_transferred"] for d in result.details) == [0, 0, 5, 5]  # type: ignore[type-var]
    assert (await _balance(db_session, casual, 2026, OTHER_EMPLOYEE_ID)).carried_in == 5
    assert (await _balance(db_session, casual, 2025)).carried_in == 0

    rerun = await run_year_end_carry_forward(db_session, 2025)
    assert (rerun.processed, rerun.skipped, rerun.errors) == (0, 4, 0)
    assert (await _balance(db_session, casual, 2026)).carried_in == 5


async def test_year_end_counts_failures_and_continues(
    db_session: AsyncSession,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    casual = await _leave_type(db_session)
    await _allocate(db_session, casual)
    await _allocate(db_session, casual, employee_id=OTHER_EMPLOYEE_ID)

    real_carry_in = ledger.carry_in

    async def _fails_for_other(session: AsyncSession, key: BalanceKey, days: int, **kwargs: object) -> object:
        if key.employee_id == OTHER_EMPLOYEE_ID:
            raise RuntimeError("storage unavailable")
        return await real_carry_in(session, key, days, **kwargs)  # type: ignore[arg-type]

    monkeypatch.setattr(ledger, "carry_in", _fails_for_other)

    result = await run_year_end_carry_forward(db_session, 2025)

    assert (result.processed, result.errors) == (1, 1)
    assert (await _balance(db_session, casual, 2026)).carried_in == 5
    assert (await _balance(db_session, casual, 2026, OTHER_EMPLOYEE_ID)).version == 0


# ---------------------------------------------------------------------------
# Expiry
# ---------------------------------------------------------------------------


async def test_expiry_waits_for_expiry_date(db_session: AsyncSession) -> None:
    type_id = await _leave_type(db_session, expiry_months=3)
    await _allocate(db_session, type_id)
    await run_carry_forward(db_session, EMPLOYEE_ID, type_id, 2025, 2026)

    early = await run_carry_forward_expiry(db_session, today=date(2026, 3, 31))
    assert early.processed == 0
    assert (await _balance(db_session, type_id, 2026)).carried_in == 5

    due = await run_carry_forward_expiry(db_session, today=date(2026, 4, 1))
    assert due.processed == 1
    target = await _balance(db_session, type_id, 2026)
    assert (target.carried_in, target.available) == (0, 0)

    again = await run_carry_forward_expiry(db_session, today=date(2026, 5, 1))
    assert (again.processed, again.errors) == (0, 0)


async def test_expiry_keeps_days_already_taken(db_session: AsyncSession) -> None:
    type_id = await _leave_type(db_session, expiry_months=3)
    await _allocate(db_session, type_id)
    await run_carry_forward(db_session, EMPLOYEE_ID, type_id, 2025, 2026)
    # Mon-Wed: 3 of the 5 carried-in days held by a pending request
    await submit_leave_request(db_session, EMPLOYEE_ID, type_id, date(2026, 3, 2), date(2026, 3, 4))

    result = await run_carry_forward_expiry(db_session, today=date(2026, 4, 1))

    assert result.processed == 1
    target = await _balance(db_session, type_id, 2026)
    assert (target.carried_in, target.pending, target.available) == (3, 3, 0)
    entries = await projection.query_audit_log(
        db_session, entity_type=AuditEntityType.CARRY_FORWARD.value, action=AuditAction.EXPIRE.value
    )
    assert entries.items[0].after_json["days_expired"] == 2  # type: ignore[index]


async def test_expiry_ignores_records_without_expiry(db_session: AsyncSession) -> None:
    type_id = await _leave_type(db_session, name="Earned", max_days=10, expiry_months=None)
    await _allocate(db_session, type_id)
    await run_carry_forward(db_session, EMPLOYEE_ID, type_id, 2025, 2026)

    result = await run_carry_forward_expiry(db_session, today=date(2030, 1, 1))

    assert result.processed == 0
    assert (await _balance(db_session, type_id, 2026)).carried_in == 10


# ---------------------------------------------------------------------------
# API
# ---------------------------------------------------------------------------


async def test_api_carry_forward(async_client: AsyncClient, db_session: AsyncSession) -> None:
    type_id = await _leave_type(db_session)
    await _allocate(db_session, type_id)
    payload = {"employee_id": str(EMPLOYEE_ID), "leave_type_id": str(type_id), "from_year": 2025, "to_year": 2026}

    first = await async_client.post("/carry-forward", json=payload, headers=ADMIN_HEADERS)
    second = await async_client.post("/carry-forward", json=payload, headers=ADMIN_HEADERS)

    assert first.status_code == 200
    assert first.json()["applied"] is True
    assert first.json()["record"]["days_transferred"] == 5
    assert second.json()["applied"] is False

    history = await async_client.get(f"/employees/{EMPLOYEE_ID}/carry-forwards", headers=EMPLOYEE_HEADERS)
    assert history.json()["total"] == 1
    assert history.json()["items"][0]["expires_on"] == "2026-04-01"


async def test_api_carry_forward_validation_and_auth(async_client: AsyncClient) -> None:
    payload = {"employee_id": str(EMPLOYEE_ID), "leave_type_id": str(uuid.uuid4()), "from_year": 2025, "to_year": 2027}

    bad_years = await async_client.post("/carry-forward", json=payload, headers=ADMIN_HEADERS)
    assert bad_years.status_code == 422

    forbidden = await async_client.post("/carry-forward/year-end", json={"from_year": 2025}, headers=EMPLOYEE_HEADERS)
    assert forbidden.status_code == 403


async def test_api_batches(async_client: AsyncClient, db_session: AsyncSession) -> None:
    type_id = await _leave_type(db_session)
    await _allocate(db_session, type_id)

    year_end = await async_client.post("/carry-forward/year-end", json={"from_year": 2025}, headers=ADMIN_HEADERS)
    assert year_end.json() == {"processed": 1, "skipped": 0, "errors": 0}

    expire = await async_client.post("/carry-forward/expire", json={"as_of": "2026-04-01"}, headers=ADMIN_HEADERS)
    assert expire.json() == {"processed": 1, "skipped": 0, "errors": 0}
