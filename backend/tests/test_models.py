from __future__ import annotations

import uuid
from datetime import date

from leave_ledger.models import (
    AuditLog,
    CarryForwardExpiry,
    CarryForwardRecord,
    LeaveBalance,
    LeaveRequest,
    LeaveReservation,
    LeaveType,
    SQLModel,
)
from leave_ledger.models.enums import LeaveRequestStatus, ReservationStatus

EXPECTED_TABLES = {
    "audit_log",
    "carry_forward_expiry",
    "carry_forward_record",
    "leave_balance",
    "leave_request",
    "leave_reservation",
    "leave_type",
}


def test_all_tables_registered() -> None:
    table_names = set(SQLModel.metadata.tables.keys())
    assert EXPECTED_TABLES.issubset(table_names)


def test_balance_primary_key_is_the_balance_key() -> None:
    table = SQLModel.metadata.tables["leave_balance"]
    assert [c.name for c in table.primary_key.columns] == ["employee_id", "leave_type_id", "year"]


def test_one_carry_forward_per_year_pair() -> None:
    table = SQLModel.metadata.tables["carry_forward_record"]
    unique = next(c for c in table.constraints if c.name == "uq_carry_forward_idempotency")
    assert {c.name for c in unique.columns} == {"employee_id", "leave_type_id", "from_year", "to_year"}  # type: ignore[attr-defined]


def test_leave_type_defaults() -> None:
    leave_type = LeaveType(name="Casual")
    assert leave_type.active is True
    assert leave_type.default_annual_days == 0
    assert leave_type.has_carry_forward_policy is False
    assert leave_type.id is not None


def test_leave_type_with_policy() -> None:
    leave_type = LeaveType(name="Earned", default_annual_days=15, carry_forward_max_days=10)
    assert leave_type.has_carry_forward_policy is True
    assert leave_type.carry_forward_expiry_months is None


def test_balance_available() -> None:
    balance = LeaveBalance(
        employee_id=uuid.uuid4(),
        leave_type_id=uuid.uuid4(),
        year=2025,
        allocated=12,
        carried_in=3,
        used=5,
        pending=4,
    )
    assert balance.available == 6
    assert balance.version == 1


def test_reservation_touch_sets_resolved_at() -> None:
    reservation = LeaveReservation(
        employee_id=uuid.uuid4(),
        leave_type_id=uuid.uuid4(),
        year=2025,
        request_id=uuid.uuid4(),
        days=2,
        status=ReservationStatus.HELD,
    )
    assert reservation.resolved_at is None
    reservation.touch()
    assert reservation.resolved_at is not None


def test_leave_request_defaults() -> None:
    request = LeaveRequest(
        employee_id=uuid.uuid4(),
        leave_type_id=uuid.uuid4(),
        start_date=date(2025, 6, 10),
        end_date=date(2025, 6, 14),
        requested_days=4,
    )
    assert request.status == LeaveRequestStatus.PENDING
    assert request.decided_by is None
    assert request.cancellation_comments is None
    assert request.idempotency_key is None


def test_carry_forward_models() -> None:
    record = CarryForwardRecord(
        employee_id=uuid.uuid4(),
        leave_type_id=uuid.uuid4(),
        from_year=2025,
        to_year=2026,
        days_transferred=5,
    )
    expiry = CarryForwardExpiry(record_id=record.id, days_expired=2)
    assert record.expires_on is None
    assert expiry.record_id == record.id


def test_audit_log_instantiation() -> None:
    entry = AuditLog(
        actor_id=uuid.uuid4(),
        entity_type="request",
        entity_id=uuid.uuid4(),
        action="submit",
        after_json={"status": "pending"},
    )
    assert entry.before_json is None
    assert entry.created_at is not None
