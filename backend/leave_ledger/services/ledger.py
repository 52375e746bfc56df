"""Balance ledger: the only code that mutates ``leave_balance`` rows.

Every operation runs inside the caller's session and flushes, but never
commits; the calling service owns the transaction and holds the per-key
locks from ``leave_ledger.locks`` for its duration.

Writes are optimistic: the UPDATE is conditional on the version that was
read and bumps it. Losing that race raises ``ConcurrentModificationError``
instead of waiting.

The version check alone never double-books a balance, but concurrent
``reserve`` calls that skip the key lock can fail with
``ConcurrentModificationError`` rather than ``InsufficientBalanceError``.
Callers that want losers to see the fresh ``available`` and get
``InsufficientBalanceError`` must hold ``get_ledger_locks().hold(key)``
across the read, the write and the commit.
"""

# ruff: noqa: TC003
from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, NamedTuple

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.attributes import set_committed_value
from sqlmodel import col

from leave_ledger.exceptions import (
    ConcurrentModificationError,
    InsufficientBalanceError,
    InvalidAmountError,
    UnknownReservationError,
)
from leave_ledger.models.balance import LeaveBalance, LeaveReservation
from leave_ledger.models.base import now_utc
from leave_ledger.models.enums import ReservationStatus
from leave_ledger.schemas.balance import BalanceSnapshot

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

_BALANCE_NAMESPACE = uuid.UUID("6f1c2a8e-3d7b-4c59-9a0e-5b8d2f4e7c13")
_AMOUNT_FIELDS = ("allocated", "carried_in", "used", "pending")


class BalanceKey(NamedTuple):
    """Identity of one ledger row."""

    employee_id: uuid.UUID
    leave_type_id: uuid.UUID
    year: int

    @property
    def entity_id(self) -> uuid.UUID:
        """Stable UUID for audit entries about this balance."""
        return uuid.uuid5(_BALANCE_NAMESPACE, f"{self.employee_id}:{self.leave_type_id}:{self.year}")


def reservation_key(reservation: LeaveReservation) -> BalanceKey:
    return BalanceKey(reservation.employee_id, reservation.leave_type_id, reservation.year)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _require_positive(days: int) -> None:
    if days <= 0:
        raise InvalidAmountError(f"Days must be positive, got {days}")


def _check_version(balance: LeaveBalance | None, expected_version: int | None) -> None:
    if expected_version is None:
        return
    current = balance.version if balance is not None else 0
    if current != expected_version:
        raise ConcurrentModificationError(
            f"Balance version is {current}, expected {expected_version}; re-read and retry"
        )


async def _load_balance(session: AsyncSession, key: BalanceKey) -> LeaveBalance | None:
    """Read the row, overwriting any stale copy held by the session."""
    result = await session.execute(
        select(LeaveBalance)
        .where(
            col(LeaveBalance.employee_id) == key.employee_id,
            col(LeaveBalance.leave_type_id) == key.leave_type_id,
            col(LeaveBalance.year) == key.year,
        )
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _load_reservation(session: AsyncSession, reservation_id: uuid.UUID) -> LeaveReservation | None:
    result = await session.execute(
        select(LeaveReservation)
        .where(col(LeaveReservation.id) == reservation_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _write(session: AsyncSession, balance: LeaveBalance, **changes: int) -> LeaveBalance:
    """Apply ``changes`` with a version-conditional UPDATE.

    Rejects any result that would leave a negative amount or a negative
    available balance.
    """
    amounts = {field: getattr(balance, field) for field in _AMOUNT_FIELDS}
    amounts.update(changes)
    available = amounts["allocated"] + amounts["carried_in"] - amounts["used"] - amounts["pending"]
    if min(amounts.values()) < 0 or available < 0:
        raise InvalidAmountError("Balance update would leave a negative amount")

    values: dict[str, object] = {**changes, "version": balance.version + 1, "updated_at": now_utc()}
    result = await session.execute(
        update(LeaveBalance)
        .where(
            col(LeaveBalance.employee_id) == balance.employee_id,
            col(LeaveBalance.leave_type_id) == balance.leave_type_id,
            col(LeaveBalance.year) == balance.year,
            col(LeaveBalance.version) == balance.version,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:  # ty: ignore[unresolved-attribute]
        raise ConcurrentModificationError("Balance was modified concurrently; re-read and retry")

    for field, value in values.items():
        set_committed_value(balance, field, value)
    return balance


async def _resolve_reservation(
    session: AsyncSession,
    reservation_id: uuid.UUID,
) -> tuple[LeaveReservation, LeaveBalance]:
    reservation = await _load_reservation(session, reservation_id)
    if reservation is None:
        raise UnknownReservationError(f"Reservation {reservation_id} not found")
    balance = await _load_balance(session, reservation_key(reservation))
    if balance is None:
        raise UnknownReservationError(f"Reservation {reservation_id} has no balance row")
    return reservation, balance


async def _set_status(session: AsyncSession, reservation: LeaveReservation, status: ReservationStatus) -> None:
    reservation.status = status.value
    reservation.touch()
    await session.flush()


# ---------------------------------------------------------------------------
# Balance rows
# ---------------------------------------------------------------------------


async def get_or_create_balance(session: AsyncSession, key: BalanceKey) -> LeaveBalance:
    """Return the row for ``key``, lazily creating an all-zero row."""
    balance = await _load_balance(session, key)
    if balance is not None:
        return balance

    balance = LeaveBalance(
        employee_id=key.employee_id,
        leave_type_id=key.leave_type_id,
        year=key.year,
        version=1,
    )
    session.add(balance)
    try:
        await session.flush()
    except IntegrityError:
        raise ConcurrentModificationError("Balance row was created concurrently; retry") from None
    return balance


async def _balance_for_write(session: AsyncSession, key: BalanceKey, expected_version: int | None) -> LeaveBalance:
    # The version check sees a missing row as version 0, before it is created.
    balance = await _load_balance(session, key)
    _check_version(balance, expected_version)
    if balance is None:
        balance = await get_or_create_balance(session, key)
    return balance


async def snapshot(session: AsyncSession, key: BalanceKey) -> BalanceSnapshot:
    """Current quadruple plus ``available``. A never-touched key reads as zeros at version 0."""
    balance = await _load_balance(session, key)
    if balance is None:
        return BalanceSnapshot(
            employee_id=key.employee_id,
            leave_type_id=key.leave_type_id,
            year=key.year,
            allocated=0,
            carried_in=0,
            used=0,
            pending=0,
            available=0,
            version=0,
        )
    return BalanceSnapshot(
        employee_id=balance.employee_id,
        leave_type_id=balance.leave_type_id,
        year=balance.year,
        allocated=balance.allocated,
        carried_in=balance.carried_in,
        used=balance.used,
        pending=balance.pending,
        available=balance.available,
        version=balance.version,
        updated_at=balance.updated_at,
    )


# ---------------------------------------------------------------------------
# Allocation side
# ---------------------------------------------------------------------------


async def allocate(
    session: AsyncSession,
    key: BalanceKey,
    days: int,
    *,
    expected_version: int | None = None,
) -> LeaveBalance:
    """Grant ``days`` to the allocation."""
    _require_positive(days)
    balance = await _balance_for_write(session, key, expected_version)
    return await _write(session, balance, allocated=balance.allocated + days)


async def carry_in(
    session: AsyncSession,
    key: BalanceKey,
    days: int,
    *,
    expected_version: int | None = None,
) -> LeaveBalance:
    """Credit days brought forward from the previous year. Zero only ensures the row exists."""
    if days < 0:
        raise InvalidAmountError(f"Carried-in days cannot be negative, got {days}")
    balance = await _balance_for_write(session, key, expected_version)
    if days == 0:
        return balance
    return await _write(session, balance, carried_in=balance.carried_in + days)


async def expire_carried_in(session: AsyncSession, key: BalanceKey, days: int) -> LeaveBalance:
    """Remove lapsed carried-in days. Cannot exceed what is carried in or still available."""
    _require_positive(days)
    balance = await _load_balance(session, key)
    if balance is None or days > balance.carried_in or days > balance.available:
        raise InvalidAmountError(f"Cannot expire {days} carried-in days from {key}")
    return await _write(session, balance, carried_in=balance.carried_in - days)


# ---------------------------------------------------------------------------
# Reservation side
# ---------------------------------------------------------------------------


async def reserve(
    session: AsyncSession,
    key: BalanceKey,
    days: int,
    request_id: uuid.UUID,
    *,
    expected_version: int | None = None,
) -> LeaveReservation:
    """Hold ``days`` as pending if available, returning the reservation handle."""
    _require_positive(days)
    balance = await _balance_for_write(session, key, expected_version)
    if balance.available < days:
        raise InsufficientBalanceError(
            f"Insufficient leave balance for {key.year}. Available: {balance.available}, Requested: {days}"
        )

    await _write(session, balance, pending=balance.pending + days)
    reservation = LeaveReservation(
        employee_id=key.employee_id,
        leave_type_id=key.leave_type_id,
        year=key.year,
        request_id=request_id,
        days=days,
        status=ReservationStatus.HELD.value,
    )
    session.add(reservation)
    await session.flush()
    return reservation


async def commit(session: AsyncSession, reservation_id: uuid.UUID) -> LeaveReservation:
    """Move a held reservation from pending to used. Repeating it is a no-op."""
    reservation, balance = await _resolve_reservation(session, reservation_id)
    if reservation.status == ReservationStatus.COMMITTED:
        return reservation
    if reservation.status != ReservationStatus.HELD:
        raise UnknownReservationError(f"Reservation {reservation_id} is {reservation.status}, not held")

    await _write(
        session,
        balance,
        pending=balance.pending - reservation.days,
        used=balance.used + reservation.days,
    )
    await _set_status(session, reservation, ReservationStatus.COMMITTED)
    return reservation


async def release(session: AsyncSession, reservation_id: uuid.UUID) -> LeaveReservation:
    """Drop a held reservation from pending without touching used. Repeating it is a no-op."""
    reservation, balance = await _resolve_reservation(session, reservation_id)
    if reservation.status == ReservationStatus.RELEASED:
        return reservation
    if reservation.status != ReservationStatus.HELD:
        raise UnknownReservationError(f"Reservation {reservation_id} is {reservation.status}, not held")

    await _write(session, balance, pending=balance.pending - reservation.days)
    await _set_status(session, reservation, ReservationStatus.RELEASED)
    return reservation


async def revert_usage(
    session: AsyncSession,
    key: BalanceKey,
    days: int,
    *,
    expected_version: int | None = None,
) -> LeaveBalance:
    """Give back ``days`` of used leave."""
    _require_positive(days)
    balance = await _load_balance(session, key)
    _check_version(balance, expected_version)
    if balance is None or days > balance.used:
        used = balance.used if balance is not None else 0
        raise InvalidAmountError(f"Cannot revert {days} days; only {used} used")
    return await _write(session, balance, used=balance.used - days)


async def revert_reservation(session: AsyncSession, reservation_id: uuid.UUID) -> LeaveReservation:
    """Revert the usage of a committed reservation. Repeating it is a no-op."""
    reservation = await _load_reservation(session, reservation_id)
    if reservation is None:
        raise UnknownReservationError(f"Reservation {reservation_id} not found")
    if reservation.status == ReservationStatus.REVERTED:
        return reservation
    if reservation.status != ReservationStatus.COMMITTED:
        raise UnknownReservationError(f"Reservation {reservation_id} is {reservation.status}, not committed")

    await revert_usage(session, reservation_key(reservation), reservation.days)
    await _set_status(session, reservation, ReservationStatus.REVERTED)
    return reservation


# ---------------------------------------------------------------------------
# Compensating inverses
# ---------------------------------------------------------------------------


async def reopen_reservation(session: AsyncSession, reservation_id: uuid.UUID) -> LeaveReservation:
    """Inverse of ``commit``: move the days from used back to pending."""
    reservation, balance = await _resolve_reservation(session, reservation_id)
    if reservation.status == ReservationStatus.HELD:
        return reservation
    if reservation.status != ReservationStatus.COMMITTED:
        raise UnknownReservationError(f"Reservation {reservation_id} is {reservation.status}, not committed")

    await _write(
        session,
        balance,
        used=balance.used - reservation.days,
        pending=balance.pending + reservation.days,
    )
    await _set_status(session, reservation, ReservationStatus.HELD)
    return reservation


async def rehold_reservation(session: AsyncSession, reservation_id: uuid.UUID) -> LeaveReservation:
    """Inverse of ``release``: hold the days again."""
    reservation, balance = await _resolve_reservation(session, reservation_id)
    if reservation.status == ReservationStatus.HELD:
        return reservation
    if reservation.status != ReservationStatus.RELEASED:
        raise UnknownReservationError(f"Reservation {reservation_id} is {reservation.status}, not released")
    if balance.available < reservation.days:
        raise InsufficientBalanceError(f"Cannot re-hold {reservation.days} days; available {balance.available}")

    await _write(session, balance, pending=balance.pending + reservation.days)
    await _set_status(session, reservation, ReservationStatus.HELD)
    return reservation


async def reapply_reservation(session: AsyncSession, reservation_id: uuid.UUID) -> LeaveReservation:
    """Inverse of ``revert_reservation``: count the days as used again."""
    reservation, balance = await _resolve_reservation(session, reservation_id)
    if reservation.status == ReservationStatus.COMMITTED:
        return reservation
    if reservation.status != ReservationStatus.REVERTED:
        raise UnknownReservationError(f"Reservation {reservation_id} is {reservation.status}, not reverted")
    if balance.available < reservation.days:
        raise InsufficientBalanceError(f"Cannot re-apply {reservation.days} days; available {balance.available}")

    await _write(session, balance, used=balance.used + reservation.days)
    await _set_status(session, reservation, ReservationStatus.COMMITTED)
    return reservation


async def list_reservations(
    session: AsyncSession,
    request_id: uuid.UUID,
    statuses: list[ReservationStatus] | None = None,
) -> list[LeaveReservation]:
    """Reservations owned by a request, oldest year first."""
    query = select(LeaveReservation).where(col(LeaveReservation.request_id) == request_id)
    if statuses is not None:
        query = query.where(col(LeaveReservation.status).in_([s.value for s in statuses]))
    result = await session.execute(
        query.order_by(col(LeaveReservation.year)).execution_options(populate_existing=True)
    )
    return list(result.scalars().all())
