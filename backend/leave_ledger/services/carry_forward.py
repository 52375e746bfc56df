"""Carry-forward and carried-in expiry engines.

Carry-forward: moves unused days of one year into the next, once per
(employee, leave type, year pair), capped by the leave type's policy.
Expiry: runs daily and removes carried-in days whose policy lifetime has
ended, once per carry-forward record.
"""

# ruff: noqa: TC003
from __future__ import annotations

import calendar
import logging
import uuid
from dataclasses import dataclass, field
from datetime import date
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlmodel import col

from leave_ledger.exceptions import InvalidDateRangeError
from leave_ledger.locks import get_ledger_locks
from leave_ledger.models.balance import LeaveBalance
from leave_ledger.models.carry_forward import CarryForwardExpiry, CarryForwardRecord
from leave_ledger.models.enums import AuditAction, AuditEntityType
from leave_ledger.schemas.carry_forward import BatchRunResponse, CarryForwardRecordResponse, CarryForwardResponse
from leave_ledger.services import ledger
from leave_ledger.services.audit import SYSTEM_ACTOR, model_to_audit_dict, write_audit_log
from leave_ledger.services.leave_type import get_leave_type_or_404
from leave_ledger.services.ledger import BalanceKey

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


@dataclass
class CarryForwardRunResult:
    """Result of a batch carry-forward or expiry run."""

    processed: int = 0
    skipped: int = 0
    errors: int = 0
    details: list[dict[str, object]] = field(default_factory=list)

    def to_response(self) -> BatchRunResponse:
        return BatchRunResponse(processed=self.processed, skipped=self.skipped, errors=self.errors)


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


def build_record_response(record: CarryForwardRecord) -> CarryForwardRecordResponse:
    return CarryForwardRecordResponse(
        id=record.id,
        employee_id=record.employee_id,
        leave_type_id=record.leave_type_id,
        from_year=record.from_year,
        to_year=record.to_year,
        days_transferred=record.days_transferred,
        expires_on=record.expires_on,
        created_at=record.created_at,
    )


def add_months(day: date, months: int) -> date:
    """Shift ``day`` by whole calendar months, clamping to the month's last day."""
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    return date(year, month, min(day.day, calendar.monthrange(year, month)[1]))


async def _find_record(
    session: AsyncSession,
    employee_id: uuid.UUID,
    leave_type_id: uuid.UUID,
    from_year: int,
    to_year: int,
) -> CarryForwardRecord | None:
    result = await session.execute(
        select(CarryForwardRecord).where(
            col(CarryForwardRecord.employee_id) == employee_id,
            col(CarryForwardRecord.leave_type_id) == leave_type_id,
            col(CarryForwardRecord.from_year) == from_year,
            col(CarryForwardRecord.to_year) == to_year,
        )
    )
    return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Carry-forward
# ---------------------------------------------------------------------------


async def run_carry_forward(
    session: AsyncSession,
    employee_id: uuid.UUID,
    leave_type_id: uuid.UUID,
    from_year: int,
    to_year: int,
    actor_id: uuid.UUID = SYSTEM_ACTOR,
) -> CarryForwardResponse:
    """Carry unused days of ``from_year`` into ``to_year``.

    1. Return the existing record untouched if this pair was already processed
    2. transfer = min(available in from_year, policy max), 0 without a policy
    3. Credit ``carried_in`` on the to_year balance
    4. Append the CarryForwardRecord (the idempotency marker), audit, commit

    Losing the unique constraint to a concurrent run is also a no-op.
    """
    if to_year != from_year + 1:
        raise InvalidDateRangeError(f"Carry-forward must target the next year, got {from_year} -> {to_year}")

    leave_type = await get_leave_type_or_404(session, leave_type_id)
    source = BalanceKey(employee_id, leave_type_id, from_year)
    target = BalanceKey(employee_id, leave_type_id, to_year)

    async with get_ledger_locks().hold(source, target):
        existing = await _find_record(session, employee_id, leave_type_id, from_year, to_year)
        if existing is not None:
            return CarryForwardResponse(applied=False, record=build_record_response(existing))

        transfer = 0
        if leave_type.carry_forward_max_days is not None:
            source_balance = await ledger.snapshot(session, source)
            transfer = min(max(source_balance.available, 0), leave_type.carry_forward_max_days)

        before = await ledger.snapshot(session, target)
        await ledger.carry_in(session, target, transfer)

        expires_on = None
        if transfer > 0 and leave_type.carry_forward_expiry_months is not None:
            expires_on = add_months(date(to_year, 1, 1), leave_type.carry_forward_expiry_months)

        record = CarryForwardRecord(
            employee_id=employee_id,
            leave_type_id=leave_type_id,
            from_year=from_year,
            to_year=to_year,
            days_transferred=transfer,
            expires_on=expires_on,
        )
        session.add(record)
        try:
            await session.flush()
        except IntegrityError:
            await session.rollback()
            existing = await _find_record(session, employee_id, leave_type_id, from_year, to_year)
            if existing is None:
                raise
            return CarryForwardResponse(applied=False, record=build_record_response(existing))

        await write_audit_log(
            session,
            actor_id=actor_id,
            entity_type=AuditEntityType.CARRY_FORWARD,
            entity_id=record.id,
            action=AuditAction.CREATE,
            before_json=before.model_dump(mode="json"),
            after_json={
                **model_to_audit_dict(record),
                "balance": (await ledger.snapshot(session, target)).model_dump(mode="json"),
            },
        )
        await session.commit()

    await session.refresh(record)
    logger.info(
        "Carried %d day(s) forward for employee=%s leave_type=%s %d -> %d",
        transfer,
        employee_id,
        leave_type_id,
        from_year,
        to_year,
    )
    return CarryForwardResponse(applied=True, record=build_record_response(record))


async def run_year_end_carry_forward(
    session: AsyncSession,
    from_year: int,
    actor_id: uuid.UUID = SYSTEM_ACTOR,
) -> CarryForwardRunResult:
    """Carry every balance of ``from_year`` into the following year.

    Each key is processed and committed on its own; a failing key is logged
    and counted, and the run moves on. Re-running is safe.
    """
    result = CarryForwardRunResult()

    rows = await session.execute(
        select(LeaveBalance.employee_id, LeaveBalance.leave_type_id)  # ty: ignore[no-matching-overload]
        .where(col(LeaveBalance.year) == from_year)
        .order_by(col(LeaveBalance.employee_id), col(LeaveBalance.leave_type_id))
    )
    keys = [(row.employee_id, row.leave_type_id) for row in rows.all()]

    for employee_id, leave_type_id in keys:
        try:
            outcome = await run_carry_forward(session, employee_id, leave_type_id, from_year, from_year + 1, actor_id)
        except Exception:
            logger.exception(
                "Carry-forward failed for employee=%s leave_type=%s year=%d", employee_id, leave_type_id, from_year
            )
            await session.rollback()
            result.errors += 1
            continue

        if outcome.applied:
            result.processed += 1
            result.details.append(
                {
                    "employee_id": str(employee_id),
                    "leave_type_id": str(leave_type_id),
                    "days_transferred": outcome.record.days_transferred,
                }
            )
        else:
            result.skipped += 1

    logger.info(
        "Year-end carry-forward from %d: processed=%d skipped=%d errors=%d",
        from_year,
        result.processed,
        result.skipped,
        result.errors,
    )
    return result


# ---------------------------------------------------------------------------
# Expiry
# ---------------------------------------------------------------------------


async def expire_carry_forward(
    session: AsyncSession,
    record_id: uuid.UUID,
    actor_id: uuid.UUID = SYSTEM_ACTOR,
) -> bool:
    """Expire what is left of one record's carried-in days. False if already done.

    Expires min(days transferred, carried_in, available) so that neither
    days already taken nor days held by pending requests are clawed back.
    """
    result = await session.execute(select(CarryForwardRecord).where(col(CarryForwardRecord.id) == record_id))
    record = result.scalar_one()
    key = BalanceKey(record.employee_id, record.leave_type_id, record.to_year)

    async with get_ledger_locks().hold(key):
        done = await session.execute(
            select(CarryForwardExpiry).where(col(CarryForwardExpiry.record_id) == record_id)
        )
        if done.scalar_one_or_none() is not None:
            return False

        before = await ledger.snapshot(session, key)
        days = min(record.days_transferred, before.carried_in, max(before.available, 0))
        if days > 0:
            await ledger.expire_carried_in(session, key, days)

        expiry = CarryForwardExpiry(record_id=record_id, days_expired=days)
        session.add(expiry)
        try:
            await session.flush()
        except IntegrityError:
            await session.rollback()
            return False

        await write_audit_log(
            session,
            actor_id=actor_id,
            entity_type=AuditEntityType.CARRY_FORWARD,
            entity_id=record_id,
            action=AuditAction.EXPIRE,
            before_json=before.model_dump(mode="json"),
            after_json=(await ledger.snapshot(session, key)).model_dump(mode="json") | {"days_expired": days},
        )
        await session.commit()

    logger.info("Expired %d carried-in day(s) from record %s", days, record_id)
    return True


async def run_carry_forward_expiry(
    session: AsyncSession,
    today: date | None = None,
    actor_id: uuid.UUID = SYSTEM_ACTOR,
) -> CarryForwardRunResult:
    """Expire every carry-forward record whose ``expires_on`` is on or before ``today``.

    Idempotent: a record with an expiry row is never processed again.
    """
    if today is None:
        today = date.today()

    result = CarryForwardRunResult()

    already_expired = select(CarryForwardExpiry.record_id)  # ty: ignore[no-matching-overload]
    rows = await session.execute(
        select(CarryForwardRecord.id)  # ty: ignore[no-matching-overload]
        .where(
            col(CarryForwardRecord.expires_on).is_not(None),
            col(CarryForwardRecord.expires_on) <= today,
            col(CarryForwardRecord.id).not_in(already_expired),
        )
        .order_by(col(CarryForwardRecord.expires_on))
    )
    record_ids = list(rows.scalars().all())

    for record_id in record_ids:
        try:
            applied = await expire_carry_forward(session, record_id, actor_id)
        except Exception:
            logger.exception("Carried-in expiry failed for record=%s", record_id)
            await session.rollback()
            result.errors += 1
            continue

        if applied:
            result.processed += 1
        else:
            result.skipped += 1

    logger.info(
        "Carried-in expiry as of %s: processed=%d skipped=%d errors=%d",
        today,
        result.processed,
        result.skipped,
        result.errors,
    )
    return result
