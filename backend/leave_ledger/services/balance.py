# ruff: noqa: TC003
from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlmodel import col

from leave_ledger.exceptions import LeaveTypeInactiveError
from leave_ledger.locks import get_ledger_locks
from leave_ledger.models.enums import AuditAction, AuditEntityType
from leave_ledger.models.leave_type import LeaveType
from leave_ledger.schemas.balance import BalanceSnapshot, InitializeYearResponse
from leave_ledger.services import ledger
from leave_ledger.services.audit import write_audit_log
from leave_ledger.services.employee import get_employee_service
from leave_ledger.services.leave_type import get_leave_type_or_404

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


async def allocate_initial_balance(
    session: AsyncSession,
    actor_id: uuid.UUID,
    employee_id: uuid.UUID,
    leave_type_id: uuid.UUID,
    year: int,
    days: int,
    *,
    expected_version: int | None = None,
) -> BalanceSnapshot:
    """Grant ``days`` to an employee's balance for one leave type and year.

    Flow:
    1. Verify the leave type exists and is active
    2. Lock the balance key
    3. Allocate through the ledger (creates the row lazily)
    4. Write audit log
    5. Commit
    """
    leave_type = await get_leave_type_or_404(session, leave_type_id)
    if not leave_type.active:
        raise LeaveTypeInactiveError(f"Leave type '{leave_type.name}' is inactive")

    key = ledger.BalanceKey(employee_id, leave_type_id, year)
    async with get_ledger_locks().hold(key):
        before = await ledger.snapshot(session, key)
        await ledger.allocate(session, key, days, expected_version=expected_version)
        after = await ledger.snapshot(session, key)

        await write_audit_log(
            session,
            actor_id=actor_id,
            entity_type=AuditEntityType.BALANCE,
            entity_id=key.entity_id,
            action=AuditAction.ALLOCATE,
            before_json=before.model_dump(mode="json"),
            after_json=after.model_dump(mode="json"),
        )
        await session.commit()

    return after


async def initialize_year_balances(
    session: AsyncSession,
    actor_id: uuid.UUID,
    year: int,
) -> InitializeYearResponse:
    """Allocate each active type's default days to every employee for ``year``.

    Keys that already have a balance row are left alone, so re-running the
    initialisation never grants twice. Each key is committed on its own; a
    failing key is rolled back, logged and counted, and the run moves on.
    """
    employees = await get_employee_service().list_employees()
    result = await session.execute(
        select(LeaveType).where(col(LeaveType.active).is_(True), col(LeaveType.default_annual_days) > 0)
    )
    # Plain values: a rollback below expires the loaded rows.
    defaults = [(leave_type.id, leave_type.default_annual_days) for leave_type in result.scalars().all()]

    created = 0
    skipped = 0
    errors = 0
    for employee in employees:
        for leave_type_id, days in defaults:
            key = ledger.BalanceKey(employee.id, leave_type_id, year)
            try:
                async with get_ledger_locks().hold(key):
                    existing = await ledger.snapshot(session, key)
                    if existing.version > 0:
                        skipped += 1
                        continue
                    await ledger.allocate(session, key, days)
                    after = await ledger.snapshot(session, key)
                    await write_audit_log(
                        session,
                        actor_id=actor_id,
                        entity_type=AuditEntityType.BALANCE,
                        entity_id=key.entity_id,
                        action=AuditAction.ALLOCATE,
                        after_json=after.model_dump(mode="json"),
                    )
                    await session.commit()
            except Exception:
                logger.exception(
                    "Balance initialisation failed for employee=%s leave_type=%s year=%d",
                    employee.id,
                    leave_type_id,
                    year,
                )
                await session.rollback()
                errors += 1
                continue
            created += 1

    logger.info("Initialized %d balances for %d (skipped=%d errors=%d)", created, year, skipped, errors)
    return InitializeYearResponse(year=year, created=created, skipped=skipped, errors=errors)
