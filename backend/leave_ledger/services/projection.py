"""Read side: balances, request listings, request history and carry-forward records.

Nothing here writes. A balance is always read from a single row, so a
reader sees one committed version and never a half-applied mutation.
"""

from __future__ import annotations

from collections import defaultdict
from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlmodel import col

from leave_ledger.models.audit import AuditLog
from leave_ledger.models.balance import LeaveBalance, LeaveReservation
from leave_ledger.models.carry_forward import CarryForwardRecord
from leave_ledger.models.enums import AuditEntityType, LeaveRequestStatus
from leave_ledger.models.leave_type import LeaveType
from leave_ledger.models.request import LeaveRequest
from leave_ledger.schemas.balance import BalanceSummaryItem, BalanceSummaryResponse
from leave_ledger.schemas.carry_forward import CarryForwardRecordListResponse
from leave_ledger.schemas.report import AuditLogEntryResponse, AuditLogListResponse
from leave_ledger.schemas.request import LeaveRequestListResponse
from leave_ledger.services import ledger
from leave_ledger.services.carry_forward import build_record_response
from leave_ledger.services.employee import get_employee_service
from leave_ledger.services.leave_type import get_leave_type_or_404
from leave_ledger.services.ledger import BalanceKey
from leave_ledger.services.request import build_request_response, get_request_or_404, load_request_response

if TYPE_CHECKING:
    import uuid
    from datetime import date

    from sqlalchemy.ext.asyncio import AsyncSession

    from leave_ledger.schemas.balance import BalanceSnapshot
    from leave_ledger.schemas.request import LeaveRequestResponse


# ---------------------------------------------------------------------------
# Balances
# ---------------------------------------------------------------------------


async def get_balance(
    session: AsyncSession,
    employee_id: uuid.UUID,
    leave_type_id: uuid.UUID,
    year: int,
) -> BalanceSnapshot:
    """Balance for one key. A key never touched reads as zeros at version 0."""
    await get_leave_type_or_404(session, leave_type_id)
    return await ledger.snapshot(session, BalanceKey(employee_id, leave_type_id, year))


async def get_employee_balance_summary(
    session: AsyncSession,
    employee_id: uuid.UUID,
    year: int,
) -> BalanceSummaryResponse:
    """Every active leave type's balance for the year, plus inactive types the employee holds days in."""
    types_result = await session.execute(select(LeaveType).order_by(col(LeaveType.name)))
    leave_types = list(types_result.scalars().all())

    balances_result = await session.execute(
        select(LeaveBalance).where(
            col(LeaveBalance.employee_id) == employee_id,
            col(LeaveBalance.year) == year,
        )
    )
    balances = {b.leave_type_id: b for b in balances_result.scalars().all()}

    items: list[BalanceSummaryItem] = []
    for leave_type in leave_types:
        balance = balances.get(leave_type.id)
        if balance is None and not leave_type.active:
            continue
        items.append(
            BalanceSummaryItem(
                leave_type_id=leave_type.id,
                leave_type_name=leave_type.name,
                active=leave_type.active,
                allocated=balance.allocated if balance else 0,
                carried_in=balance.carried_in if balance else 0,
                used=balance.used if balance else 0,
                pending=balance.pending if balance else 0,
                available=balance.available if balance else 0,
            )
        )

    return BalanceSummaryResponse(employee_id=employee_id, year=year, items=items, total=len(items))


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


async def _with_reservations(session: AsyncSession, requests: list[LeaveRequest]) -> list[LeaveRequestResponse]:
    """Build responses for a page of requests with one reservation query."""
    if not requests:
        return []
    result = await session.execute(
        select(LeaveReservation)
        .where(col(LeaveReservation.request_id).in_([r.id for r in requests]))
        .order_by(col(LeaveReservation.year))
    )
    by_request: dict[uuid.UUID, list[LeaveReservation]] = defaultdict(list)
    for reservation in result.scalars().all():
        by_request[reservation.request_id].append(reservation)
    return [build_request_response(r, by_request[r.id]) for r in requests]


async def get_request(session: AsyncSession, request_id: uuid.UUID) -> LeaveRequestResponse:
    """Get a single request by ID, with its reservations."""
    return await load_request_response(session, await get_request_or_404(session, request_id))


async def list_requests(
    session: AsyncSession,
    *,
    employee_id: uuid.UUID | None = None,
    leave_type_id: uuid.UUID | None = None,
    status_filter: LeaveRequestStatus | None = None,
    from_date: date | None = None,
    to_date: date | None = None,
    offset: int = 0,
    limit: int = 50,
) -> LeaveRequestListResponse:
    """List requests with optional filters, newest first.

    ``from_date``/``to_date`` keep requests whose range touches the window.
    """
    filters = []
    if employee_id is not None:
        filters.append(col(LeaveRequest.employee_id) == employee_id)
    if leave_type_id is not None:
        filters.append(col(LeaveRequest.leave_type_id) == leave_type_id)
    if status_filter is not None:
        filters.append(col(LeaveRequest.status) == status_filter.value)
    if from_date is not None:
        filters.append(col(LeaveRequest.end_date) >= from_date)
    if to_date is not None:
        filters.append(col(LeaveRequest.start_date) <= to_date)

    count_result = await session.execute(select(func.count()).select_from(LeaveRequest).where(*filters))
    total = count_result.scalar_one()

    result = await session.execute(
        select(LeaveRequest)
        .where(*filters)
        .order_by(col(LeaveRequest.created_at).desc())
        .offset(offset)
        .limit(limit)
    )
    requests = list(result.scalars().all())

    return LeaveRequestListResponse(items=await _with_reservations(session, requests), total=total)


async def list_pending_requests_for_manager(
    session: AsyncSession,
    manager_id: uuid.UUID,
    offset: int = 0,
    limit: int = 50,
) -> LeaveRequestListResponse:
    """Pending requests of the manager's direct reports, earliest start first."""
    reports = await get_employee_service().list_reports(manager_id)
    if not reports:
        return LeaveRequestListResponse(items=[], total=0)

    filters = [
        col(LeaveRequest.employee_id).in_([e.id for e in reports]),
        col(LeaveRequest.status) == LeaveRequestStatus.PENDING.value,
    ]
    count_result = await session.execute(select(func.count()).select_from(LeaveRequest).where(*filters))
    total = count_result.scalar_one()

    result = await session.execute(
        select(LeaveRequest)
        .where(*filters)
        .order_by(col(LeaveRequest.start_date), col(LeaveRequest.created_at))
        .offset(offset)
        .limit(limit)
    )
    requests = list(result.scalars().all())

    return LeaveRequestListResponse(items=await _with_reservations(session, requests), total=total)


# ---------------------------------------------------------------------------
# Audit history
# ---------------------------------------------------------------------------


def _build_audit_entry(entry: AuditLog) -> AuditLogEntryResponse:
    return AuditLogEntryResponse(
        id=entry.id,
        actor_id=entry.actor_id,
        entity_type=entry.entity_type,
        entity_id=entry.entity_id,
        action=entry.action,
        before_json=entry.before_json,
        after_json=entry.after_json,
        created_at=entry.created_at,
    )


async def query_audit_log(
    session: AsyncSession,
    *,
    entity_type: str | None = None,
    entity_id: uuid.UUID | None = None,
    action: str | None = None,
    actor_id: uuid.UUID | None = None,
    offset: int = 0,
    limit: int = 50,
) -> AuditLogListResponse:
    """Query audit log entries with optional filters, newest first."""
    filters = []
    if entity_type is not None:
        filters.append(col(AuditLog.entity_type) == entity_type)
    if entity_id is not None:
        filters.append(col(AuditLog.entity_id) == entity_id)
    if action is not None:
        filters.append(col(AuditLog.action) == action)
    if actor_id is not None:
        filters.append(col(AuditLog.actor_id) == actor_id)

    count_result = await session.execute(select(func.count()).select_from(AuditLog).where(*filters))
    total = count_result.scalar_one()

    result = await session.execute(
        select(AuditLog).where(*filters).order_by(col(AuditLog.created_at).desc()).offset(offset).limit(limit)
    )
    return AuditLogListResponse(items=[_build_audit_entry(e) for e in result.scalars().all()], total=total)


async def get_request_history(session: AsyncSession, request_id: uuid.UUID) -> AuditLogListResponse:
    """Every audit entry about a request, oldest first."""
    await get_request_or_404(session, request_id)
    result = await session.execute(
        select(AuditLog)
        .where(
            col(AuditLog.entity_type) == AuditEntityType.REQUEST.value,
            col(AuditLog.entity_id) == request_id,
        )
        .order_by(col(AuditLog.created_at))
    )
    entries = [_build_audit_entry(e) for e in result.scalars().all()]
    return AuditLogListResponse(items=entries, total=len(entries))


# ---------------------------------------------------------------------------
# Carry-forward records
# ---------------------------------------------------------------------------


async def list_carry_forward_records(
    session: AsyncSession,
    employee_id: uuid.UUID,
    leave_type_id: uuid.UUID | None = None,
) -> CarryForwardRecordListResponse:
    """An employee's carry-forward history, most recent year first."""
    filters = [col(CarryForwardRecord.employee_id) == employee_id]
    if leave_type_id is not None:
        filters.append(col(CarryForwardRecord.leave_type_id) == leave_type_id)

    result = await session.execute(
        select(CarryForwardRecord)
        .where(*filters)
        .order_by(col(CarryForwardRecord.from_year).desc(), col(CarryForwardRecord.leave_type_id))
    )
    items = [build_record_response(r) for r in result.scalars().all()]
    return CarryForwardRecordListResponse(items=items, total=len(items))
