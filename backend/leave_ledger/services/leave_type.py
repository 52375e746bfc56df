# ruff: noqa: TC003
from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlmodel import col

from leave_ledger.exceptions import AppError, LeaveTypeInUseError, UnknownLeaveTypeError
from leave_ledger.models.balance import LeaveBalance
from leave_ledger.models.enums import AuditAction, AuditEntityType
from leave_ledger.models.leave_type import LeaveType
from leave_ledger.schemas.leave_type import CarryForwardPolicy, LeaveTypeListResponse, LeaveTypeResponse
from leave_ledger.services.audit import model_to_audit_dict, write_audit_log

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from leave_ledger.schemas.leave_type import CreateLeaveTypeRequest, UpdateLeaveTypeRequest


def _build_leave_type_response(leave_type: LeaveType) -> LeaveTypeResponse:
    policy = None
    if leave_type.carry_forward_max_days is not None:
        policy = CarryForwardPolicy(
            max_days=leave_type.carry_forward_max_days,
            expiry_months=leave_type.carry_forward_expiry_months,
        )
    return LeaveTypeResponse(
        id=leave_type.id,
        name=leave_type.name,
        description=leave_type.description,
        active=leave_type.active,
        default_annual_days=leave_type.default_annual_days,
        carry_forward_policy=policy,
        created_at=leave_type.created_at,
        updated_at=leave_type.updated_at,
    )


async def get_leave_type_or_404(session: AsyncSession, leave_type_id: uuid.UUID) -> LeaveType:
    """Fetch a leave type by ID. Raises UnknownLeaveType if not found."""
    result = await session.execute(select(LeaveType).where(col(LeaveType.id) == leave_type_id))
    leave_type = result.scalar_one_or_none()
    if leave_type is None:
        raise UnknownLeaveTypeError(f"Leave type {leave_type_id} not found")
    return leave_type


async def is_referenced(session: AsyncSession, leave_type_id: uuid.UUID) -> bool:
    """True once any balance row points at the leave type."""
    result = await session.execute(
        select(func.count()).select_from(LeaveBalance).where(col(LeaveBalance.leave_type_id) == leave_type_id)
    )
    return result.scalar_one() > 0


async def _ensure_name_free(session: AsyncSession, name: str, exclude_id: uuid.UUID | None = None) -> None:
    query = select(LeaveType).where(func.lower(col(LeaveType.name)) == name.lower())
    if exclude_id is not None:
        query = query.where(col(LeaveType.id) != exclude_id)
    existing = await session.execute(query)
    if existing.scalar_one_or_none() is not None:
        raise AppError("Leave type with this name already exists", status_code=409)


async def create_leave_type(
    session: AsyncSession,
    actor_id: uuid.UUID,
    payload: CreateLeaveTypeRequest,
) -> LeaveTypeResponse:
    """Register a new leave type."""
    await _ensure_name_free(session, payload.name)

    policy = payload.carry_forward_policy
    leave_type = LeaveType(
        name=payload.name,
        description=payload.description,
        active=payload.active,
        default_annual_days=payload.default_annual_days,
        carry_forward_max_days=policy.max_days if policy else None,
        carry_forward_expiry_months=policy.expiry_months if policy else None,
    )
    session.add(leave_type)
    await session.flush()

    await write_audit_log(
        session,
        actor_id=actor_id,
        entity_type=AuditEntityType.LEAVE_TYPE,
        entity_id=leave_type.id,
        action=AuditAction.CREATE,
        after_json=model_to_audit_dict(leave_type),
    )

    await session.commit()
    await session.refresh(leave_type)
    return _build_leave_type_response(leave_type)


async def get_leave_type(session: AsyncSession, leave_type_id: uuid.UUID) -> LeaveTypeResponse:
    """Fetch a single leave type."""
    return _build_leave_type_response(await get_leave_type_or_404(session, leave_type_id))


async def list_leave_types(
    session: AsyncSession,
    active_only: bool = False,
    offset: int = 0,
    limit: int = 50,
) -> LeaveTypeListResponse:
    """List leave types ordered by name."""
    filters = [col(LeaveType.active).is_(True)] if active_only else []

    count_result = await session.execute(select(func.count()).select_from(LeaveType).where(*filters))
    total = count_result.scalar_one()

    result = await session.execute(
        select(LeaveType).where(*filters).order_by(col(LeaveType.name)).offset(offset).limit(limit)
    )
    return LeaveTypeListResponse(
        items=[_build_leave_type_response(t) for t in result.scalars().all()],
        total=total,
    )


async def update_leave_type(
    session: AsyncSession,
    actor_id: uuid.UUID,
    leave_type_id: uuid.UUID,
    payload: UpdateLeaveTypeRequest,
) -> LeaveTypeResponse:
    """Apply a partial update.

    Name and description can always change. The annual allotment and the
    carry-forward policy are frozen once a balance references the type.
    """
    leave_type = await get_leave_type_or_404(session, leave_type_id)
    fields = payload.model_fields_set
    before_dict = model_to_audit_dict(leave_type)

    frozen = {"default_annual_days", "carry_forward_policy"} & fields
    if frozen and await is_referenced(session, leave_type_id):
        raise LeaveTypeInUseError(
            f"Leave type is referenced by balances; cannot change {', '.join(sorted(frozen))}"
        )

    if "name" in fields and payload.name is not None:
        await _ensure_name_free(session, payload.name, exclude_id=leave_type_id)
        leave_type.name = payload.name
    if "description" in fields:
        leave_type.description = payload.description
    if "default_annual_days" in fields and payload.default_annual_days is not None:
        leave_type.default_annual_days = payload.default_annual_days
    if "carry_forward_policy" in fields:
        policy = payload.carry_forward_policy
        leave_type.carry_forward_max_days = policy.max_days if policy else None
        leave_type.carry_forward_expiry_months = policy.expiry_months if policy else None

    await session.flush()
    await write_audit_log(
        session,
        actor_id=actor_id,
        entity_type=AuditEntityType.LEAVE_TYPE,
        entity_id=leave_type.id,
        action=AuditAction.UPDATE,
        before_json=before_dict,
        after_json=model_to_audit_dict(leave_type),
    )

    await session.commit()
    await session.refresh(leave_type)
    return _build_leave_type_response(leave_type)


async def set_leave_type_active(
    session: AsyncSession,
    actor_id: uuid.UUID,
    leave_type_id: uuid.UUID,
    active: bool,
) -> LeaveTypeResponse:
    """Deactivate or reactivate a leave type. Leave types are never deleted."""
    leave_type = await get_leave_type_or_404(session, leave_type_id)
    if leave_type.active == active:
        return _build_leave_type_response(leave_type)

    before_dict = model_to_audit_dict(leave_type)
    leave_type.active = active
    await session.flush()

    await write_audit_log(
        session,
        actor_id=actor_id,
        entity_type=AuditEntityType.LEAVE_TYPE,
        entity_id=leave_type.id,
        action=AuditAction.UPDATE,
        before_json=before_dict,
        after_json=model_to_audit_dict(leave_type),
    )

    await session.commit()
    await session.refresh(leave_type)
    return _build_leave_type_response(leave_type)
