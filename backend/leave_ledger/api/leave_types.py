# ruff: noqa: B008, TC001, TC003
from __future__ import annotations

import uuid

from fastapi import APIRouter, Query, status

from leave_ledger.api.deps import AdminDep, AuthDep
from leave_ledger.db import SessionDep
from leave_ledger.schemas.leave_type import (
    CreateLeaveTypeRequest,
    LeaveTypeListResponse,
    LeaveTypeResponse,
    SetLeaveTypeActiveRequest,
    UpdateLeaveTypeRequest,
)
from leave_ledger.services import leave_type as leave_type_service

router = APIRouter(prefix="/leave-types", tags=["leave-types"])


@router.post("", response_model=LeaveTypeResponse, status_code=status.HTTP_201_CREATED)
async def create_leave_type(
    payload: CreateLeaveTypeRequest,
    session: SessionDep,
    auth: AdminDep,
) -> LeaveTypeResponse:
    """Register a leave type (admin only)."""
    return await leave_type_service.create_leave_type(session, auth.user_id, payload)


@router.get("", response_model=LeaveTypeListResponse)
async def list_leave_types(
    session: SessionDep,
    auth: AuthDep,
    active_only: bool = Query(default=False),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
) -> LeaveTypeListResponse:
    """List leave types."""
    return await leave_type_service.list_leave_types(session, active_only, offset, limit)


@router.get("/{leave_type_id}", response_model=LeaveTypeResponse)
async def get_leave_type(
    leave_type_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
) -> LeaveTypeResponse:
    """Get a single leave type."""
    return await leave_type_service.get_leave_type(session, leave_type_id)


@router.patch("/{leave_type_id}", response_model=LeaveTypeResponse)
async def update_leave_type(
    leave_type_id: uuid.UUID,
    payload: UpdateLeaveTypeRequest,
    session: SessionDep,
    auth: AdminDep,
) -> LeaveTypeResponse:
    """Update a leave type. Allotment and carry-forward policy freeze once in use."""
    return await leave_type_service.update_leave_type(session, auth.user_id, leave_type_id, payload)


@router.put("/{leave_type_id}/active", response_model=LeaveTypeResponse)
async def set_leave_type_active(
    leave_type_id: uuid.UUID,
    payload: SetLeaveTypeActiveRequest,
    session: SessionDep,
    auth: AdminDep,
) -> LeaveTypeResponse:
    """Deactivate or reactivate a leave type (admin only)."""
    return await leave_type_service.set_leave_type_active(session, auth.user_id, leave_type_id, payload.active)
