# ruff: noqa: B008, TC001, TC003
from __future__ import annotations

import uuid
from datetime import date

from fastapi import APIRouter, Query, status

from leave_ledger.api.deps import ApproverDep, AuthDep, ensure_self_or_approver
from leave_ledger.db import SessionDep
from leave_ledger.models.enums import LeaveRequestStatus
from leave_ledger.schemas.report import AuditLogListResponse
from leave_ledger.schemas.request import (
    CancelPayload,
    DecisionPayload,
    LeaveRequestListResponse,
    LeaveRequestResponse,
    ReschedulePayload,
    SubmitLeaveRequestPayload,
)
from leave_ledger.services import projection
from leave_ledger.services import request as request_service

requests_router = APIRouter(prefix="/leave-requests", tags=["leave-requests"])


@requests_router.post("", response_model=LeaveRequestResponse, status_code=status.HTTP_201_CREATED)
async def submit_leave_request(
    payload: SubmitLeaveRequestPayload,
    session: SessionDep,
    auth: AuthDep,
) -> LeaveRequestResponse:
    """Submit a leave request for yourself (managers and admins may submit for others)."""
    ensure_self_or_approver(auth, payload.employee_id)
    return await request_service.submit_leave_request(
        session,
        payload.employee_id,
        payload.leave_type_id,
        payload.start_date,
        payload.end_date,
        comments=payload.comments,
        idempotency_key=payload.idempotency_key,
    )


@requests_router.get("", response_model=LeaveRequestListResponse)
async def list_leave_requests(
    session: SessionDep,
    auth: AuthDep,
    employee_id: uuid.UUID | None = Query(default=None),
    leave_type_id: uuid.UUID | None = Query(default=None),
    status_filter: LeaveRequestStatus | None = Query(default=None, alias="status"),
    from_date: date | None = Query(default=None),
    to_date: date | None = Query(default=None),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
) -> LeaveRequestListResponse:
    """List leave requests. Employees only see their own."""
    if not auth.is_approver:
        employee_id = auth.user_id
    return await projection.list_requests(
        session,
        employee_id=employee_id,
        leave_type_id=leave_type_id,
        status_filter=status_filter,
        from_date=from_date,
        to_date=to_date,
        offset=offset,
        limit=limit,
    )


@requests_router.get("/{request_id}", response_model=LeaveRequestResponse)
async def get_leave_request(
    request_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
) -> LeaveRequestResponse:
    """Get a single leave request with its per-year reservations."""
    leave_request = await projection.get_request(session, request_id)
    ensure_self_or_approver(auth, leave_request.employee_id)
    return leave_request


@requests_router.get("/{request_id}/history", response_model=AuditLogListResponse)
async def get_leave_request_history(
    request_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
) -> AuditLogListResponse:
    """Audit trail of a leave request, oldest first."""
    leave_request = await projection.get_request(session, request_id)
    ensure_self_or_approver(auth, leave_request.employee_id)
    return await projection.get_request_history(session, request_id)


@requests_router.post("/{request_id}/decision", response_model=LeaveRequestResponse)
async def decide_leave_request(
    request_id: uuid.UUID,
    payload: DecisionPayload,
    session: SessionDep,
    auth: ApproverDep,
) -> LeaveRequestResponse:
    """Approve or reject a pending leave request (manager or admin)."""
    return await request_service.decide_leave_request(
        session, request_id, auth.user_id, payload.decision, comments=payload.comments
    )


@requests_router.post("/{request_id}/cancel", response_model=LeaveRequestResponse)
async def cancel_leave_request(
    request_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
    payload: CancelPayload | None = None,
) -> LeaveRequestResponse:
    """Cancel a leave request, optionally with a reason. The owner, a manager or an admin may cancel."""
    leave_request = await request_service.get_request_or_404(session, request_id)
    ensure_self_or_approver(auth, leave_request.employee_id)
    return await request_service.cancel_leave_request(
        session, request_id, auth.user_id, comments=payload.comments if payload else None
    )


@requests_router.patch("/{request_id}", response_model=LeaveRequestResponse)
async def reschedule_leave_request(
    request_id: uuid.UUID,
    payload: ReschedulePayload,
    session: SessionDep,
    auth: AuthDep,
) -> LeaveRequestResponse:
    """Move a pending leave request to new dates."""
    leave_request = await request_service.get_request_or_404(session, request_id)
    ensure_self_or_approver(auth, leave_request.employee_id)
    return await request_service.reschedule_leave_request(
        session,
        request_id,
        auth.user_id,
        payload.start_date,
        payload.end_date,
        comments=payload.comments,
    )
