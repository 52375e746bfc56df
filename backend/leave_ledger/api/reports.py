# ruff: noqa: B008, TC001, TC003
from __future__ import annotations

import uuid

from fastapi import APIRouter, Query

from leave_ledger.api.deps import AdminDep
from leave_ledger.db import SessionDep
from leave_ledger.models.enums import AuditAction, AuditEntityType
from leave_ledger.schemas.report import AuditLogListResponse
from leave_ledger.services import projection

reports_router = APIRouter(tags=["reports"])


@reports_router.get(
    "/audit-log",
    response_model=AuditLogListResponse,
)
async def query_audit_log(
    session: SessionDep,
    auth: AdminDep,
    entity_type: AuditEntityType | None = Query(default=None),
    entity_id: uuid.UUID | None = Query(default=None),
    action: AuditAction | None = Query(default=None),
    actor_id: uuid.UUID | None = Query(default=None),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
) -> AuditLogListResponse:
    """Query audit log entries with optional filters (admin only)."""
    return await projection.query_audit_log(
        session,
        entity_type=entity_type.value if entity_type else None,
        entity_id=entity_id,
        action=action.value if action else None,
        actor_id=actor_id,
        offset=offset,
        limit=limit,
    )
