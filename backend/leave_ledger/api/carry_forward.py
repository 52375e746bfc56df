# ruff: noqa: B008, TC001, TC003
"""API endpoints for carry-forward and the carried-in expiry sweep."""

from __future__ import annotations

from fastapi import APIRouter

from leave_ledger.api.deps import AdminDep
from leave_ledger.db import SessionDep
from leave_ledger.schemas.carry_forward import (
    BatchRunResponse,
    CarryForwardResponse,
    ExpirySweepRequest,
    RunCarryForwardRequest,
    YearEndRequest,
)
from leave_ledger.services.carry_forward import (
    run_carry_forward,
    run_carry_forward_expiry,
    run_year_end_carry_forward,
)

carry_forward_router = APIRouter(prefix="/carry-forward", tags=["carry-forward"])


@carry_forward_router.post("", response_model=CarryForwardResponse)
async def carry_forward_balance(
    payload: RunCarryForwardRequest,
    session: SessionDep,
    auth: AdminDep,
) -> CarryForwardResponse:
    """Carry one balance into the next year (admin only).

    Re-running for the same employee, leave type and years returns the
    original record with ``applied`` false.
    """
    return await run_carry_forward(
        session,
        payload.employee_id,
        payload.leave_type_id,
        payload.from_year,
        payload.to_year,
        actor_id=auth.user_id,
    )


@carry_forward_router.post("/year-end", response_model=BatchRunResponse)
async def trigger_year_end(
    payload: YearEndRequest,
    session: SessionDep,
    auth: AdminDep,
) -> BatchRunResponse:
    """Carry every balance of ``from_year`` forward (admin only). Normally run by the worker on Jan 1."""
    result = await run_year_end_carry_forward(session, payload.from_year, actor_id=auth.user_id)
    return result.to_response()


@carry_forward_router.post("/expire", response_model=BatchRunResponse)
async def trigger_expiry(
    payload: ExpirySweepRequest,
    session: SessionDep,
    auth: AdminDep,
) -> BatchRunResponse:
    """Expire lapsed carried-in days as of a date (admin only). Normally run daily by the worker."""
    result = await run_carry_forward_expiry(session, payload.as_of, actor_id=auth.user_id)
    return result.to_response()
