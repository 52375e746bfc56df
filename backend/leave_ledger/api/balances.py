# ruff: noqa: B008, TC001, TC003
from __future__ import annotations

import uuid

from fastapi import APIRouter, Query, status

from leave_ledger.api.deps import AdminDep, AuthDep, ensure_self_or_approver
from leave_ledger.db import SessionDep
from leave_ledger.schemas.balance import (
    AllocateBalanceRequest,
    BalanceSnapshot,
    BalanceSummaryResponse,
    InitializeYearRequest,
    InitializeYearResponse,
)
from leave_ledger.schemas.carry_forward import CarryForwardRecordListResponse
from leave_ledger.services import balance as balance_service
from leave_ledger.services import projection

employee_balance_router = APIRouter(prefix="/employees/{employee_id}", tags=["balances"])

allocation_router = APIRouter(prefix="/balances", tags=["balances"])


@employee_balance_router.get("/balances", response_model=BalanceSummaryResponse)
async def get_employee_balance_summary(
    employee_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
    year: int = Query(ge=2000, le=2100),
) -> BalanceSummaryResponse:
    """Balances of every leave type for an employee and year."""
    ensure_self_or_approver(auth, employee_id)
    return await projection.get_employee_balance_summary(session, employee_id, year)


@employee_balance_router.get("/balances/{leave_type_id}/{year}", response_model=BalanceSnapshot)
async def get_balance(
    employee_id: uuid.UUID,
    leave_type_id: uuid.UUID,
    year: int,
    session: SessionDep,
    auth: AuthDep,
) -> BalanceSnapshot:
    """Balance for one employee, leave type and year."""
    ensure_self_or_approver(auth, employee_id)
    return await projection.get_balance(session, employee_id, leave_type_id, year)


@employee_balance_router.get("/carry-forwards", response_model=CarryForwardRecordListResponse)
async def list_carry_forward_records(
    employee_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
    leave_type_id: uuid.UUID | None = Query(default=None),
) -> CarryForwardRecordListResponse:
    """Carry-forward history for an employee."""
    ensure_self_or_approver(auth, employee_id)
    return await projection.list_carry_forward_records(session, employee_id, leave_type_id)


@allocation_router.post("/allocations", response_model=BalanceSnapshot, status_code=status.HTTP_201_CREATED)
async def allocate_balance(
    payload: AllocateBalanceRequest,
    session: SessionDep,
    auth: AdminDep,
) -> BalanceSnapshot:
    """Grant days to an employee's balance (admin only)."""
    return await balance_service.allocate_initial_balance(
        session,
        auth.user_id,
        payload.employee_id,
        payload.leave_type_id,
        payload.year,
        payload.days,
    )


@allocation_router.post("/initialize-year", response_model=InitializeYearResponse)
async def initialize_year(
    payload: InitializeYearRequest,
    session: SessionDep,
    auth: AdminDep,
) -> InitializeYearResponse:
    """Allocate every active leave type's default days to every employee (admin only)."""
    return await balance_service.initialize_year_balances(session, auth.user_id, payload.year)
