# ruff: noqa: B008, TC001, TC003
from __future__ import annotations

import uuid

from fastapi import APIRouter, Query, status

from leave_ledger.api.deps import AdminDep, ApproverDep, AuthDep
from leave_ledger.db import SessionDep
from leave_ledger.exceptions import AppError
from leave_ledger.schemas.employee import EmployeeListResponse, EmployeeResponse, UpsertEmployeeRequest
from leave_ledger.schemas.request import LeaveRequestListResponse
from leave_ledger.services import projection
from leave_ledger.services.employee import EmployeeInfo, get_employee_service

employees_router = APIRouter(prefix="/employees", tags=["employees"])

managers_router = APIRouter(prefix="/managers/{manager_id}", tags=["employees"])


def _build_employee_response(employee: EmployeeInfo) -> EmployeeResponse:
    return EmployeeResponse(
        id=employee.id,
        first_name=employee.first_name,
        last_name=employee.last_name,
        email=employee.email,
        manager_id=employee.manager_id,
        hire_date=employee.hire_date,
        active=employee.active,
    )


@employees_router.put(
    "/{employee_id}",
    response_model=EmployeeResponse,
)
async def upsert_employee(
    employee_id: uuid.UUID,
    payload: UpsertEmployeeRequest,
    auth: AdminDep,
) -> EmployeeResponse:
    """Create or update an employee in the stub directory (admin only)."""
    svc = get_employee_service()
    employee = EmployeeInfo(id=employee_id, **payload.model_dump())
    svc.seed(employee)  # ty: ignore[unresolved-attribute]
    return _build_employee_response(employee)


@employees_router.get(
    "/{employee_id}",
    response_model=EmployeeResponse,
)
async def get_employee(
    employee_id: uuid.UUID,
    auth: AuthDep,
) -> EmployeeResponse:
    """Get employee info from the directory."""
    employee = await get_employee_service().get_employee(employee_id)
    if employee is None:
        raise AppError("Employee not found", status_code=status.HTTP_404_NOT_FOUND)
    return _build_employee_response(employee)


@employees_router.get(
    "",
    response_model=EmployeeListResponse,
)
async def list_employees(
    auth: AuthDep,
) -> EmployeeListResponse:
    """List all active employees in the directory."""
    employees = await get_employee_service().list_employees()
    items = [_build_employee_response(e) for e in employees]
    return EmployeeListResponse(items=items, total=len(items))


@managers_router.get(
    "/pending-requests",
    response_model=LeaveRequestListResponse,
)
async def list_pending_requests(
    manager_id: uuid.UUID,
    session: SessionDep,
    auth: ApproverDep,
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
) -> LeaveRequestListResponse:
    """Pending requests of a manager's direct reports, earliest start first."""
    if auth.user_id != manager_id and not auth.is_admin:
        raise AppError("Managers may only view their own team", status_code=status.HTTP_403_FORBIDDEN)
    return await projection.list_pending_requests_for_manager(session, manager_id, offset, limit)
