# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import date
from typing import Protocol, runtime_checkable

from pydantic import BaseModel


class EmployeeInfo(BaseModel):
    """Employee metadata from the Employee Directory."""

    id: uuid.UUID
    first_name: str
    last_name: str
    email: str
    manager_id: uuid.UUID | None = None
    hire_date: date | None = None
    active: bool = True


@runtime_checkable
class EmployeeService(Protocol):
    """Interface for the Employee Directory."""

    async def get_employee(self, employee_id: uuid.UUID) -> EmployeeInfo | None:
        """Fetch employee metadata. Returns None if not found."""
        ...

    async def list_employees(self) -> list[EmployeeInfo]:
        """List all active employees."""
        ...

    async def list_reports(self, manager_id: uuid.UUID) -> list[EmployeeInfo]:
        """List active employees whose manager is ``manager_id``."""
        ...


class InMemoryEmployeeService:
    """In-memory stub implementation for development."""

    def __init__(self) -> None:
        self._employees: dict[uuid.UUID, EmployeeInfo] = {}

    def seed(self, employee: EmployeeInfo) -> None:
        """Seed an employee for testing."""
        self._employees[employee.id] = employee

    async def get_employee(self, employee_id: uuid.UUID) -> EmployeeInfo | None:
        """Fetch employee metadata. Returns None if not found."""
        return self._employees.get(employee_id)

    async def list_employees(self) -> list[EmployeeInfo]:
        """List all active employees."""
        return [e for e in self._employees.values() if e.active]

    async def list_reports(self, manager_id: uuid.UUID) -> list[EmployeeInfo]:
        """List active employees whose manager is ``manager_id``."""
        return [e for e in self._employees.values() if e.active and e.manager_id == manager_id]


_employee_service: EmployeeService = InMemoryEmployeeService()


def get_employee_service() -> EmployeeService:
    """FastAPI dependency for the Employee Directory."""
    return _employee_service


def set_employee_service(service: EmployeeService) -> None:
    """Override the service (for testing or production wiring)."""
    global _employee_service
    _employee_service = service
