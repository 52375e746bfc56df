# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import date

from pydantic import BaseModel, Field


class UpsertEmployeeRequest(BaseModel):
    """Request body for creating or updating an employee in the stub directory."""

    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    email: str = Field(min_length=3, max_length=255)
    manager_id: uuid.UUID | None = None
    hire_date: date | None = None
    active: bool = True


class EmployeeResponse(BaseModel):
    """Response schema for employee info."""

    id: uuid.UUID
    first_name: str
    last_name: str
    email: str
    manager_id: uuid.UUID | None
    hire_date: date | None
    active: bool


class EmployeeListResponse(BaseModel):
    items: list[EmployeeResponse]
    total: int
