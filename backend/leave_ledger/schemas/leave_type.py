# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, Field

# ---------------------------------------------------------------------------
# Settings sub-schemas
# ---------------------------------------------------------------------------


class CarryForwardPolicy(BaseModel):
    """How many unused days move into the next year, and for how long they last."""

    max_days: int = Field(ge=0)
    expiry_months: int | None = Field(default=None, gt=0, le=120)


# ---------------------------------------------------------------------------
# Request payloads
# ---------------------------------------------------------------------------


class CreateLeaveTypeRequest(BaseModel):
    """Request body for registering a leave type."""

    name: str = Field(min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=1000)
    default_annual_days: int = Field(default=0, ge=0, le=366)
    carry_forward_policy: CarryForwardPolicy | None = None
    active: bool = True


class UpdateLeaveTypeRequest(BaseModel):
    """Partial update. Omitted fields are left alone.

    ``default_annual_days`` and ``carry_forward_policy`` are frozen once any
    balance references the type.
    """

    name: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=1000)
    default_annual_days: int | None = Field(default=None, ge=0, le=366)
    carry_forward_policy: CarryForwardPolicy | None = None


class SetLeaveTypeActiveRequest(BaseModel):
    active: bool


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class LeaveTypeResponse(BaseModel):
    """Response schema for a single leave type."""

    id: uuid.UUID
    name: str
    description: str | None
    active: bool
    default_annual_days: int
    carry_forward_policy: CarryForwardPolicy | None
    created_at: datetime
    updated_at: datetime


class LeaveTypeListResponse(BaseModel):
    """Paginated list of leave types."""

    items: list[LeaveTypeResponse]
    total: int
