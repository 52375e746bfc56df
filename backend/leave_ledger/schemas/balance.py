# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, Field

# ---------------------------------------------------------------------------
# Balance response schemas
# ---------------------------------------------------------------------------


class BalanceSnapshot(BaseModel):
    """Read-only view of one ledger row at a single committed version."""

    employee_id: uuid.UUID
    leave_type_id: uuid.UUID
    year: int
    allocated: int
    carried_in: int
    used: int
    pending: int
    available: int
    version: int  # 0 when the row has never been created
    updated_at: datetime | None = None


class BalanceSummaryItem(BaseModel):
    """Balance for one leave type inside an employee summary."""

    leave_type_id: uuid.UUID
    leave_type_name: str
    active: bool
    allocated: int
    carried_in: int
    used: int
    pending: int
    available: int


class BalanceSummaryResponse(BaseModel):
    """Every leave type's balance for an employee and year."""

    employee_id: uuid.UUID
    year: int
    items: list[BalanceSummaryItem]
    total: int


# ---------------------------------------------------------------------------
# Allocation request schemas
# ---------------------------------------------------------------------------


class AllocateBalanceRequest(BaseModel):
    """Request body for granting days to an employee's balance."""

    employee_id: uuid.UUID
    leave_type_id: uuid.UUID
    year: int = Field(ge=2000, le=2100)
    days: int = Field(gt=0, description="Whole working days to add to the allocation")


class InitializeYearRequest(BaseModel):
    """Request body for allocating every active type's default days for a year."""

    year: int = Field(ge=2000, le=2100)


class InitializeYearResponse(BaseModel):
    """Outcome of a yearly initialisation run."""

    year: int
    created: int
    skipped: int
    errors: int = 0
