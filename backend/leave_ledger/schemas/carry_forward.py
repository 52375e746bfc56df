# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Self

from pydantic import BaseModel, Field, model_validator


class RunCarryForwardRequest(BaseModel):
    """Request body for carrying one balance into the next year."""

    employee_id: uuid.UUID
    leave_type_id: uuid.UUID
    from_year: int = Field(ge=2000, le=2100)
    to_year: int = Field(ge=2000, le=2100)

    @model_validator(mode="after")
    def _validate_years(self) -> Self:
        if self.to_year != self.from_year + 1:
            msg = "to_year must be the year after from_year"
            raise ValueError(msg)
        return self


class YearEndRequest(BaseModel):
    """Request body for the year-end batch over every balance of ``from_year``."""

    from_year: int = Field(ge=2000, le=2100)


class ExpirySweepRequest(BaseModel):
    """Request body for the carried-in expiry sweep. Defaults to today."""

    as_of: date | None = None


class CarryForwardRecordResponse(BaseModel):
    """A single carry-forward audit record."""

    id: uuid.UUID
    employee_id: uuid.UUID
    leave_type_id: uuid.UUID
    from_year: int
    to_year: int
    days_transferred: int
    expires_on: date | None
    created_at: datetime


class CarryForwardResponse(BaseModel):
    """Outcome of ``run_carry_forward``. ``applied`` is False for a no-op re-run."""

    applied: bool
    record: CarryForwardRecordResponse


class CarryForwardRecordListResponse(BaseModel):
    items: list[CarryForwardRecordResponse]
    total: int


class BatchRunResponse(BaseModel):
    """Counts from a year-end or expiry batch."""

    processed: int
    skipped: int
    errors: int
