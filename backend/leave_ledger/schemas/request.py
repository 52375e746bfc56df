# ruff: noqa: TC001, TC003
from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Self

from pydantic import BaseModel, Field, model_validator

from leave_ledger.models.enums import Decision, LeaveRequestStatus, ReservationStatus

# ---------------------------------------------------------------------------
# Request payloads
# ---------------------------------------------------------------------------


class SubmitLeaveRequestPayload(BaseModel):
    """Request body for submitting a new leave request."""

    employee_id: uuid.UUID
    leave_type_id: uuid.UUID
    start_date: date
    end_date: date
    comments: str | None = Field(default=None, max_length=2000)
    idempotency_key: str | None = Field(default=None, max_length=255)

    @model_validator(mode="after")
    def _validate_dates(self) -> Self:
        if self.end_date < self.start_date:
            msg = "end_date must be on or after start_date"
            raise ValueError(msg)
        return self


class ReschedulePayload(BaseModel):
    """Request body for moving a pending request to new dates."""

    start_date: date
    end_date: date
    comments: str | None = Field(default=None, max_length=2000)

    @model_validator(mode="after")
    def _validate_dates(self) -> Self:
        if self.end_date < self.start_date:
            msg = "end_date must be on or after start_date"
            raise ValueError(msg)
        return self


class DecisionPayload(BaseModel):
    """Request body for approve/reject decisions."""

    decision: Decision
    comments: str | None = Field(default=None, max_length=2000)


class CancelPayload(BaseModel):
    """Optional request body for cancelling a leave request."""

    comments: str | None = Field(default=None, max_length=2000)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class ReservationResponse(BaseModel):
    """A per-year hold owned by a request."""

    id: uuid.UUID
    year: int
    days: int
    status: ReservationStatus


class LeaveRequestResponse(BaseModel):
    """Response schema for a single leave request."""

    id: uuid.UUID
    employee_id: uuid.UUID
    leave_type_id: uuid.UUID
    start_date: date
    end_date: date
    requested_days: int
    status: LeaveRequestStatus
    comments: str | None
    decided_by: uuid.UUID | None
    decided_at: datetime | None
    decision_comments: str | None
    cancelled_by: uuid.UUID | None
    cancelled_at: datetime | None
    cancellation_comments: str | None
    idempotency_key: str | None
    reservations: list[ReservationResponse] = Field(default_factory=list)
    created_at: datetime


class LeaveRequestListResponse(BaseModel):
    """Paginated list of leave requests."""

    items: list[LeaveRequestResponse]
    total: int
