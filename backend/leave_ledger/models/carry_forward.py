# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import date

import sqlalchemy as sa
from sqlmodel import Field

from leave_ledger.models.base import TimestampMixin, UUIDBase


class CarryForwardRecord(UUIDBase, TimestampMixin, table=True):
    """Append-only record of days moved from one year's balance into the next."""

    __tablename__ = "carry_forward_record"
    __table_args__ = (
        sa.UniqueConstraint(
            "employee_id", "leave_type_id", "from_year", "to_year", name="uq_carry_forward_idempotency"
        ),
    )

    employee_id: uuid.UUID = Field(index=True)
    leave_type_id: uuid.UUID = Field(
        sa_column=sa.Column(sa.Uuid, sa.ForeignKey("leave_type.id"), nullable=False, index=True),
    )
    from_year: int
    to_year: int
    days_transferred: int
    expires_on: date | None = Field(default=None, index=True)


class CarryForwardExpiry(UUIDBase, TimestampMixin, table=True):
    """Append-only marker that a record's unused carried-in days have lapsed."""

    __tablename__ = "carry_forward_expiry"
    __table_args__ = (sa.UniqueConstraint("record_id", name="uq_carry_forward_expiry_record"),)

    record_id: uuid.UUID = Field(
        sa_column=sa.Column(sa.Uuid, sa.ForeignKey("carry_forward_record.id"), nullable=False),
    )
    days_expired: int
