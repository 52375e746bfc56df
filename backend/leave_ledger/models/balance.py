# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import datetime

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from leave_ledger.models.base import TimestampMixin, UpdatedAtMixin, UUIDBase, now_utc


class LeaveBalance(TimestampMixin, UpdatedAtMixin, SQLModel, table=True):
    """Per (employee, leave type, year) ledger row.

    Mutated only through ``leave_ledger.services.ledger``; every write bumps
    ``version`` and is conditional on the version that was read.
    """

    __tablename__ = "leave_balance"
    __table_args__ = (
        sa.PrimaryKeyConstraint("employee_id", "leave_type_id", "year"),
        sa.CheckConstraint("used >= 0", name="ck_balance_used_non_negative"),
        sa.CheckConstraint("pending >= 0", name="ck_balance_pending_non_negative"),
        sa.CheckConstraint(
            "allocated + carried_in - used - pending >= 0",
            name="ck_balance_available_non_negative",
        ),
    )

    employee_id: uuid.UUID = Field(index=True)
    leave_type_id: uuid.UUID = Field(
        sa_column=sa.Column(sa.Uuid, sa.ForeignKey("leave_type.id"), nullable=False, index=True),
    )
    year: int
    allocated: int = Field(default=0, sa_column_kwargs={"server_default": "0"})
    carried_in: int = Field(default=0, sa_column_kwargs={"server_default": "0"})
    used: int = Field(default=0, sa_column_kwargs={"server_default": "0"})
    pending: int = Field(default=0, sa_column_kwargs={"server_default": "0"})
    version: int = Field(default=1, sa_column_kwargs={"server_default": "1"})

    @property
    def available(self) -> int:
        return self.allocated + self.carried_in - self.used - self.pending


class LeaveReservation(UUIDBase, TimestampMixin, table=True):
    """A provisional hold of days on one balance, owned by one leave request.

    The row id is the reservation handle passed to commit/release.
    """

    __tablename__ = "leave_reservation"
    __table_args__ = (
        sa.Index("ix_reservation_balance", "employee_id", "leave_type_id", "year"),
        sa.CheckConstraint("days > 0", name="ck_reservation_days_positive"),
    )

    employee_id: uuid.UUID
    leave_type_id: uuid.UUID
    year: int
    request_id: uuid.UUID = Field(
        sa_column=sa.Column(sa.Uuid, sa.ForeignKey("leave_request.id"), nullable=False, index=True),
    )
    days: int
    status: str = Field(max_length=20)
    resolved_at: datetime | None = Field(default=None, sa_type=sa.DateTime(timezone=True))  # ty: ignore[invalid-argument-type]

    def touch(self) -> None:
        self.resolved_at = now_utc()
