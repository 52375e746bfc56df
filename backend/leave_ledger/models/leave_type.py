from __future__ import annotations

import sqlalchemy as sa
from sqlmodel import Field

from leave_ledger.models.base import TimestampMixin, UpdatedAtMixin, UUIDBase


class LeaveType(UUIDBase, TimestampMixin, UpdatedAtMixin, table=True):
    """A category of leave (sick, casual, earned, ...) and its carry-forward policy.

    A type without ``carry_forward_max_days`` has no carry-forward policy:
    unused days lapse at year end.
    """

    __tablename__ = "leave_type"
    __table_args__ = (sa.UniqueConstraint("name", name="uq_leave_type_name"),)

    name: str = Field(max_length=100)
    description: str | None = Field(default=None, max_length=1000)
    active: bool = Field(default=True, sa_column_kwargs={"server_default": sa.true()})
    default_annual_days: int = Field(default=0, sa_column_kwargs={"server_default": "0"})
    carry_forward_max_days: int | None = None
    carry_forward_expiry_months: int | None = None

    @property
    def has_carry_forward_policy(self) -> bool:
        return self.carry_forward_max_days is not None
