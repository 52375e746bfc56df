from sqlmodel import SQLModel

from leave_ledger.models.audit import AuditLog
from leave_ledger.models.balance import LeaveBalance, LeaveReservation
from leave_ledger.models.base import TimestampMixin, UpdatedAtMixin, UUIDBase
from leave_ledger.models.carry_forward import CarryForwardExpiry, CarryForwardRecord
from leave_ledger.models.enums import (
    AuditAction,
    AuditEntityType,
    Decision,
    LeaveRequestStatus,
    RequestAction,
    ReservationStatus,
)
from leave_ledger.models.leave_type import LeaveType
from leave_ledger.models.request import LeaveRequest

__all__ = [
    "AuditAction",
    "AuditEntityType",
    "AuditLog",
    "CarryForwardExpiry",
    "CarryForwardRecord",
    "Decision",
    "LeaveBalance",
    "LeaveRequest",
    "LeaveRequestStatus",
    "LeaveReservation",
    "LeaveType",
    "RequestAction",
    "ReservationStatus",
    "SQLModel",
    "TimestampMixin",
    "UUIDBase",
    "UpdatedAtMixin",
]
