from __future__ import annotations

import enum


class LeaveRequestStatus(enum.StrEnum):
    """State machine for leave requests."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class RequestAction(enum.StrEnum):
    """Actions that move a leave request through its state machine."""

    APPROVE = "approve"
    REJECT = "reject"
    CANCEL = "cancel"
    RESCHEDULE = "reschedule"


class Decision(enum.StrEnum):
    """Outcome an approver may choose for a pending request."""

    APPROVE = "approve"
    REJECT = "reject"


class ReservationStatus(enum.StrEnum):
    """Lifecycle of a single provisional hold on a balance."""

    HELD = "held"
    COMMITTED = "committed"
    RELEASED = "released"
    REVERTED = "reverted"


class AuditEntityType(enum.StrEnum):
    """Entity type recorded in the audit log."""

    LEAVE_TYPE = "leave_type"
    BALANCE = "balance"
    REQUEST = "request"
    CARRY_FORWARD = "carry_forward"


class AuditAction(enum.StrEnum):
    """Action recorded in the audit log."""

    CREATE = "create"
    UPDATE = "update"
    ALLOCATE = "allocate"
    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"
    CANCEL = "cancel"
    RESCHEDULE = "reschedule"
    COMPENSATE = "compensate"
    EXPIRE = "expire"
