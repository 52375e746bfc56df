# ruff: noqa: TC003
"""Leave request workflow.

A request owns one reservation per calendar year it spans. Every transition
applies its ledger effect to each reservation before the status changes; if
a later year fails, the years already applied are undone with their inverse
operation and ``PartialFailureError`` is raised with the status untouched.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import date
from functools import partial
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlmodel import col

from leave_ledger.exceptions import (
    AppError,
    ConcurrentModificationError,
    InsufficientBalanceError,
    InvalidAmountError,
    InvalidDateRangeError,
    InvalidTransitionError,
    LeaveTypeInactiveError,
    OverlappingRequestError,
    PartialFailureError,
    UnknownRequestError,
)
from leave_ledger.locks import get_ledger_locks
from leave_ledger.models.base import now_utc
from leave_ledger.models.enums import (
    AuditAction,
    AuditEntityType,
    Decision,
    LeaveRequestStatus,
    RequestAction,
    ReservationStatus,
)
from leave_ledger.models.request import LeaveRequest
from leave_ledger.schemas.request import LeaveRequestResponse, ReservationResponse
from leave_ledger.services import ledger
from leave_ledger.services.audit import model_to_audit_dict, write_audit_log
from leave_ledger.services.calendar import working_days_by_year
from leave_ledger.services.leave_type import get_leave_type_or_404
from leave_ledger.services.ledger import BalanceKey

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Hashable

    from sqlalchemy.ext.asyncio import AsyncSession

    from leave_ledger.models.balance import LeaveReservation

logger = logging.getLogger(__name__)

_TRANSITIONS: dict[tuple[LeaveRequestStatus, RequestAction], LeaveRequestStatus] = {
    (LeaveRequestStatus.PENDING, RequestAction.APPROVE): LeaveRequestStatus.APPROVED,
    (LeaveRequestStatus.PENDING, RequestAction.REJECT): LeaveRequestStatus.REJECTED,
    (LeaveRequestStatus.PENDING, RequestAction.CANCEL): LeaveRequestStatus.CANCELLED,
    (LeaveRequestStatus.APPROVED, RequestAction.CANCEL): LeaveRequestStatus.CANCELLED,
    (LeaveRequestStatus.PENDING, RequestAction.RESCHEDULE): LeaveRequestStatus.PENDING,
}

_ACTIVE_STATUSES = [LeaveRequestStatus.PENDING.value, LeaveRequestStatus.APPROVED.value]


# ---------------------------------------------------------------------------
# Response builders
# ---------------------------------------------------------------------------


def build_request_response(
    request: LeaveRequest,
    reservations: list[LeaveReservation] | None = None,
) -> LeaveRequestResponse:
    """Map a request model (and its reservations) to its response schema."""
    return LeaveRequestResponse(
        id=request.id,
        employee_id=request.employee_id,
        leave_type_id=request.leave_type_id,
        start_date=request.start_date,
        end_date=request.end_date,
        requested_days=request.requested_days,
        status=LeaveRequestStatus(request.status),
        comments=request.comments,
        decided_by=request.decided_by,
        decided_at=request.decided_at,
        decision_comments=request.decision_comments,
        cancelled_by=request.cancelled_by,
        cancelled_at=request.cancelled_at,
        cancellation_comments=request.cancellation_comments,
        idempotency_key=request.idempotency_key,
        reservations=[
            ReservationResponse(id=r.id, year=r.year, days=r.days, status=ReservationStatus(r.status))
            for r in reservations or []
        ],
        created_at=request.created_at,
    )


async def load_request_response(session: AsyncSession, request: LeaveRequest) -> LeaveRequestResponse:
    reservations = await ledger.list_reservations(session, request.id)
    return build_request_response(request, reservations)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


async def get_request_or_404(
    session: AsyncSession,
    request_id: uuid.UUID,
    *,
    refresh: bool = False,
) -> LeaveRequest:
    """Fetch a request by ID. Raises UnknownRequest if not found."""
    query = select(LeaveRequest).where(col(LeaveRequest.id) == request_id)
    if refresh:
        query = query.execution_options(populate_existing=True)
    result = await session.execute(query)
    request = result.scalar_one_or_none()
    if request is None:
        raise UnknownRequestError(f"Leave request {request_id} not found")
    return request


def _next_status(request: LeaveRequest, action: RequestAction) -> LeaveRequestStatus:
    current = LeaveRequestStatus(request.status)
    target = _TRANSITIONS.get((current, action))
    if target is None:
        raise InvalidTransitionError(f"Cannot {action} a leave request that is {current}")
    return target


def _employee_lock(employee_id: uuid.UUID) -> Hashable:
    return ("employee", employee_id)


def _balance_keys(request: LeaveRequest) -> set[BalanceKey]:
    return {
        BalanceKey(request.employee_id, request.leave_type_id, year)
        for year in range(request.start_date.year, request.end_date.year + 1)
    }


async def _reload_locked(session: AsyncSession, request: LeaveRequest, held: set[BalanceKey]) -> LeaveRequest:
    """Re-read the request once its locks are held.

    The lock set was derived from a read taken before locking; if a
    reschedule moved the request to other years in between, give up.
    """
    request = await get_request_or_404(session, request.id, refresh=True)
    if not _balance_keys(request) <= held:
        raise ConcurrentModificationError("Leave request was rescheduled concurrently; retry")
    return request


async def _find_by_idempotency_key(
    session: AsyncSession,
    employee_id: uuid.UUID,
    idempotency_key: str,
) -> LeaveRequest | None:
    result = await session.execute(
        select(LeaveRequest).where(
            col(LeaveRequest.employee_id) == employee_id,
            col(LeaveRequest.idempotency_key) == idempotency_key,
        )
    )
    return result.scalar_one_or_none()


async def _check_overlap(
    session: AsyncSession,
    employee_id: uuid.UUID,
    start_date: date,
    end_date: date,
    exclude_request_id: uuid.UUID | None = None,
) -> None:
    """Raise OverlappingRequest if a pending or approved request shares a day.

    Ranges are closed: [a, b] and [c, d] overlap when a <= d and c <= b.
    """
    query = select(LeaveRequest).where(
        col(LeaveRequest.employee_id) == employee_id,
        col(LeaveRequest.status).in_(_ACTIVE_STATUSES),
        col(LeaveRequest.start_date) <= end_date,
        col(LeaveRequest.end_date) >= start_date,
    )
    if exclude_request_id is not None:
        query = query.where(col(LeaveRequest.id) != exclude_request_id)

    result = await session.execute(query.limit(1))
    existing = result.scalars().first()
    if existing is not None:
        raise OverlappingRequestError(
            f"Requested dates overlap leave request {existing.id} "
            f"({existing.start_date.isoformat()} to {existing.end_date.isoformat()}, {existing.status})"
        )


async def _working_days(start_date: date, end_date: date) -> dict[int, int]:
    if start_date > end_date:
        raise InvalidDateRangeError("start_date must be on or before end_date")
    days_by_year = await working_days_by_year(start_date, end_date)
    if sum(days_by_year.values()) <= 0:
        raise InvalidAmountError(
            f"No working days between {start_date.isoformat()} and {end_date.isoformat()}"
        )
    return days_by_year


# ---------------------------------------------------------------------------
# Saga
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class _Step:
    """One ledger operation and the inverse that undoes it."""

    description: str
    forward: Callable[[], Awaitable[LeaveReservation]]
    inverse: Callable[[AsyncSession, uuid.UUID], Awaitable[LeaveReservation]]


async def _run_saga(session: AsyncSession, request_id: uuid.UUID, steps: list[_Step]) -> list[LeaveReservation]:
    """Apply ``steps`` in order, undoing the applied ones in reverse on failure.

    A failure on the first step propagates unchanged. After compensation an
    ``InsufficientBalanceError`` propagates as-is; any other failure becomes
    a ``PartialFailureError``.
    """
    done: list[tuple[_Step, LeaveReservation]] = []
    for step in steps:
        try:
            result = await step.forward()
        except AppError as exc:
            if not done:
                raise
            await _compensate(session, request_id, done, exc)
            if isinstance(exc, InsufficientBalanceError):
                raise
            raise PartialFailureError(
                f"{step.description} failed ({exc.code}: {exc.message}); "
                f"{len(done)} earlier step(s) were undone and the request is unchanged",
                cause=exc,
            ) from exc
        done.append((step, result))
    return [result for _, result in done]


async def _compensate(
    session: AsyncSession,
    request_id: uuid.UUID,
    done: list[tuple[_Step, LeaveReservation]],
    cause: AppError,
) -> None:
    for step, reservation in reversed(done):
        logger.warning(
            "Undoing %s for leave request %s after %s: %s",
            step.description,
            request_id,
            cause.code,
            cause.message,
        )
        try:
            await step.inverse(session, reservation.id)
        except AppError as exc:
            logger.exception("Could not undo %s for leave request %s", step.description, request_id)
            raise PartialFailureError(
                f"{step.description} could not be undone ({exc.code}: {exc.message})",
                cause=exc,
                compensated=False,
            ) from exc


async def _run_transition(
    session: AsyncSession,
    request: LeaveRequest,
    actor_id: uuid.UUID,
    action: RequestAction,
    steps: list[_Step],
) -> list[LeaveReservation]:
    """Run a transition's saga, settling the transaction if it fails.

    A compensated partial failure is committed together with an audit entry
    describing it. Every other failure rolls back.
    """
    try:
        return await _run_saga(session, request.id, steps)
    except PartialFailureError as exc:
        if not exc.compensated:
            await session.rollback()
            raise
        cause = exc.cause
        await write_audit_log(
            session,
            actor_id=actor_id,
            entity_type=AuditEntityType.REQUEST,
            entity_id=request.id,
            action=AuditAction.COMPENSATE,
            after_json={
                "attempted": action.value,
                "error": cause.code if cause is not None else exc.code,
                "detail": exc.message,
            },
        )
        await session.commit()
        raise
    except AppError:
        await session.rollback()
        raise


def _settle_steps(
    session: AsyncSession,
    request: LeaveRequest,
    action: RequestAction,
    reservations: list[LeaveReservation],
) -> list[_Step]:
    """Per-reservation steps for approve, reject and cancel."""
    if action is RequestAction.APPROVE:
        forward, inverse, label = ledger.commit, ledger.reopen_reservation, "commit"
    elif request.status == LeaveRequestStatus.APPROVED:
        forward, inverse, label = ledger.revert_reservation, ledger.reapply_reservation, "revert"
    else:
        forward, inverse, label = ledger.release, ledger.rehold_reservation, "release"
    return [
        _Step(f"{label} of {r.days} day(s) in {r.year}", partial(forward, session, r.id), inverse)
        for r in reservations
    ]


_LIVE_RESERVATIONS: dict[tuple[LeaveRequestStatus, RequestAction], list[ReservationStatus]] = {
    # Includes the target state so a retried transition is a no-op per handle.
    (LeaveRequestStatus.PENDING, RequestAction.APPROVE): [ReservationStatus.HELD, ReservationStatus.COMMITTED],
    (LeaveRequestStatus.PENDING, RequestAction.REJECT): [ReservationStatus.HELD, ReservationStatus.RELEASED],
    (LeaveRequestStatus.PENDING, RequestAction.CANCEL): [ReservationStatus.HELD, ReservationStatus.RELEASED],
    (LeaveRequestStatus.APPROVED, RequestAction.CANCEL): [ReservationStatus.COMMITTED, ReservationStatus.REVERTED],
}


async def _settle(
    session: AsyncSession,
    request: LeaveRequest,
    actor_id: uuid.UUID,
    action: RequestAction,
) -> None:
    statuses = _LIVE_RESERVATIONS[(LeaveRequestStatus(request.status), action)]
    reservations = await ledger.list_reservations(session, request.id, statuses)
    await _run_transition(session, request, actor_id, action, _settle_steps(session, request, action, reservations))


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def submit_leave_request(
    session: AsyncSession,
    employee_id: uuid.UUID,
    leave_type_id: uuid.UUID,
    start_date: date,
    end_date: date,
    comments: str | None = None,
    idempotency_key: str | None = None,
) -> LeaveRequestResponse:
    """Submit a leave request, reserving its working days in every year it spans.

    Flow:
    1. Validate the range and the leave type
    2. Count working days per year (calendar collaborator)
    3. Lock the employee and every balance key touched
    4. Reject overlaps with pending/approved requests
    5. Create the request (pending) and reserve each year
    6. Audit and commit
    """
    if idempotency_key is not None:
        existing = await _find_by_idempotency_key(session, employee_id, idempotency_key)
        if existing is not None:
            return await load_request_response(session, existing)

    if start_date > end_date:
        raise InvalidDateRangeError("start_date must be on or before end_date")
    leave_type = await get_leave_type_or_404(session, leave_type_id)
    if not leave_type.active:
        raise LeaveTypeInactiveError(f"Leave type {leave_type.name} is inactive")

    days_by_year = await _working_days(start_date, end_date)
    keys = {year: BalanceKey(employee_id, leave_type_id, year) for year in days_by_year}

    async with get_ledger_locks().hold(_employee_lock(employee_id), *keys.values()):
        # A duplicate may have committed while this call waited for the lock.
        if idempotency_key is not None:
            existing = await _find_by_idempotency_key(session, employee_id, idempotency_key)
            if existing is not None:
                return await load_request_response(session, existing)

        await _check_overlap(session, employee_id, start_date, end_date)

        leave_request = LeaveRequest(
            employee_id=employee_id,
            leave_type_id=leave_type_id,
            start_date=start_date,
            end_date=end_date,
            requested_days=sum(days_by_year.values()),
            status=LeaveRequestStatus.PENDING.value,
            comments=comments,
            idempotency_key=idempotency_key,
        )
        session.add(leave_request)
        try:
            await session.flush()
        except IntegrityError:
            await session.rollback()
            if idempotency_key is not None:
                existing = await _find_by_idempotency_key(session, employee_id, idempotency_key)
                if existing is not None:
                    return await load_request_response(session, existing)
            raise AppError("Duplicate leave request", status_code=409) from None

        steps = [
            _Step(
                f"reservation of {days} day(s) in {year}",
                partial(ledger.reserve, session, keys[year], days, leave_request.id),
                ledger.release,
            )
            for year, days in sorted(days_by_year.items())
        ]
        try:
            reservations = await _run_saga(session, leave_request.id, steps)
        except AppError:
            # Nothing of a failed submission is kept, not even the request row.
            await session.rollback()
            raise

        await write_audit_log(
            session,
            actor_id=employee_id,
            entity_type=AuditEntityType.REQUEST,
            entity_id=leave_request.id,
            action=AuditAction.SUBMIT,
            after_json={
                **model_to_audit_dict(leave_request),
                "reservations": {str(r.year): r.days for r in reservations},
            },
        )
        await session.commit()

    await session.refresh(leave_request)
    logger.info(
        "Leave request %s submitted for employee %s: %d day(s) over %d year(s)",
        leave_request.id,
        employee_id,
        leave_request.requested_days,
        len(reservations),
    )
    return build_request_response(leave_request, reservations)


async def decide_leave_request(
    session: AsyncSession,
    request_id: uuid.UUID,
    approver_id: uuid.UUID,
    decision: Decision,
    comments: str | None = None,
) -> LeaveRequestResponse:
    """Approve (commit every reservation) or reject (release every reservation)."""
    action = RequestAction.APPROVE if decision is Decision.APPROVE else RequestAction.REJECT
    leave_request = await get_request_or_404(session, request_id)
    keys = _balance_keys(leave_request)

    async with get_ledger_locks().hold(_employee_lock(leave_request.employee_id), *keys):
        leave_request = await _reload_locked(session, leave_request, keys)
        target = _next_status(leave_request, action)
        before_dict = model_to_audit_dict(leave_request)

        await _settle(session, leave_request, approver_id, action)

        leave_request.status = target.value
        leave_request.decided_by = approver_id
        leave_request.decided_at = now_utc()
        leave_request.decision_comments = comments
        await session.flush()

        await write_audit_log(
            session,
            actor_id=approver_id,
            entity_type=AuditEntityType.REQUEST,
            entity_id=leave_request.id,
            action=AuditAction.APPROVE if action is RequestAction.APPROVE else AuditAction.REJECT,
            before_json=before_dict,
            after_json=model_to_audit_dict(leave_request),
        )
        await session.commit()

    await session.refresh(leave_request)
    logger.info("Leave request %s %s by %s", leave_request.id, target, approver_id)
    return await load_request_response(session, leave_request)


async def cancel_leave_request(
    session: AsyncSession,
    request_id: uuid.UUID,
    actor_id: uuid.UUID,
    today: date | None = None,
    comments: str | None = None,
) -> LeaveRequestResponse:
    """Cancel a pending request, or an approved one whose leave has not started.

    Pending requests release their reservations; approved ones give the used
    days back. Approved leave starting on or before ``today`` cannot be
    cancelled. ``comments`` records why the leave was called off.
    """
    today = today or date.today()
    leave_request = await get_request_or_404(session, request_id)
    keys = _balance_keys(leave_request)

    async with get_ledger_locks().hold(_employee_lock(leave_request.employee_id), *keys):
        leave_request = await _reload_locked(session, leave_request, keys)
        target = _next_status(leave_request, RequestAction.CANCEL)
        if leave_request.status == LeaveRequestStatus.APPROVED and leave_request.start_date <= today:
            raise InvalidTransitionError(
                f"Approved leave starting {leave_request.start_date.isoformat()} can no longer be cancelled"
            )
        before_dict = model_to_audit_dict(leave_request)

        await _settle(session, leave_request, actor_id, RequestAction.CANCEL)

        leave_request.status = target.value
        leave_request.cancelled_by = actor_id
        leave_request.cancelled_at = now_utc()
        leave_request.cancellation_comments = comments
        await session.flush()

        await write_audit_log(
            session,
            actor_id=actor_id,
            entity_type=AuditEntityType.REQUEST,
            entity_id=leave_request.id,
            action=AuditAction.CANCEL,
            before_json=before_dict,
            after_json=model_to_audit_dict(leave_request),
        )
        await session.commit()

    await session.refresh(leave_request)
    logger.info("Leave request %s cancelled by %s", leave_request.id, actor_id)
    return await load_request_response(session, leave_request)


async def reschedule_leave_request(
    session: AsyncSession,
    request_id: uuid.UUID,
    actor_id: uuid.UUID,
    start_date: date,
    end_date: date,
    comments: str | None = None,
) -> LeaveRequestResponse:
    """Move a pending request to new dates.

    The old reservations are released and the new range reserved as one
    saga; if any step fails the request keeps its old dates and holds.
    """
    leave_request = await get_request_or_404(session, request_id)
    days_by_year = await _working_days(start_date, end_date)
    new_keys = {
        year: BalanceKey(leave_request.employee_id, leave_request.leave_type_id, year) for year in days_by_year
    }
    keys = _balance_keys(leave_request) | set(new_keys.values())

    async with get_ledger_locks().hold(_employee_lock(leave_request.employee_id), *keys):
        leave_request = await _reload_locked(session, leave_request, keys)
        _next_status(leave_request, RequestAction.RESCHEDULE)
        leave_type = await get_leave_type_or_404(session, leave_request.leave_type_id)
        if not leave_type.active:
            raise LeaveTypeInactiveError(f"Leave type {leave_type.name} is inactive")
        await _check_overlap(
            session, leave_request.employee_id, start_date, end_date, exclude_request_id=leave_request.id
        )
        before_dict = model_to_audit_dict(leave_request)

        held = await ledger.list_reservations(session, leave_request.id, [ReservationStatus.HELD])
        steps = [
            _Step(
                f"release of {r.days} day(s) in {r.year}",
                partial(ledger.release, session, r.id),
                ledger.rehold_reservation,
            )
            for r in held
        ]
        steps += [
            _Step(
                f"reservation of {days} day(s) in {year}",
                partial(ledger.reserve, session, new_keys[year], days, leave_request.id),
                ledger.release,
            )
            for year, days in sorted(days_by_year.items())
        ]
        await _run_transition(session, leave_request, actor_id, RequestAction.RESCHEDULE, steps)

        leave_request.start_date = start_date
        leave_request.end_date = end_date
        leave_request.requested_days = sum(days_by_year.values())
        if comments is not None:
            leave_request.comments = comments
        await session.flush()

        await write_audit_log(
            session,
            actor_id=actor_id,
            entity_type=AuditEntityType.REQUEST,
            entity_id=leave_request.id,
            action=AuditAction.RESCHEDULE,
            before_json=before_dict,
            after_json=model_to_audit_dict(leave_request),
        )
        await session.commit()

    await session.refresh(leave_request)
    return await load_request_response(session, leave_request)
