from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response schema."""

    error: str
    detail: str | None = None
    status_code: int


class AppError(Exception):
    """Base application exception."""

    code = "AppError"
    default_status = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.message = message
        self.status_code = status_code if status_code is not None else self.default_status
        super().__init__(self.message)


# ---------------------------------------------------------------------------
# Ledger and workflow failures
# ---------------------------------------------------------------------------


class InvalidAmountError(AppError):
    """A day amount was non-positive or exceeded what the balance allows."""

    code = "InvalidAmount"
    default_status = status.HTTP_400_BAD_REQUEST


class InvalidDateRangeError(AppError):
    """A date range or year pair is malformed."""

    code = "InvalidDateRange"
    default_status = status.HTTP_400_BAD_REQUEST


class InsufficientBalanceError(AppError):
    """A reservation would drive the available balance negative."""

    code = "InsufficientBalance"
    default_status = status.HTTP_409_CONFLICT


class OverlappingRequestError(AppError):
    """The requested dates overlap a pending or approved request."""

    code = "OverlappingRequest"
    default_status = status.HTTP_409_CONFLICT


class InvalidTransitionError(AppError):
    """The request's current status does not allow the action."""

    code = "InvalidTransition"
    default_status = status.HTTP_409_CONFLICT


class LeaveTypeInactiveError(AppError):
    code = "LeaveTypeInactive"
    default_status = status.HTTP_409_CONFLICT


class LeaveTypeInUseError(AppError):
    code = "LeaveTypeInUse"
    default_status = status.HTTP_409_CONFLICT


class UnknownReservationError(AppError):
    code = "UnknownReservation"
    default_status = status.HTTP_404_NOT_FOUND


class UnknownRequestError(AppError):
    code = "UnknownRequest"
    default_status = status.HTTP_404_NOT_FOUND


class UnknownLeaveTypeError(AppError):
    code = "UnknownLeaveType"
    default_status = status.HTTP_404_NOT_FOUND


class ConcurrentModificationError(AppError):
    """A balance row changed between read and write. Retry with a fresh read."""

    code = "ConcurrentModification"
    default_status = status.HTTP_409_CONFLICT


class PartialFailureError(AppError):
    """A multi-year operation failed part way.

    ``compensated`` is False only when undoing the applied steps failed too;
    the transaction must then be rolled back rather than committed.
    """

    code = "PartialFailure"
    default_status = status.HTTP_409_CONFLICT

    def __init__(self, message: str, cause: AppError | None = None, *, compensated: bool = True) -> None:
        self.cause = cause
        self.compensated = compensated
        super().__init__(message)


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def _app_exception_handler(request: Request, exc: AppError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=exc.code,
            detail=exc.message,
            status_code=exc.status_code,
        ).model_dump(),
    )


async def _validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=ErrorResponse(
            error="ValidationError",
            detail=str(exc.errors()),
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        ).model_dump(),
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register exception handlers on the application."""
    app.add_exception_handler(AppError, _app_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _validation_exception_handler)  # type: ignore[arg-type]
