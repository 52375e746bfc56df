# ruff: noqa: B008, TC003
from __future__ import annotations

import uuid
from typing import Annotated

from fastapi import Depends, Header, status

from leave_ledger.exceptions import AppError
from leave_ledger.schemas.auth import AuthContext


async def get_auth_context(
    x_user_id: uuid.UUID = Header(),
    x_role: str = Header(default="employee"),
) -> AuthContext:
    """Extract dev auth context from request headers."""
    return AuthContext(user_id=x_user_id, role=x_role)


AuthDep = Annotated[AuthContext, Depends(get_auth_context)]


async def require_admin(
    auth: AuthDep,
) -> AuthContext:
    """Require admin role for the request."""
    if not auth.is_admin:
        raise AppError("Admin access required", status_code=status.HTTP_403_FORBIDDEN)
    return auth


AdminDep = Annotated[AuthContext, Depends(require_admin)]


async def require_approver(
    auth: AuthDep,
) -> AuthContext:
    """Require a manager or admin, the roles allowed to decide on requests."""
    if not auth.is_approver:
        raise AppError("Manager or admin access required", status_code=status.HTTP_403_FORBIDDEN)
    return auth


ApproverDep = Annotated[AuthContext, Depends(require_approver)]


def ensure_self_or_approver(auth: AuthContext, employee_id: uuid.UUID) -> None:
    """Employees may only act on their own records; managers and admins on anyone's."""
    if auth.user_id != employee_id and not auth.is_approver:
        raise AppError("Not authorized for this employee", status_code=status.HTTP_403_FORBIDDEN)
