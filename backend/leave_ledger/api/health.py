import logging
from typing import Literal

from fastapi import APIRouter
from pydantic import BaseModel
from sqlalchemy import text

from leave_ledger.config import get_settings
from leave_ledger.db import SessionDep
from leave_ledger.locks import get_ledger_locks

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Service status plus the number of balance keys currently held by a writer."""

    status: Literal["ok", "degraded"]
    database: Literal["ok", "unreachable"]
    held_balance_locks: int
    version: str
    environment: str


@router.get("/health", response_model=HealthResponse)
async def health(session: SessionDep) -> HealthResponse:
    settings = get_settings()
    database: Literal["ok", "unreachable"] = "ok"

    try:
        await session.execute(text("SELECT 1"))
    except Exception:
        logger.exception("Health check: ledger database unreachable")
        database = "unreachable"

    return HealthResponse(
        status="ok" if database == "ok" else "degraded",
        database=database,
        held_balance_locks=len(get_ledger_locks()),
        version=settings.app_version,
        environment=settings.environment,
    )
