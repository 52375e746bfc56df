from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from fastapi.middleware.cors import CORSMiddleware

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from fastapi import FastAPI, Request, Response

    from leave_ledger.config import Settings

logger = logging.getLogger(__name__)

# Dev auth travels in these headers; browsers must be allowed to send them.
AUTH_HEADERS = ["X-User-Id", "X-Role", "Content-Type"]


async def log_mutations(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
    """Log every state-changing call with the acting user and how long it took."""
    if request.method in ("GET", "HEAD", "OPTIONS"):
        return await call_next(request)

    started = time.perf_counter()
    response = await call_next(request)
    logger.info(
        "%s %s by %s -> %d in %.1fms",
        request.method,
        request.url.path,
        request.headers.get("x-user-id", "anonymous"),
        response.status_code,
        (time.perf_counter() - started) * 1000,
    )
    return response


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Configure application middleware."""
    app.middleware("http")(log_mutations)
    app.add_middleware(
        CORSMiddleware,  # ty: ignore[invalid-argument-type]
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH"],
        allow_headers=AUTH_HEADERS,
    )
