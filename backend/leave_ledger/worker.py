"""Worker process for scheduled carry-forward jobs.

Runs an asyncio loop that, once per interval (daily by default):
- on Jan 1 carries every balance of the previous year forward;
- expires carried-in days whose policy lifetime has ended.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date

from leave_ledger.config import get_settings
from leave_ledger.db import get_session_factory

logger = logging.getLogger(__name__)


async def run_daily_jobs(today: date) -> None:
    """Run one day's scheduled jobs. Each job gets its own session."""
    from leave_ledger.services.carry_forward import run_carry_forward_expiry, run_year_end_carry_forward

    session_factory = get_session_factory()

    # Year-end carry-forward (only fires on Jan 1)
    if today.month == 1 and today.day == 1:
        try:
            async with session_factory() as session:
                await run_year_end_carry_forward(session, today.year - 1)
        except Exception:
            logger.exception("Year-end carry-forward failed for %d", today.year - 1)

    # Carried-in expiry
    try:
        async with session_factory() as session:
            result = await run_carry_forward_expiry(session, today)
        if result.errors:
            logger.warning("Carried-in expiry for %s finished with %d error(s)", today, result.errors)
    except Exception:
        logger.exception("Carried-in expiry failed for %s", today)


async def run_worker_loop() -> None:
    """Main worker loop."""
    interval = get_settings().worker_interval_seconds
    logger.info("Carry-forward worker started (interval=%ds)", interval)

    while True:
        await run_daily_jobs(date.today())
        await asyncio.sleep(interval)


def main() -> None:
    """Entry point for the worker process."""
    logging.basicConfig(
        level=get_settings().log_level.upper(),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    asyncio.run(run_worker_loop())


if __name__ == "__main__":
    main()
