"""Background task scheduler using APScheduler.

Manages scheduled jobs for:
- idle session cleanup (every SESSION_SWEEP_INTERVAL_SECONDS)
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from apscheduler.schedulers.asyncio import (  # type: ignore[import-untyped]
    AsyncIOScheduler,
)
from apscheduler.triggers.interval import (  # type: ignore[import-untyped]
    IntervalTrigger,
)

from core.config import get_settings
from dependencies.jobs import get_session_registry


logger = logging.getLogger(__name__)

scheduler: AsyncIOScheduler | None = None


async def run_session_cleanup() -> None:
    """Scheduled job: close sessions idle past SESSION_IDLE_TTL_SECONDS."""
    settings = get_settings()
    try:
        closed = await get_session_registry().close_idle(
            settings.SESSION_IDLE_TTL_SECONDS
        )
        if closed:
            logger.info("Session cleanup: %d idle sessions closed", len(closed))
    except Exception as e:
        logger.error("Session cleanup failed: %s", e, exc_info=True)


def setup_scheduler() -> AsyncIOScheduler:
    global scheduler
    settings = get_settings()
    scheduler = AsyncIOScheduler(timezone="UTC")

    scheduler.add_job(
        run_session_cleanup,
        trigger=IntervalTrigger(seconds=settings.SESSION_SWEEP_INTERVAL_SECONDS),
        id="cleanup_idle_sessions",
        name="Idle session cleanup",
        replace_existing=True,
    )

    logger.info(
        "Scheduler configured: idle session cleanup (every %ss, ttl %ss)",
        settings.SESSION_SWEEP_INTERVAL_SECONDS,
        settings.SESSION_IDLE_TTL_SECONDS,
    )
    return scheduler


@asynccontextmanager
async def scheduler_lifespan() -> AsyncGenerator[None, None]:
    """Run the scheduler for the duration of the application lifespan."""
    setup_scheduler()
    if scheduler:
        scheduler.start()
        logger.info("Background scheduler started")
    try:
        yield
    finally:
        if scheduler and scheduler.running:
            scheduler.shutdown(wait=False)
            logger.info("Background scheduler shut down")
