"""Background scheduler for periodic rankings recomputation.

The scheduler is created and owned by the application lifespan; nothing here
is a module-level instance.
"""

import logging
import os
from datetime import datetime, timezone
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ftcmetrics.config import Settings
from ftcmetrics.rankings.refresh_job import JOB_ID, refresh_rankings
from ftcmetrics.rankings.service import RankingsService

logger = logging.getLogger(__name__)


def build_scheduler(service: RankingsService, settings: Settings) -> AsyncIOScheduler:
    """Create a scheduler with the rankings refresh job (first run immediately)."""
    scheduler = AsyncIOScheduler()

    # Runs at startup, then every RANKINGS_REFRESH_MINUTES.
    # A slow run never overlaps the next one; missed runs collapse into one.
    scheduler.add_job(
        refresh_rankings,
        trigger=IntervalTrigger(minutes=settings.RANKINGS_REFRESH_MINUTES),
        args=[service],
        id=JOB_ID,
        name="Global Rankings Refresh (EPA + OPR)",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        next_run_time=datetime.now(timezone.utc),
    )
    return scheduler


def start_scheduler(service: RankingsService, settings: Settings) -> Optional[AsyncIOScheduler]:
    """
    Build and start the scheduler.

    Returns None when disabled by settings or inside the uvicorn reload subprocess.
    """
    if not settings.RANKINGS_SCHEDULER_ENABLED:
        logger.info("Rankings scheduler disabled (RANKINGS_SCHEDULER_ENABLED=false)")
        return None

    if os.environ.get("UVICORN_RELOADED"):
        logger.info("Skipping scheduler in reload subprocess")
        return None

    scheduler = build_scheduler(service, settings)
    scheduler.start()
    logger.info(
        f"Scheduler started: rankings refresh every {settings.RANKINGS_REFRESH_MINUTES} min"
    )
    return scheduler


def stop_scheduler(scheduler: Optional[AsyncIOScheduler]) -> None:
    """Stop the background scheduler."""
    if scheduler is not None and scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
