"""Scheduled rankings recomputation."""

import logging

from ftcmetrics.rankings.service import RankingsService
from ftcmetrics.telemetry.sentry import sentry_job_context

logger = logging.getLogger(__name__)

JOB_ID = "rankings_refresh"


async def refresh_rankings(service: RankingsService) -> bool:
    """
    Recompute the global rankings.

    Failures are already logged and reported by the service; this only
    reports whether a new snapshot was produced.
    """
    with sentry_job_context(JOB_ID):
        snapshot = await service.compute_and_cache_rankings()

    if snapshot is None:
        logger.warning("[RANKINGS] Scheduled refresh produced no snapshot; previous rankings kept")
        return False
    return True
