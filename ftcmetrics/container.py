"""Composition root: builds every long-lived collaborator from settings."""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from ftcmetrics.analytics.service import EventAnalyticsService
from ftcmetrics.cache.store import KeyValueStore
from ftcmetrics.cache.tiered import CachePolicy, TieredCache
from ftcmetrics.config import Settings
from ftcmetrics.database import build_engine, build_session_factory, close_db, init_db
from ftcmetrics.etl.ftc_events import FTCEventsClient
from ftcmetrics.rankings.service import RankingsService
from ftcmetrics.scouting.deduction import AllianceDeductionService

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    settings: Settings
    engine: AsyncEngine
    session_factory: object
    store: Optional[KeyValueStore]
    cache: TieredCache
    client: FTCEventsClient
    rankings: RankingsService
    analytics: EventAnalyticsService
    deduction: AllianceDeductionService

    @classmethod
    async def build(cls, settings: Settings) -> "ServiceContainer":
        engine = build_engine(settings.DATABASE_URL)
        await init_db(engine)
        session_factory = build_session_factory(engine)

        store = None
        if settings.REDIS_ENABLED and settings.REDIS_URL:
            store = KeyValueStore.from_url(
                settings.REDIS_URL, command_timeout=settings.REDIS_COMMAND_TIMEOUT_SECONDS
            )
            ping = await store.ping()
            if ping.ok:
                logger.info("[STARTUP] Redis store connected")
            else:
                # Kept anyway: every call degrades to a miss until Redis is back.
                logger.warning(f"[STARTUP] Redis store unreachable ({ping.error}); serving live data")
        else:
            logger.info("[STARTUP] Redis disabled; upstream cache runs live-only")

        cache = TieredCache(
            store,
            season=settings.FTC_SEASON,
            key_prefix=settings.CACHE_KEY_PREFIX,
            default_policy=CachePolicy(settings.CACHE_DEFAULT_FRESH_TTL, settings.CACHE_DEFAULT_STALE_TTL),
        )
        client = FTCEventsClient.from_settings(settings, cache)

        return cls(
            settings=settings,
            engine=engine,
            session_factory=session_factory,
            store=store,
            cache=cache,
            client=client,
            rankings=RankingsService(client, store, session_factory, settings),
            analytics=EventAnalyticsService.from_settings(client, settings),
            deduction=AllianceDeductionService(client, session_factory),
        )

    async def close(self) -> None:
        await self.client.close()
        if self.store is not None:
            await self.store.close()
        await close_db(self.engine)
