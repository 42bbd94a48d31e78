"""FastAPI application: FTC performance analytics and rankings."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ftcmetrics.config import Settings, get_settings
from ftcmetrics.container import ServiceContainer
from ftcmetrics.etl.base import UpstreamUnavailable
from ftcmetrics.routes.analytics import router as analytics_router
from ftcmetrics.routes.core import router as core_router
from ftcmetrics.routes.rankings import router as rankings_router
from ftcmetrics.routes.scouting import router as scouting_router
from ftcmetrics.scheduler import start_scheduler, stop_scheduler
from ftcmetrics.telemetry.sentry import init_sentry

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()

    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    init_sentry(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler."""
        logger.info(f"Starting ftcmetrics (season {settings.FTC_SEASON})...")
        container = await ServiceContainer.build(settings)
        app.state.container = container
        scheduler = start_scheduler(container.rankings, settings)
        try:
            yield
        finally:
            logger.info("Shutting down...")
            stop_scheduler(scheduler)
            await container.close()

    app = FastAPI(
        title="ftcmetrics",
        description="FTC performance analytics and ranking engine",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()],
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    @app.exception_handler(UpstreamUnavailable)
    async def upstream_unavailable_handler(request: Request, exc: UpstreamUnavailable):
        logger.warning(f"Upstream unavailable for {request.url.path}: {exc}")
        return JSONResponse(status_code=502, content={"detail": "FTC Events API unavailable"})

    app.include_router(core_router)
    app.include_router(analytics_router)
    app.include_router(rankings_router)
    app.include_router(scouting_router)
    return app


app = create_app()
