"""Core routes: health, metrics.

- /health: public
- /metrics: Bearer token (METRICS_BEARER_TOKEN), open when unset
"""

from fastapi import APIRouter, Depends, Header
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel

from ftcmetrics.container import ServiceContainer
from ftcmetrics.database import get_pool_status
from ftcmetrics.routes.deps import get_container
from ftcmetrics.telemetry.metrics import get_metrics_text

router = APIRouter(tags=["core"])


class HealthResponse(BaseModel):
    status: str
    season: int
    store: str


@router.get("/health", response_model=HealthResponse)
async def health_check(container: ServiceContainer = Depends(get_container)):
    """Health check endpoint."""
    if container.store is None:
        store = "disabled"
    else:
        store = "ok" if (await container.store.ping()).ok else "unreachable"
    return HealthResponse(status="ok", season=container.settings.FTC_SEASON, store=store)


@router.get("/health/db")
async def database_health(container: ServiceContainer = Depends(get_container)):
    """Connection pool status."""
    return get_pool_status(container.engine)


@router.get("/metrics")
async def prometheus_metrics(
    authorization: str = Header(None, alias="Authorization"),
    container: ServiceContainer = Depends(get_container),
):
    """
    Prometheus metrics endpoint.

    Requires Bearer token authentication when METRICS_BEARER_TOKEN is set.
    """
    expected_token = container.settings.METRICS_BEARER_TOKEN
    if expected_token:
        if not authorization:
            return PlainTextResponse(
                content="# Unauthorized: Missing Authorization header\n",
                status_code=401,
                media_type="text/plain",
            )
        parts = authorization.split(" ", 1)
        if len(parts) != 2 or parts[0].lower() != "bearer":
            return PlainTextResponse(
                content="# Unauthorized: Invalid Authorization format\n",
                status_code=401,
                media_type="text/plain",
            )
        if parts[1] != expected_token:
            return PlainTextResponse(
                content="# Unauthorized: Invalid token\n",
                status_code=401,
                media_type="text/plain",
            )

    content, content_type = get_metrics_text()
    return PlainTextResponse(content=content, media_type=content_type)
