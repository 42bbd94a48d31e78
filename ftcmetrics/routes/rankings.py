"""Global rankings endpoints under /api/rankings."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from ftcmetrics.container import ServiceContainer
from ftcmetrics.rankings.service import LookupStatus
from ftcmetrics.routes.deps import get_container

router = APIRouter(prefix="/api/rankings", tags=["rankings"])


async def _scoped(container: ServiceContainer, metric: str, scope: str, country, state) -> dict:
    snapshot = await container.rankings.get_scoped_rankings(scope, country, state, metric=metric)
    if snapshot is None:
        raise HTTPException(status_code=500, detail=f"Failed to compute global {metric.upper()} rankings")
    return snapshot.to_dict()


@router.get("/epa")
async def epa_rankings(
    scope: str = Query("global", pattern="^(global|country|state)$"),
    country: Optional[str] = None,
    state: Optional[str] = None,
    container: ServiceContainer = Depends(get_container),
):
    return await _scoped(container, "epa", scope, country, state)


@router.get("/opr")
async def opr_rankings(
    scope: str = Query("global", pattern="^(global|country|state)$"),
    country: Optional[str] = None,
    state: Optional[str] = None,
    container: ServiceContainer = Depends(get_container),
):
    return await _scoped(container, "opr", scope, country, state)


@router.get("/filters")
async def ranking_filters(container: ServiceContainer = Depends(get_container)):
    return await container.rankings.get_filters()


@router.get("/team/{team_number}")
async def team_rankings(team_number: int, container: ServiceContainer = Depends(get_container)):
    result = await container.rankings.get_team_rankings(team_number)
    if result.status == LookupStatus.NOT_COMPUTED:
        raise HTTPException(status_code=503, detail=result.error)
    if result.status == LookupStatus.NOT_FOUND:
        raise HTTPException(status_code=404, detail=result.error)
    return result.data
