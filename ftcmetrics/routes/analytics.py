"""Per-event analytics endpoints under /api/analytics."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from ftcmetrics.container import ServiceContainer
from ftcmetrics.routes.deps import get_container

router = APIRouter(prefix="/api/analytics", tags=["analytics"])


class PredictRequest(BaseModel):
    event_code: str = Field(..., min_length=1, max_length=50)
    red_team1: int = Field(..., gt=0)
    red_team2: int = Field(..., gt=0)
    blue_team1: int = Field(..., gt=0)
    blue_team2: int = Field(..., gt=0)


@router.get("/opr/{event_code}")
async def event_opr(event_code: str, container: ServiceContainer = Depends(get_container)):
    return await container.analytics.get_event_opr(event_code)


@router.get("/epa/{event_code}")
async def event_epa(event_code: str, container: ServiceContainer = Depends(get_container)):
    return await container.analytics.get_event_epa(event_code)


@router.get("/team/{team_number}")
async def team_analytics(
    team_number: int,
    event_code: Optional[str] = Query(None, alias="eventCode"),
    container: ServiceContainer = Depends(get_container),
):
    return await container.analytics.get_team_event_analytics(team_number, event_code)


@router.post("/predict")
async def predict(body: PredictRequest, container: ServiceContainer = Depends(get_container)):
    return await container.analytics.predict(
        body.event_code, body.red_team1, body.red_team2, body.blue_team1, body.blue_team2
    )


@router.get("/compare")
async def compare(
    teams: str = Query(..., description="Comma-separated team numbers"),
    event_code: str = Query(..., alias="eventCode"),
    container: ServiceContainer = Depends(get_container),
):
    try:
        team_numbers = [int(t) for t in teams.split(",") if t.strip()]
    except ValueError:
        raise HTTPException(status_code=400, detail="Provide at least 2 valid team numbers")
    if len(team_numbers) < 2:
        raise HTTPException(status_code=400, detail="Provide at least 2 valid team numbers")
    return await container.analytics.compare_teams(event_code, team_numbers)
