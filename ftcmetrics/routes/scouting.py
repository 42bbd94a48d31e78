"""Alliance deduction endpoints under /api/scouting."""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ftcmetrics.container import ServiceContainer
from ftcmetrics.routes.deps import get_container
from ftcmetrics.scouting.deduction import DeductionStatus

router = APIRouter(prefix="/api/scouting", tags=["scouting"])


class RetryDeductionsRequest(BaseModel):
    event_code: str = Field(..., min_length=1, max_length=50)
    scouting_team_id: int = Field(..., gt=0)


@router.post("/entries/{entry_id}/deduct-partner")
async def deduct_partner(entry_id: str, container: ServiceContainer = Depends(get_container)):
    outcome = await container.deduction.perform_alliance_deduction(entry_id)
    if outcome.status == DeductionStatus.NOT_FOUND:
        return JSONResponse(status_code=404, content=outcome.to_dict())
    if outcome.status == DeductionStatus.CREATED:
        return JSONResponse(status_code=201, content=outcome.to_dict())
    return outcome.to_dict()


@router.post("/retry-deductions")
async def retry_deductions(body: RetryDeductionsRequest, container: ServiceContainer = Depends(get_container)):
    return await container.deduction.retry_deductions(body.event_code, body.scouting_team_id)
