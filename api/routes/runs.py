"""
Recent scheduled runs
"""

from fastapi import APIRouter, Depends, Query
from api.dependencies import get_scheduler
from ingestion.scheduler import ETLScheduler
from schemas.api import RunsResponse, RunSummary

router = APIRouter(tags=["Runs"])


@router.get("/runs", response_model=RunsResponse)
async def list_runs(
    limit: int = Query(10, ge=1, le=100, description="Maximum runs to return"),
    scheduler: ETLScheduler = Depends(get_scheduler)
):
    """Most recent scheduled runs first"""
    runs = scheduler.recent_runs()[:limit]
    return RunsResponse(
        total=len(runs),
        runs=[RunSummary(**run) for run in runs]
    )
