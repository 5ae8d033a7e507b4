"""
Run-status endpoints (read only)
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from api.dependencies import get_db
from schemas.api import RunDetail, RunListResponse, RunSummary
from models.base import RunStatus
from models.migration_run import MigrationRun
from typing import Optional
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/runs", tags=["Runs"])


@router.get("", response_model=RunListResponse)
async def list_runs(
    request: Request,
    status: Optional[RunStatus] = Query(None, description="Filter by run status"),
    destination: Optional[str] = Query(None, description="Filter by destination"),
    limit: int = Query(20, ge=1, le=200, description="Maximum runs returned"),
    db: AsyncSession = Depends(get_db)
):
    """Most recent runs first."""
    request_id = getattr(request.state, "request_id", "-")
    logger.info(f"[{request_id}] GET /runs - status={status}, destination={destination}, limit={limit}")

    query = select(MigrationRun).order_by(MigrationRun.started_at.desc()).limit(limit)
    if status is not None:
        query = query.where(MigrationRun.status == status)
    if destination:
        query = query.where(MigrationRun.destination == destination)

    result = await db.execute(query)
    runs = [RunSummary.model_validate(run) for run in result.scalars().all()]
    return RunListResponse(runs=runs, count=len(runs), status_filter=status)


@router.get("/{run_id}", response_model=RunDetail)
async def get_run(run_id: str, db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(MigrationRun).where(MigrationRun.run_id == run_id))
    run = result.scalar_one_or_none()
    if run is None:
        raise HTTPException(status_code=404, detail=f"Run {run_id} not found")
    return RunDetail.model_validate(run)
