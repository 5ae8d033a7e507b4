"""
Health check endpoint with database and latest-run status
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, text
from sqlalchemy.exc import SQLAlchemyError
from api.dependencies import get_db
from schemas.api import HealthCheckResponse, DestinationStatus
from models.base import RunStatus
from models.migration_run import MigrationRun
from datetime import datetime
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(db: AsyncSession = Depends(get_db)):
    """
    Health check endpoint.

    Returns:
    - Database connectivity status
    - Latest run per destination
    - Number of runs still running
    """
    db_connected = False
    try:
        await db.execute(text("SELECT 1"))
        db_connected = True
    except SQLAlchemyError as e:
        logger.error(f"Database connection failed: {str(e)}")

    destinations = []
    running_runs = 0
    failed_destinations = 0

    if db_connected:
        try:
            latest = (
                select(
                    MigrationRun.destination,
                    func.max(MigrationRun.started_at).label("started_at")
                )
                .group_by(MigrationRun.destination)
                .subquery()
            )
            result = await db.execute(
                select(MigrationRun).join(
                    latest,
                    (MigrationRun.destination == latest.c.destination)
                    & (MigrationRun.started_at == latest.c.started_at)
                ).order_by(MigrationRun.destination)
            )
            for run in result.scalars().all():
                if run.status == RunStatus.FAILED:
                    failed_destinations += 1
                destinations.append(DestinationStatus(
                    destination=run.destination,
                    last_run_id=run.run_id,
                    status=run.status,
                    started_at=run.started_at,
                    completed_at=run.completed_at,
                    records_written=run.records_written,
                ))

            running_runs = await db.scalar(
                select(func.count()).select_from(MigrationRun).where(
                    MigrationRun.status == RunStatus.RUNNING
                )
            ) or 0
        except SQLAlchemyError as e:
            logger.error(f"Failed to fetch run status: {str(e)}")

    return HealthCheckResponse(
        timestamp=datetime.utcnow(),
        database_connected=db_connected,
        destinations=destinations,
        running_runs=running_runs,
        failed_destinations=failed_destinations
    )
