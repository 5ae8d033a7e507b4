"""
Persist migration run records (migration_runs table)
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from models.base import RunStatus
from models.migration_run import MigrationRun
from migration.tracker import ExecutionState

logger = logging.getLogger(__name__)


class RunStore:
    """
    One row per run: created at start, refreshed after every committed
    chunk, completed at terminal status.

    Each call uses its own short-lived session so a slow or failed write
    never holds a transaction open across chunks.
    """

    def __init__(self, session_maker: async_sessionmaker):
        self.session_maker = session_maker

    async def start_run(
        self,
        run_id: str,
        source_type: str,
        source_name: str,
        destination: str,
        config_snapshot: Optional[Dict[str, Any]] = None,
        started_at: Optional[datetime] = None,
    ) -> MigrationRun:
        async with self.session_maker() as session:
            run = MigrationRun(
                run_id=run_id,
                source_type=source_type,
                source_name=source_name,
                destination=destination,
                status=RunStatus.RUNNING,
                started_at=started_at or datetime.utcnow(),
                config_snapshot=config_snapshot,
            )
            session.add(run)
            await session.commit()
            await session.refresh(run)
            logger.info(f"Recorded start of run {run_id} ({source_type}: {source_name} -> {destination})")
            return run

    async def _get(self, session, run_id: str) -> Optional[MigrationRun]:
        result = await session.execute(select(MigrationRun).where(MigrationRun.run_id == run_id))
        return result.scalar_one_or_none()

    async def record_progress(self, run_id: str, state: ExecutionState) -> None:
        async with self.session_maker() as session:
            run = await self._get(session, run_id)
            if run is None:
                logger.warning(f"Run {run_id} not found while recording progress")
                return
            run.records_read = state.records_read
            run.records_written = state.records_written
            run.records_skipped = state.records_skipped
            run.last_committed_chunk_seq = state.last_committed_chunk_seq
            await session.commit()

    async def complete_run(
        self,
        run_id: str,
        state: ExecutionState,
        artifact_path: Optional[str] = None,
    ) -> None:
        """Complete run with final status, counters and error details"""
        async with self.session_maker() as session:
            run = await self._get(session, run_id)
            if run is None:
                logger.warning(f"Run {run_id} not found while completing it")
                return
            run.status = state.status
            run.completed_at = state.finished_at or datetime.utcnow()
            run.duration_seconds = (run.completed_at - run.started_at).total_seconds()
            run.records_read = state.records_read
            run.records_written = state.records_written
            run.records_skipped = state.records_skipped
            run.last_committed_chunk_seq = state.last_committed_chunk_seq
            run.artifact_path = artifact_path

            details: Dict[str, Any] = {}
            if state.error:
                run.error_message = state.error.get("message")
                details["error"] = state.error
            if state.skip_reasons:
                details["skipped_records"] = state.skip_reasons
            run.error_details = details or None

            await session.commit()

    async def get_run(self, run_id: str) -> Optional[MigrationRun]:
        async with self.session_maker() as session:
            return await self._get(session, run_id)

    async def list_runs(self, status: Optional[RunStatus] = None, limit: int = 20) -> List[MigrationRun]:
        async with self.session_maker() as session:
            query = select(MigrationRun).order_by(MigrationRun.started_at.desc()).limit(limit)
            if status is not None:
                query = query.where(MigrationRun.status == status)
            result = await session.execute(query)
            return list(result.scalars().all())
