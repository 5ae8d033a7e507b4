"""
Migration Runner - wires source, stages, committer, sink and tracker for one run.

This is the facade the orchestration layer calls:

    runner = MigrationRunner.from_settings(settings)
    result = await runner.run()

``run()`` never raises for a MigrationError; the returned ExecutionResult
carries the terminal status and counters. Unexpected exceptions are
recorded as FAILED and re-raised.
"""

from typing import Iterable, Optional
import asyncio
import logging
import uuid

from sqlalchemy import exc as sa_exc
from sqlalchemy.ext.asyncio import AsyncEngine

from core.exceptions import MigrationError, RetryLimitExceededError, RunCancelledError
from migration.committer import ChunkCommitter
from migration.fault_policy import FaultPolicy
from migration.run_store import RunStore
from migration.sinks.encryption import EncryptionContext
from migration.sinks.framed import FramedSink
from migration.sources.registry import SourceRegistry, default_registry
from migration.stages.builder import build_pipeline
from migration.stages.pipeline import Stage
from migration.tracker import ExecutionState, ExecutionTracker
from models.base import RunStatus
from schemas.job import MigrationJobConfig
from schemas.result import ExecutionResult

logger = logging.getLogger(__name__)


class MigrationRunner:
    """
    One runner executes one run.

    Everything that can be wrong with the configuration (unknown source
    type, unknown stage or error kind, missing encryption key) is raised as
    ConfigurationError from the constructor, before any record is read.
    """

    def __init__(
        self,
        config: MigrationJobConfig,
        source_engine: AsyncEngine,
        stages: Iterable[Stage] = (),
        registry: Optional[SourceRegistry] = None,
        encryption: Optional[EncryptionContext] = None,
        run_store: Optional[RunStore] = None,
        run_id: Optional[str] = None,
    ):
        self.config = config
        self.run_id = run_id or str(uuid.uuid4())
        self.registry = registry or default_registry()
        self.policy = FaultPolicy.from_config(config.fault)
        self.pipeline = build_pipeline(config.stages, extra=stages)

        if config.sink.encryption_enabled and encryption is None:
            encryption = EncryptionContext.from_key_ref(config.sink.encryption_key_ref)
        self.encryption = encryption

        self.source = self.registry.create(config.source_type, source_engine, config.query)
        self.sink = FramedSink(config.sink, self.encryption)
        self.tracker = ExecutionTracker()
        self.run_store = run_store

        self._committer: Optional[ChunkCommitter] = None
        self._cancel_requested = False
        self._started = False

    @classmethod
    def from_settings(
        cls,
        settings,
        source_engine: Optional[AsyncEngine] = None,
        run_store: Optional[RunStore] = None,
        stages: Iterable[Stage] = (),
    ) -> "MigrationRunner":
        from core.database import create_engine

        config = MigrationJobConfig.from_settings(settings)
        engine = source_engine or create_engine(settings.source_database_url)
        return cls(config, engine, stages=stages, run_store=run_store)

    def cancel(self) -> None:
        """Request a stop at the next chunk boundary."""
        self._cancel_requested = True
        if self._committer is not None:
            self._committer.cancel()

    @property
    def state(self) -> ExecutionState:
        return self.tracker.state

    async def _track(self, operation: str, *args, **kwargs) -> None:
        """Run-store writes are best effort: a tracking failure never fails the run."""
        if self.run_store is None:
            return
        try:
            await getattr(self.run_store, operation)(*args, **kwargs)
        except (sa_exc.SQLAlchemyError, OSError) as e:
            logger.warning(f"Could not update run record {self.run_id}: {e}")

    async def _on_progress(self, state: ExecutionState) -> None:
        await self._track("record_progress", self.run_id, state)

    async def _open_source(self) -> None:
        """Open the source, retrying transient failures under the fault policy."""
        attempt = 0
        while True:
            try:
                await self.source.open()
                return
            except MigrationError as e:
                if not self.policy.is_retryable(e):
                    raise
                attempt += 1
                if attempt > self.policy.retry_limit:
                    raise RetryLimitExceededError(
                        f"Source open failed after {self.policy.retry_limit} retries",
                        context=self.source.describe(),
                        original_exception=e
                    )
                delay = self.policy.backoff(attempt)
                logger.warning(f"Retrying source open (attempt {attempt}) in {delay:.2f}s: {e.message}")
                if delay > 0:
                    await asyncio.sleep(delay)

    async def _execute(self) -> str:
        await self._open_source()
        try:
            self.sink.open()
            artifact = await self._committer.run()
        finally:
            await self.source.close()
        return str(artifact)

    async def run(self) -> ExecutionResult:
        """
        Execute the migration.

        Returns:
            ExecutionResult with status COMPLETED, FAILED or STOPPED
        """
        if self._started:
            raise RuntimeError("MigrationRunner instances are single-use")
        self._started = True

        self._committer = ChunkCommitter(
            source=self.source,
            pipeline=self.pipeline,
            sink=self.sink,
            policy=self.policy,
            chunk_size=self.config.chunk_size,
            tracker=self.tracker,
            progress_hook=self._on_progress,
        )
        if self._cancel_requested:
            self._committer.cancel()

        self.tracker.on_run_started()
        logger.info(
            f"Starting migration run {self.run_id}: {self.config.source_type} source "
            f"{self.config.query.source_name} -> {self.config.sink.destination}"
        )
        await self._track(
            "start_run",
            run_id=self.run_id,
            source_type=self.config.source_type,
            source_name=self.config.query.source_name,
            destination=self.config.sink.destination,
            config_snapshot=self.config.snapshot(),
            started_at=self.tracker.state.started_at,
        )

        artifact: Optional[str] = None
        error: Optional[MigrationError] = None
        try:
            artifact = await self._execute()
            status = RunStatus.COMPLETED

        except RunCancelledError as e:
            status, error = RunStatus.STOPPED, e
            logger.warning(f"Migration run {self.run_id} stopped: {e.message}")

        except MigrationError as e:
            status, error = RunStatus.FAILED, e
            logger.error(
                f"Migration run {self.run_id} failed: {e}",
                extra={"error_context": e.to_dict()}
            )

        except asyncio.CancelledError:
            self.tracker.on_terminal(RunStatus.STOPPED, {"message": "Task cancelled"})
            await self._track("complete_run", self.run_id, self.tracker.state)
            raise

        except Exception as e:
            logger.exception(f"Unexpected error in migration run {self.run_id}")
            self.tracker.on_terminal(RunStatus.FAILED, {
                "error_type": type(e).__name__,
                "message": str(e),
            })
            await self._track("complete_run", self.run_id, self.tracker.state)
            raise

        self.tracker.on_terminal(status, error.to_dict() if error else None)
        state = self.tracker.state
        await self._track(
            "complete_run",
            self.run_id,
            state,
            artifact_path=artifact,
        )

        logger.info(
            f"Migration run {self.run_id} {status.value}: "
            f"Read: {state.records_read}, Written: {state.records_written}, "
            f"Skipped: {state.records_skipped}, Chunks: {state.last_committed_chunk_seq}"
        )

        return ExecutionResult(
            run_id=self.run_id,
            status=status,
            records_read=state.records_read,
            records_written=state.records_written,
            records_skipped=state.records_skipped,
            last_committed_chunk_seq=state.last_committed_chunk_seq,
            artifact=artifact,
            error=f"{type(error).__name__}: {error.message}" if error else None,
            started_at=state.started_at,
            finished_at=state.finished_at,
        )
