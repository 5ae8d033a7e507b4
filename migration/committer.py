"""
Chunk Committer - turns a record stream into chunk-atomic, fault-tolerant progress.

For each chunk:
1. Mark the source position
2. Pull records through the stage pipeline and serialize the survivors until
   ``chunk_size`` lines are ready or the source is exhausted, skipping
   records whose errors are skippable
3. On a retryable error, reset the source to the mark and assemble the same
   chunk again (up to ``retry_limit`` times, with exponential backoff)
4. Hand the serialized chunk to the sink in one call
5. Commit: advance the chunk sequence and the read/write/skip counters

Nothing from a failed attempt reaches the sink or the counters, so a retried
chunk is written exactly once.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple
import asyncio
import logging

from core.exceptions import (
    MigrationError,
    RetryLimitExceededError,
    RunCancelledError,
    SkipLimitExceededError,
)
from migration.fault_policy import FaultPolicy
from migration.sinks.framed import FramedSink
from migration.sources.base import SourceAdapter
from migration.stages.pipeline import StagePipeline
from migration.tracker import ExecutionState, ExecutionTracker

logger = logging.getLogger(__name__)

ProgressHook = Callable[[ExecutionState], Awaitable[None]]


@dataclass(frozen=True)
class Chunk:
    """One assembled, not yet committed chunk."""
    seq: int
    lines: Tuple[bytes, ...]
    records_read: int
    skips: Tuple[Dict[str, Any], ...] = ()
    exhausted: bool = False
    attempts: int = 1

    def __len__(self) -> int:
        return len(self.lines)


@dataclass
class _Attempt:
    lines: List[bytes] = field(default_factory=list)
    skips: List[Dict[str, Any]] = field(default_factory=list)
    read: int = 0


class ChunkCommitter:
    """
    Drives source -> pipeline -> sink for one run.

    Owns chunk sequencing and the fault counters. The source must already
    be open and the sink opened (header written); on success ``run()``
    finalizes the sink, on any failure it aborts it.
    """

    def __init__(
        self,
        source: SourceAdapter,
        pipeline: StagePipeline,
        sink: FramedSink,
        policy: FaultPolicy,
        chunk_size: int,
        tracker: Optional[ExecutionTracker] = None,
        progress_hook: Optional[ProgressHook] = None,
    ):
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self.source = source
        self.pipeline = pipeline
        self.sink = sink
        self.policy = policy
        self.chunk_size = chunk_size
        self.tracker = tracker or ExecutionTracker()
        self.progress_hook = progress_hook

        self.last_committed_seq = 0
        self.records_read = 0
        self.records_written = 0
        self.records_skipped = 0
        self.retries = 0
        self._cancel_requested = False

    def cancel(self) -> None:
        """Request a stop; honoured at the next chunk boundary."""
        if not self._cancel_requested:
            logger.info(f"Cancellation requested after chunk {self.last_committed_seq}")
        self._cancel_requested = True

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_requested

    def _check_cancelled(self) -> None:
        if self._cancel_requested:
            raise RunCancelledError(
                "Run cancelled",
                context={
                    "last_committed_chunk_seq": self.last_committed_seq,
                    "records_written": self.records_written,
                }
            )

    async def run(self) -> Path:
        """
        Commit chunks until end of stream, then finalize the sink.

        Returns:
            Path of the published artifact

        Raises:
            RetryLimitExceededError: a chunk kept failing with retryable errors
            SkipLimitExceededError: more records were skipped than allowed
            RunCancelledError: ``cancel()`` was called
            MigrationError: any non-retryable, non-skippable error
        """
        try:
            while True:
                self._check_cancelled()
                chunk = await self.assemble(self.last_committed_seq + 1)
                await self.commit(chunk)
                if chunk.exhausted:
                    break
            self._check_cancelled()
            artifact = self.sink.finalize()
        except BaseException:
            self.sink.abort()
            raise

        logger.info(
            f"All chunks committed: {self.last_committed_seq} chunks, "
            f"read={self.records_read}, written={self.records_written}, "
            f"skipped={self.records_skipped}, retries={self.retries}"
        )
        return artifact

    async def assemble(self, seq: int) -> Chunk:
        """Assemble chunk ``seq``, re-reading it from the mark on retryable errors."""
        self.source.mark()
        attempt = 0
        while True:
            try:
                if attempt:
                    await self.source.reset()
                return await self._assemble_once(seq, attempt + 1)
            except MigrationError as e:
                if not self.policy.is_retryable(e):
                    raise
                attempt += 1
                if attempt > self.policy.retry_limit:
                    raise RetryLimitExceededError(
                        f"Chunk {seq} failed after {self.policy.retry_limit} retries",
                        context={"chunk_seq": seq, "retry_limit": self.policy.retry_limit},
                        original_exception=e
                    )
                self.retries += 1
                delay = self.policy.backoff(attempt)
                logger.warning(
                    f"Retrying chunk {seq} (attempt {attempt}/{self.policy.retry_limit}) "
                    f"in {delay:.2f}s after {type(e).__name__}: {e.message}"
                )
                if delay > 0:
                    await asyncio.sleep(delay)

    async def _assemble_once(self, seq: int, attempt: int) -> Chunk:
        current = _Attempt()
        while len(current.lines) < self.chunk_size:
            try:
                row = await self.source.next()
            except MigrationError as e:
                if not self.policy.is_skippable(e):
                    raise
                current.read += 1
                self._skip(e, seq, current)
                continue

            if row is None:
                return self._chunk(seq, current, exhausted=True, attempt=attempt)
            current.read += 1

            try:
                record = self.pipeline.apply(row)
                line = self.sink.serialize(record) if record is not None else None
            except MigrationError as e:
                if not self.policy.is_skippable(e):
                    raise
                e.context.setdefault("record_key", self.source.key_of(row))
                self._skip(e, seq, current)
                continue

            if line is not None:
                current.lines.append(line)

        return self._chunk(seq, current, exhausted=False, attempt=attempt)

    @staticmethod
    def _chunk(seq: int, current: _Attempt, exhausted: bool, attempt: int) -> Chunk:
        return Chunk(
            seq=seq,
            lines=tuple(current.lines),
            records_read=current.read,
            skips=tuple(current.skips),
            exhausted=exhausted,
            attempts=attempt,
        )

    def _skip(self, error: MigrationError, seq: int, current: _Attempt) -> None:
        reason = {
            "chunk_seq": seq,
            "error_type": type(error).__name__,
            "message": error.message,
        }
        reason.update(
            (k, str(v)) for k, v in error.context.items() if k != "error_timestamp"
        )
        current.skips.append(reason)

        total = self.records_skipped + len(current.skips)
        if total > self.policy.skip_limit:
            raise SkipLimitExceededError(
                f"Skip limit of {self.policy.skip_limit} exceeded",
                context={"chunk_seq": seq, "skip_limit": self.policy.skip_limit, "skipped": total},
                original_exception=error
            )
        logger.warning(f"Skipping record in chunk {seq} ({total}/{self.policy.skip_limit}): {error}")

    async def commit(self, chunk: Chunk) -> None:
        """Write the chunk and advance counters. An empty final chunk is a no-op."""
        if not chunk.lines and not chunk.records_read:
            return

        written = self.sink.write_lines(chunk.lines) if chunk.lines else 0

        self.last_committed_seq = chunk.seq
        self.records_read += chunk.records_read
        self.records_written += written
        self.records_skipped += len(chunk.skips)
        for reason in chunk.skips:
            self.tracker.on_skip(reason)
        self.tracker.on_chunk_committed(chunk.seq, written, chunk.records_read)

        logger.info(
            f"Committed chunk {chunk.seq}: written={written}, read={chunk.records_read}, "
            f"skipped={len(chunk.skips)}, attempts={chunk.attempts}"
        )
        if self.progress_hook is not None:
            await self.progress_hook(self.tracker.state)
