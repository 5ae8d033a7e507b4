"""
Execution tracker: passive run-level counters
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, List, Optional
import logging

from models.base import RunStatus

logger = logging.getLogger(__name__)

MAX_SKIP_REASONS = 100


@dataclass
class ExecutionState:
    status: RunStatus = RunStatus.RUNNING
    records_read: int = 0
    records_written: int = 0
    records_skipped: int = 0
    last_committed_chunk_seq: int = 0
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    error: Optional[Dict[str, Any]] = None
    skip_reasons: List[Dict[str, Any]] = field(default_factory=list)


class ExecutionTracker:
    """
    Records what the committer reports; makes no decisions of its own.

    Once a terminal status is recorded the state is frozen: later calls
    are ignored with a warning.
    """

    def __init__(self):
        self._state = ExecutionState()

    @property
    def state(self) -> ExecutionState:
        """A copy, so observers cannot mutate the tracked counters."""
        return replace(self._state, skip_reasons=list(self._state.skip_reasons))

    @property
    def is_terminal(self) -> bool:
        return self._state.status.is_terminal

    def _frozen(self, event: str) -> bool:
        if self.is_terminal:
            logger.warning(f"Ignoring {event}: run already {self._state.status.value}")
            return True
        return False

    def on_run_started(self) -> None:
        if self._frozen("run start"):
            return
        self._state.started_at = datetime.utcnow()

    def on_chunk_committed(self, seq: int, records_written: int, records_read: int = 0) -> None:
        if self._frozen(f"chunk {seq} commit"):
            return
        self._state.last_committed_chunk_seq = seq
        self._state.records_written += records_written
        self._state.records_read += records_read

    def on_skip(self, reason: Dict[str, Any]) -> None:
        if self._frozen("skip"):
            return
        self._state.records_skipped += 1
        if len(self._state.skip_reasons) < MAX_SKIP_REASONS:
            self._state.skip_reasons.append(reason)

    def on_terminal(self, status: RunStatus, error: Optional[Dict[str, Any]] = None) -> None:
        if not status.is_terminal:
            raise ValueError(f"{status.value} is not a terminal status")
        if self._frozen(f"terminal status {status.value}"):
            return
        self._state.status = status
        self._state.error = error
        self._state.finished_at = datetime.utcnow()
