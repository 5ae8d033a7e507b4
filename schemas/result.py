"""
Pydantic schema for the result returned to the orchestration layer
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict
from models.base import RunStatus


class ExecutionResult(BaseModel):
    """Terminal outcome of one migration run."""

    model_config = ConfigDict(frozen=True, use_enum_values=True)

    run_id: str
    status: RunStatus
    records_read: int = 0
    records_written: int = 0
    records_skipped: int = 0
    last_committed_chunk_seq: Optional[int] = None
    # Present only when the artifact was finalized and renamed into place
    artifact: Optional[str] = None
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def succeeded(self) -> bool:
        return self.status == RunStatus.COMPLETED.value

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.started_at and self.finished_at:
            return (self.finished_at - self.started_at).total_seconds()
        return None
