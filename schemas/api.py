"""
Pydantic schemas for API request/response models
"""

from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import Optional, List, Dict, Any
from datetime import datetime
from models.base import RunStatus


# ============================================================================
# Run Schemas
# ============================================================================

class RunSummary(BaseModel):
    """One migration run as listed by /runs"""
    run_id: str
    source_type: str
    source_name: str
    destination: str
    status: RunStatus
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration_seconds: Optional[float] = None
    records_read: int = 0
    records_written: int = 0
    records_skipped: int = 0
    last_committed_chunk_seq: Optional[int] = None
    artifact_path: Optional[str] = None
    error_message: Optional[str] = None

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class RunDetail(RunSummary):
    """Full run record, including error details and the config snapshot"""
    error_details: Optional[Dict[str, Any]] = None
    config_snapshot: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(
        from_attributes=True,
        use_enum_values=True,
        json_schema_extra={
            "example": {
                "run_id": "0d9f6c1e-5a7b-4c1a-9c55-3f0b9a0d2e11",
                "source_type": "paging",
                "source_name": "customers",
                "destination": "/data/out/customers.txt.gz.enc",
                "status": "completed",
                "started_at": "2024-01-15T10:00:00Z",
                "completed_at": "2024-01-15T10:02:13Z",
                "duration_seconds": 133.4,
                "records_read": 120000,
                "records_written": 118950,
                "records_skipped": 3,
                "last_committed_chunk_seq": 240,
                "artifact_path": "/data/out/customers.txt.gz.enc",
                "error_details": {"skipped_records": []}
            }
        }
    )


class RunListResponse(BaseModel):
    runs: List[RunSummary]
    count: int
    status_filter: Optional[RunStatus] = None

    model_config = ConfigDict(use_enum_values=True)


# ============================================================================
# Health Check Schemas
# ============================================================================

class DestinationStatus(BaseModel):
    """Latest run for one destination"""
    destination: str
    last_run_id: str
    status: RunStatus
    started_at: datetime
    completed_at: Optional[datetime] = None
    records_written: int = 0

    model_config = ConfigDict(use_enum_values=True)


class HealthCheckResponse(BaseModel):
    """Health check response model"""
    status: str = Field("healthy", description="Overall system status: healthy, degraded, unhealthy")
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    database_connected: bool
    destinations: List[DestinationStatus] = Field(default_factory=list)
    running_runs: int = 0
    failed_destinations: int = 0

    @model_validator(mode="after")
    def determine_status(self):
        """Unhealthy without a database; degraded while any destination's last run failed"""
        if not self.database_connected:
            self.status = "unhealthy"
        elif self.failed_destinations:
            self.status = "degraded"
        else:
            self.status = "healthy"
        return self


# ============================================================================
# Error Response Schema
# ============================================================================

class ErrorResponse(BaseModel):
    """Standard error response"""
    error: str
    detail: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)
