from sqlalchemy import Column, BigInteger, String, Enum, DateTime, Float, Integer, Text, Index
from datetime import datetime
from models.base import Base, RunStatus, JSONType


class MigrationRun(Base):
    """
    Tracks metadata for each migration run.

    Purpose:
    - Audit trail of all runs
    - Progress for job-level restart decisions (last committed chunk)
    - Error tracking and debugging
    """
    __tablename__ = "migration_runs"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    run_id = Column(String(36), unique=True, nullable=False, index=True)

    # Job identification
    source_type = Column(String(50), nullable=False, index=True)
    source_name = Column(String(255), nullable=False)
    destination = Column(String(1024), nullable=False, index=True)

    # Run metadata
    status = Column(Enum(RunStatus), default=RunStatus.RUNNING, nullable=False, index=True)

    # Timestamps
    started_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    completed_at = Column(DateTime, nullable=True)
    duration_seconds = Column(Float, nullable=True)

    # Statistics
    records_read = Column(Integer, default=0, nullable=False)
    records_written = Column(Integer, default=0, nullable=False)
    records_skipped = Column(Integer, default=0, nullable=False)
    last_committed_chunk_seq = Column(Integer, nullable=True)

    # Error tracking
    error_message = Column(Text, nullable=True)
    error_details = Column(JSONType, nullable=True)

    # Configuration snapshot
    config_snapshot = Column(JSONType, nullable=True)

    # Published artifact (set only after a successful finalize)
    artifact_path = Column(String(1024), nullable=True)

    __table_args__ = (
        Index("idx_migration_run_destination_started", "destination", "started_at"),
        Index("idx_migration_run_status", "status", "started_at"),
    )
