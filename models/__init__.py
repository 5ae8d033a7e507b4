"""
SQLAlchemy ORM models for the run-tracking database.

Models:
    base: Declarative base, JSON column type and shared enums (RunStatus, SourceMode)
    migration_run: One row per migration run with counters and terminal status

Usage:
    from models.base import Base, RunStatus
    from models.migration_run import MigrationRun

The tables being migrated are not modelled here: sources are read with
plain SQL built from the configured SourceQuery.
"""

__all__ = [
    "Base",
    "RunStatus",
    "SourceMode",
    "MigrationRun",
]
