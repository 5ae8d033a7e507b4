"""
Pydantic schemas for job configuration, run results and API responses.

Schemas:
    job: MigrationJobConfig with its SourceQuery, FaultPolicyConfig and SinkConfig
    result: ExecutionResult returned to the orchestration layer
    api: Run summaries, run detail and health responses

Usage:
    from schemas.job import MigrationJobConfig
    from schemas.result import ExecutionResult

Example:
    config = MigrationJobConfig.build(
        query={"table": "customers", "order_by": "id"},
        sink={"destination": "/data/out/customers.txt"},
    )

Validation:
    Invalid values are reported by ``MigrationJobConfig.build`` as a single
    ConfigurationError listing every failing field.
"""

__all__ = [
    "MigrationJobConfig",
    "SourceQuery",
    "FaultPolicyConfig",
    "SinkConfig",
    "ExecutionResult",
    "RunSummary",
    "RunDetail",
    "HealthCheckResponse",
]
