"""
Chunked migration engine: source -> stages -> chunk committer -> framed sink.

Modules:
    fault_policy: Retry / skip classification of errors
    committer: Chunk assembly, retry, skip accounting and commit
    tracker: Passive run-level counters (ExecutionState)
    run_store: Persistence of run records in the migration_runs table
    runner: Facade wiring all components for one run

Subpackages:
    sources: Source adapters (cursor, paging) and the source-type registry
    stages: Filter / transform / enrich stage functions and the pipeline
    sinks: Line formatting, encryption, layer stack, framed sink, reader

Architecture:
    Records are pulled one at a time from the source adapter, passed through
    the stage pipeline and collected into chunks of ``chunk_size`` surviving
    records. A chunk reaches the sink only once it is fully assembled, so a
    chunk retried after a transient source error is written exactly once.
    The sink frames the artifact (header, data lines, footer with the line
    count), optionally compresses and encrypts it, and publishes it by
    atomic rename on finalize.

Usage:
    from core.config import settings
    from migration.runner import MigrationRunner

    runner = MigrationRunner.from_settings(settings)
    result = await runner.run()

    print(f"{result.status}: wrote {result.records_written} records to {result.artifact}")

Error Handling:
    TransientSourceError retries the chunk, RecordError skips the record
    (bounded by the skip limit), ConfigurationError and SinkError end the
    run. See core.exceptions for the full hierarchy.
"""

__all__ = [
    "ChunkCommitter",
    "ExecutionTracker",
    "FaultPolicy",
    "MigrationRunner",
    "RunStore",
]
