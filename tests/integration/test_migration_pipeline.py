"""
End-to-end migration runs: SQLite source -> stages -> framed artifact
"""

import pytest
from core.exceptions import RecordValidationError
from migration.run_store import RunStore
from migration.runner import MigrationRunner
from migration.sinks.reader import read_artifact, read_plaintext
from migration.stages.pipeline import named
from models.base import RunStatus

ACTIVE_ONLY = [{"type": "filter", "field": "status", "in": ["ACTIVE"]}]


@pytest.mark.asyncio
async def test_filtered_run_writes_framed_artifact(make_config, source_engine, seed, destination):
    """
    Test: 3 records, chunk size 2, a filter dropping one record
    """
    await seed([
        {"id": 1, "status": "ACTIVE", "name": "Ada"},
        {"id": 2, "status": "INACTIVE", "name": "Bob"},
        {"id": 3, "status": "ACTIVE", "name": "Cy"},
    ])
    runner = MigrationRunner(make_config(stages=ACTIVE_ONLY), source_engine)
    result = await runner.run()

    assert result.status == RunStatus.COMPLETED
    assert result.succeeded
    assert result.artifact == str(destination)
    assert result.records_read == 3
    assert result.records_written == 2
    assert result.records_skipped == 0
    assert result.error is None
    assert destination.read_text().splitlines() == [
        "HEADER",
        "1|ACTIVE|Ada",
        "3|ACTIVE|Cy",
        "Total Records: 2",
    ]


@pytest.mark.asyncio
async def test_sample_customers_active_only(make_config, source_engine, customers, destination):
    """
    Test: 5 records of which 3 are ACTIVE produce 3 data lines
    """
    result = await MigrationRunner(make_config(stages=ACTIVE_ONLY), source_engine).run()

    contents = read_artifact(destination)
    assert contents.footer_count == 3
    assert [line.split("|")[0] for line in contents.lines] == ["1", "3", "4"]
    assert result.last_committed_chunk_seq == 2


@pytest.mark.asyncio
async def test_invalid_record_is_skipped_within_limit(make_config, source_engine, customers, destination):
    """
    Test: a validation error on one record with skip limit 1 still completes
    """
    @named("reject_bob")
    def reject_bob(record):
        if record["name"] == "Bob":
            raise RecordValidationError("Bob is not migrated", context={"record_key": record["id"]})
        return record

    runner = MigrationRunner(make_config(fault={"skip_limit": 1}), source_engine, stages=[reject_bob])
    result = await runner.run()

    assert result.status == RunStatus.COMPLETED
    assert result.records_skipped == 1
    assert result.records_written == 4
    assert result.records_read == 5
    assert read_artifact(destination).footer_count == 4

    reason = runner.state.skip_reasons[0]
    assert reason["error_type"] == "RecordValidationError"
    assert reason["record_key"] == "2"


@pytest.mark.asyncio
async def test_malformed_column_is_skipped(make_config, source_engine, seed, destination):
    """
    Test: a source value that cannot be parsed is a skippable record error
    """
    await seed([{"id": 1, "balance": "1.50"}, {"id": 2, "balance": "n/a"}, {"id": 3, "balance": "2.00"}])
    config = make_config(
        query={"column_types": {"balance": "decimal"}},
        fault={"skip_limit": 1},
        sink={"fields": ["id", "balance"]},
    )
    result = await MigrationRunner(config, source_engine).run()

    assert result.status == RunStatus.COMPLETED
    assert read_artifact(destination).lines == ["1|1.50", "3|2.00"]


@pytest.mark.asyncio
async def test_cursor_mode_matches_paging_mode(make_config, source_engine, customers, tmp_path):
    """
    Test: cursor and paging sources produce byte-identical artifacts
    """
    paging_path = tmp_path / "paging.txt"
    cursor_path = tmp_path / "cursor.txt"

    await MigrationRunner(make_config(sink={"destination": str(paging_path)}), source_engine).run()
    result = await MigrationRunner(
        make_config(source_type="cursor", sink={"destination": str(cursor_path)}), source_engine
    ).run()

    assert result.status == RunStatus.COMPLETED
    assert cursor_path.read_bytes() == paging_path.read_bytes()


@pytest.mark.asyncio
async def test_empty_source_produces_zero_count_artifact(make_config, source_engine, destination):
    """
    Test: no rows still yields a complete, verifiable artifact
    """
    result = await MigrationRunner(make_config(), source_engine).run()

    assert result.status == RunStatus.COMPLETED
    assert result.records_written == 0
    assert destination.read_text() == "HEADER\nTotal Records: 0\n"


@pytest.mark.asyncio
async def test_encrypted_gzip_artifact_round_trip(
    make_config, source_engine, customers, tmp_path, public_key_path, rsa_private_key
):
    """
    Test: compressed + encrypted artifact decrypts to the plain artifact's bytes
    """
    plain_path = tmp_path / "plain.txt"
    secure_path = tmp_path / "secure.txt.gz.enc"

    await MigrationRunner(make_config(sink={"destination": str(plain_path)}), source_engine).run()
    result = await MigrationRunner(
        make_config(sink={
            "destination": str(secure_path),
            "compression": "gzip",
            "encryption_enabled": True,
            "encryption_key_ref": str(public_key_path),
        }),
        source_engine,
    ).run()

    assert result.status == RunStatus.COMPLETED
    assert b"Ada" not in secure_path.read_bytes()
    assert read_plaintext(secure_path, "gzip", rsa_private_key) == plain_path.read_bytes()
    contents = read_artifact(secure_path, compression="gzip", private_key=rsa_private_key)
    assert contents.footer_count == 5


@pytest.mark.asyncio
async def test_run_record_is_persisted(make_config, source_engine, customers, tracking_session_maker, destination):
    """
    Test: the run store tracks progress and the terminal status
    """
    store = RunStore(tracking_session_maker)
    runner = MigrationRunner(make_config(stages=ACTIVE_ONLY), source_engine, run_store=store)
    result = await runner.run()

    run = await store.get_run(result.run_id)
    assert run is not None
    assert run.status == RunStatus.COMPLETED
    assert run.source_type == "paging"
    assert run.source_name == "customers"
    assert run.records_read == 5
    assert run.records_written == 3
    assert run.last_committed_chunk_seq == 2
    assert run.artifact_path == str(destination)
    assert run.error_details is None
    assert run.duration_seconds is not None
    assert run.config_snapshot["query"]["table"] == "customers"

    completed = await store.list_runs(status=RunStatus.COMPLETED)
    assert [r.run_id for r in completed] == [result.run_id]


@pytest.mark.asyncio
async def test_runner_is_single_use(make_config, source_engine):
    runner = MigrationRunner(make_config(), source_engine)
    await runner.run()
    with pytest.raises(RuntimeError):
        await runner.run()
