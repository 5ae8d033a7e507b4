"""
Unit tests for source adapters (SQLite through the async engine)
"""

import pytest
from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock, Mock
from sqlalchemy import exc as sa_exc
from core.exceptions import (
    ConfigurationError,
    RecordParseError,
    SourceError,
    TransientSourceError,
)
from migration.sources import CursorSourceAdapter, PagingSourceAdapter, SourceRegistry, default_registry
from migration.sources.sql import RowParser, build_select
from schemas.job import SourceQuery


async def read_all(adapter):
    records = []
    while True:
        record = await adapter.next()
        if record is None:
            return records
        records.append(record)


class TestBuildSelect:
    """SQL text generation"""

    def test_table_with_where_and_order(self):
        query = SourceQuery(table="customers", where="status = 'ACTIVE'", order_by="id")
        stmt, params = build_select(query)
        assert str(stmt) == "SELECT * FROM customers WHERE (status = 'ACTIVE') ORDER BY id"
        assert params == {}

    def test_keyset_page(self):
        query = SourceQuery(table="customers", columns=["id", "name"], order_by="id")
        stmt, params = build_select(query, after_key=10, limit=50)
        assert str(stmt) == "SELECT id, name FROM customers WHERE id > :after_key ORDER BY id LIMIT :limit"
        assert params == {"after_key": 10, "limit": 50}

    def test_statement_is_wrapped(self):
        query = SourceQuery(statement="SELECT id FROM a JOIN b USING (id)", order_by="id")
        stmt, _ = build_select(query)
        assert str(stmt).startswith("SELECT * FROM (SELECT id FROM a JOIN b USING (id)) src")


class TestRowParser:
    """Typed column conversion"""

    def test_converts_declared_columns(self):
        parser = RowParser(SourceQuery(
            table="t", order_by="id",
            column_types={"balance": "decimal", "joined": "date", "active": "bool"},
        ))
        record = parser({"id": 1, "balance": "10.50", "joined": "2024-01-02", "active": "yes"})
        assert record["balance"] == Decimal("10.50")
        assert record["joined"] == date(2024, 1, 2)
        assert record["active"] is True

    def test_bad_value_is_record_parse_error(self):
        parser = RowParser(SourceQuery(table="t", order_by="id", column_types={"balance": "decimal"}))
        with pytest.raises(RecordParseError) as exc_info:
            parser({"id": 7, "balance": "ten"})
        assert exc_info.value.context["record_key"] == 7
        assert exc_info.value.context["field_name"] == "balance"

    def test_nulls_are_not_converted(self):
        parser = RowParser(SourceQuery(table="t", column_types={"balance": "float"}))
        assert parser({"balance": None})["balance"] is None


class TestPagingSource:
    """Keyset paging on a stable key"""

    @pytest.mark.asyncio
    async def test_reads_all_rows_in_key_order(self, source_engine, customers):
        query = SourceQuery(table="customers", order_by="id", page_size=2)
        async with PagingSourceAdapter(source_engine, query) as adapter:
            records = await read_all(adapter)
            assert [r["id"] for r in records] == [1, 2, 3, 4, 5]
            # 2 + 2 + 1 rows; the short page ends the stream
            assert adapter.pages_fetched == 3

    @pytest.mark.asyncio
    async def test_exact_multiple_needs_one_empty_page(self, source_engine, seed):
        await seed([{"id": i} for i in range(1, 5)])
        query = SourceQuery(table="customers", order_by="id", page_size=2)
        async with PagingSourceAdapter(source_engine, query) as adapter:
            assert len(await read_all(adapter)) == 4
            assert adapter.pages_fetched == 3

    @pytest.mark.asyncio
    async def test_reset_rereads_from_mark(self, source_engine, customers):
        query = SourceQuery(table="customers", order_by="id", page_size=2)
        async with PagingSourceAdapter(source_engine, query) as adapter:
            await adapter.next()
            adapter.mark()
            first = [(await adapter.next())["id"] for _ in range(3)]
            await adapter.reset()
            second = [(await adapter.next())["id"] for _ in range(3)]
            assert first == second == [2, 3, 4]
            assert adapter.position == 4

    @pytest.mark.asyncio
    async def test_where_clause(self, source_engine, customers):
        query = SourceQuery(table="customers", where="status = 'ACTIVE'", order_by="id", page_size=2)
        async with PagingSourceAdapter(source_engine, query) as adapter:
            assert [r["id"] for r in await read_all(adapter)] == [1, 3, 4]

    @pytest.mark.asyncio
    async def test_malformed_row_does_not_stop_the_page(self, source_engine, seed):
        await seed([{"id": 1, "balance": "1.0"}, {"id": 2, "balance": "oops"}, {"id": 3, "balance": "3.0"}])
        query = SourceQuery(table="customers", order_by="id", page_size=10, column_types={"balance": "float"})
        async with PagingSourceAdapter(source_engine, query) as adapter:
            assert (await adapter.next())["id"] == 1
            with pytest.raises(RecordParseError):
                await adapter.next()
            assert (await adapter.next())["id"] == 3

    def test_requires_order_by(self, source_engine):
        with pytest.raises(ConfigurationError):
            PagingSourceAdapter(source_engine, SourceQuery(table="customers"))

    def test_driver_errors_are_classified(self, source_engine):
        adapter = PagingSourceAdapter(source_engine, SourceQuery(table="customers", order_by="id"))

        with pytest.raises(TransientSourceError):
            with adapter.translate_errors("fetch"):
                raise sa_exc.OperationalError("SELECT", {}, Exception("lock timeout"))

        with pytest.raises(TransientSourceError):
            with adapter.translate_errors("fetch"):
                raise sa_exc.DBAPIError("SELECT", {}, Exception("gone"), connection_invalidated=True)

        with pytest.raises(SourceError) as exc_info:
            with adapter.translate_errors("fetch"):
                raise sa_exc.ProgrammingError("SELECT", {}, Exception("relation does not exist"))
        assert not isinstance(exc_info.value, TransientSourceError)
        assert exc_info.value.context["source"] == "customers"


class TestCursorSource:
    """Single streaming cursor with replay"""

    @pytest.mark.asyncio
    async def test_reads_all_rows(self, source_engine, customers):
        query = SourceQuery(table="customers", order_by="id", fetch_size=2)
        async with CursorSourceAdapter(source_engine, query) as adapter:
            assert [r["id"] for r in await read_all(adapter)] == [1, 2, 3, 4, 5]

    @pytest.mark.asyncio
    async def test_reset_replays_rows_since_mark(self, source_engine, customers):
        query = SourceQuery(table="customers", order_by="id", fetch_size=2)
        async with CursorSourceAdapter(source_engine, query) as adapter:
            await adapter.next()
            adapter.mark()
            first = [(await adapter.next())["id"] for _ in range(3)]
            await adapter.reset()
            rest = [r["id"] for r in await read_all(adapter)]
            assert first == [2, 3, 4]
            assert rest == [2, 3, 4, 5]

    @pytest.mark.asyncio
    async def test_reopens_after_failed_fetch(self, source_engine, customers):
        query = SourceQuery(table="customers", order_by="id", fetch_size=2)
        async with CursorSourceAdapter(source_engine, query) as adapter:
            assert (await adapter.next())["id"] == 1
            adapter.mark()
            assert (await adapter.next())["id"] == 2

            broken = Mock()
            broken.fetchmany = AsyncMock(
                side_effect=sa_exc.OperationalError("FETCH", {}, Exception("connection reset"))
            )
            broken.close = AsyncMock()
            await adapter._result.close()
            adapter._result = broken
            with pytest.raises(TransientSourceError):
                await adapter.next()

            await adapter.reset()
            assert [r["id"] for r in await read_all(adapter)] == [2, 3, 4, 5]


class TestRegistry:
    """Source-type registry"""

    def test_default_registry_types(self):
        assert default_registry().types == ["cursor", "paging"]

    def test_unknown_type(self, source_engine):
        with pytest.raises(ConfigurationError):
            default_registry().create("kafka", source_engine, SourceQuery(table="t", order_by="id"))

    def test_register_new_type(self, source_engine):
        registry = SourceRegistry()
        registry.register("replica", PagingSourceAdapter)
        adapter = registry.create("replica", source_engine, SourceQuery(table="t", order_by="id"))
        assert isinstance(adapter, PagingSourceAdapter)
        assert "replica" in registry

    def test_duplicate_registration(self):
        registry = default_registry()
        with pytest.raises(ConfigurationError):
            registry.register("paging", PagingSourceAdapter)
