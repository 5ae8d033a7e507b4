"""
Cursor-mode source: one server-side cursor read until exhausted
"""

from collections import deque
from typing import Any, Deque, List, Mapping, Optional
import logging

from core.exceptions import SourceError, TransientSourceError
from migration.sources.base import Record, SourceAdapter
from migration.sources.sql import build_select

logger = logging.getLogger(__name__)


class CursorSourceAdapter(SourceAdapter):
    """
    Stream rows through a single open cursor, ``fetch_size`` rows at a time.

    A cursor cannot be rewound, so ``reset()`` replays the rows read since
    the last mark from memory. When the cursor itself failed (for example
    the connection dropped), replay is not enough: the query is reopened
    after the ordering key of the last row before the mark. That recovery
    is best effort and needs a stable, unique ``order_by``.
    """

    source_type = "cursor"

    def __init__(self, engine, query):
        super().__init__(engine, query)
        self._conn = None
        self._result = None
        self._batch: Deque[Mapping[str, Any]] = deque()
        self._replay: List[Mapping[str, Any]] = []
        self._exhausted = False
        self._stale = False
        self._last_key: Any = None
        self._mark_key: Any = None
        if not query.order_by:
            logger.warning(
                f"Cursor source {query.source_name} has no order_by; "
                "it cannot be reopened after a connection failure"
            )

    async def open(self) -> None:
        await self._start(after_key=None)
        logger.info(f"Opened cursor on {self.query.source_name} (fetch_size={self.query.fetch_size})")

    async def _start(self, after_key: Any) -> None:
        stmt, params = build_select(self.query, after_key=after_key)
        with self.translate_errors("open cursor"):
            self._conn = await self.engine.connect()
            try:
                self._result = await self._conn.stream(stmt, params)
            except BaseException:
                await self._release(self._conn, "connection")
                self._conn = None
                raise
        self._exhausted = False
        self._stale = False

    async def next(self) -> Optional[Record]:
        if not self._batch:
            if self._exhausted:
                return None
            await self._fill()
            if not self._batch:
                return None

        row = self._batch.popleft()
        self.position += 1
        self._replay.append(row)
        if self.query.order_by:
            self._last_key = self.key_of(row)
        return self.parse_row(row)

    async def _fill(self) -> None:
        if self._result is None:
            raise SourceError("Cursor is not open", context=self.describe())
        try:
            with self.translate_errors("fetch"):
                rows = await self._result.fetchmany(self.query.fetch_size)
        except TransientSourceError:
            self._stale = True
            raise
        if not rows:
            self._exhausted = True
        self._batch.extend(row._mapping for row in rows)

    def mark(self) -> None:
        self._replay = []
        self._mark_position = self.position
        self._mark_key = self._last_key

    async def reset(self) -> None:
        if self._stale:
            if not self.query.order_by:
                raise SourceError(
                    "Cursor failed and cannot be reopened without an ordering key",
                    context=self.describe()
                )
            logger.warning(
                f"Reopening cursor on {self.query.source_name} after key {self._mark_key!r}"
            )
            await self._close_cursor()
            self._batch.clear()
            await self._start(after_key=self._mark_key)
        else:
            self._batch.extendleft(reversed(self._replay))

        self._replay = []
        self.position = self._mark_position
        self._last_key = self._mark_key

    async def _close_cursor(self) -> None:
        await self._release(self._result, "cursor")
        await self._release(self._conn, "connection")
        self._result = None
        self._conn = None

    async def close(self) -> None:
        await self._close_cursor()
        self._batch.clear()
        self._replay = []
        logger.info(f"Closed cursor on {self.query.source_name} after {self.position} rows")
