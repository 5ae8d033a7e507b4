"""
Paging-mode source: repeated bounded queries advancing a stable key
"""

from collections import deque
from typing import Any, Deque, Mapping, Optional
import logging

from core.exceptions import ConfigurationError, SourceError
from migration.sources.base import Record, SourceAdapter
from migration.sources.sql import build_select

logger = logging.getLogger(__name__)


class PagingSourceAdapter(SourceAdapter):
    """
    Read ``page_size`` rows per query using keyset pagination on ``order_by``.

    Each page asks for rows strictly after the last key consumed, so
    ``reset()`` only has to rewind that key to re-read exactly the same
    records. This is the retry-safe mode.
    """

    source_type = "paging"

    def __init__(self, engine, query):
        if not query.order_by:
            raise ConfigurationError(
                "Paging mode requires a stable, unique order_by key",
                context={"source": query.source_name}
            )
        super().__init__(engine, query)
        self._conn = None
        self._page: Deque[Mapping[str, Any]] = deque()
        self._done = False
        self._last_key: Any = None
        self._mark_key: Any = None
        self.pages_fetched = 0

    async def open(self) -> None:
        with self.translate_errors("connect"):
            self._conn = await self.engine.connect()
        logger.info(f"Opened paging source on {self.query.source_name} (page_size={self.query.page_size})")

    async def next(self) -> Optional[Record]:
        if not self._page:
            if self._done:
                return None
            await self._fetch_page()
            if not self._page:
                return None

        row = self._page.popleft()
        self.position += 1
        self._last_key = self.key_of(row)
        return self.parse_row(row)

    async def _fetch_page(self) -> None:
        if self._conn is None:
            raise SourceError("Paging source is not open", context=self.describe())
        stmt, params = build_select(
            self.query, after_key=self._last_key, limit=self.query.page_size
        )
        with self.translate_errors("fetch page"):
            result = await self._conn.execute(stmt, params)
            rows = result.mappings().all()
        self.pages_fetched += 1
        self._done = len(rows) < self.query.page_size
        self._page.extend(rows)
        logger.debug(
            f"Fetched page {self.pages_fetched} of {self.query.source_name}: "
            f"{len(rows)} rows after key {self._last_key!r}"
        )

    def mark(self) -> None:
        self._mark_position = self.position
        self._mark_key = self._last_key

    async def reset(self) -> None:
        self._page.clear()
        self._done = False
        self._last_key = self._mark_key
        self.position = self._mark_position

        # The failure may have invalidated the connection
        await self._release(self._conn, "connection")
        self._conn = None
        with self.translate_errors("reconnect"):
            self._conn = await self.engine.connect()

    async def close(self) -> None:
        await self._release(self._conn, "connection")
        self._conn = None
        self._page.clear()
        logger.info(
            f"Closed paging source on {self.query.source_name} after "
            f"{self.position} rows in {self.pages_fetched} pages"
        )
