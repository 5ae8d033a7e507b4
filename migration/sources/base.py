"""
Abstract base class for tabular sources with restartable reads
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Mapping, Optional
import asyncio
import logging

from sqlalchemy import exc as sa_exc
from sqlalchemy.ext.asyncio import AsyncEngine

from core.exceptions import SourceError, TransientSourceError
from migration.sources.sql import RowParser
from schemas.job import SourceQuery

logger = logging.getLogger(__name__)

Record = Mapping[str, Any]

TRANSIENT_ERRORS = (
    sa_exc.OperationalError,
    sa_exc.DisconnectionError,
    sa_exc.TimeoutError,
    ConnectionError,
    asyncio.TimeoutError,
)


class SourceAdapter(ABC):
    """
    Pulls an ordered sequence of records from a backing store.

    Responsibilities:
    - Hide whether rows come from one open cursor or successive pages
    - Never hold more than one page / cursor batch of rows (plus the rows
      read since the last ``mark()``, which ``reset()`` may need again)
    - Translate driver failures into TransientSourceError / SourceError;
      deciding whether to retry belongs to the chunk committer
    - Report a malformed row as RecordParseError for that row only

    Lifecycle: ``open()`` → ``next()`` until it returns None → ``close()``.
    The adapter is also an async context manager.
    """

    source_type: str = "abstract"

    def __init__(self, engine: AsyncEngine, query: SourceQuery):
        self.engine = engine
        self.query = query
        self.parse_row = RowParser(query)
        self.position = 0
        self._mark_position = 0

    @abstractmethod
    async def open(self) -> None:
        """Acquire the connection and start reading."""

    @abstractmethod
    async def next(self) -> Optional[Record]:
        """
        Return the next record, or None at end of stream.

        Raises:
            TransientSourceError: the read failed but may succeed after ``reset()``
            RecordParseError: this row is malformed; the adapter has moved past it
            SourceError: the read failed permanently
        """

    @abstractmethod
    async def close(self) -> None:
        """Release the connection / cursor."""

    @abstractmethod
    def mark(self) -> None:
        """Remember the current position (called at each chunk start)."""

    @abstractmethod
    async def reset(self) -> None:
        """Return to the last mark so the same records are read again."""

    async def __aenter__(self) -> "SourceAdapter":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def describe(self) -> dict:
        return {"source_type": self.source_type, "source": self.query.source_name}

    def key_of(self, row: Mapping[str, Any]) -> Any:
        return row.get(self.query.order_by) if self.query.order_by else None

    @contextmanager
    def translate_errors(self, operation: str):
        """Classify driver exceptions raised while talking to the source."""
        try:
            yield
        except TRANSIENT_ERRORS as e:
            raise TransientSourceError(
                f"Transient failure during {operation}",
                context={**self.describe(), "position": self.position},
                original_exception=e
            )
        except sa_exc.DBAPIError as e:
            if e.connection_invalidated:
                raise TransientSourceError(
                    f"Connection invalidated during {operation}",
                    context={**self.describe(), "position": self.position},
                    original_exception=e
                )
            raise SourceError(
                f"Source failure during {operation}",
                context=self.describe(),
                original_exception=e
            )
        except sa_exc.SQLAlchemyError as e:
            raise SourceError(
                f"Source failure during {operation}",
                context=self.describe(),
                original_exception=e
            )

    async def _release(self, resource, label: str) -> None:
        """Close a connection or result that may already be broken."""
        if resource is None:
            return
        try:
            await resource.close()
        except (sa_exc.SQLAlchemyError, OSError) as e:
            logger.warning(f"Ignoring error while closing {label} for {self.query.source_name}: {e}")
