"""
Source-type registry: the single place a source.type key becomes an adapter
"""

from typing import Callable, Dict, List
from sqlalchemy.ext.asyncio import AsyncEngine

from core.exceptions import ConfigurationError
from migration.sources.base import SourceAdapter
from migration.sources.cursor import CursorSourceAdapter
from migration.sources.paging import PagingSourceAdapter
from models.base import SourceMode
from schemas.job import SourceQuery

SourceFactory = Callable[[AsyncEngine, SourceQuery], SourceAdapter]


class SourceRegistry:
    """Explicit mapping from source-type key to adapter constructor."""

    def __init__(self):
        self._factories: Dict[str, SourceFactory] = {}

    def register(self, source_type: str, factory: SourceFactory) -> None:
        if source_type in self._factories:
            raise ConfigurationError(f"Source type already registered: {source_type}")
        self._factories[source_type] = factory

    def create(self, source_type: str, engine: AsyncEngine, query: SourceQuery) -> SourceAdapter:
        try:
            factory = self._factories[source_type]
        except KeyError:
            raise ConfigurationError(
                f"Unknown source type: {source_type}",
                context={"registered": ", ".join(self.types)}
            )
        return factory(engine, query)

    @property
    def types(self) -> List[str]:
        return sorted(self._factories)

    def __contains__(self, source_type: str) -> bool:
        return source_type in self._factories


def default_registry() -> SourceRegistry:
    """Registry with the built-in cursor and paging adapters."""
    registry = SourceRegistry()
    registry.register(SourceMode.CURSOR.value, CursorSourceAdapter)
    registry.register(SourceMode.PAGING.value, PagingSourceAdapter)
    return registry
