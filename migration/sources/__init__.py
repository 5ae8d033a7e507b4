from migration.sources.base import Record, SourceAdapter
from migration.sources.cursor import CursorSourceAdapter
from migration.sources.paging import PagingSourceAdapter
from migration.sources.registry import SourceRegistry, default_registry

__all__ = [
    "Record",
    "SourceAdapter",
    "CursorSourceAdapter",
    "PagingSourceAdapter",
    "SourceRegistry",
    "default_registry",
]
