"""
Filter stages: return the record unchanged or None to drop it
"""

from typing import Any, Callable, Iterable

from migration.stages.pipeline import Record, Stage, named


def field_in(field: str, values: Iterable[Any]) -> Stage:
    """Keep records whose ``field`` is one of ``values``."""
    allowed = frozenset(values)

    @named(f"field_in({field})")
    def stage(record: Record):
        return record if record.get(field) in allowed else None
    return stage


def field_not_in(field: str, values: Iterable[Any]) -> Stage:
    """Drop records whose ``field`` is one of ``values``."""
    excluded = frozenset(values)

    @named(f"field_not_in({field})")
    def stage(record: Record):
        return None if record.get(field) in excluded else record
    return stage


def not_null(field: str) -> Stage:
    @named(f"not_null({field})")
    def stage(record: Record):
        return record if record.get(field) is not None else None
    return stage


def where(predicate: Callable[[Record], bool], name: str = "where") -> Stage:
    """Keep records for which ``predicate`` is true."""
    @named(name)
    def stage(record: Record):
        return record if predicate(record) else None
    return stage
