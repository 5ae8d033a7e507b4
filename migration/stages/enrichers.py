"""
Enrichment stages: return the record with fields added
"""

from typing import Any, Callable, Iterable, Mapping

from migration.stages.pipeline import Record, Stage, named


def constant(field: str, value: Any) -> Stage:
    @named(f"constant({field})")
    def stage(record: Record):
        return {**record, field: value}
    return stage


def derive(field: str, fn: Callable[[Record], Any], name: str = None) -> Stage:
    """Add ``field`` computed from the whole record."""
    @named(name or f"derive({field})")
    def stage(record: Record):
        return {**record, field: fn(record)}
    return stage


def copy_field(source: str, target: str) -> Stage:
    return derive(target, lambda r: r.get(source), name=f"copy({source}->{target})")


def concat(target: str, fields: Iterable[str], separator: str = " ") -> Stage:
    parts = list(fields)

    def join(record: Record) -> str:
        return separator.join(str(record[f]) for f in parts if record.get(f) is not None)
    return derive(target, join, name=f"concat({target})")


def lookup(field: str, target: str, table: Mapping[Any, Any], default: Any = None) -> Stage:
    """Add ``target`` from a reference mapping keyed by ``field``."""
    reference = dict(table)

    @named(f"lookup({field}->{target})")
    def stage(record: Record):
        return {**record, target: reference.get(record.get(field), default)}
    return stage
