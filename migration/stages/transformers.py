"""
Transform stages: return a changed copy of the record
"""

from typing import Any, Callable, Dict, Iterable

from core.exceptions import RecordValidationError
from migration.stages.pipeline import Record, Stage, named


def rename(mapping: Dict[str, str]) -> Stage:
    """Rename fields, keeping their position in the record."""
    @named("rename")
    def stage(record: Record):
        return {mapping.get(key, key): value for key, value in record.items()}
    return stage


def select(fields: Iterable[str]) -> Stage:
    """Keep only ``fields``, in the given order."""
    wanted = list(fields)

    @named("select")
    def stage(record: Record):
        return {field: record.get(field) for field in wanted}
    return stage


def map_field(field: str, fn: Callable[[Any], Any], name: str = None) -> Stage:
    """Replace ``field`` with ``fn(value)``; None values are left alone."""
    @named(name or f"map_field({field})")
    def stage(record: Record):
        value = record.get(field)
        if value is None:
            return record
        return {**record, field: fn(value)}
    return stage


def uppercase(field: str) -> Stage:
    return map_field(field, lambda v: str(v).upper(), name=f"uppercase({field})")


def strip(field: str) -> Stage:
    return map_field(field, lambda v: str(v).strip(), name=f"strip({field})")


def require(*fields: str) -> Stage:
    """Business rule: every field must be present and non-empty."""
    @named(f"require({', '.join(fields)})")
    def stage(record: Record):
        missing = [f for f in fields if record.get(f) in (None, "")]
        if missing:
            raise RecordValidationError(
                f"Missing required fields: {', '.join(missing)}",
                context={"field_name": ", ".join(missing)}
            )
        return record
    return stage


def validate(check: Callable[[Record], bool], message: str, name: str = "validate") -> Stage:
    """Business rule from a predicate; failing records are skippable errors."""
    @named(name)
    def stage(record: Record):
        if not check(record):
            raise RecordValidationError(message, context={"stage": name})
        return record
    return stage
