"""
Build stage functions from declarative specs (the STAGES setting)

Example spec list::

    [
        {"type": "filter", "field": "status", "in": ["ACTIVE"]},
        {"type": "require", "fields": ["id", "email"]},
        {"type": "uppercase", "field": "country"},
        {"type": "constant", "field": "source_system", "value": "legacy"}
    ]
"""

from typing import Any, Callable, Dict, Iterable, List, Mapping

from core.exceptions import ConfigurationError
from migration.stages import enrichers, filters, transformers
from migration.stages.pipeline import Stage, StagePipeline

StageBuilder = Callable[[Mapping[str, Any]], Stage]

STAGE_BUILDERS: Dict[str, StageBuilder] = {
    "filter": lambda spec: filters.field_in(spec["field"], spec["in"]),
    "exclude": lambda spec: filters.field_not_in(spec["field"], spec["in"]),
    "not_null": lambda spec: filters.not_null(spec["field"]),
    "require": lambda spec: transformers.require(*spec["fields"]),
    "rename": lambda spec: transformers.rename(spec["mapping"]),
    "select": lambda spec: transformers.select(spec["fields"]),
    "uppercase": lambda spec: transformers.uppercase(spec["field"]),
    "strip": lambda spec: transformers.strip(spec["field"]),
    "constant": lambda spec: enrichers.constant(spec["field"], spec.get("value")),
    "copy": lambda spec: enrichers.copy_field(spec["source"], spec["target"]),
    "concat": lambda spec: enrichers.concat(
        spec["target"], spec["fields"], spec.get("separator", " ")
    ),
}


def build_stage(spec: Mapping[str, Any]) -> Stage:
    stage_type = spec.get("type")
    builder = STAGE_BUILDERS.get(stage_type)
    if builder is None:
        raise ConfigurationError(
            f"Unknown stage type: {stage_type}",
            context={"known_types": ", ".join(sorted(STAGE_BUILDERS))}
        )
    try:
        return builder(spec)
    except (KeyError, TypeError) as e:
        raise ConfigurationError(
            f"Invalid {stage_type} stage spec",
            context={"spec": dict(spec)},
            original_exception=e
        )


def build_pipeline(specs: Iterable[Mapping[str, Any]], extra: Iterable[Stage] = ()) -> StagePipeline:
    """Declarative stages first, then any stages passed in code."""
    stages: List[Stage] = [build_stage(spec) for spec in specs]
    stages.extend(extra)
    return StagePipeline(stages)
