"""
Stage pipeline: an ordered list of ``record -> record | None`` functions
"""

from types import MappingProxyType
from typing import Any, Callable, Iterable, List, Mapping, Optional
import logging

from core.exceptions import MigrationError, StageError

logger = logging.getLogger(__name__)

Record = Mapping[str, Any]
Stage = Callable[[Record], Optional[Record]]


def stage_name(stage: Stage) -> str:
    return getattr(stage, "stage_name", None) or getattr(stage, "__name__", repr(stage))


def freeze(record: Mapping[str, Any]) -> Record:
    if isinstance(record, MappingProxyType):
        return record
    return MappingProxyType(dict(record))


class StagePipeline:
    """
    Compose stages left to right.

    A stage returns None to drop the record (filter), or a new mapping
    (transform / enrich). None short-circuits the remaining stages. Every
    stage output is frozen so no stage can mutate what an earlier stage
    produced.

    Errors:
    - MigrationError subclasses raised by a stage pass through unchanged
      (RecordValidationError to skip the record, TransientSourceError from
      a lookup to retry the chunk)
    - Any other exception becomes a StageError for that record
    """

    def __init__(self, stages: Iterable[Stage] = ()):
        self.stages: List[Stage] = list(stages)

    def apply(self, record: Record) -> Optional[Record]:
        current: Optional[Record] = freeze(record)
        for stage in self.stages:
            try:
                current = stage(current)
            except MigrationError:
                raise
            except Exception as e:
                raise StageError(
                    f"Stage {stage_name(stage)} failed",
                    context={"stage": stage_name(stage)},
                    original_exception=e
                )
            if current is None:
                return None
            current = freeze(current)
        return current

    __call__ = apply

    def __len__(self) -> int:
        return len(self.stages)

    def names(self) -> List[str]:
        return [stage_name(stage) for stage in self.stages]


def named(name: str) -> Callable[[Stage], Stage]:
    """Attach a readable name to a stage closure for logs and errors."""
    def decorate(stage: Stage) -> Stage:
        stage.stage_name = name
        return stage
    return decorate
