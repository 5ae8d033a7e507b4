"""
Pydantic schemas for migration job configuration with validation
"""

from typing import Optional, List, Dict, Any, Literal
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from core.exceptions import ConfigurationError, resolve_error_kinds

COLUMN_TYPES = ("int", "float", "decimal", "date", "datetime", "str", "bool")


def normalize_line_ending(value: str) -> str:
    """Accept escaped forms ("\\n", "\\r\\n") as they arrive from env files."""
    return value.replace("\\r", "\r").replace("\\n", "\n")


class SourceQuery(BaseModel):
    """
    Describes what to read from the backing store.

    Exactly one of ``table`` or ``statement`` is set. When paging is used,
    ``order_by`` must name a stable, unique key so pages neither skip nor
    repeat rows. A projected ``columns`` list must include ``order_by``:
    sources resume from the key of the last row they returned.
    """

    model_config = ConfigDict(frozen=True)

    table: Optional[str] = None
    statement: Optional[str] = None
    columns: Optional[List[str]] = None
    where: Optional[str] = None
    order_by: Optional[str] = None
    page_size: int = Field(1000, gt=0)
    fetch_size: int = Field(1000, gt=0)
    column_types: Dict[str, str] = Field(default_factory=dict)

    @field_validator("column_types")
    @classmethod
    def check_column_types(cls, v):
        unknown = {col: kind for col, kind in v.items() if kind not in COLUMN_TYPES}
        if unknown:
            raise ValueError(f"Unsupported column types {unknown}; expected one of {COLUMN_TYPES}")
        return v

    @model_validator(mode="after")
    def check_target(self):
        if bool(self.table) == bool(self.statement):
            raise ValueError("Exactly one of table or statement must be configured")
        if self.columns and self.order_by and self.order_by not in self.columns:
            raise ValueError(f"columns must include the order_by key {self.order_by!r}")
        return self

    @property
    def source_name(self) -> str:
        return self.table or "statement"


class FaultPolicyConfig(BaseModel):
    """Retry and skip budgets plus the error kinds each applies to."""

    model_config = ConfigDict(frozen=True)

    retry_limit: int = Field(3, ge=0)
    retry_delay: float = Field(1.0, ge=0)
    retryable_errors: List[str] = Field(default_factory=lambda: ["TransientSourceError"])
    skip_limit: int = Field(0, ge=0)
    skippable_errors: List[str] = Field(default_factory=lambda: ["RecordError"])

    @field_validator("retryable_errors", "skippable_errors")
    @classmethod
    def check_error_kinds(cls, v):
        try:
            resolve_error_kinds(v)
        except ConfigurationError as e:
            raise ValueError(e.message)
        return v


class SinkConfig(BaseModel):
    """Output artifact framing, serialization and layering options."""

    model_config = ConfigDict(frozen=True)

    destination: str = Field(..., min_length=1)
    header: str = "HEADER"
    footer_label: str = "Total Records"
    delimiter: str = Field("|", min_length=1, max_length=1)
    fields: Optional[List[str]] = None
    null_value: str = ""
    line_ending: str = "\n"
    encoding: str = "utf-8"
    compression: Literal["none", "gzip", "bz2"] = "none"
    encryption_enabled: bool = False
    encryption_key_ref: Optional[str] = None

    @field_validator("line_ending", mode="before")
    @classmethod
    def clean_line_ending(cls, v):
        v = normalize_line_ending(v or "")
        if v not in ("\n", "\r\n"):
            raise ValueError("line_ending must be \\n or \\r\\n")
        return v

    @field_validator("header", "footer_label", "null_value")
    @classmethod
    def single_line(cls, v):
        if "\n" in v or "\r" in v:
            raise ValueError("Frame text must fit on one line")
        return v

    @field_validator("delimiter")
    @classmethod
    def check_delimiter(cls, v):
        # One record per physical line; '"' is the quote character
        if v in ("\n", "\r", '"'):
            raise ValueError("delimiter cannot be a line break or the quote character")
        return v

    @model_validator(mode="after")
    def check_encryption(self):
        if self.encryption_enabled and not self.encryption_key_ref:
            raise ValueError("encryption_key_ref is required when encryption is enabled")
        return self


class MigrationJobConfig(BaseModel):
    """Everything the engine needs for one run."""

    model_config = ConfigDict(frozen=True)

    source_type: str = Field("paging", min_length=1)
    query: SourceQuery
    chunk_size: int = Field(500, gt=0)
    fault: FaultPolicyConfig = Field(default_factory=FaultPolicyConfig)
    sink: SinkConfig
    stages: List[Dict[str, Any]] = Field(default_factory=list)

    @classmethod
    def build(cls, **values) -> "MigrationJobConfig":
        """Validate values, reporting problems as ConfigurationError."""
        try:
            return cls(**values)
        except ValidationError as e:
            raise ConfigurationError(
                "Invalid migration job configuration",
                context={"errors": "; ".join(
                    f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
                )},
                original_exception=e
            )

    @classmethod
    def from_settings(cls, settings) -> "MigrationJobConfig":
        """Assemble the job from flat environment settings."""
        return cls.build(
            source_type=settings.SOURCE_TYPE,
            query=dict(
                table=settings.SOURCE_TABLE,
                statement=settings.SOURCE_STATEMENT,
                columns=settings.SOURCE_COLUMNS,
                where=settings.SOURCE_WHERE,
                order_by=settings.SOURCE_ORDER_BY,
                page_size=settings.SOURCE_PAGE_SIZE,
                fetch_size=settings.SOURCE_FETCH_SIZE,
                column_types=settings.SOURCE_COLUMN_TYPES,
            ),
            chunk_size=settings.CHUNK_SIZE,
            fault=dict(
                retry_limit=settings.FAULT_RETRY_LIMIT,
                retry_delay=settings.FAULT_RETRY_DELAY,
                retryable_errors=settings.FAULT_RETRYABLE_ERRORS,
                skip_limit=settings.FAULT_SKIP_LIMIT,
                skippable_errors=settings.FAULT_SKIPPABLE_ERRORS,
            ),
            sink=dict(
                destination=settings.SINK_DESTINATION,
                header=settings.SINK_HEADER,
                footer_label=settings.SINK_FOOTER_LABEL,
                delimiter=settings.SINK_DELIMITER,
                fields=settings.SINK_FIELDS,
                null_value=settings.SINK_NULL_VALUE,
                line_ending=settings.SINK_LINE_ENDING,
                encoding=settings.SINK_ENCODING,
                compression=settings.SINK_COMPRESSION,
                encryption_enabled=settings.SINK_ENCRYPTION_ENABLED,
                encryption_key_ref=settings.SINK_ENCRYPTION_KEY_REF,
            ),
            stages=settings.STAGES,
        )

    def snapshot(self) -> Dict[str, Any]:
        """Config as stored on the run record (no key material is held here)."""
        return self.model_dump(mode="json")
