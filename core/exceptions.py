"""
Custom exceptions for the migration engine with structured error context.

This module provides the exception hierarchy used throughout the migration
pipeline. Each exception carries context information for debugging and for
the persisted run record.

Exception Hierarchy:
    MigrationError (base)
    ├── SourceError
    │   └── TransientSourceError (retryable)
    ├── RecordError (skippable)
    │   ├── RecordParseError
    │   ├── RecordValidationError
    │   ├── RecordEncodingError
    │   └── StageError
    ├── ConfigurationError
    ├── SinkError
    │   └── EncryptionError
    ├── RetryLimitExceededError
    ├── SkipLimitExceededError
    ├── RunCancelledError
    └── RetryableError / NonRetryableError (mixins)
"""

from typing import Optional, Dict, Any, Iterable, Tuple, Type
from datetime import datetime


class MigrationError(Exception):
    """
    Base exception for all migration-related errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (chunk, record key, etc.)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = dict(context or {})
        self.original_exception = original_exception
        self.timestamp = datetime.utcnow()

        self.context["error_timestamp"] = self.timestamp.isoformat()

        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/storage."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": {k: str(v) for k, v in self.context.items()},
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


# ============================================================================
# Retry Strategy Mixins
# ============================================================================

class RetryableError(MigrationError):
    """
    Mixin for errors that may succeed when the same chunk is read again.

    Use this for transient errors like:
    - Network blips while reading the source
    - Lock or statement timeouts
    - Dropped database connections
    """


class NonRetryableError(MigrationError):
    """
    Mixin for errors that must never trigger a chunk retry.

    Use this for permanent errors like:
    - Invalid configuration
    - Output stream / encryption failures
    """


# ============================================================================
# Source Errors
# ============================================================================

class SourceError(MigrationError):
    """
    Exception raised when reading the source fails permanently.

    Context should include:
        - source_type: Adapter variant (cursor, paging)
        - source: Table name or statement
    """


class TransientSourceError(RetryableError, SourceError):
    """Network, lock or timeout failure while reading the source."""


# ============================================================================
# Record Errors
# ============================================================================

class RecordError(MigrationError):
    """
    Exception raised when a single record cannot be migrated.

    Context should include:
        - record_key: Ordering key value of the offending record
        - field_name: Column or field that failed (if applicable)
    """


class RecordParseError(RecordError):
    """A source column value could not be converted to its declared type."""


class RecordValidationError(RecordError):
    """A record violated a business rule checked by a stage."""


class RecordEncodingError(RecordError):
    """A record cannot be written in the configured output encoding."""


class StageError(RecordError):
    """
    An unexpected exception escaped a stage.

    Context should include:
        - stage: Name of the stage that raised
    """


# ============================================================================
# Configuration / Sink Errors
# ============================================================================

class ConfigurationError(NonRetryableError):
    """Invalid or missing required setting, raised before any record is read."""


class SinkError(NonRetryableError):
    """
    Exception raised when writing or finalizing the output artifact fails.

    Context should include:
        - destination: Final artifact path
        - lines_written: Data lines written before the failure
    """


class EncryptionError(SinkError):
    """Failure inside the encryption layer (encrypt or decrypt)."""


# ============================================================================
# Run-level Errors
# ============================================================================

class RetryLimitExceededError(NonRetryableError):
    """A chunk kept failing with retryable errors after the retry budget."""


class SkipLimitExceededError(NonRetryableError):
    """The run-wide number of skipped records went over the skip budget."""


class RunCancelledError(NonRetryableError):
    """The run was cancelled at a chunk boundary."""


ERROR_KINDS: Dict[str, Type[Exception]] = {
    cls.__name__: cls
    for cls in (
        MigrationError,
        RetryableError,
        NonRetryableError,
        SourceError,
        TransientSourceError,
        RecordError,
        RecordParseError,
        RecordValidationError,
        RecordEncodingError,
        StageError,
        ConfigurationError,
        SinkError,
        EncryptionError,
    )
}


def resolve_error_kinds(names: Iterable[str]) -> Tuple[Type[Exception], ...]:
    """Map configured error-kind names to exception classes."""
    resolved = []
    for name in names:
        try:
            resolved.append(ERROR_KINDS[name])
        except KeyError:
            raise ConfigurationError(
                f"Unknown error kind: {name}",
                context={"known_kinds": ", ".join(sorted(ERROR_KINDS))}
            )
    return tuple(resolved)
