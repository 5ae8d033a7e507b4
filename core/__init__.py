"""
Core utilities and configuration for the batch migration engine.

Modules:
    config: Application configuration and environment variable management
    database: Async engine and session management
    exceptions: Exception hierarchy and error-kind classification
    logging: Logging configuration

Usage:
    from core.config import settings
    from core.database import create_engine, get_session
    from core.exceptions import TransientSourceError, RecordError
    from core.logging import setup_logging
"""

__all__ = [
    "settings",
    "create_engine",
    "get_session",
    "setup_logging",
    # Exceptions
    "MigrationError",
    "RetryableError",
    "NonRetryableError",
    "SourceError",
    "TransientSourceError",
    "RecordError",
    "RecordParseError",
    "RecordValidationError",
    "StageError",
    "ConfigurationError",
    "SinkError",
    "EncryptionError",
    "RetryLimitExceededError",
    "SkipLimitExceededError",
    "RunCancelledError",
]
