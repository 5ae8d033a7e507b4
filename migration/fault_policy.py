"""
Fault policy: which errors retry a chunk and which skip a record.
"""

from dataclasses import dataclass
from typing import Tuple, Type
from core.exceptions import NonRetryableError, RetryableError, resolve_error_kinds
from schemas.job import FaultPolicyConfig


@dataclass(frozen=True)
class FaultPolicy:
    retry_limit: int
    retryable: Tuple[Type[Exception], ...]
    skip_limit: int
    skippable: Tuple[Type[Exception], ...]
    retry_delay: float = 0.0

    @classmethod
    def from_config(cls, config: FaultPolicyConfig) -> "FaultPolicy":
        return cls(
            retry_limit=config.retry_limit,
            retryable=resolve_error_kinds(config.retryable_errors),
            skip_limit=config.skip_limit,
            skippable=resolve_error_kinds(config.skippable_errors),
            retry_delay=config.retry_delay,
        )

    def is_retryable(self, error: BaseException) -> bool:
        return isinstance(error, self.retryable) and not isinstance(error, NonRetryableError)

    def is_skippable(self, error: BaseException) -> bool:
        # Retryable and run-level errors are never downgraded to a skip
        return (
            isinstance(error, self.skippable)
            and not isinstance(error, (RetryableError, NonRetryableError))
            and not self.is_retryable(error)
        )

    def backoff(self, attempt: int) -> float:
        """Delay before retry ``attempt`` (1-based), doubling each time."""
        return self.retry_delay * (2 ** (attempt - 1))
