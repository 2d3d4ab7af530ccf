"""Shared retry configuration for booking executors."""

from __future__ import annotations

from dataclasses import dataclass

from infrastructure import constants


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff for transient platform faults."""

    max_attempts: int = constants.MAX_BOOKING_ATTEMPTS
    base_delay: float = constants.RETRY_BASE_DELAY_SECONDS
    factor: float = constants.RETRY_BACKOFF_FACTOR
    max_delay: float = constants.RETRY_MAX_DELAY_SECONDS

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("retry delays cannot be negative")

    def delay_for(self, retry_number: int) -> float:
        """Delay before retry ``retry_number`` (1-based)."""

        delay = self.base_delay * (self.factor ** max(retry_number - 1, 0))
        return min(delay, self.max_delay)

    @classmethod
    def from_settings(cls, settings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.booking_max_retry_attempts,
            base_delay=settings.retry_base_delay_seconds,
            factor=settings.retry_backoff_factor,
            max_delay=settings.retry_max_delay_seconds,
        )


DEFAULT_RETRY_POLICY = RetryPolicy()


__all__ = [
    "RetryPolicy",
    "DEFAULT_RETRY_POLICY",
]
