"""Booking execution modules."""

from .booking import BookingExecutor
from .core import DEFAULT_RETRY_POLICY, RetryPolicy

__all__ = [
    "BookingExecutor",
    "RetryPolicy",
    "DEFAULT_RETRY_POLICY",
]
