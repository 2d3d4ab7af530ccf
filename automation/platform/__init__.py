"""Booking platform session client."""

from .client import SessionClient
from .errors import (
    AuthError,
    BookingRejectedError,
    CapacityError,
    MalformedResponseError,
    NetworkError,
    PlatformError,
    SessionDiscardedError,
)
from .session import Session
from .sessions import SessionHealth, SessionPool

__all__ = [
    "SessionClient",
    "Session",
    "SessionPool",
    "SessionHealth",
    "PlatformError",
    "AuthError",
    "SessionDiscardedError",
    "NetworkError",
    "CapacityError",
    "BookingRejectedError",
    "MalformedResponseError",
]
