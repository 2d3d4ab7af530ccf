"""Faults raised by the booking platform client."""

from __future__ import annotations

from typing import Optional


class PlatformError(Exception):
    """Base class for every fault reported by the booking platform."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class AuthError(PlatformError):
    """Credentials were refused or the session is no longer authenticated."""


class SessionDiscardedError(AuthError):
    """The session was closed after repeated auth failures and must be reopened."""


class NetworkError(PlatformError):
    """Timeouts, connection drops and 5xx replies. Safe to retry."""


class CapacityError(PlatformError):
    """The slot filled up before the booking request landed."""


class BookingRejectedError(PlatformError):
    """The platform refused the booking for a reason other than capacity."""


class MalformedResponseError(PlatformError):
    """The platform answered with a payload the client cannot interpret."""


__all__ = [
    "PlatformError",
    "AuthError",
    "SessionDiscardedError",
    "NetworkError",
    "CapacityError",
    "BookingRejectedError",
    "MalformedResponseError",
]
