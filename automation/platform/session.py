"""Authenticated platform session owned by exactly one user."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

import httpx

from infrastructure.constants import MAX_CONSECUTIVE_AUTH_FAILURES


@dataclass
class Session:
    """Cookie jar plus auth state for one user.

    The per-session lock serialises every HTTP call: cookie-based sessions are
    stateful server side and must never see two concurrent requests.
    """

    user_name: str
    http: httpx.AsyncClient = field(repr=False)
    application_id: str
    opened_at: datetime
    authenticated: bool = False
    consecutive_auth_failures: int = 0
    discarded: bool = False
    last_error: Optional[str] = None
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    @property
    def usable(self) -> bool:
        return self.authenticated and not self.discarded

    def record_success(self) -> None:
        self.authenticated = True
        self.consecutive_auth_failures = 0
        self.last_error = None

    def record_auth_failure(self, message: str) -> bool:
        """Flag the session unauthenticated; True once it must be discarded."""

        self.authenticated = False
        self.consecutive_auth_failures += 1
        self.last_error = message
        return self.consecutive_auth_failures >= MAX_CONSECUTIVE_AUTH_FAILURES

    async def close(self) -> None:
        if self.discarded:
            return
        self.discarded = True
        self.authenticated = False
        await self.http.aclose()
