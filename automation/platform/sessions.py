"""Keeps at most one live platform session per user."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Optional, Tuple

from infrastructure.constants import LOGIN_RETRY_COOLDOWN_SECONDS
from users.profiles import UserProfile

from .client import SessionClient
from .errors import AuthError
from .session import Session


@dataclass(frozen=True)
class SessionHealth:
    """Point-in-time view of one user's session for status reporting."""

    user_name: str
    authenticated: bool
    discarded: bool = False
    consecutive_auth_failures: int = 0
    opened_at: Optional[datetime] = None
    last_error: Optional[str] = None
    login_blocked: bool = False

    def as_dict(self) -> Dict[str, object]:
        return {
            'user': self.user_name,
            'authenticated': self.authenticated,
            'discarded': self.discarded,
            'consecutive_auth_failures': self.consecutive_auth_failures,
            'opened_at': self.opened_at.isoformat() if self.opened_at else None,
            'last_error': self.last_error,
            'login_blocked': self.login_blocked,
        }


class SessionPool:
    """Opens sessions lazily and replaces them once they stop being usable."""

    def __init__(
        self,
        client: SessionClient,
        *,
        login_cooldown_seconds: float = LOGIN_RETRY_COOLDOWN_SECONDS,
        clock: Optional[Callable[[], float]] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.client = client
        self.login_cooldown_seconds = login_cooldown_seconds
        self.logger = logger or logging.getLogger('SessionPool')
        self._clock = clock or time.monotonic
        self._sessions: Dict[str, Session] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._failed_logins: Dict[str, Tuple[float, AuthError]] = {}
        self.opened = 0

    def _lock_for(self, user_name: str) -> asyncio.Lock:
        lock = self._locks.get(user_name)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[user_name] = lock
        return lock

    def peek(self, user_name: str) -> Optional[Session]:
        return self._sessions.get(user_name)

    async def acquire(self, user: UserProfile) -> Session:
        """Return ``user``'s usable session, opening a fresh one if needed."""

        async with self._lock_for(user.name):
            current = self._sessions.get(user.name)
            if current is not None and current.usable:
                return current

            failure = self._failed_logins.get(user.name)
            if failure is not None:
                failed_at, error = failure
                if self._clock() - failed_at < self.login_cooldown_seconds:
                    raise AuthError(f"Login cooling down after failure: {error.message}")
                del self._failed_logins[user.name]

            if current is not None:
                self._sessions.pop(user.name, None)
                await current.close()

            try:
                session = await self.client.open(user)
            except AuthError as exc:
                self._failed_logins[user.name] = (self._clock(), exc)
                self.logger.warning("Login failed for %s: %s", user.name, exc.message)
                raise

            self.opened += 1
            self._sessions[user.name] = session
            return session

    async def invalidate(self, user_name: str) -> None:
        """Drop the user's session so the next acquire performs a fresh login."""

        session = self._sessions.pop(user_name, None)
        if session is None:
            return
        self.logger.info("Invalidating session for %s", user_name)
        async with session.lock:
            await session.close()

    async def close(self, user_name: str) -> None:
        self._failed_logins.pop(user_name, None)
        await self.invalidate(user_name)
        self._locks.pop(user_name, None)

    async def close_all(self) -> None:
        for user_name in list(self._sessions):
            await self.invalidate(user_name)
        self._failed_logins.clear()

    def health(self) -> Dict[str, SessionHealth]:
        now = self._clock()
        report: Dict[str, SessionHealth] = {}
        for user_name in set(self._sessions) | set(self._failed_logins):
            session = self._sessions.get(user_name)
            failure = self._failed_logins.get(user_name)
            blocked = failure is not None and now - failure[0] < self.login_cooldown_seconds
            if session is None:
                report[user_name] = SessionHealth(
                    user_name=user_name,
                    authenticated=False,
                    last_error=failure[1].message if failure else None,
                    login_blocked=blocked,
                )
                continue
            report[user_name] = SessionHealth(
                user_name=user_name,
                authenticated=session.authenticated,
                discarded=session.discarded,
                consecutive_auth_failures=session.consecutive_auth_failures,
                opened_at=session.opened_at,
                last_error=session.last_error,
                login_blocked=blocked,
            )
        return report
