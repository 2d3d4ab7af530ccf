"""
HTTP client for the gym reservation platform.

One :class:`Session` per user wraps an ``httpx.AsyncClient`` whose cookie jar
carries the platform session. Parameter names, paths and header values mirror
the platform's own web client and must stay exactly as they are.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

import httpx
import pytz

from automation.availability.time_utils import (
    TimezoneLike,
    get_timezone,
    js_timezone_offset,
    parse_platform_datetime,
)
from automation.shared.booking_contracts import SlotCandidate
from infrastructure import constants
from infrastructure.logging_config import mask_secret
from users.profiles import UserProfile

from .errors import (
    AuthError,
    BookingRejectedError,
    CapacityError,
    MalformedResponseError,
    NetworkError,
    SessionDiscardedError,
)
from .session import Session


def _contains_any(message: str, patterns: Iterable[str]) -> bool:
    lowered = message.lower()
    return any(pattern in lowered for pattern in patterns)


def _platform_message(payload: Any) -> str:
    """Best-effort human readable message from a platform reply."""

    if isinstance(payload, Mapping):
        for key in ('message', 'error_message', 'errorMessage', 'msg', 'error', 'status'):
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    if isinstance(payload, str):
        return payload.strip()[:200]
    return ''


def _is_success(payload: Mapping[str, Any]) -> bool:
    success = payload.get('success')
    if success in (True, 1, '1', 'true', 'ok'):
        return True
    if success in (False, 0, '0', 'false'):
        return False
    if 'error' in payload:
        return payload.get('error') in (0, '0', False, None, '')
    return False


def _to_optional_int(value: Any) -> Optional[int]:
    if value is None or value == '':
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _find_application_id(payload: Any) -> Optional[str]:
    if not isinstance(payload, Mapping):
        return None
    value = payload.get('id_application') or payload.get('applicationId')
    if value not in (None, ''):
        return str(value)
    for nested_key in ('user', 'data'):
        nested = payload.get(nested_key)
        found = _find_application_id(nested)
        if found:
            return found
    return None


class SessionClient:
    """Performs the five platform operations for authenticated sessions."""

    def __init__(
        self,
        application_id: str,
        *,
        base_url: str = constants.DEFAULT_BASE_URL,
        timezone: TimezoneLike = constants.DEFAULT_TIMEZONE,
        timeout_seconds: float = constants.HTTP_TIMEOUT_SECONDS,
        max_concurrent_requests: int = constants.MAX_CONCURRENT_REQUESTS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Optional[Callable[[], float]] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.application_id = str(application_id)
        self.base_url = base_url.rstrip('/')
        self.timezone = get_timezone(timezone)
        self.timeout_seconds = timeout_seconds
        self.transport = transport
        self.logger = logger or logging.getLogger('SessionClient')
        self._clock = clock or time.time
        self._semaphore = asyncio.Semaphore(max(1, max_concurrent_requests))
        self._last_cache_buster = 0

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------
    def _headers(self) -> Dict[str, str]:
        headers = dict(constants.BROWSER_HEADERS)
        headers['Origin'] = self.base_url
        headers['Referer'] = f"{self.base_url}/web/"
        return headers

    def _new_http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=self._headers(),
            timeout=self.timeout_seconds,
            transport=self.transport,
            follow_redirects=True,
        )

    async def open(self, user: UserProfile) -> Session:
        """Bootstrap the cookie session and log ``user`` in."""

        if not user.login or not user.password:
            raise AuthError(f"Missing credentials for {user.name}")

        http = self._new_http_client()
        try:
            await self._raw_request(
                http,
                'GET',
                constants.COOKIE_CHECKER_PATH,
                params={'id_application': self.application_id, 'isIframe': 'false'},
                headers={'Cookie': f"applicationId={self.application_id}"},
            )
            response = await self._raw_request(
                http,
                'POST',
                constants.LOGIN_PATH,
                data={'username': user.login, 'password': user.password},
            )
            payload = self._decode(response)
            application_id = _find_application_id(payload)
            if not application_id:
                message = _platform_message(payload) or 'login refused'
                raise AuthError(f"Login failed for {user.name}: {message}")
        except BaseException:
            await http.aclose()
            raise

        self.logger.info(
            "🔐 Session opened for %s (%s, application %s)",
            user.name,
            mask_secret(user.login, visible=3),
            application_id,
        )
        session = Session(
            user_name=user.name,
            http=http,
            application_id=application_id,
            opened_at=datetime.now(pytz.utc),
        )
        session.record_success()
        return session

    # ------------------------------------------------------------------
    # Platform operations
    # ------------------------------------------------------------------
    async def list_slots(
        self,
        session: Session,
        category_id: str,
        day_window: Tuple[int, int],
    ) -> List[SlotCandidate]:
        """List the category's slots between the two unix timestamps."""

        start, end = day_window
        local_day = datetime.fromtimestamp(start, tz=pytz.utc).astimezone(self.timezone).date()
        params = {
            'id_category_activity': str(category_id),
            'offset': str(js_timezone_offset(local_day, self.timezone)),
            'start': str(start),
            'end': str(end),
            '_': str(self.next_cache_buster()),
        }
        async with self._tracked(session):
            response = await self._request(
                session, 'GET', constants.ACTIVITIES_CALENDAR_PATH, params=params
            )
            payload = self._decode(response)
            slots = self._parse_slots(payload, str(category_id))
        self.logger.debug(
            "Listed %s slots for %s on %s", len(slots), session.user_name, local_day
        )
        return slots

    async def book(self, session: Session, slot_id: str) -> Dict[str, Any]:
        """Book ``slot_id``; returns the platform confirmation payload."""

        form = {constants.BOOKING_SLOT_FIELD: str(slot_id)}
        form.update(constants.BOOKING_FORM_DEFAULTS)
        async with self._tracked(session):
            response = await self._request(session, 'POST', constants.BOOK_PATH, data=form)
            payload = self._decode(response)
            if not isinstance(payload, Mapping):
                raise MalformedResponseError(f"Unexpected booking reply: {payload!r}"[:200])
            confirmation = self._interpret_booking(dict(payload), slot_id)
        return confirmation

    async def list_categories(self, session: Session) -> List[Tuple[str, str]]:
        """Return ``(id, name)`` pairs of the gym's activity categories."""

        async with self._tracked(session):
            response = await self._request(session, 'GET', constants.CATEGORIES_PATH)
            payload = self._decode(response)
        return self._parse_categories(payload)

    def next_cache_buster(self) -> int:
        """Millisecond timestamp, strictly increasing across calls."""

        now_ms = int(self._clock() * 1000)
        value = max(now_ms, self._last_cache_buster + 1)
        self._last_cache_buster = value
        return value

    # ------------------------------------------------------------------
    # Transport helpers
    # ------------------------------------------------------------------
    @asynccontextmanager
    async def _tracked(self, session: Session) -> AsyncIterator[None]:
        """Serialise calls on the session and keep its auth bookkeeping in step."""

        async with session.lock:
            if session.discarded:
                raise SessionDiscardedError(f"Session for {session.user_name} was discarded")
            try:
                yield
            except SessionDiscardedError:
                raise
            except AuthError as exc:
                if session.record_auth_failure(exc.message):
                    self.logger.warning(
                        "Discarding session for %s after %s consecutive auth failures",
                        session.user_name,
                        session.consecutive_auth_failures,
                    )
                    await session.close()
                raise
            else:
                session.record_success()

    async def _request(
        self,
        session: Session,
        method: str,
        path: str,
        **kwargs: Any,
    ) -> httpx.Response:
        if session.http.is_closed:
            raise SessionDiscardedError(f"HTTP client for {session.user_name} is closed")
        return await self._raw_request(session.http, method, path, **kwargs)

    async def _raw_request(
        self,
        http: httpx.AsyncClient,
        method: str,
        path: str,
        **kwargs: Any,
    ) -> httpx.Response:
        async with self._semaphore:
            try:
                response = await http.request(method, path, **kwargs)
            except httpx.TimeoutException as exc:
                raise NetworkError(f"{method} {path} timed out") from exc
            except httpx.TransportError as exc:
                raise NetworkError(f"{method} {path} failed: {exc}") from exc

        status = response.status_code
        if status in (401, 403):
            raise AuthError(f"{method} {path} returned HTTP {status}", status_code=status)
        if status >= 500:
            raise NetworkError(f"{method} {path} returned HTTP {status}", status_code=status)
        if status >= 400:
            raise MalformedResponseError(
                f"{method} {path} returned HTTP {status}", status_code=status
            )
        return response

    def _decode(self, response: httpx.Response) -> Any:
        """Parse a JSON reply; an HTML page means we were bounced to login."""

        text = response.text
        try:
            return json.loads(text)
        except ValueError:
            snippet = text.strip()[:80]
            if snippet.startswith('<') or 'html' in response.headers.get('content-type', ''):
                raise AuthError(
                    "Platform answered with a login page instead of JSON",
                    status_code=response.status_code,
                ) from None
            raise MalformedResponseError(
                f"Invalid JSON from platform: {snippet!r}",
                status_code=response.status_code,
            ) from None

    # ------------------------------------------------------------------
    # Payload interpretation
    # ------------------------------------------------------------------
    def _interpret_booking(self, payload: Dict[str, Any], slot_id: str) -> Dict[str, Any]:
        message = _platform_message(payload)
        if _is_success(payload):
            self.logger.debug("Booking of %s confirmed: %s", slot_id, message or 'ok')
            return payload

        if message and _contains_any(message, constants.ALREADY_BOOKED_PATTERNS):
            self.logger.info("Slot %s was already booked by this account: %s", slot_id, message)
            payload['already_booked'] = True
            return payload
        if message and _contains_any(message, constants.CAPACITY_PATTERNS):
            raise CapacityError(message)
        if message and _contains_any(message, constants.AUTH_FAILURE_PATTERNS):
            raise AuthError(message)
        raise BookingRejectedError(message or f"Booking of slot {slot_id} refused")

    def _slot_entries(self, payload: Any) -> List[Any]:
        if isinstance(payload, list):
            return payload
        if isinstance(payload, Mapping):
            for key in ('activities_calendar', 'data', 'events'):
                value = payload.get(key)
                if isinstance(value, list):
                    return value
                if isinstance(value, Mapping):
                    return self._slot_entries(value)
            if payload.get('success') in (False, 0, '0'):
                message = _platform_message(payload)
                if _contains_any(message, constants.AUTH_FAILURE_PATTERNS):
                    raise AuthError(message)
            if not payload:
                return []
        raise MalformedResponseError(f"Unexpected slot listing: {str(payload)[:200]}")

    def _parse_slots(self, payload: Any, category_id: str) -> List[SlotCandidate]:
        slots: List[SlotCandidate] = []
        for entry in self._slot_entries(payload):
            if not isinstance(entry, Mapping):
                continue
            slot_id = entry.get('id_activity_calendar') or entry.get('id')
            start = parse_platform_datetime(
                entry.get('start') or entry.get('start_timestamp'), self.timezone
            )
            if slot_id in (None, '') or start is None:
                self.logger.warning("Ignoring slot entry without id or start: %s", entry)
                continue
            slots.append(
                SlotCandidate(
                    slot_id=str(slot_id),
                    start=start,
                    end=parse_platform_datetime(
                        entry.get('end') or entry.get('end_timestamp'), self.timezone
                    ),
                    category_id=str(entry.get('id_category_activity') or category_id),
                    activity_name=(
                        entry.get('name_activity') or entry.get('name') or entry.get('title')
                    ),
                    capacity=_to_optional_int(entry.get('n_capacity')),
                    booked_count=_to_optional_int(entry.get('n_inscribed')),
                )
            )
        return slots

    def _parse_categories(self, payload: Any) -> List[Tuple[str, str]]:
        if isinstance(payload, Mapping) and isinstance(payload.get('data'), (list, Mapping)):
            payload = payload['data']

        categories: List[Tuple[str, str]] = []
        if isinstance(payload, Mapping):
            for key, value in payload.items():
                if isinstance(value, Mapping):
                    categories.extend(self._parse_categories([value]))
                else:
                    categories.append((str(key), str(value)))
            return categories
        if not isinstance(payload, list):
            raise MalformedResponseError(f"Unexpected category listing: {str(payload)[:200]}")

        for entry in payload:
            if not isinstance(entry, Mapping):
                continue
            category_id = entry.get('id_category_activity') or entry.get('id')
            name = entry.get('name_category_activity') or entry.get('name') or entry.get('title')
            if category_id in (None, ''):
                continue
            categories.append((str(category_id), str(name or '?')))
        return categories
