"""Shared fakes and utilities for unit tests."""

from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

import pytz

from automation.availability.time_utils import localize, parse_slot_time
from automation.platform.errors import AuthError, SessionDiscardedError
from automation.platform.session import Session
from automation.shared.booking_contracts import SlotCandidate
from infrastructure.settings import AppSettings, load_settings
from users.profiles import GymConfig, SlotPreference, UserProfile

PARIS = pytz.timezone('Europe/Paris')

# Monday 6 January 2025, 18:35 in Paris: the window for Monday 13th 18:30 is open.
NOW = PARIS.localize(datetime(2025, 1, 6, 18, 35))
NEXT_MONDAY = date(2025, 1, 13)


class DummyLogger:
    """Lightweight stand-in for ``logging.Logger`` that records calls."""

    def __init__(self) -> None:
        self.records: List[Tuple[str, Tuple[Any, ...], Dict[str, Any]]] = []

    def _record(self, level: str, *args: Any, **kwargs: Any) -> None:
        self.records.append((level, args, kwargs))

    def debug(self, *args: Any, **kwargs: Any) -> None:
        self._record("debug", *args, **kwargs)

    def info(self, *args: Any, **kwargs: Any) -> None:
        self._record("info", *args, **kwargs)

    def warning(self, *args: Any, **kwargs: Any) -> None:
        self._record("warning", *args, **kwargs)

    def error(self, *args: Any, **kwargs: Any) -> None:
        self._record("error", *args, **kwargs)

    def exception(self, *args: Any, **kwargs: Any) -> None:
        self._record("exception", *args, **kwargs)

    @property
    def messages(self) -> List[Tuple[str, Any]]:
        """Return formatted messages for quick assertions."""

        formatted: List[Tuple[str, Any]] = []
        for level, args, _ in self.records:
            message: Any = args[0] if args else None
            if isinstance(message, str) and len(args) > 1:
                try:
                    message = message % args[1:]
                except (TypeError, ValueError):
                    pass
            formatted.append((level, message))
        return formatted


class FakeClock:
    """Settable wall clock returning timezone-aware datetimes."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class NullHttp:
    """Stands in for ``httpx.AsyncClient`` inside fake sessions."""

    def __init__(self) -> None:
        self.closed = False

    async def aclose(self) -> None:
        self.closed = True


async def no_sleep(delay: float) -> None:
    return None


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


Result = Union[Dict[str, Any], Exception]


class FakeSessionClient:
    """In-memory platform with the same coroutine surface as ``SessionClient``.

    ``slots`` maps a date to the candidates listed for it. Booking results are
    queued per slot id; when the queue is empty the booking succeeds.
    """

    def __init__(
        self,
        slots: Optional[Dict[date, List[SlotCandidate]]] = None,
        *,
        application_id: str = "1234",
    ) -> None:
        self.application_id = application_id
        self.slots: Dict[date, List[SlotCandidate]] = dict(slots or {})
        self.book_results: Dict[str, List[Result]] = defaultdict(list)
        self.list_errors: List[Exception] = []
        self.open_errors: List[Exception] = []
        self.open_calls: List[str] = []
        self.list_calls: List[Tuple[str, date]] = []
        self.book_calls: List[Tuple[str, str]] = []
        self.sessions: List[Session] = []

    async def open(self, user: UserProfile) -> Session:
        self.open_calls.append(user.name)
        if self.open_errors:
            raise self.open_errors.pop(0)
        session = Session(
            user_name=user.name,
            http=NullHttp(),
            application_id=self.application_id,
            opened_at=NOW,
        )
        session.record_success()
        self.sessions.append(session)
        return session

    def _check(self, session: Session, error: Optional[Exception]) -> None:
        if session.discarded:
            raise SessionDiscardedError("discarded")
        if error is None:
            session.record_success()
            return
        if isinstance(error, AuthError):
            session.record_auth_failure(error.message)
        raise error

    async def list_slots(self, session: Session, category_id: str, day_window) -> List[SlotCandidate]:
        start, _ = day_window
        local_day = datetime.fromtimestamp(start, tz=pytz.utc).astimezone(PARIS).date()
        self.list_calls.append((session.user_name, local_day))
        self._check(session, self.list_errors.pop(0) if self.list_errors else None)
        return list(self.slots.get(local_day, []))

    async def book(self, session: Session, slot_id: str) -> Dict[str, Any]:
        self.book_calls.append((session.user_name, slot_id))
        queued = self.book_results[slot_id]
        result = queued.pop(0) if queued else {'success': True}
        self._check(session, result if isinstance(result, Exception) else None)
        return dict(result)

    async def list_categories(self, session: Session) -> List[Tuple[str, str]]:
        return [("42", "WOD")]


def make_slot(
    slot_id: str,
    on: date = NEXT_MONDAY,
    at: str = "18:30",
    *,
    activity: Optional[str] = "WOD",
    category_id: str = "42",
    capacity: Optional[int] = None,
    booked_count: Optional[int] = None,
) -> SlotCandidate:
    start = localize(on, parse_slot_time(at), PARIS)
    return SlotCandidate(
        slot_id=slot_id,
        start=start,
        end=start + timedelta(hours=1),
        category_id=category_id,
        activity_name=activity,
        capacity=capacity,
        booked_count=booked_count,
    )


def make_config(
    users: Iterable[Tuple[str, Iterable[str]]] = (("alice", ("monday",)),),
    slots: Optional[Dict[str, SlotPreference]] = None,
) -> GymConfig:
    preferences = slots or {
        'monday': SlotPreference(time=parse_slot_time("18:30"), activity="WOD"),
    }
    profiles = tuple(
        UserProfile(
            name=name,
            login=f"{name}@example.com",
            password="secret",
            days=tuple(days),
            preferences=preferences,
        )
        for name, days in users
    )
    return GymConfig(
        application_id="1234",
        category_activity_id="42",
        slots=preferences,
        users=profiles,
        timezone="Europe/Paris",
    )


def make_settings(tmp_path, **overrides: str) -> AppSettings:
    env = {
        'DATA_DIRECTORY': str(tmp_path / 'data'),
        'LOG_DIRECTORY': str(tmp_path / 'logs'),
        'GYM_TIMEZONE': 'Europe/Paris',
        'BOOKING_RETRY_BASE_DELAY': '0',
        'WAITLIST_POLL_INTERVAL_SECONDS': '3600',
    }
    env.update(overrides)
    return load_settings(env)
