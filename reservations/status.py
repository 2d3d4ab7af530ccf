"""
Status snapshot exposed to the CLI and the dashboard.

The board keeps the mutable bits (attempt history, last outcome per day) under
a lock and publishes immutable :class:`StatusSnapshot` objects. A new snapshot,
with a bumped version, only appears when its content actually changed.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Any, Callable, Deque, Dict, Iterable, Mapping, Optional, Tuple, Union

import pytz

from automation.platform.sessions import SessionHealth
from automation.shared.booking_contracts import BookingAttempt, BookingOutcome, WaitingListEntry
from infrastructure.constants import ATTEMPT_HISTORY_SIZE


@dataclass(frozen=True)
class DayStatus:
    """Latest known outcome for one (user, day)."""

    user_name: str
    day: str
    target_date: date
    outcome: BookingOutcome
    reason: Optional[str]
    updated_at: datetime
    executed: bool = True
    slot_id: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            'user': self.user_name,
            'day': self.day,
            'target_date': self.target_date.isoformat(),
            'outcome': self.outcome.value,
            'reason': self.reason,
            'executed': self.executed,
            'slot_id': self.slot_id,
            'updated_at': self.updated_at.isoformat(),
        }


@dataclass(frozen=True)
class StatusSnapshot:
    """Read-only aggregate of the orchestrator state."""

    version: int
    generated_at: datetime
    sessions: Tuple[SessionHealth, ...] = ()
    attempts: Mapping[str, Tuple[BookingAttempt, ...]] = field(default_factory=dict)
    days: Tuple[DayStatus, ...] = ()
    waiting_list: Tuple[WaitingListEntry, ...] = ()
    statistics: Mapping[str, int] = field(default_factory=dict)

    def content_key(self) -> Tuple[Any, ...]:
        """Everything except version and timestamp, for change detection."""

        return (
            self.sessions,
            tuple(sorted((user, attempts) for user, attempts in self.attempts.items())),
            self.days,
            self.waiting_list,
            tuple(sorted(self.statistics.items())),
        )

    def last_outcome(self, user_name: str, day: str) -> Optional[DayStatus]:
        for status in self.days:
            if status.user_name == user_name and status.day == day:
                return status
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'version': self.version,
            'generated_at': self.generated_at.isoformat(),
            'sessions': [health.as_dict() for health in self.sessions],
            'attempts': {
                user: [attempt.as_dict() for attempt in attempts]
                for user, attempts in sorted(self.attempts.items())
            },
            'days': [status.as_dict() for status in self.days],
            'waiting_list': [entry.as_dict() for entry in self.waiting_list],
            'statistics': dict(self.statistics),
        }


def write_snapshot(snapshot: StatusSnapshot, path: Union[str, Path]) -> None:
    """Write the snapshot as JSON, replacing the target atomically."""

    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix='.status-', suffix='.json', dir=str(target.parent))
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as handle:
            json.dump(snapshot.to_dict(), handle, indent=2, ensure_ascii=False)
        os.replace(tmp_name, target)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


class StatusBoard:
    """Collects attempts and publishes immutable snapshots on change."""

    def __init__(
        self,
        *,
        history_size: int = ATTEMPT_HISTORY_SIZE,
        clock: Optional[Callable[[], datetime]] = None,
        on_publish: Optional[Callable[[StatusSnapshot], None]] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.history_size = history_size
        self.logger = logger or logging.getLogger('StatusBoard')
        self._clock = clock or (lambda: datetime.now(pytz.utc))
        self._on_publish = on_publish
        self._lock = threading.Lock()
        self._history: Dict[str, Deque[BookingAttempt]] = {}
        self._days: Dict[Tuple[str, str], DayStatus] = {}
        self._snapshot = StatusSnapshot(version=0, generated_at=self._clock())

    @property
    def snapshot(self) -> StatusSnapshot:
        with self._lock:
            return self._snapshot

    def record(self, attempt: BookingAttempt) -> bool:
        """Append an attempt to its user's history; False if it was a repeat skip."""

        with self._lock:
            history = self._history.setdefault(
                attempt.user_name, deque(maxlen=self.history_size)
            )
            if history and self._is_repeat_skip(history[-1], attempt):
                return False
            history.append(attempt)
            self._days[(attempt.user_name, attempt.day)] = DayStatus(
                user_name=attempt.user_name,
                day=attempt.day,
                target_date=attempt.target_date,
                outcome=attempt.outcome,
                reason=attempt.reason,
                updated_at=attempt.attempted_at,
                executed=attempt.executed,
                slot_id=attempt.slot.slot_id if attempt.slot else None,
            )
            return True

    def forget_user(self, user_name: str) -> None:
        with self._lock:
            self._history.pop(user_name, None)
            for key in [key for key in self._days if key[0] == user_name]:
                del self._days[key]

    def publish(
        self,
        *,
        sessions: Mapping[str, SessionHealth],
        waiting_list: Iterable[WaitingListEntry],
        statistics: Mapping[str, int],
    ) -> bool:
        """Swap in a new snapshot if anything changed. Returns True when it did."""

        with self._lock:
            candidate = StatusSnapshot(
                version=self._snapshot.version,
                generated_at=self._snapshot.generated_at,
                sessions=tuple(sessions[name] for name in sorted(sessions)),
                attempts={user: tuple(history) for user, history in self._history.items()},
                days=tuple(self._days[key] for key in sorted(self._days)),
                waiting_list=tuple(waiting_list),
                statistics=dict(statistics),
            )
            if candidate.content_key() == self._snapshot.content_key():
                return False
            snapshot = StatusSnapshot(
                version=self._snapshot.version + 1,
                generated_at=self._clock(),
                sessions=candidate.sessions,
                attempts=candidate.attempts,
                days=candidate.days,
                waiting_list=candidate.waiting_list,
                statistics=candidate.statistics,
            )
            self._snapshot = snapshot

        self.logger.debug("Status snapshot v%s published", snapshot.version)
        if self._on_publish is not None:
            self._on_publish(snapshot)
        return True

    @staticmethod
    def _is_repeat_skip(previous: BookingAttempt, attempt: BookingAttempt) -> bool:
        return (
            attempt.outcome is BookingOutcome.SKIPPED
            and previous.outcome is BookingOutcome.SKIPPED
            and previous.day == attempt.day
            and previous.target_date == attempt.target_date
            and previous.reason == attempt.reason
        )
