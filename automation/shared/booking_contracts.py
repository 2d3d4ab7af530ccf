"""Shared booking records for the session client, executor, monitors and orchestrator."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class BookingSource(Enum):
    """Indicates which subsystem originated the booking attempt."""

    CYCLE = "cycle"
    WAITING_LIST = "waiting_list"


class BookingOutcome(Enum):
    """Terminal outcome of one booking attempt."""

    BOOKED = "booked"
    SLOT_FULL = "slot_full"
    AUTH_FAILED = "auth_failed"
    TRANSIENT_ERROR = "transient_error"
    SKIPPED = "skipped"
    INTENDED = "intended"  # dry run: matched, booking call withheld


class WaitingState(Enum):
    """Lifecycle of a waiting-list entry."""

    WAITING = "waiting"
    BOOKED = "booked"
    EXPIRED = "expired"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return self is not WaitingState.WAITING


@dataclass(frozen=True)
class SlotCandidate:
    """A bookable slot as listed by the platform for one day."""

    slot_id: str
    start: datetime
    end: Optional[datetime]
    category_id: str
    activity_name: Optional[str] = None
    capacity: Optional[int] = None
    booked_count: Optional[int] = None

    @property
    def free_places(self) -> Optional[int]:
        if self.capacity is None or self.booked_count is None:
            return None
        return max(self.capacity - self.booked_count, 0)

    def describe(self) -> str:
        label = self.activity_name or f"category {self.category_id}"
        return f"{self.start.strftime('%Y-%m-%d %H:%M')} {label} (ID: {self.slot_id})"

    def as_dict(self) -> Dict[str, Any]:
        return {
            'slot_id': self.slot_id,
            'start': self.start.isoformat(),
            'end': self.end.isoformat() if self.end else None,
            'category_id': self.category_id,
            'activity_name': self.activity_name,
            'capacity': self.capacity,
            'booked_count': self.booked_count,
        }


@dataclass(frozen=True)
class BookingRequest:
    """Canonical payload handed to the booking executor."""

    user_name: str
    day: str
    target_date: date
    slot: SlotCandidate
    source: BookingSource = BookingSource.CYCLE

    @property
    def key(self) -> Tuple[str, date]:
        return (self.user_name, self.target_date)


@dataclass(frozen=True)
class BookingAttempt:
    """Append-only audit record of one attempt for a (user, day)."""

    user_name: str
    day: str
    target_date: date
    outcome: BookingOutcome
    attempted_at: datetime
    slot: Optional[SlotCandidate] = None
    reason: Optional[str] = None
    source: BookingSource = BookingSource.CYCLE
    executed: bool = True
    retries: int = 0
    confirmation: Dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def key(self) -> Tuple[str, date]:
        return (self.user_name, self.target_date)

    @property
    def success(self) -> bool:
        return self.outcome == BookingOutcome.BOOKED

    @classmethod
    def for_request(
        cls,
        request: BookingRequest,
        outcome: BookingOutcome,
        attempted_at: datetime,
        *,
        reason: Optional[str] = None,
        executed: bool = True,
        retries: int = 0,
        confirmation: Optional[Dict[str, Any]] = None,
    ) -> "BookingAttempt":
        return cls(
            user_name=request.user_name,
            day=request.day,
            target_date=request.target_date,
            outcome=outcome,
            attempted_at=attempted_at,
            slot=request.slot,
            reason=reason,
            source=request.source,
            executed=executed,
            retries=retries,
            confirmation=dict(confirmation or {}),
        )

    def as_dict(self) -> Dict[str, Any]:
        return {
            'user': self.user_name,
            'day': self.day,
            'target_date': self.target_date.isoformat(),
            'outcome': self.outcome.value,
            'attempted_at': self.attempted_at.isoformat(),
            'slot': self.slot.as_dict() if self.slot else None,
            'reason': self.reason,
            'source': self.source.value,
            'executed': self.executed,
            'retries': self.retries,
        }


@dataclass(frozen=True)
class WaitingListEntry:
    """A desired-but-full slot kept under watch until booked or expired."""

    user_name: str
    day: str
    target_date: date
    slot_time: str
    activity: Optional[str]
    registered_at: datetime
    expires_at: datetime
    slot_id: Optional[str] = None
    state: WaitingState = WaitingState.WAITING
    polls: int = 0
    last_error: Optional[str] = None
    last_polled_at: Optional[datetime] = None

    @property
    def key(self) -> Tuple[str, date]:
        return (self.user_name, self.target_date)

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def transition(self, state: WaitingState, **updates: Any) -> "WaitingListEntry":
        """Return a copy moved to ``state`` with extra fields updated."""

        return replace(self, state=state, **updates)

    def as_dict(self) -> Dict[str, Any]:
        return {
            'user': self.user_name,
            'day': self.day,
            'target_date': self.target_date.isoformat(),
            'slot_time': self.slot_time,
            'activity': self.activity,
            'slot_id': self.slot_id,
            'state': self.state.value,
            'registered_at': self.registered_at.isoformat(),
            'expires_at': self.expires_at.isoformat(),
            'polls': self.polls,
            'last_error': self.last_error,
            'last_polled_at': self.last_polled_at.isoformat() if self.last_polled_at else None,
        }
