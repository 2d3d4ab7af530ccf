"""Registry of active waiting-list entries keyed by (user, date)."""

from __future__ import annotations

import logging
import threading
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from automation.shared.booking_contracts import WaitingListEntry, WaitingState

EntryKey = Tuple[str, date]


class WaitingList:
    """Holds at most one waiting entry per (user, date).

    Entries leave the registry as soon as they reach a terminal state. The
    optional ``on_change`` callback fires after every mutation.
    """

    def __init__(
        self,
        *,
        on_change: Optional[Callable[[], None]] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.logger = logger or logging.getLogger('WaitingList')
        self._entries: Dict[EntryKey, WaitingListEntry] = {}
        self._lock = threading.Lock()
        self._on_change = on_change

    def __contains__(self, key: EntryKey) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, user_name: str, target_date: date) -> Optional[WaitingListEntry]:
        with self._lock:
            return self._entries.get((user_name, target_date))

    def active(self) -> List[WaitingListEntry]:
        with self._lock:
            entries = list(self._entries.values())
        return sorted(entries, key=lambda entry: (entry.target_date, entry.user_name))

    def register(self, entry: WaitingListEntry) -> bool:
        """Add ``entry``; returns False when the (user, date) is already waiting."""

        with self._lock:
            if entry.key in self._entries:
                return False
            self._entries[entry.key] = entry
        self.logger.info(
            "⏳ %s joined the waiting list for %s %s at %s",
            entry.user_name,
            entry.day,
            entry.target_date,
            entry.slot_time,
        )
        self._notify()
        return True

    def update(self, key: EntryKey, **updates: Any) -> Optional[WaitingListEntry]:
        """Replace fields of a waiting entry without changing its state."""

        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            entry = entry.transition(entry.state, **updates)
            self._entries[key] = entry
        self._notify()
        return entry

    def transition(
        self,
        key: EntryKey,
        state: WaitingState,
        **updates: Any,
    ) -> Optional[WaitingListEntry]:
        """Move an entry to ``state``; terminal states remove it."""

        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            entry = entry.transition(state, **updates)
            if state.terminal:
                del self._entries[key]
            else:
                self._entries[key] = entry
        self.logger.info(
            "Waiting-list entry for %s on %s is now %s",
            key[0],
            key[1],
            state.value,
        )
        self._notify()
        return entry

    def expire_due(self, now: datetime) -> List[WaitingListEntry]:
        """Expire every entry whose slot start has passed."""

        expired = [entry for entry in self.active() if entry.is_expired(now)]
        for entry in expired:
            self.transition(entry.key, WaitingState.EXPIRED)
        return expired

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change()
