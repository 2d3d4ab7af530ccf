"""Record of (user, date) pairs already booked, persisted to JSON."""

from __future__ import annotations

import json
import logging
import threading
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

LedgerKey = Tuple[str, date]


class DuplicateBookingError(ValueError):
    """Raised when a booking is requested for a (user, date) already booked."""

    def __init__(self, user_name: str, target_date: date, slot_id: Optional[str] = None) -> None:
        label = f" (slot {slot_id})" if slot_id else ''
        super().__init__(f"{user_name} is already booked on {target_date.isoformat()}{label}")
        self.user_name = user_name
        self.target_date = target_date
        self.slot_id = slot_id


class LedgerRepository:
    """Read/write ledger rows to a JSON backing file."""

    def __init__(self, file_path: Union[str, Path], *, logger: Any) -> None:
        self._path = Path(file_path)
        self._logger = logger

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> List[dict]:
        """Load ledger rows, returning an empty list when nothing usable exists."""

        if not self._path.exists():
            self._logger.debug("Ledger file %s does not exist; starting empty", self._path)
            return []
        try:
            with self._path.open('r', encoding='utf-8') as handle:
                payload = json.load(handle)
        except (OSError, ValueError) as exc:
            self._logger.error("Failed to load ledger from %s: %s", self._path, exc)
            return []
        if not isinstance(payload, list):
            self._logger.warning(
                "Invalid ledger format in %s; expected list, received %s",
                self._path,
                type(payload).__name__,
            )
            return []
        return payload

    def save(self, rows: Iterable[dict]) -> None:
        """Persist rows, creating parent directories on the way."""

        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self._path.with_suffix(self._path.suffix + '.tmp')
            with tmp_path.open('w', encoding='utf-8') as handle:
                json.dump(list(rows), handle, indent=2, ensure_ascii=False)
            tmp_path.replace(self._path)
        except OSError as exc:
            self._logger.error("Failed to save ledger to %s: %s", self._path, exc)


class BookingLedger:
    """Guards against booking the same user twice on the same date."""

    def __init__(
        self,
        repository: Optional[LedgerRepository] = None,
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.logger = logger or logging.getLogger('BookingLedger')
        self._repository = repository
        self._lock = threading.Lock()
        self._entries: Dict[LedgerKey, Dict[str, Any]] = {}
        if repository is not None:
            self._load()

    @classmethod
    def from_file(cls, file_path: Union[str, Path], *, logger: Optional[logging.Logger] = None) -> "BookingLedger":
        logger = logger or logging.getLogger('BookingLedger')
        return cls(LedgerRepository(file_path, logger=logger), logger=logger)

    def _load(self) -> None:
        for row in self._repository.load():
            try:
                key = (str(row['user']), date.fromisoformat(row['date']))
            except (KeyError, TypeError, ValueError):
                self.logger.warning("Skipping malformed ledger row: %s", row)
                continue
            self._entries[key] = dict(row)
        if self._entries:
            self.logger.info("Loaded %s booked slots from ledger", len(self._entries))

    def is_booked(self, user_name: str, target_date: date) -> bool:
        with self._lock:
            return (user_name, target_date) in self._entries

    def get(self, user_name: str, target_date: date) -> Optional[Dict[str, Any]]:
        with self._lock:
            entry = self._entries.get((user_name, target_date))
            return dict(entry) if entry else None

    def ensure_not_booked(self, user_name: str, target_date: date) -> None:
        """Raise :class:`DuplicateBookingError` if the pair is already booked."""

        existing = self.get(user_name, target_date)
        if existing is not None:
            self.logger.warning(
                "DUPLICATE BOOKING REJECTED: %s already booked on %s (slot %s)",
                user_name,
                target_date,
                existing.get('slot_id'),
            )
            raise DuplicateBookingError(user_name, target_date, existing.get('slot_id'))

    def mark_booked(
        self,
        user_name: str,
        target_date: date,
        *,
        slot_id: Optional[str] = None,
        slot_start: Optional[datetime] = None,
        booked_at: Optional[datetime] = None,
    ) -> None:
        row = {
            'user': user_name,
            'date': target_date.isoformat(),
            'slot_id': slot_id,
            'slot_start': slot_start.isoformat() if slot_start else None,
            'booked_at': (booked_at or datetime.now()).isoformat(),
        }
        with self._lock:
            self._entries[(user_name, target_date)] = row
            rows = list(self._entries.values())
        self._persist(rows)

    def prune(self, before: date) -> int:
        """Forget bookings for dates strictly before ``before``."""

        with self._lock:
            stale = [key for key in self._entries if key[1] < before]
            for key in stale:
                del self._entries[key]
            rows = list(self._entries.values())
        if stale:
            self._persist(rows)
        return len(stale)

    def entries(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [dict(row) for row in self._entries.values()]

    def _persist(self, rows: List[Dict[str, Any]]) -> None:
        if self._repository is not None:
            self._repository.save(sorted(rows, key=lambda row: (row['date'], row['user'])))
