"""Reusable polling helper for slot availability."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
import logging
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

from automation.shared.booking_contracts import SlotCandidate


# slot_id -> free places (None when the platform does not report capacity)
AvailabilityData = Dict[str, Optional[int]]


@dataclass
class AvailabilityChange:
    """Represents differences between two slot listings."""

    added: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)
    freed: List[str] = field(default_factory=list)
    filled: List[str] = field(default_factory=list)

    def has_changes(self) -> bool:
        return bool(self.added or self.removed or self.freed or self.filled)

    def describe(self) -> str:
        parts = []
        for label, ids in (
            ('added', self.added),
            ('removed', self.removed),
            ('freed', self.freed),
            ('filled', self.filled),
        ):
            if ids:
                parts.append(f"{label}: {', '.join(ids)}")
        return '; '.join(parts) or 'no changes'


@dataclass
class PollSnapshot:
    """Container for poll results and detected changes."""

    timestamp: datetime
    candidates: List[SlotCandidate]
    results: AvailabilityData
    previous: AvailabilityData
    change: Optional[AvailabilityChange]
    initial: bool = False


class SlotAvailabilityPoller:
    """Polls a slot listing through a supplied coroutine and detects changes."""

    def __init__(
        self,
        fetcher: Callable[[], Awaitable[Sequence[SlotCandidate]]],
        *,
        logger: Optional[logging.Logger] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._fetcher = fetcher
        self._logger = logger or logging.getLogger('AvailabilityPoller')
        self._clock = clock or datetime.now
        self._previous: Optional[AvailabilityData] = None

    @property
    def previous(self) -> AvailabilityData:
        return dict(self._previous or {})

    async def poll(self) -> PollSnapshot:
        candidates = list(await self._fetcher())
        results = self._normalise(candidates)
        is_initial = self._previous is None
        previous = dict(self._previous or {})

        change = None if is_initial else self._detect_change(previous, results)
        if change is not None:
            self._logger.debug("Slot listing changed: %s", change.describe())

        snapshot = PollSnapshot(
            timestamp=self._clock(),
            candidates=candidates,
            results=dict(results),
            previous=previous,
            change=change,
            initial=is_initial,
        )
        self._previous = results
        return snapshot

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _normalise(self, candidates: Sequence[SlotCandidate]) -> AvailabilityData:
        return {candidate.slot_id: candidate.free_places for candidate in candidates}

    def _detect_change(
        self, old: AvailabilityData, new: AvailabilityData
    ) -> Optional[AvailabilityChange]:
        change = AvailabilityChange(
            added=sorted(set(new) - set(old)),
            removed=sorted(set(old) - set(new)),
        )
        for slot_id in sorted(set(old) & set(new)):
            before, after = old[slot_id], new[slot_id]
            if before is None or after is None:
                continue
            if before == 0 and after > 0:
                change.freed.append(slot_id)
            elif before > 0 and after == 0:
                change.filled.append(slot_id)
        return change if change.has_changes() else None
