"""Pick the one slot that satisfies a user's preference for a day."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import TYPE_CHECKING, List, Optional, Sequence

from automation.shared.booking_contracts import SlotCandidate

if TYPE_CHECKING:
    from users.profiles import SlotPreference


@dataclass(frozen=True)
class MatchResult:
    """Matched slot, or the reason nothing was picked."""

    slot: Optional[SlotCandidate]
    reason: Optional[str] = None

    @property
    def matched(self) -> bool:
        return self.slot is not None


def _activity_matches(candidate: SlotCandidate, activity: Optional[str]) -> bool:
    if activity is None:
        return True
    wanted = activity.strip().lower()
    if candidate.category_id and candidate.category_id.strip().lower() == wanted:
        return True
    return bool(candidate.activity_name) and candidate.activity_name.strip().lower() == wanted


def _starts_at(candidate: SlotCandidate, preference: SlotPreference, target_date: date) -> bool:
    start = candidate.start
    return (
        start.date() == target_date
        and start.time().replace(microsecond=0) == preference.time
    )


def match_slot(
    preference: SlotPreference,
    candidates: Sequence[SlotCandidate],
    target_date: date,
) -> MatchResult:
    """Return the single candidate starting exactly at the preferred time.

    Candidate start times are expected in gym-local time. Ambiguous results are
    never resolved automatically: the caller records them as skipped.
    """

    hits: List[SlotCandidate] = [
        candidate
        for candidate in candidates
        if _starts_at(candidate, preference, target_date)
        and _activity_matches(candidate, preference.activity)
    ]

    if len(hits) == 1:
        return MatchResult(slot=hits[0])

    wanted = f"{preference.describe()} on {target_date.isoformat()}"
    if not hits:
        return MatchResult(
            slot=None,
            reason=f"no slot matches {wanted} among {len(candidates)} listed",
        )
    ids = ", ".join(hit.slot_id for hit in hits)
    return MatchResult(
        slot=None,
        reason=f"ambiguous: {len(hits)} slots match {wanted} (ids {ids})",
    )
