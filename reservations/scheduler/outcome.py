"""Helpers for routing booking outcomes back into orchestrator state."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from automation.shared.booking_contracts import (
    BookingAttempt,
    BookingOutcome,
    BookingSource,
    WaitingListEntry,
    WaitingState,
)

if TYPE_CHECKING:  # pragma: no cover - typing helper
    from reservations.orchestrator import BookingOrchestrator


async def record_outcome(
    orchestrator: "BookingOrchestrator",
    attempt: BookingAttempt,
    *,
    execution_time: Optional[float] = None,
) -> None:
    """Update history, statistics, waiting list and sessions for one attempt.

    Waiting-list polls only contribute Booked and SlotFull attempts to the
    history; any other result stays on the entry as ``last_error``.
    """

    key = attempt.key
    outcome = attempt.outcome
    from_waiting_list = attempt.source is BookingSource.WAITING_LIST

    if not from_waiting_list or outcome in (BookingOutcome.BOOKED, BookingOutcome.SLOT_FULL):
        if orchestrator.board.record(attempt):
            orchestrator.stats.record_attempt(attempt, execution_time)

    if outcome is BookingOutcome.BOOKED:
        if orchestrator.waiting_list.get(*key) is not None:
            orchestrator.waiting_list.transition(key, WaitingState.BOOKED, last_error=None)
        orchestrator.retire_monitor(key)
    elif outcome is BookingOutcome.SLOT_FULL and not from_waiting_list:
        preference = orchestrator.preference_for(attempt.user_name, attempt.day)
        if preference is not None and attempt.slot is not None:
            entry = WaitingListEntry(
                user_name=attempt.user_name,
                day=attempt.day,
                target_date=attempt.target_date,
                slot_time=preference.time.strftime('%H:%M:%S'),
                activity=preference.activity,
                registered_at=attempt.attempted_at,
                expires_at=attempt.slot.start,
                slot_id=attempt.slot.slot_id,
            )
            if orchestrator.waiting_list.register(entry):
                orchestrator.ensure_monitor(key)
    elif outcome is BookingOutcome.AUTH_FAILED:
        await orchestrator.sessions.invalidate(attempt.user_name)

    orchestrator.publish_status()
