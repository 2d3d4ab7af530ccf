"""Background poll loop turning a full slot into a booked one."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable, List, Optional

import pytz

from automation.availability.matcher import match_slot
from automation.platform.errors import PlatformError
from automation.shared.booking_contracts import (
    BookingAttempt,
    BookingOutcome,
    SlotCandidate,
    WaitingListEntry,
    WaitingState,
)
from infrastructure.constants import WAITLIST_POLL_INTERVAL_SECONDS
from monitoring.availability_poller import SlotAvailabilityPoller
from reservations.waiting_list import EntryKey, WaitingList
from users.profiles import SlotPreference

Discover = Callable[[WaitingListEntry], Awaitable[List[SlotCandidate]]]
Book = Callable[[WaitingListEntry, SlotCandidate], Awaitable[Optional[BookingAttempt]]]
PreferenceLookup = Callable[[WaitingListEntry], Optional[SlotPreference]]


class WaitingListMonitor:
    """Polls one waiting-list entry until it is booked, expired or cancelled.

    Discovery and booking are injected so the monitor never talks to the
    platform directly; the orchestrator supplies its guarded booking path.
    """

    def __init__(
        self,
        key: EntryKey,
        registry: WaitingList,
        *,
        discover: Discover,
        book: Book,
        preference_for: PreferenceLookup,
        interval_seconds: float = WAITLIST_POLL_INTERVAL_SECONDS,
        clock: Optional[Callable[[], datetime]] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.key = key
        self.registry = registry
        self.interval_seconds = interval_seconds
        self.logger = logger or logging.getLogger('WaitingListMonitor')
        self._discover = discover
        self._book = book
        self._preference_for = preference_for
        self._clock = clock or (lambda: datetime.now(pytz.utc))
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self._poller: Optional[SlotAvailabilityPoller] = None

    @property
    def label(self) -> str:
        return f"{self.key[0]} on {self.key[1].isoformat()}"

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._stop_event.clear()
            self._task = asyncio.create_task(self.run(), name=f"waiting-list:{self.label}")
        return self._task

    async def run(self) -> WaitingState:
        """Poll on the configured interval until a terminal state or a stop."""

        self.logger.info("👀 Watching waiting list for %s", self.label)
        state = WaitingState.WAITING
        while not self._stop_event.is_set():
            try:
                state = await self.poll_once()
            except Exception as exc:
                self.logger.error(
                    "Error in waiting-list monitor for %s: %s", self.label, exc, exc_info=True
                )
                if self.registry.update(self.key, last_error=str(exc)) is None:
                    state = WaitingState.CANCELLED
                    break
                state = WaitingState.WAITING
            if state.terminal:
                break
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                continue
        self.logger.info("Stopped watching %s (%s)", self.label, state.value)
        return state

    def stop(self) -> None:
        """Ask the loop to exit after the current poll."""

        self._stop_event.set()

    async def cancel(self, *, remove_entry: bool = True) -> None:
        """Stop the loop, wait for it, and mark the entry cancelled."""

        self.stop()
        if self._task is not None and not self._task.done():
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        if remove_entry:
            self.registry.transition(self.key, WaitingState.CANCELLED)

    async def poll_once(self) -> WaitingState:
        entry = self.registry.get(*self.key)
        if entry is None:
            return WaitingState.CANCELLED

        now = self._clock()
        if entry.is_expired(now):
            self.registry.transition(self.key, WaitingState.EXPIRED, last_polled_at=now)
            return WaitingState.EXPIRED

        preference = self._preference_for(entry)
        if preference is None:
            self.logger.info("%s is no longer configured; cancelling", self.label)
            self.registry.transition(self.key, WaitingState.CANCELLED, last_polled_at=now)
            return WaitingState.CANCELLED

        polls = entry.polls + 1
        if self._poller is None:
            self._poller = SlotAvailabilityPoller(
                lambda: self._discover(entry), logger=self.logger, clock=self._clock
            )
        try:
            snapshot = await self._poller.poll()
        except PlatformError as exc:
            self.logger.warning("Waiting-list poll for %s failed: %s", self.label, exc.message)
            self.registry.update(
                self.key, polls=polls, last_error=exc.message, last_polled_at=now
            )
            return WaitingState.WAITING

        if snapshot.change is not None:
            self.logger.info("Slots changed for %s: %s", self.label, snapshot.change.describe())

        result = match_slot(preference, snapshot.candidates, entry.target_date)
        if not result.matched:
            self.registry.update(
                self.key, polls=polls, last_error=result.reason, last_polled_at=now
            )
            return WaitingState.WAITING

        slot = result.slot
        if slot.free_places == 0:
            self.logger.debug("%s still full (%s/%s)", self.label, slot.booked_count, slot.capacity)
            self.registry.update(
                self.key, polls=polls, slot_id=slot.slot_id, last_error=None, last_polled_at=now
            )
            return WaitingState.WAITING

        attempt = await self._book(entry, slot)
        if attempt is not None and attempt.outcome == BookingOutcome.BOOKED:
            self.logger.info("🎉 Waiting list converted to booking for %s", self.label)
            self.registry.transition(
                self.key,
                WaitingState.BOOKED,
                polls=polls,
                slot_id=slot.slot_id,
                last_error=None,
                last_polled_at=now,
            )
            return WaitingState.BOOKED

        reason = attempt.reason if attempt is not None else 'booking already in progress'
        if attempt is not None and attempt.outcome == BookingOutcome.SLOT_FULL:
            reason = None
        updated = self.registry.update(
            self.key, polls=polls, slot_id=slot.slot_id, last_error=reason, last_polled_at=now
        )
        if updated is None:
            # entry retired elsewhere while the booking call was in flight
            return WaitingState.CANCELLED
        return WaitingState.WAITING
