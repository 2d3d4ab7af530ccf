"""
Booking orchestrator.

Owns the per-user sessions, runs discovery and booking cycles for every
configured (user, day), spawns and retires waiting-list monitors, and keeps
the status snapshot current. ``run_once`` is the one-shot pass used by the
CLI; ``serve`` repeats it on a timer and keeps the monitors running between
cycles.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Awaitable, Callable, Dict, List, Optional, Set

import httpx
import pytz

from automation.executors.booking import BookingExecutor, Sleep
from automation.executors.core import RetryPolicy
from automation.platform.client import SessionClient
from automation.platform.errors import AuthError, PlatformError
from automation.platform.session import Session
from automation.platform.sessions import SessionPool
from automation.shared.booking_contracts import (
    BookingAttempt,
    BookingOutcome,
    BookingRequest,
    BookingSource,
    SlotCandidate,
    WaitingListEntry,
    WaitingState,
)
from infrastructure.settings import AppSettings
from monitoring.waiting_list_monitor import WaitingListMonitor
from reservations.ledger import BookingLedger, DuplicateBookingError
from reservations.scheduler import (
    DayPlan,
    PlanStatus,
    SchedulerStats,
    dispatch_bookings,
    plan_cycle,
    record_outcome,
)
from reservations.status import StatusBoard, StatusSnapshot, write_snapshot
from reservations.waiting_list import EntryKey, WaitingList
from users.profiles import ConfigError, GymConfig, SlotPreference, UserProfile

OUTCOME_LABELS = {
    BookingOutcome.BOOKED: "booked",
    BookingOutcome.SLOT_FULL: "slot full, added to waiting list",
    BookingOutcome.AUTH_FAILED: "authentication failed",
    BookingOutcome.TRANSIENT_ERROR: "failed, will retry next cycle",
    BookingOutcome.SKIPPED: "skipped",
    BookingOutcome.INTENDED: "would book (dry run)",
}


@dataclass(frozen=True)
class DayReport:
    """One line of a cycle report."""

    user_name: str
    day: str
    target_date: date
    status: str
    outcome: Optional[BookingOutcome] = None
    slot: Optional[SlotCandidate] = None
    reason: Optional[str] = None

    def describe(self) -> str:
        line = f"{self.user_name}: {self.day} {self.target_date.isoformat()} - {self.status}"
        if self.slot is not None:
            line += f" [{self.slot.describe()}]"
        if self.reason:
            line += f" ({self.reason})"
        return line


@dataclass
class CycleReport:
    """Per-(user, day) results of one ``run_once`` pass."""

    started_at: datetime
    finished_at: Optional[datetime] = None
    dry_run: bool = False
    days: List[DayReport] = field(default_factory=list)
    attempts: List[BookingAttempt] = field(default_factory=list)

    def format_lines(self) -> List[str]:
        if not self.days:
            return ["No configured days to book"]
        return [day.describe() for day in self.days]


class BookingOrchestrator:
    """Coordinates sessions, booking cycles and waiting-list monitors."""

    def __init__(
        self,
        config: GymConfig,
        settings: AppSettings,
        *,
        client: Optional[SessionClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        ledger: Optional[BookingLedger] = None,
        dry_run: bool = False,
        status_path: Optional[str] = None,
        clock: Optional[Callable[[], datetime]] = None,
        sleep: Optional[Sleep] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.config = config
        self.settings = settings
        self.dry_run = dry_run
        self.status_path = status_path
        self.logger = logger or logging.getLogger('BookingOrchestrator')
        self.timezone = pytz.timezone(config.timezone or settings.timezone)
        self._clock = clock or (lambda: datetime.now(pytz.utc))

        self.client = client or SessionClient(
            config.application_id,
            base_url=settings.base_url,
            timezone=self.timezone,
            timeout_seconds=settings.http_timeout_seconds,
            max_concurrent_requests=settings.max_concurrent_requests,
            transport=transport,
        )
        self.sessions = SessionPool(
            self.client, login_cooldown_seconds=settings.login_retry_cooldown_seconds
        )
        self.ledger = ledger if ledger is not None else BookingLedger.from_file(settings.ledger_file)
        self.executor = BookingExecutor(
            self.client,
            self.ledger,
            retry_policy=RetryPolicy.from_settings(settings),
            timezone=self.timezone,
            sleep=sleep,
            clock=self._clock,
        )
        self.stats = SchedulerStats()
        self.board = StatusBoard(
            history_size=settings.attempt_history_size,
            clock=self._clock,
            on_publish=self._write_status if status_path else None,
        )
        self.waiting_list = WaitingList(on_change=self.publish_status)

        self._monitors: Dict[EntryKey, WaitingListMonitor] = {}
        self._in_flight: Set[EntryKey] = set()
        self._monitors_enabled = False
        self._stop_event: Optional[asyncio.Event] = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def snapshot(self) -> StatusSnapshot:
        return self.board.snapshot

    async def run_once(self, *, ignore_window: bool = False) -> CycleReport:
        """Run one discovery and booking pass over every configured day."""

        now = self._clock()
        report = CycleReport(started_at=now, dry_run=self.dry_run)

        for entry in self.waiting_list.expire_due(now):
            self.logger.info(
                "⌛ Waiting-list entry for %s on %s expired", entry.user_name, entry.target_date
            )
            self.retire_monitor(entry.key)
        for entry in self.waiting_list.active():
            self.ensure_monitor(entry.key)

        pruned = self.ledger.prune(now.astimezone(self.timezone).date())
        if pruned:
            self.logger.debug("Pruned %s past bookings from the ledger", pruned)

        plan = plan_cycle(
            self.config,
            now=now,
            timezone=self.timezone,
            is_booked=self.ledger.is_booked,
            waiting={entry.key for entry in self.waiting_list.active()},
            in_flight=set(self._in_flight),
            ignore_window=ignore_window,
            window_days=self.settings.booking_window_days,
            window_offset_minutes=self.settings.booking_window_offset_minutes,
            logger=self.logger,
        )

        results, timeouts = await dispatch_bookings(
            plan.due,
            execute_single=self._attempt_day,
            logger=self.logger,
            timeout_seconds=self.settings.cycle_task_timeout_seconds,
        )

        for entry in plan.entries:
            if entry.status is not PlanStatus.DUE:
                report.days.append(self._plan_line(entry))
                continue
            if entry.key in timeouts:
                attempt = await self._record_timeout(entry, timeouts[entry.key])
            else:
                attempt = results.get(entry.key)
            if attempt is None:
                status = (
                    PlanStatus.ALREADY_BOOKED.value
                    if self.ledger.is_booked(*entry.key)
                    else PlanStatus.IN_PROGRESS.value
                )
                report.days.append(
                    DayReport(entry.user.name, entry.day, entry.target_date, status)
                )
                continue
            report.attempts.append(attempt)
            report.days.append(
                DayReport(
                    user_name=entry.user.name,
                    day=entry.day,
                    target_date=entry.target_date,
                    status=OUTCOME_LABELS[attempt.outcome],
                    outcome=attempt.outcome,
                    slot=attempt.slot,
                    reason=attempt.reason,
                )
            )

        self.stats.record_cycle()
        self.publish_status()
        report.finished_at = self._clock()
        return report

    async def serve(
        self,
        config_provider: Optional[Callable[[], GymConfig]] = None,
    ) -> None:
        """Repeat ``run_once`` on the cycle interval until ``request_stop``."""

        self._stop_event = asyncio.Event()
        self._monitors_enabled = True
        for entry in self.waiting_list.active():
            self.ensure_monitor(entry.key)

        interval = self.settings.cycle_interval_seconds
        self.logger.info(
            "🚀 Booking orchestrator serving %s users every %ss%s",
            len(self.config.users),
            interval,
            " (dry run)" if self.dry_run else "",
        )
        try:
            while not self._stop_event.is_set():
                if config_provider is not None:
                    await self._reload_config(config_provider)
                try:
                    await self.run_once()
                except Exception as exc:
                    self.logger.exception("Booking cycle failed: %s", exc)
                if self._stop_event.is_set():
                    break
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
                except asyncio.TimeoutError:
                    continue
        finally:
            await self.shutdown()

    def request_stop(self) -> None:
        """Ask ``serve`` to finish the current cycle and exit."""

        self.logger.info("Stop requested")
        if self._stop_event is not None:
            self._stop_event.set()
        for monitor in self._monitors.values():
            monitor.stop()

    async def shutdown(self) -> None:
        """Stop monitors, close sessions and publish a final snapshot."""

        self._monitors_enabled = False
        monitors = list(self._monitors.values())
        self._monitors.clear()
        if monitors:
            await asyncio.gather(
                *(monitor.cancel(remove_entry=False) for monitor in monitors),
                return_exceptions=True,
            )
        await self.sessions.close_all()
        self.publish_status()
        self.logger.info("%s", self.stats.format_report())

    async def update_config(self, config: GymConfig) -> None:
        """Swap in a new configuration, retiring what it no longer covers."""

        previous = self.config
        self.config = config
        self.client.application_id = config.application_id

        for old_user in previous.users:
            new_user = config.user(old_user.name)
            if new_user is None or (new_user.login, new_user.password) != (
                old_user.login,
                old_user.password,
            ):
                await self.sessions.close(old_user.name)
            if new_user is None:
                self.board.forget_user(old_user.name)

        for entry in self.waiting_list.active():
            if self._entry_preference(entry) is None:
                await self.cancel_waiting(entry.user_name, entry.target_date)
        self.publish_status()

    async def cancel_waiting(self, user_name: str, target_date: date) -> bool:
        """Cancel a waiting-list entry and its monitor. False if none existed."""

        key = (user_name, target_date)
        monitor = self._monitors.pop(key, None)
        if monitor is not None:
            await monitor.cancel(remove_entry=True)
            return True
        return self.waiting_list.transition(key, WaitingState.CANCELLED) is not None

    # ------------------------------------------------------------------
    # Hooks used by outcome routing and monitors
    # ------------------------------------------------------------------
    def preference_for(self, user_name: str, day: str) -> Optional[SlotPreference]:
        user = self.config.user(user_name)
        if user is None or not user.wants(day):
            return None
        return user.preference_for(day)

    def ensure_monitor(self, key: EntryKey) -> None:
        if not self._monitors_enabled or self.waiting_list.get(*key) is None:
            return
        monitor = self._monitors.get(key)
        if monitor is not None and monitor.running:
            return
        monitor = WaitingListMonitor(
            key,
            self.waiting_list,
            discover=self._discover_for_entry,
            book=self._book_for_entry,
            preference_for=self._entry_preference,
            interval_seconds=self.settings.waitlist_poll_interval_seconds,
            clock=self._clock,
        )
        self._monitors[key] = monitor
        monitor.start()

    def retire_monitor(self, key: EntryKey) -> None:
        monitor = self._monitors.pop(key, None)
        if monitor is not None:
            monitor.stop()

    def publish_status(self) -> None:
        self.board.publish(
            sessions=self.sessions.health(),
            waiting_list=self.waiting_list.active(),
            statistics=self.stats.outcome_counts(),
        )

    # ------------------------------------------------------------------
    # Guarded booking paths
    # ------------------------------------------------------------------
    async def _attempt_day(self, entry: DayPlan) -> Optional[BookingAttempt]:
        key = entry.key
        if key in self._in_flight or self.ledger.is_booked(*key):
            return None

        loop = asyncio.get_running_loop()
        started = loop.time()
        self._in_flight.add(key)
        try:
            attempt = await self._with_session(
                entry.user,
                entry.day,
                entry.target_date,
                BookingSource.CYCLE,
                lambda session: self.executor.run(
                    session,
                    day=entry.day,
                    target_date=entry.target_date,
                    preference=entry.preference,
                    category_id=self.config.category_activity_id,
                    dry_run=self.dry_run,
                ),
            )
        except DuplicateBookingError:
            return None
        finally:
            self._in_flight.discard(key)

        await record_outcome(self, attempt, execution_time=loop.time() - started)
        return attempt

    async def _book_for_entry(
        self, entry: WaitingListEntry, slot: SlotCandidate
    ) -> Optional[BookingAttempt]:
        key = entry.key
        user = self.config.user(entry.user_name)
        if user is None or key in self._in_flight:
            return None
        if self.ledger.is_booked(*key):
            self.waiting_list.transition(key, WaitingState.BOOKED)
            return None

        request = BookingRequest(
            user_name=entry.user_name,
            day=entry.day,
            target_date=entry.target_date,
            slot=slot,
            source=BookingSource.WAITING_LIST,
        )
        self._in_flight.add(key)
        try:
            attempt = await self._with_session(
                user,
                entry.day,
                entry.target_date,
                BookingSource.WAITING_LIST,
                lambda session: self.executor.execute(session, request, dry_run=self.dry_run),
            )
        except DuplicateBookingError:
            self.waiting_list.transition(key, WaitingState.BOOKED)
            return None
        finally:
            self._in_flight.discard(key)

        await record_outcome(self, attempt)
        return attempt

    async def _with_session(
        self,
        user: UserProfile,
        day: str,
        target_date: date,
        source: BookingSource,
        action: Callable[[Session], Awaitable[BookingAttempt]],
    ) -> BookingAttempt:
        try:
            session = await self.sessions.acquire(user)
        except PlatformError as exc:
            outcome = (
                BookingOutcome.AUTH_FAILED
                if isinstance(exc, AuthError)
                else BookingOutcome.TRANSIENT_ERROR
            )
            return BookingAttempt(
                user_name=user.name,
                day=day,
                target_date=target_date,
                outcome=outcome,
                attempted_at=self._clock().astimezone(self.timezone),
                reason=f"login failed: {exc.message}",
                source=source,
                executed=False,
            )
        return await action(session)

    async def _discover_for_entry(self, entry: WaitingListEntry) -> List[SlotCandidate]:
        user = self.config.user(entry.user_name)
        if user is None:
            return []
        session = await self.sessions.acquire(user)
        try:
            return await self.executor.discover(
                session, self.config.category_activity_id, entry.target_date
            )
        except AuthError:
            await self.sessions.invalidate(user.name)
            raise

    def _entry_preference(self, entry: WaitingListEntry) -> Optional[SlotPreference]:
        preference = self.preference_for(entry.user_name, entry.day)
        if preference is None:
            return None
        if preference.time.strftime('%H:%M:%S') != entry.slot_time:
            return None
        if preference.activity != entry.activity:
            return None
        return preference

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    async def _record_timeout(self, entry: DayPlan, message: str) -> BookingAttempt:
        self.stats.record_timeout()
        attempt = BookingAttempt(
            user_name=entry.user.name,
            day=entry.day,
            target_date=entry.target_date,
            outcome=BookingOutcome.TRANSIENT_ERROR,
            attempted_at=self._clock().astimezone(self.timezone),
            reason=message,
        )
        await record_outcome(self, attempt)
        return attempt

    def _plan_line(self, entry: DayPlan) -> DayReport:
        reason = None
        if entry.status is PlanStatus.WAITING_FOR_WINDOW:
            reason = f"opens {entry.opens_at.strftime('%Y-%m-%d %H:%M')}"
        elif entry.status is PlanStatus.ALREADY_BOOKED:
            booked = self.ledger.get(*entry.key) or {}
            if booked.get('slot_id'):
                reason = f"slot {booked['slot_id']}"
        return DayReport(
            user_name=entry.user.name,
            day=entry.day,
            target_date=entry.target_date,
            status=entry.status.value,
            reason=reason,
        )

    async def _reload_config(self, config_provider: Callable[[], GymConfig]) -> None:
        try:
            config = config_provider()
        except (ConfigError, OSError) as exc:
            self.logger.error("Keeping previous configuration: %s", exc)
            return
        if config != self.config:
            self.logger.info("Configuration changed; applying %s users", len(config.users))
            await self.update_config(config)

    def _write_status(self, snapshot: StatusSnapshot) -> None:
        try:
            write_snapshot(snapshot, self.status_path)
        except OSError as exc:
            self.logger.error("Failed to write status file %s: %s", self.status_path, exc)
