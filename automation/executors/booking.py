"""Booking executor: discovery, matching and the booking call with retries."""

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime
from typing import Awaitable, Callable, List, Optional, TypeVar

import pytz

from automation.availability.matcher import MatchResult, match_slot
from automation.availability.time_utils import TimezoneLike, day_window, get_timezone
from automation.platform.client import SessionClient
from automation.platform.errors import (
    AuthError,
    BookingRejectedError,
    CapacityError,
    MalformedResponseError,
    NetworkError,
)
from automation.platform.session import Session
from automation.shared.booking_contracts import (
    BookingAttempt,
    BookingOutcome,
    BookingRequest,
    BookingSource,
    SlotCandidate,
)
from infrastructure.constants import DEFAULT_TIMEZONE
from reservations.ledger import BookingLedger
from users.profiles import SlotPreference

from .core import DEFAULT_RETRY_POLICY, RetryPolicy

T = TypeVar('T')

Sleep = Callable[[float], Awaitable[None]]


class BookingExecutor:
    """Drives one booking attempt through the session client.

    ``Pending -> Booked | SlotFull | AuthFailed | TransientError``. Network
    faults are retried with bounded exponential backoff; everything else is
    final for this cycle.
    """

    def __init__(
        self,
        client: SessionClient,
        ledger: BookingLedger,
        *,
        retry_policy: RetryPolicy = DEFAULT_RETRY_POLICY,
        timezone: TimezoneLike = DEFAULT_TIMEZONE,
        sleep: Optional[Sleep] = None,
        clock: Optional[Callable[[], datetime]] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.client = client
        self.ledger = ledger
        self.retry_policy = retry_policy
        self.timezone = get_timezone(timezone)
        self.logger = logger or logging.getLogger('BookingExecutor')
        self._sleep = sleep or asyncio.sleep
        self._clock = clock or (lambda: datetime.now(pytz.utc))

    def _now(self) -> datetime:
        return self._clock().astimezone(self.timezone)

    async def _with_retries(self, label: str, operation: Callable[[], Awaitable[T]]) -> tuple[T, int]:
        """Run ``operation`` retrying ``NetworkError``; returns (result, retries)."""

        policy = self.retry_policy
        for attempt_number in range(1, policy.max_attempts + 1):
            try:
                return await operation(), attempt_number - 1
            except NetworkError as exc:
                if attempt_number >= policy.max_attempts:
                    self.logger.warning(
                        "%s failed after %s attempts: %s", label, attempt_number, exc.message
                    )
                    raise
                delay = policy.delay_for(attempt_number)
                self.logger.info(
                    "%s hit a network fault (%s); retrying in %.1fs (%s/%s)",
                    label,
                    exc.message,
                    delay,
                    attempt_number,
                    policy.max_attempts,
                )
                await self._sleep(delay)
        raise AssertionError("unreachable")  # pragma: no cover

    async def discover(
        self,
        session: Session,
        category_id: str,
        target_date: date,
    ) -> List[SlotCandidate]:
        """List the day's slots, retrying network faults."""

        window = day_window(target_date, self.timezone)
        slots, _ = await self._with_retries(
            f"Slot discovery for {session.user_name} on {target_date}",
            lambda: self.client.list_slots(session, category_id, window),
        )
        return slots

    async def find_slot(
        self,
        session: Session,
        preference: SlotPreference,
        category_id: str,
        target_date: date,
    ) -> MatchResult:
        candidates = await self.discover(session, category_id, target_date)
        return match_slot(preference, candidates, target_date)

    async def run(
        self,
        session: Session,
        *,
        day: str,
        target_date: date,
        preference: SlotPreference,
        category_id: str,
        source: BookingSource = BookingSource.CYCLE,
        dry_run: bool = False,
    ) -> BookingAttempt:
        """Discover, match and book one (user, day).

        Discovery faults are folded into the returned attempt. A
        :class:`~reservations.ledger.DuplicateBookingError` is the one fault
        that propagates.
        """

        def failed(outcome: BookingOutcome, reason: str) -> BookingAttempt:
            return BookingAttempt(
                user_name=session.user_name,
                day=day,
                target_date=target_date,
                outcome=outcome,
                attempted_at=self._now(),
                reason=reason,
                source=source,
                executed=False,
            )

        try:
            result = await self.find_slot(session, preference, category_id, target_date)
        except AuthError as exc:
            return failed(BookingOutcome.AUTH_FAILED, exc.message)
        except (NetworkError, MalformedResponseError) as exc:
            return failed(BookingOutcome.TRANSIENT_ERROR, f"discovery failed: {exc.message}")

        if not result.matched:
            self.logger.info("⏭️ %s on %s skipped: %s", session.user_name, day, result.reason)
            return failed(BookingOutcome.SKIPPED, result.reason or 'no match')

        slot = result.slot
        request = BookingRequest(
            user_name=session.user_name,
            day=day,
            target_date=target_date,
            slot=slot,
            source=source,
        )
        return await self.execute(session, request, dry_run=dry_run)

    async def execute(
        self,
        session: Session,
        request: BookingRequest,
        *,
        dry_run: bool = False,
    ) -> BookingAttempt:
        """Book ``request.slot`` unless the ledger says the date is taken."""

        self.ledger.ensure_not_booked(request.user_name, request.target_date)

        if dry_run:
            self.logger.info(
                "[DRY RUN] Would book %s for %s", request.slot.describe(), request.user_name
            )
            return BookingAttempt.for_request(
                request,
                BookingOutcome.INTENDED,
                self._now(),
                reason='dry run: booking call withheld',
                executed=False,
            )

        label = f"Booking {request.slot.slot_id} for {request.user_name}"
        try:
            confirmation, retries = await self._with_retries(
                label, lambda: self.client.book(session, request.slot.slot_id)
            )
        except CapacityError as exc:
            self.logger.info("🈵 %s: slot full (%s)", label, exc.message)
            return BookingAttempt.for_request(
                request, BookingOutcome.SLOT_FULL, self._now(), reason=exc.message
            )
        except AuthError as exc:
            self.logger.warning("🔒 %s: authentication failed (%s)", label, exc.message)
            return BookingAttempt.for_request(
                request, BookingOutcome.AUTH_FAILED, self._now(), reason=exc.message
            )
        except (BookingRejectedError, MalformedResponseError) as exc:
            self.logger.warning("%s refused: %s", label, exc.message)
            return BookingAttempt.for_request(
                request, BookingOutcome.TRANSIENT_ERROR, self._now(), reason=exc.message
            )
        except NetworkError as exc:
            return BookingAttempt.for_request(
                request,
                BookingOutcome.TRANSIENT_ERROR,
                self._now(),
                reason=exc.message,
                retries=self.retry_policy.max_attempts - 1,
            )

        booked_at = self._now()
        self.ledger.mark_booked(
            request.user_name,
            request.target_date,
            slot_id=request.slot.slot_id,
            slot_start=request.slot.start,
            booked_at=booked_at,
        )
        reason = 'already booked on platform' if confirmation.get('already_booked') else None
        self.logger.info("✅ Booked %s for %s", request.slot.describe(), request.user_name)
        return BookingAttempt.for_request(
            request,
            BookingOutcome.BOOKED,
            booked_at,
            reason=reason,
            retries=retries,
            confirmation=confirmation,
        )
