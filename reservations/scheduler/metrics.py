"""Statistics helpers for the booking orchestrator."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

from automation.shared.booking_contracts import BookingAttempt, BookingOutcome, BookingSource


@dataclass
class SchedulerStats:
    """Mutable counters tracking booking attempts across cycles."""

    cycles_run: int = 0
    total_attempts: int = 0
    successful_bookings: int = 0
    slot_full: int = 0
    auth_failures: int = 0
    transient_errors: int = 0
    skipped: int = 0
    intended: int = 0
    timeouts: int = 0
    waiting_list_bookings: int = 0
    total_execution_time: float = 0.0

    def record_attempt(
        self, attempt: BookingAttempt, execution_time: Optional[float] = None
    ) -> None:
        self.total_attempts += 1
        outcome = attempt.outcome
        if outcome is BookingOutcome.BOOKED:
            self.successful_bookings += 1
            if attempt.source is BookingSource.WAITING_LIST:
                self.waiting_list_bookings += 1
        elif outcome is BookingOutcome.SLOT_FULL:
            self.slot_full += 1
        elif outcome is BookingOutcome.AUTH_FAILED:
            self.auth_failures += 1
        elif outcome is BookingOutcome.TRANSIENT_ERROR:
            self.transient_errors += 1
        elif outcome is BookingOutcome.SKIPPED:
            self.skipped += 1
        elif outcome is BookingOutcome.INTENDED:
            self.intended += 1
        self._record_execution_time(execution_time)

    def record_timeout(self) -> None:
        self.timeouts += 1

    def record_cycle(self) -> None:
        self.cycles_run += 1

    def _record_execution_time(self, execution_time: Optional[float]) -> None:
        if execution_time is None or execution_time < 0:
            return
        self.total_execution_time += float(execution_time)

    @property
    def avg_execution_time(self) -> float:
        if self.total_attempts == 0:
            return 0.0
        return self.total_execution_time / self.total_attempts

    @property
    def success_rate(self) -> float:
        executed = self.total_attempts - self.skipped - self.intended
        if executed <= 0:
            return 0.0
        return (self.successful_bookings / executed) * 100

    def outcome_counts(self) -> Dict[str, int]:
        """Attempt counters only; they change exactly when an attempt is recorded."""

        return {
            'total_attempts': self.total_attempts,
            'booked': self.successful_bookings,
            'slot_full': self.slot_full,
            'auth_failed': self.auth_failures,
            'transient_error': self.transient_errors,
            'skipped': self.skipped,
            'intended': self.intended,
            'timeouts': self.timeouts,
            'waiting_list_bookings': self.waiting_list_bookings,
        }

    def format_report(self) -> str:
        lines = [
            "📊 Booking Orchestrator Report",
            f"🔁 Cycles: {self.cycles_run}",
            f"✅ Booked: {self.successful_bookings}",
            f"🈵 Slot full: {self.slot_full}",
            f"❌ Failed: {self.auth_failures + self.transient_errors}",
            f"📈 Total Attempts: {self.total_attempts}",
            f"🏆 Success Rate: {self.success_rate:.2f}%",
            f"⏱️ Avg Execution Time: {self.avg_execution_time:.2f}s",
        ]
        if self.waiting_list_bookings:
            lines.append(f"⏳ Booked from waiting list: {self.waiting_list_bookings}")
        if self.timeouts:
            lines.append(f"⌛ Timeouts: {self.timeouts}")
        return "\n".join(lines)
