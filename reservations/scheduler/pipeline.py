"""Work out which (user, day) pairs a booking cycle should attempt."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable, Collection, List, Optional, Tuple

from automation.availability.time_utils import (
    TimezoneLike,
    booking_opens_at,
    get_timezone,
    localize,
    next_occurrence,
    parse_weekday,
)
from infrastructure.constants import BOOKING_WINDOW_DAYS, BOOKING_WINDOW_OFFSET_MINUTES
from users.profiles import GymConfig, SlotPreference, UserProfile


class PlanStatus(Enum):
    DUE = "due"
    WAITING_FOR_WINDOW = "waiting for booking window"
    ALREADY_BOOKED = "already booked"
    ON_WAITING_LIST = "on waiting list"
    IN_PROGRESS = "in progress"


@dataclass(frozen=True)
class DayPlan:
    """One user's wish for one weekday, resolved to a concrete date."""

    user: UserProfile
    day: str
    target_date: date
    preference: SlotPreference
    slot_start: datetime
    opens_at: datetime
    status: PlanStatus

    @property
    def key(self) -> Tuple[str, date]:
        return (self.user.name, self.target_date)


@dataclass
class CyclePlan:
    """Buckets produced after evaluating every configured (user, day)."""

    now: datetime
    entries: List[DayPlan] = field(default_factory=list)

    def with_status(self, status: PlanStatus) -> List[DayPlan]:
        return [entry for entry in self.entries if entry.status is status]

    @property
    def due(self) -> List[DayPlan]:
        return self.with_status(PlanStatus.DUE)


def plan_cycle(
    config: GymConfig,
    *,
    now: datetime,
    timezone: TimezoneLike,
    is_booked: Callable[[str, date], bool],
    waiting: Collection[Tuple[str, date]] = (),
    in_flight: Collection[Tuple[str, date]] = (),
    ignore_window: bool = False,
    window_days: int = BOOKING_WINDOW_DAYS,
    window_offset_minutes: int = BOOKING_WINDOW_OFFSET_MINUTES,
    logger: Optional[Any] = None,
) -> CyclePlan:
    """Resolve each user's days to target dates and classify them.

    ``is_booked(user_name, target_date)`` is consulted before anything else;
    pairs already booked, waiting or in flight are reported but never due.
    """

    zone = get_timezone(timezone)
    local_now = now.astimezone(zone)
    plan = CyclePlan(now=local_now)

    for user in config.users:
        for day in user.days:
            preference = user.preference_for(day)
            if preference is None:
                continue
            target_date = next_occurrence(local_now, parse_weekday(day), preference.time, zone)
            slot_start = localize(target_date, preference.time, zone)
            opens_at = booking_opens_at(
                target_date,
                preference.time,
                zone,
                days_before=window_days,
                offset_minutes=window_offset_minutes,
            )
            key = (user.name, target_date)

            if is_booked(user.name, target_date):
                status = PlanStatus.ALREADY_BOOKED
            elif key in in_flight:
                status = PlanStatus.IN_PROGRESS
            elif key in waiting:
                status = PlanStatus.ON_WAITING_LIST
            elif ignore_window or opens_at <= local_now:
                status = PlanStatus.DUE
            else:
                status = PlanStatus.WAITING_FOR_WINDOW

            plan.entries.append(
                DayPlan(
                    user=user,
                    day=day,
                    target_date=target_date,
                    preference=preference,
                    slot_start=slot_start,
                    opens_at=opens_at,
                    status=status,
                )
            )

    if logger:
        due = plan.due
        if due:
            logger.info(
                "Cycle at %s: %s due of %s planned",
                local_now.strftime('%Y-%m-%d %H:%M:%S'),
                len(due),
                len(plan.entries),
            )
        else:
            logger.debug("Cycle at %s: nothing due", local_now.isoformat())
    return plan

