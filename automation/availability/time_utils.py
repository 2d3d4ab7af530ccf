"""Weekday and time-window helpers for slot discovery."""

from __future__ import annotations

from datetime import date, datetime, time, timedelta
from typing import Optional, Tuple, Union

import pytz

from infrastructure.constants import WEEKDAYS_EN, WEEKDAYS_FR

TimezoneLike = Union[str, pytz.BaseTzInfo]


def get_timezone(tz: TimezoneLike) -> pytz.BaseTzInfo:
    if isinstance(tz, str):
        return pytz.timezone(tz)
    return tz


def normalise_day_name(day: str) -> str:
    """Return the lowercase English weekday name for ``day``.

    French names are accepted since the platform's gyms mostly are.
    """

    key = (day or '').strip().lower()
    if key in WEEKDAYS_EN:
        return key
    if key in WEEKDAYS_FR:
        return WEEKDAYS_EN[WEEKDAYS_FR.index(key)]
    raise ValueError(f"Unknown day '{day}'")


def parse_weekday(day: str) -> int:
    """Map a day name to ``date.weekday()`` numbering (Monday is 0)."""

    return WEEKDAYS_EN.index(normalise_day_name(day))


def parse_slot_time(value: str) -> time:
    """Parse ``HH:MM`` or ``HH:MM:SS`` into a :class:`datetime.time`."""

    text = (value or '').strip()
    for fmt in ('%H:%M:%S', '%H:%M'):
        try:
            return datetime.strptime(text, fmt).time()
        except ValueError:
            continue
    raise ValueError(f"Cannot parse slot time '{value}'")


def localize(target_date: date, slot_time: time, tz: TimezoneLike) -> datetime:
    """Combine a date and a wall-clock time in the gym timezone."""

    return get_timezone(tz).localize(datetime.combine(target_date, slot_time))


def next_occurrence(
    now: datetime,
    weekday: int,
    slot_time: time,
    tz: TimezoneLike,
) -> date:
    """Nearest date falling on ``weekday`` whose slot has not started yet.

    When today is the weekday and the slot is still ahead, today is returned;
    otherwise the following week's occurrence.
    """

    zone = get_timezone(tz)
    local_now = now.astimezone(zone)
    today = local_now.date()
    days_ahead = (weekday - today.weekday()) % 7
    candidate = today + timedelta(days=days_ahead)
    if localize(candidate, slot_time, zone) <= local_now:
        candidate += timedelta(days=7)
    return candidate


def booking_opens_at(
    target_date: date,
    slot_time: time,
    tz: TimezoneLike,
    *,
    days_before: int = 7,
    offset_minutes: int = 1,
) -> datetime:
    """Moment the platform starts accepting bookings for a slot."""

    opening_day = target_date - timedelta(days=days_before)
    opening = datetime.combine(opening_day, slot_time) + timedelta(minutes=offset_minutes)
    return get_timezone(tz).localize(opening)


def day_window(target_date: date, tz: TimezoneLike) -> Tuple[int, int]:
    """Unix timestamps of the first and last second of a gym-local day."""

    zone = get_timezone(tz)
    start = zone.localize(datetime.combine(target_date, time(0, 0, 0)))
    end = zone.localize(datetime.combine(target_date, time(23, 59, 59)))
    return int(start.timestamp()), int(end.timestamp())


def js_timezone_offset(target_date: date, tz: TimezoneLike) -> int:
    """Minutes as returned by JavaScript's ``Date.getTimezoneOffset()``.

    UTC+1 gives ``-60``; the platform expects this sign convention.
    """

    zone = get_timezone(tz)
    local_noon = zone.localize(datetime.combine(target_date, time(12, 0)))
    offset = local_noon.utcoffset() or timedelta(0)
    return -int(offset.total_seconds() // 60)


def parse_platform_datetime(value: object, tz: TimezoneLike) -> Optional[datetime]:
    """Parse a slot boundary sent by the platform.

    Accepts unix timestamps (int or numeric string) and ISO-like strings
    (``2025-01-06 18:30:00`` or ``2025-01-06T18:30:00``). Naive values are
    taken as gym-local time.
    """

    zone = get_timezone(tz)
    if value is None or value == '':
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(float(value), tz=pytz.utc).astimezone(zone)

    text = str(value).strip()
    if text.isdigit():
        return datetime.fromtimestamp(int(text), tz=pytz.utc).astimezone(zone)
    try:
        parsed = datetime.fromisoformat(text.replace('Z', '+00:00'))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return zone.localize(parsed)
    return parsed.astimezone(zone)
