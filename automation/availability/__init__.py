"""Slot discovery helpers: weekday arithmetic and preference matching."""

from .matcher import MatchResult, match_slot
from .time_utils import (
    booking_opens_at,
    day_window,
    js_timezone_offset,
    next_occurrence,
    normalise_day_name,
    parse_platform_datetime,
    parse_slot_time,
    parse_weekday,
)

__all__ = [
    "MatchResult",
    "match_slot",
    "booking_opens_at",
    "day_window",
    "js_timezone_offset",
    "next_occurrence",
    "normalise_day_name",
    "parse_platform_datetime",
    "parse_slot_time",
    "parse_weekday",
]
