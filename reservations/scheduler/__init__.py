"""Cycle helpers for the booking orchestrator."""

from .pipeline import CyclePlan, DayPlan, PlanStatus, plan_cycle
from .dispatch import dispatch_bookings
from .metrics import SchedulerStats
from .outcome import record_outcome

__all__ = [
    "CyclePlan",
    "DayPlan",
    "PlanStatus",
    "plan_cycle",
    "dispatch_bookings",
    "SchedulerStats",
    "record_outcome",
]
