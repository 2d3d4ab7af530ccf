"""Helpers for dispatching due (user, day) pairs to the booking path."""

from __future__ import annotations

import asyncio
import logging
from datetime import date
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from automation.shared.booking_contracts import BookingAttempt

from .pipeline import DayPlan

DispatchKey = Tuple[str, date]


async def dispatch_bookings(
    jobs: List[DayPlan],
    *,
    execute_single: Callable[[DayPlan], Awaitable[Optional[BookingAttempt]]],
    logger: Optional[logging.Logger] = None,
    timeout_seconds: float = 120.0,
) -> Tuple[Dict[DispatchKey, Optional[BookingAttempt]], Dict[DispatchKey, str]]:
    """Run every job concurrently and return (results, timeouts).

    Jobs still running after ``timeout_seconds`` are cancelled and reported
    in the timeouts mapping. A job raising is logged and reported as ``None``.
    """

    if not jobs:
        return {}, {}

    task_map: Dict[asyncio.Task, DayPlan] = {}
    for job in jobs:
        task = asyncio.create_task(
            execute_single(job),
            name=f"booking-{job.user.name}-{job.target_date.isoformat()}",
        )
        task_map[task] = job

    done, pending = await asyncio.wait(
        list(task_map),
        return_when=asyncio.ALL_COMPLETED,
        timeout=timeout_seconds,
    )

    timeouts: Dict[DispatchKey, str] = {}
    if pending:
        if logger:
            logger.warning("Found %s hanging booking tasks - cancelling them", len(pending))
        for task in pending:
            job = task_map[task]
            if logger:
                logger.warning(
                    "Cancelling hanging task for %s on %s", job.user.name, job.target_date
                )
            task.cancel()
            timeouts[job.key] = f"Booking timed out after {timeout_seconds} seconds"
        await asyncio.gather(*pending, return_exceptions=True)

    results: Dict[DispatchKey, Optional[BookingAttempt]] = {}
    for task in done:
        job = task_map[task]
        try:
            results[job.key] = task.result()
        except asyncio.CancelledError:
            timeouts.setdefault(job.key, "Task was cancelled")
        except Exception as exc:
            if logger:
                logger.exception(
                    "❌ Booking task raised for %s on %s: %s",
                    job.user.name,
                    job.target_date,
                    exc,
                )
            results[job.key] = None

    return results, timeouts
