"""Centralized application settings.

Runtime knobs come from the environment (optionally seeded from a ``.env``
file). The per-gym configuration (users, slots, platform ids) lives in the TOML
file loaded by :mod:`users.profiles`; this module only points at it.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv

from . import constants


def _to_bool(value: Optional[str], default: bool = False) -> bool:
    """Normalize environment strings such as "true"/"1" into booleans."""

    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _to_int(value: Optional[str], default: int) -> int:
    try:
        return int(value) if value is not None else default
    except (TypeError, ValueError):
        return default


def _to_float(value: Optional[str], default: float) -> float:
    try:
        return float(value) if value is not None else default
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class AppSettings:
    """Immutable snapshot of high-level configuration values."""

    production_mode: bool
    base_url: str
    timezone: str
    config_file: str
    data_directory: str
    log_directory: str
    cycle_interval_seconds: int
    waitlist_poll_interval_seconds: int
    cycle_task_timeout_seconds: float
    max_concurrent_requests: int
    http_timeout_seconds: float
    booking_max_retry_attempts: int
    retry_base_delay_seconds: float
    retry_backoff_factor: float
    retry_max_delay_seconds: float
    booking_window_days: int
    booking_window_offset_minutes: int
    attempt_history_size: int
    login_retry_cooldown_seconds: float

    @property
    def ledger_file(self) -> str:
        return os.path.join(self.data_directory, "booked_slots.json")

    @property
    def status_file(self) -> str:
        return os.path.join(self.data_directory, "status.json")


def load_settings(env: Optional[Mapping[str, str]] = None) -> AppSettings:
    """Load configuration from the environment and fall back to defaults."""

    if env is None:
        load_dotenv(override=False)
        env = os.environ

    data_directory = env.get("DATA_DIRECTORY", "data")

    return AppSettings(
        production_mode=_to_bool(env.get("PRODUCTION_MODE"), default=False),
        base_url=env.get("BOOKING_BASE_URL", constants.DEFAULT_BASE_URL).rstrip("/"),
        timezone=env.get("GYM_TIMEZONE", constants.DEFAULT_TIMEZONE),
        config_file=env.get("CONFIG_FILE", "config.toml"),
        data_directory=data_directory,
        log_directory=env.get("LOG_DIRECTORY", os.path.join("logs", "latest_log")),
        cycle_interval_seconds=_to_int(
            env.get("CYCLE_INTERVAL_SECONDS"), constants.CYCLE_INTERVAL_SECONDS
        ),
        waitlist_poll_interval_seconds=_to_int(
            env.get("WAITLIST_POLL_INTERVAL_SECONDS"),
            constants.WAITLIST_POLL_INTERVAL_SECONDS,
        ),
        cycle_task_timeout_seconds=_to_float(
            env.get("CYCLE_TASK_TIMEOUT_SECONDS"), constants.CYCLE_TASK_TIMEOUT_SECONDS
        ),
        max_concurrent_requests=max(
            1,
            _to_int(env.get("MAX_CONCURRENT_REQUESTS"), constants.MAX_CONCURRENT_REQUESTS),
        ),
        http_timeout_seconds=_to_float(
            env.get("HTTP_TIMEOUT_SECONDS"), constants.HTTP_TIMEOUT_SECONDS
        ),
        booking_max_retry_attempts=max(
            1,
            _to_int(env.get("BOOKING_MAX_RETRY_ATTEMPTS"), constants.MAX_BOOKING_ATTEMPTS),
        ),
        retry_base_delay_seconds=_to_float(
            env.get("BOOKING_RETRY_BASE_DELAY"), constants.RETRY_BASE_DELAY_SECONDS
        ),
        retry_backoff_factor=_to_float(
            env.get("BOOKING_RETRY_BACKOFF_FACTOR"), constants.RETRY_BACKOFF_FACTOR
        ),
        retry_max_delay_seconds=_to_float(
            env.get("BOOKING_RETRY_MAX_DELAY"), constants.RETRY_MAX_DELAY_SECONDS
        ),
        booking_window_days=_to_int(
            env.get("BOOKING_WINDOW_DAYS"), constants.BOOKING_WINDOW_DAYS
        ),
        booking_window_offset_minutes=_to_int(
            env.get("BOOKING_WINDOW_OFFSET_MINUTES"),
            constants.BOOKING_WINDOW_OFFSET_MINUTES,
        ),
        attempt_history_size=max(
            1, _to_int(env.get("ATTEMPT_HISTORY_SIZE"), constants.ATTEMPT_HISTORY_SIZE)
        ),
        login_retry_cooldown_seconds=_to_float(
            env.get("LOGIN_RETRY_COOLDOWN_SECONDS"),
            constants.LOGIN_RETRY_COOLDOWN_SECONDS,
        ),
    )
