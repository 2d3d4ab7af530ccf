"""
User and gym configuration records.

The TOML file holds the platform ids, the shared day -> slot preference mapping
and the users with their weekly day lists::

    [app]
    application_id = "1234"
    category_activity_id = "42"
    timezone = "Europe/Paris"        # optional

    [slots]
    monday = { time = "18:30", activity = "WOD" }
    thursday = "12:15"               # any activity

    [[users]]
    name = "Alice"
    login = "alice@example.com"
    password = "..."
    slots = ["monday", "thursday"]

Everything is validated once here; the orchestrator only ever sees the frozen
records.
"""

from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass, field, replace
from datetime import time
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence, Tuple, Union

from automation.availability.time_utils import normalise_day_name, parse_slot_time
from infrastructure.logging_config import mask_secret


class ConfigError(ValueError):
    """Raised when the gym configuration cannot be used."""


@dataclass(frozen=True)
class SlotPreference:
    """Desired start time and optional activity for one weekday."""

    time: time
    activity: Optional[str] = None

    def describe(self) -> str:
        return f"{self.time.strftime('%H:%M')} ({self.activity or 'any'})"


@dataclass(frozen=True)
class UserProfile:
    """A user of the gym platform and the weekdays they want booked."""

    name: str
    login: str
    password: str = field(repr=False)
    days: Tuple[str, ...] = ()
    preferences: Mapping[str, SlotPreference] = field(
        default_factory=dict, repr=False, compare=False
    )

    def preference_for(self, day: str) -> Optional[SlotPreference]:
        return self.preferences.get(day)

    def wants(self, day: str) -> bool:
        return day in self.days and day in self.preferences

    def redacted(self) -> Dict[str, Any]:
        """Loggable view of the profile."""

        return {
            'name': self.name,
            'login': mask_secret(self.login, visible=3),
            'days': list(self.days),
        }


@dataclass(frozen=True)
class GymConfig:
    """Validated configuration consumed by the orchestrator."""

    application_id: str
    category_activity_id: str
    slots: Mapping[str, SlotPreference]
    users: Tuple[UserProfile, ...]
    timezone: Optional[str] = None

    def user(self, name: str) -> Optional[UserProfile]:
        for profile in self.users:
            if profile.name == name:
                return profile
        return None

    def with_overrides(
        self,
        *,
        application_id: Optional[str] = None,
        category_activity_id: Optional[str] = None,
        users: Optional[Iterable[UserProfile]] = None,
    ) -> "GymConfig":
        """Return a copy with CLI-level overrides applied."""

        return replace(
            self,
            application_id=application_id or self.application_id,
            category_activity_id=category_activity_id or self.category_activity_id,
            users=tuple(users) if users is not None else self.users,
        )


def build_user(
    name: str,
    login: str,
    password: str,
    days: Sequence[str],
    preferences: Mapping[str, SlotPreference],
    *,
    logger: Optional[logging.Logger] = None,
) -> UserProfile:
    """Create a profile, normalising and de-duplicating day names."""

    logger = logger or logging.getLogger('UserProfiles')
    if not name:
        raise ConfigError("User entry is missing a name")
    if not login or not password:
        raise ConfigError(f"User '{name}' needs both login and password")

    normalised: list[str] = []
    for raw_day in days:
        try:
            day = normalise_day_name(raw_day)
        except ValueError as exc:
            raise ConfigError(f"User '{name}': {exc}") from exc
        if day in normalised:
            continue
        if day not in preferences:
            logger.warning(
                "User %s lists %s but no slot is configured for that day; it will be ignored",
                name,
                day,
            )
        normalised.append(day)

    return UserProfile(
        name=name,
        login=login,
        password=password,
        days=tuple(normalised),
        preferences=preferences,
    )


def parse_slot_preferences(raw_slots: Mapping[str, Any]) -> Dict[str, SlotPreference]:
    """Parse the ``[slots]`` table into preferences keyed by weekday."""

    preferences: Dict[str, SlotPreference] = {}
    for raw_day, raw_value in raw_slots.items():
        try:
            day = normalise_day_name(raw_day)
        except ValueError as exc:
            raise ConfigError(str(exc)) from exc

        if isinstance(raw_value, str):
            raw_time, activity = raw_value, None
        elif isinstance(raw_value, Mapping):
            raw_time = raw_value.get('time')
            activity = raw_value.get('activity')
        else:
            raise ConfigError(f"Slot for {day} must be a time string or a table")

        if not raw_time:
            raise ConfigError(f"Slot for {day} has no time")
        try:
            slot_time = parse_slot_time(str(raw_time))
        except ValueError as exc:
            raise ConfigError(f"Slot for {day}: {exc}") from exc

        activity = str(activity).strip() if activity not in (None, '') else None
        preferences[day] = SlotPreference(time=slot_time, activity=activity)
    return preferences


def parse_gym_config(payload: Mapping[str, Any]) -> GymConfig:
    """Validate a decoded configuration document."""

    app = payload.get('app')
    if not isinstance(app, Mapping):
        raise ConfigError("Missing [app] section")

    application_id = str(app.get('application_id') or '').strip()
    category_activity_id = str(app.get('category_activity_id') or '').strip()
    if not application_id:
        raise ConfigError("[app] application_id is required")
    if not category_activity_id:
        raise ConfigError("[app] category_activity_id is required")

    raw_slots = payload.get('slots') or {}
    if not isinstance(raw_slots, Mapping):
        raise ConfigError("[slots] must be a table")
    preferences = parse_slot_preferences(raw_slots)

    raw_users = payload.get('users') or []
    if not isinstance(raw_users, list):
        raise ConfigError("[[users]] must be an array of tables")

    users: list[UserProfile] = []
    seen_names: set[str] = set()
    for index, raw_user in enumerate(raw_users):
        if not isinstance(raw_user, Mapping):
            raise ConfigError(f"User #{index + 1} is not a table")
        name = str(raw_user.get('name') or raw_user.get('login') or '').strip()
        if name in seen_names:
            raise ConfigError(f"Duplicate user name '{name}'")
        seen_names.add(name)
        users.append(
            build_user(
                name,
                str(raw_user.get('login') or '').strip(),
                str(raw_user.get('password') or ''),
                list(raw_user.get('slots') or raw_user.get('days') or []),
                preferences,
            )
        )

    timezone = app.get('timezone')
    return GymConfig(
        application_id=application_id,
        category_activity_id=category_activity_id,
        slots=preferences,
        users=tuple(users),
        timezone=str(timezone) if timezone else None,
    )


def load_gym_config(path: Union[str, Path]) -> GymConfig:
    """Read and validate the TOML configuration file."""

    config_path = Path(path)
    try:
        with config_path.open('rb') as handle:
            payload = tomllib.load(handle)
    except FileNotFoundError as exc:
        raise ConfigError(f"Configuration file {config_path} does not exist") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Failed to parse {config_path}: {exc}") from exc

    config = parse_gym_config(payload)
    logging.getLogger('UserProfiles').info(
        "Loaded %s users and %s slot preferences from %s",
        len(config.users),
        len(config.slots),
        config_path,
    )
    return config
