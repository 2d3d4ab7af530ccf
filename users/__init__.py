"""User and gym configuration."""

from .profiles import (
    ConfigError,
    GymConfig,
    SlotPreference,
    UserProfile,
    build_user,
    load_gym_config,
    parse_gym_config,
)

__all__ = [
    "ConfigError",
    "GymConfig",
    "SlotPreference",
    "UserProfile",
    "build_user",
    "load_gym_config",
    "parse_gym_config",
]
