"""Infrastructure helpers."""

from .settings import load_settings, AppSettings
from .logging_config import mask_secret, setup_logging

__all__ = [
    "load_settings",
    "AppSettings",
    "mask_secret",
    "setup_logging",
]
