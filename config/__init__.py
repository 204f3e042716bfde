"""Configuration and logging setup."""

from .logging_config import configure_logging
from .settings import ConfigurationError, Settings, load_or_create_settings

__all__ = [
    "ConfigurationError",
    "Settings",
    "configure_logging",
    "load_or_create_settings",
]
