"""Settings and logging setup."""

from .logging import JSONFormatter, SanitizingFilter, TextFormatter, configure_logging
from .settings import Settings, find_config_file, get_settings

__all__ = [
    "Settings",
    "find_config_file",
    "get_settings",
    "configure_logging",
    "JSONFormatter",
    "SanitizingFilter",
    "TextFormatter",
]
