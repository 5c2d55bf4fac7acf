"""Packflow utility modules."""

from packflow.utils.retry import RetryConfig
from packflow.utils.validation import sanitize_log_message, truncate_text

__all__ = [
    "RetryConfig",
    "sanitize_log_message",
    "truncate_text",
]
