"""Text hygiene helpers for logs and prompts."""

from __future__ import annotations

import re

# Maximum characters of a single value embedded into an agent prompt
MAX_PROMPT_VALUE_LENGTH = 20_000

_DEFAULT_SENSITIVE_PATTERNS = [
    (r"sk-ant-[a-zA-Z0-9_-]{40,}", "[REDACTED_API_KEY]"),  # Anthropic keys
    (r"sk-[a-zA-Z0-9]{20,}", "[REDACTED_API_KEY]"),  # OpenAI-style keys
    (r"ghp_[a-zA-Z0-9]{36}", "[REDACTED_GITHUB_TOKEN]"),
    (r"Bearer\s+[a-zA-Z0-9._-]{16,}", "Bearer [REDACTED]"),
    (r'api[_-]?key["\']?\s*[:=]\s*["\']?[^"\'\s,}]+', "api_key=[REDACTED]"),
    (r'password["\']?\s*[:=]\s*["\']?[^"\'\s,}]+', "password=[REDACTED]"),
    (r'token["\']?\s*[:=]\s*["\']?[^"\'\s,}]+', "token=[REDACTED]"),
]


def sanitize_log_message(message: str, sensitive_patterns: list[str] | None = None) -> str:
    """Sanitize a log message to remove sensitive data.

    Args:
        message: Message to sanitize
        sensitive_patterns: Additional patterns to redact

    Returns:
        Sanitized message with sensitive data redacted
    """
    result = message

    for pattern, replacement in _DEFAULT_SENSITIVE_PATTERNS:
        result = re.sub(pattern, replacement, result, flags=re.IGNORECASE)

    if sensitive_patterns:
        for pattern in sensitive_patterns:
            result = re.sub(pattern, "[REDACTED]", result, flags=re.IGNORECASE)

    return result


def truncate_text(text: str, max_length: int = MAX_PROMPT_VALUE_LENGTH) -> str:
    """Clip ``text`` to ``max_length`` characters, marking the cut."""
    if len(text) <= max_length:
        return text
    omitted = len(text) - max_length
    return f"{text[:max_length]}\n... [truncated {omitted} chars]"
