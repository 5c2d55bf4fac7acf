"""Root logger setup for the CLI and embedding applications.

Engine modules log through ``logging.getLogger(__name__)`` and attach run
context with ``extra={"execution_id": ..., "task_id": ...}``. The JSON
formatter emits those extras as top-level fields; the text formatter
appends them in brackets.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from typing import Any

from packflow.utils.validation import sanitize_log_message

# Attributes every LogRecord carries; anything else came in through ``extra=``
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}

_NOISY_LOGGERS = ("anthropic", "httpx", "httpcore")


def _extras(record: logging.LogRecord) -> dict[str, Any]:
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _RECORD_ATTRS and not key.startswith("_")
    }


class SanitizingFilter(logging.Filter):
    """Redact API keys and bearer tokens before a record is emitted.

    Prompts and provider errors are logged verbatim, so a secret pasted
    into a task input would otherwise reach the sink.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = sanitize_log_message(record.msg)
        if isinstance(record.args, tuple):
            record.args = tuple(
                sanitize_log_message(a) if isinstance(a, str) else a for a in record.args
            )
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per line, run context included."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
        }
        payload.update(_extras(record))
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class TextFormatter(logging.Formatter):
    def __init__(self):
        super().__init__(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = _extras(record)
        if not context:
            return line
        tags = " ".join(f"{key}={value}" for key, value in sorted(context.items()))
        # Keep tracebacks last
        head, sep, tail = line.partition("\n")
        return f"{head} [{tags}]{sep}{tail}"


def configure_logging(
    level: str = "INFO", format: str = "text", sanitize_logs: bool = True
) -> None:
    """Replace the root handlers with a single stderr handler.

    Args:
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL (case-insensitive)
        format: ``"text"`` or ``"json"``
        sanitize_logs: Attach :class:`SanitizingFilter` to the handler
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(numeric_level)
    handler.setFormatter(JSONFormatter() if format.lower() == "json" else TextFormatter())
    if sanitize_logs:
        handler.addFilter(SanitizingFilter())

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.setLevel(numeric_level)
    root.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
