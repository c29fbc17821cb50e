"""Logging utilities with sanitization, session context and structured logging.

This module provides:
- Log sanitization to mask API keys and credentials
- Session context (the logged-in username) carried through async tasks
- SanitizingFormatter for complete output sanitization including exceptions
- JSONFormatter for structured JSON logging
"""

from __future__ import annotations

import contextvars
import json
import logging
import re
from datetime import UTC, datetime
from typing import Any, ClassVar

# Context variable for the username of the active proxy session
session_username: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "session_username", default=None
)

# Shared patterns for sensitive data detection
# Used by both LogSanitizer and SanitizingFormatter
SENSITIVE_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    # API-Key request headers
    (re.compile(r"(API-Key)['\"]?\s*[:=]\s*['\"]?([A-Za-z0-9\-]{16,})", re.IGNORECASE), r"\1: ***KEY***"),
    # key= query parameters (legacy Hypixel API style)
    (re.compile(r"([?&]key=)[^&\s'\"]+", re.IGNORECASE), r"\1***KEY***"),
    # API tokens in assignments
    (
        re.compile(r"(api[_-]?key|token)['\"]?\s*[:=]\s*['\"]?([A-Za-z0-9_\-]{16,})", re.IGNORECASE),
        r"\1=***TOKEN***",
    ),
    # Authorization headers
    (re.compile(r"(Authorization|Bearer)\s*:\s*([A-Za-z0-9_\-\.=]+)"), r"\1: ***AUTH***"),
]

# Exact secret values registered at startup (e.g. the Hypixel API key)
_registered_secrets: set[str] = set()


def register_secret(value: str) -> None:
    """Mask every occurrence of ``value`` in log output from now on.

    Args:
        value: Secret to mask (ignored when shorter than 8 characters)
    """
    if value and len(value) >= 8:
        _registered_secrets.add(value)


def sanitize_text(text: str) -> str:
    """Apply all sanitization patterns to text.

    Args:
        text: The text to sanitize

    Returns:
        Sanitized text with sensitive data masked
    """
    for secret in _registered_secrets:
        text = text.replace(secret, "***KEY***")
    for pattern, replacement in SENSITIVE_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


class LogSanitizer(logging.Filter):
    """Filter that sanitizes sensitive data from log records.

    Note: This filter sanitizes msg and args, but exception tracebacks
    are sanitized by SanitizingFormatter at format time.
    """

    PATTERNS: ClassVar[list[tuple[re.Pattern[str], str]]] = SENSITIVE_PATTERNS

    def filter(self, record: logging.LogRecord) -> bool:
        if record.msg:
            record.msg = sanitize_text(str(record.msg))

        if record.args:
            if isinstance(record.args, dict):
                record.args = {k: self._sanitize_value(v) for k, v in record.args.items()}
            elif isinstance(record.args, tuple):
                record.args = tuple(self._sanitize_value(arg) for arg in record.args)

        return True

    def _sanitize_value(self, value: Any) -> Any:
        if isinstance(value, str):
            return sanitize_text(value)
        elif isinstance(value, dict):
            return {k: self._sanitize_value(v) for k, v in value.items()}
        elif isinstance(value, list | tuple):
            sanitized = [self._sanitize_value(item) for item in value]
            return type(value)(sanitized)
        return value


class SanitizingFormatter(logging.Formatter):
    """Formatter that sanitizes the final formatted output.

    Unlike LogSanitizer (which operates on msg/args before formatting),
    this formatter sanitizes the output after all formatting is done,
    catching secrets in exception messages and stack traces.
    """

    def format(self, record: logging.LogRecord) -> str:
        formatted = super().format(record)
        return sanitize_text(formatted)


def get_session_username() -> str | None:
    """Get the username of the session in the current context."""
    return session_username.get()


def set_session_username(username: str | None) -> contextvars.Token[str | None]:
    """Set the session username in context.

    Args:
        username: Logged-in username, or None to clear

    Returns:
        Token for resetting the context
    """
    return session_username.set(username)


class SessionContextFilter(logging.Filter):
    """Filter that adds the session username to log records as ``session``."""

    def filter(self, record: logging.LogRecord) -> bool:
        username = session_username.get()
        record.session = username if username else "-"
        return True


class JSONFormatter(logging.Formatter):
    """Formatter that outputs logs as JSON lines.

    Each log entry includes:
    - timestamp: ISO 8601 format
    - level: Log level name
    - logger: Logger name
    - message: Log message (sanitized)
    - session: Session username (if set)
    - Extra fields from log record
    """

    _STANDARD_ATTRS: ClassVar[frozenset[str]] = frozenset(
        {
            "name",
            "msg",
            "args",
            "created",
            "filename",
            "funcName",
            "levelname",
            "levelno",
            "lineno",
            "module",
            "msecs",
            "pathname",
            "process",
            "processName",
            "relativeCreated",
            "stack_info",
            "exc_info",
            "exc_text",
            "thread",
            "threadName",
            "taskName",
            "session",
            "message",
        }
    )

    def __init__(self, sanitize: bool = True) -> None:
        """Initialize JSON formatter.

        Args:
            sanitize: If True, sanitize sensitive data in output
        """
        super().__init__()
        self.sanitize = sanitize

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if getattr(record, "session", "-") != "-":
            log_entry["session"] = record.session

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in self._STANDARD_ATTRS and not key.startswith("_"):
                try:
                    json.dumps(value)
                    log_entry[key] = value
                except (TypeError, ValueError):
                    log_entry[key] = str(value)

        if self.sanitize:
            log_entry = {
                key: sanitize_text(value) if isinstance(value, str) else value
                for key, value in log_entry.items()
            }

        return json.dumps(log_entry, ensure_ascii=False, default=str)
