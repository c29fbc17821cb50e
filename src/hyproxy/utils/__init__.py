"""Utility functions and helpers."""

from __future__ import annotations

from hyproxy.utils.logging import (
    JSONFormatter,
    LogSanitizer,
    SanitizingFormatter,
    SessionContextFilter,
    register_secret,
    set_session_username,
)

__all__ = [
    "JSONFormatter",
    "LogSanitizer",
    "SanitizingFormatter",
    "SessionContextFilter",
    "register_secret",
    "set_session_username",
]
