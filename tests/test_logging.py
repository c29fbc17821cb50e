"""Tests for logging sanitization, session context and setup."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from pathlib import Path

import pytest

from hyproxy.main import setup_logging
from hyproxy.utils import logging as log_utils
from hyproxy.utils.logging import (
    JSONFormatter,
    LogSanitizer,
    SanitizingFormatter,
    SessionContextFilter,
    register_secret,
    sanitize_text,
    set_session_username,
)

API_KEY = "0a1b2c3d-4e5f-6a7b-8c9d-0e1f2a3b4c5d"


@pytest.fixture(autouse=True)
def clean_secrets() -> Iterator[None]:
    log_utils._registered_secrets.clear()
    yield
    log_utils._registered_secrets.clear()
    set_session_username(None)


def make_record(msg: str, *args: object) -> logging.LogRecord:
    return logging.LogRecord("hyproxy.test", logging.INFO, __file__, 1, msg, args, None)


class TestSanitizeText:
    """Tests for secret masking."""

    def test_registered_secret_masked(self) -> None:
        register_secret(API_KEY)
        assert API_KEY not in sanitize_text(f"using key {API_KEY} now")

    def test_short_secret_ignored(self) -> None:
        register_secret("abc")
        assert sanitize_text("abc") == "abc"

    def test_api_key_header(self) -> None:
        text = sanitize_text(f"headers={{'API-Key': '{API_KEY}'}}")
        assert API_KEY not in text

    def test_key_query_parameter(self) -> None:
        text = sanitize_text("GET https://api.hypixel.net/player?key=secretvalue&uuid=1")
        assert "secretvalue" not in text
        assert "uuid=1" in text

    def test_plain_text_untouched(self) -> None:
        assert sanitize_text("Statchecking Alice.") == "Statchecking Alice."


class TestFilters:
    """Tests for log record filters."""

    def test_sanitizer_masks_args(self) -> None:
        register_secret(API_KEY)
        record = make_record("key is %s", API_KEY)
        LogSanitizer().filter(record)
        assert API_KEY not in record.getMessage()

    def test_session_context(self) -> None:
        record = make_record("hello")
        SessionContextFilter().filter(record)
        assert record.session == "-"

        set_session_username("Viewer")
        record = make_record("hello")
        SessionContextFilter().filter(record)
        assert record.session == "Viewer"


class TestFormatters:
    """Tests for output formatters."""

    def test_sanitizing_formatter_masks_output(self) -> None:
        register_secret(API_KEY)
        formatted = SanitizingFormatter("%(message)s").format(make_record(f"key {API_KEY}"))
        assert API_KEY not in formatted

    def test_json_formatter(self) -> None:
        set_session_username("Viewer")
        record = make_record("<< %s", "hello")
        SessionContextFilter().filter(record)

        entry = json.loads(JSONFormatter().format(record))

        assert entry["message"] == "<< hello"
        assert entry["level"] == "INFO"
        assert entry["session"] == "Viewer"


class TestSetupLogging:
    """Tests for root logger configuration."""

    def test_console_only(self) -> None:
        root = logging.getLogger()
        saved = root.handlers[:]
        saved_level = root.level
        try:
            setup_logging(level="WARNING", log_to_file=False)
            assert root.level == logging.WARNING
            assert len(root.handlers) == 1
        finally:
            root.handlers[:] = saved
            root.setLevel(saved_level)

    def test_file_handler(self, tmp_path: Path) -> None:
        root = logging.getLogger()
        saved = root.handlers[:]
        saved_level = root.level
        log_file = tmp_path / "logs" / "hyproxy.log"
        try:
            setup_logging(debug=True, log_format="json", log_to_file=True, log_file_path=log_file)
            assert root.level == logging.DEBUG
            assert len(root.handlers) == 2
            assert log_file.parent.exists()
        finally:
            for handler in root.handlers:
                if handler not in saved:
                    handler.close()
            root.handlers[:] = saved
            root.setLevel(saved_level)
