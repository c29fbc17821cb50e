"""Locally handled chat commands.

Client chat starting with the configured prefix is checked against a small
table of keywords (read from ``commands.*`` in the config on every call, so
renaming a command through update-config takes effect immediately). A
recognized command is handled here and never reaches the server, even when
it only produces a usage error. Anything else is forwarded untouched.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from hyproxy.proxy.config_store import ConfigStore, ConfigValidationError
from hyproxy.proxy.lookup import StatLookupPipeline

logger = logging.getLogger(__name__)

CommandHandler = Callable[[list[str]], None]


def _display(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


class CommandRouter:
    """Dispatch prefixed client chat to local command handlers."""

    def __init__(
        self,
        config: ConfigStore,
        pipeline: StatLookupPipeline,
        filter_set: set[str],
        emit: Callable[[str], None],
    ) -> None:
        self._config = config
        self._pipeline = pipeline
        self._filter_set = filter_set
        self._emit = emit

    def bindings(self) -> dict[str, CommandHandler]:
        """Current keyword → handler table."""
        commands = self._config.get("commands")
        return {
            str(commands["statcheck"]).lower(): self._statcheck,
            str(commands["stat_filter"]).lower(): self._add_filter,
            str(commands["update_config"]).lower(): self._update_config,
        }

    def handle(self, text: str) -> bool:
        """Handle a client chat line.

        Args:
            text: Raw chat text typed by the client

        Returns:
            True if the line was a local command and must not be forwarded
        """
        prefix = self._config.get("commands.prefix", "/")
        if not prefix or not text.startswith(prefix):
            return False

        tokens = text[len(prefix) :].split()
        if not tokens:
            return False

        handler = self.bindings().get(tokens[0].lower())
        if handler is None:
            return False

        logger.info(f"{tokens[0]} command was called.")
        handler(tokens[1:])
        return True

    def _statcheck(self, args: list[str]) -> None:
        if not args:
            self._emit("§cPlease provide at least one name to statcheck.")
            return
        self._pipeline.schedule_batch(args)

    def _add_filter(self, args: list[str]) -> None:
        if not args:
            self._emit("§cPlease provide at least one username to filter.")
            return
        for name in args:
            self._filter_set.add(name.lower())
            self._emit(f"§f{name} added to filter.")

    def _update_config(self, args: list[str]) -> None:
        if len(args) < 2:
            self._emit("§cPlease provide a config setting and a new value for it.")
            return

        key_path, *rest = args
        try:
            new_value = self._config.set(key_path, " ".join(rest))
        except ConfigValidationError as e:
            self._emit(f"§c{e}")
            return

        self._emit(f"§fUpdated in-memory config: {key_path} = {_display(new_value)}.")
