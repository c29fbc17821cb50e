"""Pytest configuration and shared fixtures for HyProxy tests.

Fixtures:
- overlay_tree: Default overlay configuration as a plain nested dict
- config_store: ConfigStore over overlay_tree
- fake_api: In-memory identity/stats/guild service with call counters
- client_conn / connector: Fake transport connections for relay tests
- make_player: Factory for raw Hypixel player objects
"""

from __future__ import annotations

import json
from collections import Counter
from collections.abc import Callable
from typing import Any

import pytest

from hyproxy.config import OverlayConfig
from hyproxy.models import PlayerIdentity
from hyproxy.proxy.config_store import ConfigStore
from hyproxy.proxy.transport import (
    ConnectEvent,
    ConnectionEvent,
    EndEvent,
    EventHandler,
    ProtocolState,
)


class FakeConnection:
    """In-memory connection recording written frames."""

    def __init__(self, username: str = "Viewer", state: ProtocolState = ProtocolState.PLAY) -> None:
        self.username = username
        self.state = state
        self.written: list[tuple[str, dict[str, Any]]] = []
        self.end_reasons: list[str] = []
        self.fail_writes = False
        self._handler: EventHandler | None = None

    def write(self, name: str, payload: dict[str, Any]) -> None:
        if self.fail_writes:
            raise BrokenPipeError("socket closed")
        self.written.append((name, payload))

    def end(self, reason: str = "") -> None:
        self.end_reasons.append(reason)
        if len(self.end_reasons) == 1:
            self.emit(EndEvent(reason))

    def subscribe(self, handler: EventHandler) -> None:
        self._handler = handler

    def emit(self, event: ConnectionEvent) -> None:
        if self._handler is not None:
            self._handler(event)

    @property
    def ended(self) -> bool:
        return bool(self.end_reasons)

    def chat_texts(self) -> list[str]:
        """Text of every chat frame written, with the tag stripped off."""
        return [
            json.loads(payload["message"])["text"]
            for name, payload in self.written
            if name == "chat" and "position" in payload
        ]


class FakeConnector:
    """Connector returning FakeConnections that are not yet connected."""

    def __init__(self) -> None:
        self.targets: list[FakeConnection] = []
        self.calls: list[tuple[str, int, str]] = []

    def connect(self, client: Any, host: str, port: int, version: str) -> FakeConnection:
        self.calls.append((host, port, version))
        target = FakeConnection(client.username)
        self.targets.append(target)
        return target

    @staticmethod
    def establish(target: FakeConnection) -> None:
        target.emit(ConnectEvent())


class FakeApi:
    """Identity, stats and guild services backed by dicts."""

    def __init__(self) -> None:
        self.identities: dict[str, PlayerIdentity] = {}
        self.players: dict[str, dict[str, Any]] = {}
        self.guilds: dict[str, str] = {}
        self.calls: Counter[str] = Counter()

    def add(
        self,
        username: str,
        player: dict[str, Any] | None,
        guild: str | None = None,
    ) -> PlayerIdentity:
        identity = PlayerIdentity(id=f"uuid-{username.lower()}", username=username)
        self.identities[username.lower()] = identity
        if player is not None:
            self.players[identity.id] = player
        if guild is not None:
            self.guilds[identity.id] = guild
        return identity

    async def resolve(self, name: str) -> PlayerIdentity | None:
        self.calls["resolve"] += 1
        return self.identities.get(name.lower())

    async def fetch_stats(self, uuid: str) -> dict[str, Any] | None:
        self.calls["fetch_stats"] += 1
        return self.players.get(uuid)

    async def fetch_guild(self, uuid: str) -> str | None:
        self.calls["fetch_guild"] += 1
        return self.guilds.get(uuid)


def build_player(
    stars: int = 0,
    final_kills: int = 0,
    final_deaths: int = 0,
    **extra: Any,
) -> dict[str, Any]:
    """Build a raw player object as returned by the stats API."""
    bedwars: dict[str, Any] = {
        "final_kills_bedwars": final_kills,
        "final_deaths_bedwars": final_deaths,
    }
    if "slumber" in extra:
        bedwars["slumber"] = extra.pop("slumber")
    return {
        "achievements": {"bedwars_level": stars},
        "stats": {"Bedwars": bedwars},
        **extra,
    }


@pytest.fixture
def overlay_tree() -> dict[str, Any]:
    """Default overlay configuration tree."""
    return OverlayConfig().model_dump()


@pytest.fixture
def config_store(overlay_tree: dict[str, Any]) -> ConfigStore:
    """ConfigStore over the default configuration."""
    return ConfigStore(overlay_tree)


@pytest.fixture
def fake_api() -> FakeApi:
    """Empty in-memory API."""
    return FakeApi()


@pytest.fixture
def make_player() -> Callable[..., dict[str, Any]]:
    """Factory for raw player objects."""
    return build_player


@pytest.fixture
def client_conn() -> FakeConnection:
    """Logged-in client connection."""
    return FakeConnection("Viewer")


@pytest.fixture
def connector() -> FakeConnector:
    """Connector producing fake target connections."""
    return FakeConnector()
