"""Tests for the single-session proxy server and transport loading."""

from __future__ import annotations

import sys
import types
from unittest.mock import AsyncMock

import pytest

from hyproxy.main import load_transport
from hyproxy.proxy.config_store import ConfigStore
from hyproxy.proxy.relay import SessionState
from hyproxy.proxy.server import SESSION_BUSY_REASON, ProxyServer
from hyproxy.proxy.transport import ErrorEvent
from tests.conftest import FakeApi, FakeConnection, FakeConnector


class FakeTransport:
    """Transport whose serve() records its arguments."""

    def __init__(self) -> None:
        self.connector = FakeConnector()
        self.served: tuple[str, int, str] | None = None

    async def serve(self, host: str, port: int, version: str, on_login) -> None:  # type: ignore[no-untyped-def]
        self.served = (host, port, version)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def server(transport: FakeTransport, config_store: ConfigStore, fake_api: FakeApi) -> ProxyServer:
    return ProxyServer(
        transport,
        config_store,
        identity=fake_api,
        stats=fake_api,
        guilds=fake_api,
        latency=AsyncMock(),
        listen_host="127.0.0.1",
        listen_port=25566,
        target_host="mc.example.net",
        target_port=25565,
    )


class TestProxyServer:
    """Tests for session admission."""

    @pytest.mark.asyncio
    async def test_serve_passes_listen_address(
        self, server: ProxyServer, transport: FakeTransport
    ) -> None:
        await server.serve()
        assert transport.served == ("127.0.0.1", 25566, "1.8.9")

    def test_first_login_starts_session(self, server: ProxyServer, transport: FakeTransport) -> None:
        client = FakeConnection("Alice")
        server.on_login(client)

        assert server.session is not None
        assert server.session.client is client
        assert transport.connector.calls == [("mc.example.net", 25565, "1.8.9")]

    def test_second_login_refused(self, server: ProxyServer) -> None:
        """Test that only one session can exist at a time."""
        first = FakeConnection("Alice")
        second = FakeConnection("Bob")
        server.on_login(first)
        server.on_login(second)

        assert second.end_reasons == [SESSION_BUSY_REASON]
        assert server.session is not None
        assert server.session.client is first

    def test_new_login_after_close(self, server: ProxyServer, transport: FakeTransport) -> None:
        first = FakeConnection("Alice")
        server.on_login(first)
        session = server.session
        assert session is not None
        FakeConnector.establish(transport.connector.targets[0])

        first.end("quit")
        assert session.state is SessionState.CLOSED
        assert server.session is None

        second = FakeConnection("Bob")
        server.on_login(second)
        assert server.session is not None
        assert server.session.client is second

    def test_new_login_after_silent_target_error(
        self, server: ProxyServer, transport: FakeTransport
    ) -> None:
        """Test that a target erroring without an end event does not block later logins."""

        class SilentTarget(FakeConnection):
            def end(self, reason: str = "") -> None:
                self.end_reasons.append(reason)

        target = SilentTarget("Alice")
        transport.connector.connect = lambda *args: target  # type: ignore[method-assign]
        server.on_login(FakeConnection("Alice"))
        FakeConnector.establish(target)

        target.emit(ErrorEvent(ConnectionResetError("reset")))
        assert server.session is None

        server.on_login(FakeConnection("Bob"))
        assert server.session is not None
        assert server.session.client.username == "Bob"

    def test_config_overrides_survive_sessions(
        self, server: ProxyServer, transport: FakeTransport, config_store: ConfigStore
    ) -> None:
        first = FakeConnection("Alice")
        server.on_login(first)
        FakeConnector.establish(transport.connector.targets[0])
        assert server.session is not None
        server.session.router.handle("/scconfig check_delay 900")
        first.end("quit")

        server.on_login(FakeConnection("Bob"))
        assert config_store.get("check_delay") == 900

    def test_connect_failure_ends_client(
        self, server: ProxyServer, transport: FakeTransport
    ) -> None:
        def broken_connect(*args: object) -> FakeConnection:
            raise OSError("no route to host")

        transport.connector.connect = broken_connect  # type: ignore[method-assign]
        client = FakeConnection("Alice")

        server.on_login(client)

        assert server.session is None
        assert client.ended


class TestLoadTransport:
    """Tests for resolving the transport backend import string."""

    def test_loads_factory(self, monkeypatch: pytest.MonkeyPatch) -> None:
        module = types.ModuleType("fake_backend")
        module.make = FakeTransport  # type: ignore[attr-defined]
        monkeypatch.setitem(sys.modules, "fake_backend", module)

        assert isinstance(load_transport("fake_backend:make"), FakeTransport)

    @pytest.mark.parametrize("value", ["", "no_colon", ":attr", "module:"])
    def test_malformed(self, value: str) -> None:
        with pytest.raises(ValueError, match="module:attribute"):
            load_transport(value)

    def test_missing_module(self) -> None:
        with pytest.raises(ValueError, match="Could not import"):
            load_transport("hyproxy_no_such_module:make")

    def test_missing_attribute(self) -> None:
        with pytest.raises(ValueError, match="not a transport factory"):
            load_transport("hyproxy.proxy.transport:nope")
