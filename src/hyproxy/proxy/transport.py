"""Contract between the relay and the protocol transport backend.

The relay never decodes the game protocol itself. A transport backend
(selected with ``HYPROXY_TRANSPORT``) supplies already-decoded frames through
objects satisfying the protocols below, and delivers connection lifecycle
events as typed payloads to a single subscriber per connection.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, TypeAlias


class ProtocolState(str, Enum):
    """Coarse phase of a game connection, used as the forwarding guard."""

    HANDSHAKING = "handshaking"
    STATUS = "status"
    LOGIN = "login"
    PLAY = "play"


@dataclass(frozen=True)
class ConnectEvent:
    """The connection is established."""


@dataclass(frozen=True)
class FrameEvent:
    """A decoded frame arrived.

    Attributes:
        name: Frame name, e.g. ``"chat"``
        payload: Decoded frame fields
        state: Protocol state the frame was decoded under
    """

    name: str
    payload: dict[str, Any] = field(default_factory=dict)
    state: ProtocolState = ProtocolState.PLAY


@dataclass(frozen=True)
class ErrorEvent:
    """The connection failed."""

    cause: BaseException


@dataclass(frozen=True)
class EndEvent:
    """The connection has ended."""

    reason: str = ""


ConnectionEvent: TypeAlias = ConnectEvent | FrameEvent | ErrorEvent | EndEvent
EventHandler: TypeAlias = Callable[[ConnectionEvent], None]


class Connection(Protocol):
    """One side of the relay (the local client or the remote target)."""

    @property
    def username(self) -> str:
        """Username this connection is logged in as."""
        ...

    @property
    def state(self) -> ProtocolState:
        """Current protocol state as tracked by the transport."""
        ...

    def write(self, name: str, payload: dict[str, Any]) -> None:
        """Encode and send a frame. May raise on a broken connection."""
        ...

    def end(self, reason: str = "") -> None:
        """Close the connection. Emits an EndEvent once closed."""
        ...

    def subscribe(self, handler: EventHandler) -> None:
        """Register the handler receiving this connection's events."""
        ...


class TargetConnector(Protocol):
    """Opens the upstream connection on behalf of a logged-in client."""

    def connect(self, client: Connection, host: str, port: int, version: str) -> Connection:
        """Start connecting to the target; returns immediately.

        The returned connection emits a ConnectEvent once established.
        """
        ...


LoginHandler: TypeAlias = Callable[[Connection], None]


class Transport(Protocol):
    """A transport backend: accepts client logins and dials the target."""

    @property
    def connector(self) -> TargetConnector:
        """Connector used to reach the target server."""
        ...

    async def serve(self, host: str, port: int, version: str, on_login: LoginHandler) -> None:
        """Listen for clients until cancelled, calling on_login per login."""
        ...
