"""Session relay between one game client and the target server.

The relay owns both connections of a session. Frames are forwarded in
arrival order, each one only while the receiving side's protocol state
matches the state the frame was decoded under; mismatched frames are
dropped. Chat from the client is offered to the CommandRouter first, and
chat from the server is interpreted for roster and round announcements
after being forwarded.

Lifecycle::

    CONNECTING --target connected--> ACTIVE
    CONNECTING/ACTIVE --error or end on either side--> CLOSING
    CLOSING --both sides ended--> CLOSED
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum
from typing import Any

from hyproxy.models import ChatEvent, RosterAnnounce, RoundEnd, RoundStart
from hyproxy.proxy.chat import MalformedPayloadError, classify, parse_chat_message
from hyproxy.proxy.commands import CommandRouter
from hyproxy.proxy.config_store import ConfigStore
from hyproxy.proxy.formatter import ACTION_BAR_POSITION, CHAT_POSITION, build_chat_frame
from hyproxy.proxy.latency import LatencyProbe, LatencyService
from hyproxy.proxy.lookup import GuildService, IdentityService, StatLookupPipeline, StatsService
from hyproxy.proxy.scheduler import TaskScope
from hyproxy.proxy.transport import (
    ConnectEvent,
    Connection,
    ConnectionEvent,
    EndEvent,
    ErrorEvent,
    FrameEvent,
    TargetConnector,
)
from hyproxy.utils.logging import set_session_username

logger = logging.getLogger(__name__)

CHAT_FRAME = "chat"
WHO_COMMAND = "/who"


class SessionState(str, Enum):
    """State machine for session lifecycle."""

    CONNECTING = "connecting"
    ACTIVE = "active"
    CLOSING = "closing"
    CLOSED = "closed"


class Side(str, Enum):
    """One end of the relay."""

    CLIENT = "client"
    TARGET = "target"


class SessionError(Exception):
    """Base exception for session errors."""


class FatalSessionError(SessionError):
    """A transport error on either connection; ends the whole session.

    Attributes:
        side: Connection the error came from
        cause: Error reported by the transport
    """

    def __init__(self, side: Side, cause: BaseException) -> None:
        super().__init__(f"{side.value} connection failed: {type(cause).__name__}: {cause}")
        self.side = side
        self.cause = cause


class SessionRelay:
    """One proxied session: the client, its target connection and overlay services.

    Example:
        ```python
        relay = SessionRelay(
            client,
            transport.connector,
            store,
            identity=api,
            stats=api,
            guilds=api,
            latency=TcpLatencyService(),
            target_host="mc.hypixel.net",
            target_port=25565,
        )
        relay.start()
        ```
    """

    def __init__(
        self,
        client: Connection,
        connector: TargetConnector,
        config: ConfigStore,
        *,
        identity: IdentityService,
        stats: StatsService,
        guilds: GuildService,
        latency: LatencyService,
        target_host: str,
        target_port: int,
        on_closed: Callable[[SessionRelay], None] | None = None,
    ) -> None:
        """Initialize the session. Nothing is connected until :meth:`start`.

        Args:
            client: Logged-in client connection
            connector: Opens the target connection
            config: Runtime configuration
            identity: Identity resolution service
            stats: Statistics service
            guilds: Guild affiliation service
            latency: Latency probe service
            target_host: Target server host
            target_port: Target server port
            on_closed: Called once when the session reaches CLOSED
        """
        self.client = client
        self.target: Connection | None = None
        self._connector = connector
        self._config = config
        self._target_host = target_host
        self._target_port = target_port
        self._on_closed = on_closed
        self._state = SessionState.CONNECTING
        self._ended: set[Side] = set()

        self.filter_set: set[str] = {name.lower() for name in config.get("filter_list", [])}
        self.scope = TaskScope(client.username)
        self.pipeline = StatLookupPipeline(
            config,
            identity,
            stats,
            guilds,
            emit=self.proxy_chat,
            scope=self.scope,
            guild_watch=config.get("guild_list", []),
            is_live=lambda: self._state is SessionState.ACTIVE,
        )
        self.router = CommandRouter(config, self.pipeline, self.filter_set, self.proxy_chat)
        self.probe = LatencyProbe(
            latency,
            config,
            lambda message: self.proxy_chat(message, position=ACTION_BAR_POSITION),
            target_host,
            target_port,
        )

    @property
    def state(self) -> SessionState:
        return self._state

    def start(self) -> None:
        """Subscribe to the client and start connecting to the target."""
        set_session_username(self.client.username)
        logger.info(
            f"{self.client.username} logged in, connecting to "
            f"{self._target_host}:{self._target_port}"
        )
        self.client.subscribe(lambda event: self._on_event(Side.CLIENT, event))
        self.target = self._connector.connect(
            self.client,
            self._target_host,
            self._target_port,
            str(self._config.get("version", "")),
        )
        self.target.subscribe(lambda event: self._on_event(Side.TARGET, event))

    def _peer(self, side: Side) -> Connection | None:
        return self.target if side is Side.CLIENT else self.client

    def _on_event(self, side: Side, event: ConnectionEvent) -> None:
        if isinstance(event, FrameEvent):
            if side is Side.CLIENT:
                self._on_client_frame(event)
            else:
                self._on_target_frame(event)
        elif isinstance(event, ConnectEvent):
            if side is Side.TARGET:
                self._on_target_connected()
        elif isinstance(event, ErrorEvent):
            error = FatalSessionError(side, event.cause)
            logger.error(str(error))
            self._close(side, failed=True)
        elif isinstance(event, EndEvent):
            logger.info(f"{side.value} connection ended: {event.reason or 'no reason given'}")
            self._ended.add(side)
            self._close(side)

    def _on_target_connected(self) -> None:
        if self._state is not SessionState.CONNECTING:
            return
        self._state = SessionState.ACTIVE
        logger.info(f"Session for {self.client.username} is active")
        if self._config.get("ping_alerts", False):
            self.probe.start()

    def forward(self, dest: Connection | None, frame: FrameEvent) -> bool:
        """Relay a frame to ``dest`` if its protocol state matches the frame's.

        Frames with a state mismatch are dropped, not queued. A write failure
        is logged; the transport reports a dead connection through its own
        error event.

        Returns:
            True if the frame was written
        """
        if dest is None or self._state in (SessionState.CLOSING, SessionState.CLOSED):
            return False
        if dest.state != frame.state:
            logger.debug(
                f"Dropping {frame.name} frame: receiver in {dest.state.value}, "
                f"frame for {frame.state.value}"
            )
            return False
        try:
            dest.write(frame.name, frame.payload)
        except Exception as e:
            logger.warning(f"Failed to relay {frame.name} frame: {type(e).__name__}: {e}")
            return False
        return True

    def _on_client_frame(self, frame: FrameEvent) -> None:
        if frame.name == CHAT_FRAME:
            text = frame.payload.get("message")
            if isinstance(text, str) and self.router.handle(text):
                return
        self.forward(self.target, frame)

    def _on_target_frame(self, frame: FrameEvent) -> None:
        self.forward(self.client, frame)
        if frame.name != CHAT_FRAME:
            return

        try:
            text = parse_chat_message(frame.payload.get("message", ""))
        except MalformedPayloadError as e:
            logger.warning(f"Ignoring malformed chat payload: {e}")
            return

        event = classify(text)
        if event is not None:
            self.handle_chat_event(event)

    def handle_chat_event(self, event: ChatEvent) -> None:
        """React to a roster or round announcement from the server."""
        if isinstance(event, RosterAnnounce):
            scheduled = self.pipeline.schedule_roster(
                event.names,
                viewer=self.client.username,
                filter_set=self.filter_set,
            )
            logger.info(f"Roster of {len(event.names)} announced, {scheduled} lookup(s) scheduled")
        elif isinstance(event, RoundStart):
            logger.info("Round started")
            self.pipeline.clear_cache()
            if self._config.get("auto_who", False) and self.target is not None:
                self._write(self.target, CHAT_FRAME, {"message": WHO_COMMAND})
        elif isinstance(event, RoundEnd):
            cancelled = self.pipeline.cancel_pending_roster()
            logger.info(f"Round ended, {cancelled} pending roster lookup(s) cancelled")

    def proxy_chat(self, message: str, position: int = CHAT_POSITION) -> None:
        """Show a synthetic chat line to the client."""
        logger.info(f"<< {message}")
        frame = build_chat_frame(
            message,
            tag=self._config.get("tag", ""),
            show_tag=bool(self._config.get("show_tag", False)),
            tag_prefix=self._config.get("tag_prefix", ""),
            position=position,
        )
        self._write(self.client, CHAT_FRAME, frame)

    def _write(self, dest: Connection, name: str, payload: dict[str, Any]) -> None:
        try:
            dest.write(name, payload)
        except Exception as e:
            logger.warning(f"Failed to write {name} frame: {type(e).__name__}: {e}")

    def _end(self, side: Side, reason: str) -> None:
        conn = self.client if side is Side.CLIENT else self.target
        if conn is None or side in self._ended:
            return
        try:
            conn.end(reason)
        except Exception as e:
            logger.warning(f"Failed to end {side.value} connection: {type(e).__name__}: {e}")

    def _close(self, origin: Side, failed: bool = False) -> None:
        if self._state not in (SessionState.CLOSING, SessionState.CLOSED):
            self._state = SessionState.CLOSING
            logger.info(f"Closing session for {self.client.username} ({origin.value} side)")
            self.probe.stop()
            self.scope.cancel()
            if self.target is None:
                self._ended.add(Side.TARGET)

            peer = Side.TARGET if origin is Side.CLIENT else Side.CLIENT
            self._end(peer, f"{origin.value} disconnected")

        # an errored side may never report its own end
        if failed:
            self._end(origin, "connection error")
            self._ended.add(origin)

        self._maybe_closed()

    def _maybe_closed(self) -> None:
        if self._state is not SessionState.CLOSING or self._ended != {Side.CLIENT, Side.TARGET}:
            return
        self._state = SessionState.CLOSED
        logger.info(f"Session for {self.client.username} closed")
        if self._on_closed is not None:
            self._on_closed(self)
