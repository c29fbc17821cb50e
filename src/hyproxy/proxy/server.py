"""Composition root: accepts client logins and runs one session at a time."""

from __future__ import annotations

import logging

from hyproxy.proxy.config_store import ConfigStore
from hyproxy.proxy.latency import LatencyService
from hyproxy.proxy.lookup import GuildService, IdentityService, StatsService
from hyproxy.proxy.relay import SessionRelay, SessionState
from hyproxy.proxy.transport import Connection, Transport

logger = logging.getLogger(__name__)

SESSION_BUSY_REASON = "This proxy is already in use by another session."


class ProxyServer:
    """Listens through a transport backend and relays at most one session.

    The configuration store is shared by consecutive sessions, so in-memory
    overrides made with update-config survive a reconnect but not a restart.
    """

    def __init__(
        self,
        transport: Transport,
        config: ConfigStore,
        *,
        identity: IdentityService,
        stats: StatsService,
        guilds: GuildService,
        latency: LatencyService,
        listen_host: str,
        listen_port: int,
        target_host: str,
        target_port: int,
    ) -> None:
        self._transport = transport
        self._config = config
        self._identity = identity
        self._stats = stats
        self._guilds = guilds
        self._latency = latency
        self._listen_host = listen_host
        self._listen_port = listen_port
        self._target_host = target_host
        self._target_port = target_port
        self._session: SessionRelay | None = None

    @property
    def session(self) -> SessionRelay | None:
        """The current session, if one is open."""
        return self._session

    async def serve(self) -> None:
        """Accept client logins until cancelled."""
        logger.info(
            f"Listening on {self._listen_host}:{self._listen_port}, "
            f"relaying to {self._target_host}:{self._target_port}"
        )
        await self._transport.serve(
            self._listen_host,
            self._listen_port,
            str(self._config.get("version", "")),
            self.on_login,
        )

    def on_login(self, client: Connection) -> None:
        """Start a session for a newly logged-in client."""
        if self._session is not None and self._session.state is not SessionState.CLOSED:
            logger.warning(f"Refusing {client.username}: a session is already active")
            client.end(SESSION_BUSY_REASON)
            return

        session = SessionRelay(
            client,
            self._transport.connector,
            self._config,
            identity=self._identity,
            stats=self._stats,
            guilds=self._guilds,
            latency=self._latency,
            target_host=self._target_host,
            target_port=self._target_port,
            on_closed=self._on_session_closed,
        )
        self._session = session
        try:
            session.start()
        except Exception as e:
            logger.error(f"Could not start session for {client.username}: {e}", exc_info=True)
            self._session = None
            client.end("Could not reach the target server.")

    def _on_session_closed(self, session: SessionRelay) -> None:
        if self._session is session:
            self._session = None
