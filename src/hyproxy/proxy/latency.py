"""Periodic latency checks against the target server."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Protocol

from hyproxy.proxy.config_store import ConfigStore

logger = logging.getLogger(__name__)

DEFAULT_PING_TIMEOUT = 5.0  # seconds


class LatencyService(Protocol):
    """Measures round-trip time to an endpoint in milliseconds."""

    async def ping(self, host: str, port: int) -> float: ...


class TcpLatencyService:
    """Round-trip estimate from the time taken to open a TCP connection."""

    def __init__(self, timeout: float = DEFAULT_PING_TIMEOUT) -> None:
        self._timeout = timeout

    async def ping(self, host: str, port: int) -> float:
        """Open and close one TCP connection to host:port.

        Returns:
            Connect time in milliseconds

        Raises:
            TimeoutError: If the connection is not established within the timeout
            OSError: If the connection fails
        """
        started = time.perf_counter()
        _, writer = await asyncio.wait_for(
            asyncio.open_connection(host, port),
            timeout=self._timeout,
        )
        elapsed = (time.perf_counter() - started) * 1000
        writer.close()
        await writer.wait_closed()
        return elapsed


class LatencyProbe:
    """Pings the target every ``ping_interval`` ms and alerts on slow responses.

    Alerts go to ``emit`` (the client's action bar). Below the medium
    threshold nothing is shown, and failed pings are ignored.
    """

    def __init__(
        self,
        service: LatencyService,
        config: ConfigStore,
        emit: Callable[[str], None],
        host: str,
        port: int,
    ) -> None:
        self._service = service
        self._config = config
        self._emit = emit
        self._host = host
        self._port = port
        self._task: asyncio.Task[None] | None = None
        self._stop_event = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the periodic probe task."""
        if self.running:
            logger.warning("Latency probe already running")
            return

        self._stop_event.clear()
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info(
            f"Latency probe started for {self._host}:{self._port} "
            f"(interval={self._config.get('ping_interval')}ms)"
        )

    def stop(self) -> None:
        """Stop the probe immediately. Safe to call when not running."""
        self._stop_event.set()
        if self._task is not None and not self._task.done():
            self._task.cancel()
            logger.info("Latency probe stopped")
        self._task = None

    async def _run(self) -> None:
        while not self._stop_event.is_set():
            interval = self._config.get("ping_interval") / 1000
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
                break
            except TimeoutError:
                pass
            await self.tick()

    async def tick(self) -> None:
        """Issue one ping and emit an alert if it crosses a threshold."""
        try:
            latency = await self._service.ping(self._host, self._port)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.debug(f"Ping to {self._host}:{self._port} failed: {type(e).__name__}: {e}")
            return

        benchmarks = self._config.get("ping_benchmarks")
        prefix = self._config.get("ping_prefix", "")
        ms = round(latency)
        if latency >= benchmarks["high"]:
            logger.warning(f"High latency to target: {ms} ms")
            self._emit(f"{prefix}§c{ms} ms")
        elif latency >= benchmarks["medium"]:
            self._emit(f"{prefix}§6{ms} ms")
