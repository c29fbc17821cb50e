"""Session relay and the overlay services it drives."""

from hyproxy.proxy.commands import CommandRouter
from hyproxy.proxy.config_store import ConfigStore, ConfigValidationError
from hyproxy.proxy.latency import LatencyProbe, TcpLatencyService
from hyproxy.proxy.lookup import StatLookupPipeline
from hyproxy.proxy.relay import FatalSessionError, SessionError, SessionRelay, SessionState
from hyproxy.proxy.scheduler import TaskScope
from hyproxy.proxy.server import ProxyServer

__all__ = [
    "CommandRouter",
    "ConfigStore",
    "ConfigValidationError",
    "FatalSessionError",
    "LatencyProbe",
    "ProxyServer",
    "SessionError",
    "SessionRelay",
    "SessionState",
    "StatLookupPipeline",
    "TaskScope",
    "TcpLatencyService",
]
