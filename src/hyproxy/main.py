"""Main entry point for HyProxy."""

from __future__ import annotations

import asyncio
import importlib
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from hyproxy.config import Settings
    from hyproxy.proxy.transport import Transport

logger = logging.getLogger(__name__)


def setup_logging(
    level: str = "INFO",
    debug: bool = False,
    log_format: str = "text",
    log_to_file: bool = True,
    log_file_path: Path | None = None,
    log_file_max_bytes: int = 5 * 1024 * 1024,
    log_file_backup_count: int = 3,
) -> None:
    """Configure logging with console and optional rotating file output.

    Args:
        level: Log level string (DEBUG, INFO, WARNING, ERROR)
        debug: If True, overrides level to DEBUG
        log_format: "text" for human-readable lines, "json" for JSON lines
        log_to_file: Enable file logging in addition to console
        log_file_path: Path to log file (file logging is skipped if None)
        log_file_max_bytes: Maximum size per log file before rotation
        log_file_backup_count: Number of rotated backup files to keep
    """
    effective_level = logging.DEBUG if debug else getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(effective_level)
    root_logger.handlers.clear()

    from hyproxy.utils.logging import (
        JSONFormatter,
        LogSanitizer,
        SanitizingFormatter,
        SessionContextFilter,
    )

    formatter: logging.Formatter
    if log_format == "json":
        formatter = JSONFormatter()
    else:
        formatter = SanitizingFormatter(
            "%(asctime)s [%(levelname)s] [%(session)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]

    if log_to_file and log_file_path:
        try:
            log_file_path.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(
                RotatingFileHandler(
                    log_file_path,
                    maxBytes=log_file_max_bytes,
                    backupCount=log_file_backup_count,
                    encoding="utf-8",
                )
            )
        except OSError as e:
            # Continue with console-only logging
            print(f"Failed to initialize file logging: {e}. Using console-only logging.")
            log_file_path = None

    for handler in handlers:
        handler.setLevel(effective_level)
        handler.setFormatter(formatter)
        # Filters are not inherited by child loggers, so attach to handlers
        handler.addFilter(LogSanitizer())
        handler.addFilter(SessionContextFilter())
        root_logger.addHandler(handler)

    if log_file_path and len(handlers) > 1:
        logging.info(f"File logging enabled: {log_file_path}")

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def load_transport(import_string: str) -> Transport:
    """Import and instantiate a transport backend.

    Args:
        import_string: ``"package.module:factory"``; the factory is called
            without arguments and must return a Transport

    Raises:
        ValueError: If the import string is malformed or cannot be resolved
    """
    module_name, sep, attribute = import_string.partition(":")
    if not sep or not module_name or not attribute:
        raise ValueError(f"Transport must look like 'module:attribute', got '{import_string}'")

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ValueError(f"Could not import transport module '{module_name}': {e}") from e

    factory = getattr(module, attribute, None)
    if factory is None or not callable(factory):
        raise ValueError(f"'{attribute}' in '{module_name}' is not a transport factory")

    transport: Transport = factory()
    return transport


async def run_proxy(transport: Transport, config_tree: dict[str, Any], settings: Settings) -> None:
    """Run the proxy until cancelled."""
    from hyproxy.hypixel import HypixelApi
    from hyproxy.proxy.config_store import ConfigStore
    from hyproxy.proxy.latency import TcpLatencyService
    from hyproxy.proxy.server import ProxyServer

    async with HypixelApi(settings.hypixel_api_key, timeout=settings.http_timeout) as api:
        server = ProxyServer(
            transport,
            ConfigStore(config_tree),
            identity=api,
            stats=api,
            guilds=api,
            latency=TcpLatencyService(),
            listen_host=settings.listen_host,
            listen_port=settings.listen_port,
            target_host=settings.target_host,
            target_port=settings.target_port,
        )
        await server.serve()


def main() -> None:
    """Run the HyProxy relay."""
    import argparse

    from hyproxy import __version__
    from hyproxy.config import (
        ConfigLoadError,
        Settings,
        get_settings,
        load_overlay_config,
        reset_settings,
    )
    from hyproxy.utils.logging import register_secret

    # Load settings from env/.env first for defaults
    env_settings = get_settings()

    parser = argparse.ArgumentParser(
        description="HyProxy - game relay with Hypixel stat overlays"
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help=f"Overlay config file (default: {env_settings.config_path}, env: HYPROXY_CONFIG_PATH)",
    )
    parser.add_argument(
        "--host",
        default=env_settings.listen_host,
        help=f"Host to listen on (default: {env_settings.listen_host}, env: HYPROXY_LISTEN_HOST)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=env_settings.listen_port,
        help=f"Port to listen on (default: {env_settings.listen_port}, env: HYPROXY_LISTEN_PORT)",
    )
    parser.add_argument(
        "--log-level",
        default=env_settings.log_level,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help=f"Logging level (default: {env_settings.log_level}, env: HYPROXY_LOG_LEVEL)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        default=env_settings.debug,
        help="Enable debug logging (env: HYPROXY_DEBUG)",
    )
    parser.add_argument(
        "--validate",
        action="store_true",
        help="Validate configuration and exit without starting the proxy",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"HyProxy {__version__}",
    )

    args = parser.parse_args()

    # Reset cache to apply CLI args
    reset_settings()

    cli_overrides: dict[str, object] = {
        "listen_host": args.host,
        "listen_port": args.port,
        "debug": args.debug,
        "log_level": args.log_level,
    }
    if args.config:
        cli_overrides["config_path"] = Path(args.config)

    settings = Settings(**cli_overrides)

    if args.validate:
        settings.print_config()
        print()

        errors = settings.validate()
        if not errors:
            try:
                load_overlay_config(settings.config_path)
            except ConfigLoadError as e:
                errors.append(str(e))

        if errors:
            print("Configuration validation failed:")
            for error in errors:
                print(f"\n{error}")
            sys.exit(1)

        print("Configuration is valid")
        sys.exit(0)

    register_secret(settings.hypixel_api_key)
    setup_logging(
        level=settings.log_level,
        debug=settings.debug,
        log_format=settings.log_format,
        log_to_file=settings.log_to_file,
        log_file_path=settings.log_file_path if settings.log_to_file else None,
        log_file_max_bytes=settings.log_file_max_bytes,
        log_file_backup_count=settings.log_file_backup_count,
    )

    # Fail fast on missing startup configuration
    errors = settings.validate()
    if errors:
        print("Configuration validation failed:")
        for error in errors:
            print(f"\n{error}")
        print("\nRun with --validate to check configuration without starting the proxy")
        sys.exit(1)

    try:
        config_tree = load_overlay_config(settings.config_path)
        transport = load_transport(settings.transport)
    except (ConfigLoadError, ValueError) as e:
        logger.error(str(e))
        sys.exit(1)

    print("=" * 60)
    print(f"HyProxy v{__version__}")
    print("=" * 60)
    print(f"Listening on:  {settings.listen_host}:{settings.listen_port}")
    print(f"Target:        {settings.target_host}:{settings.target_port}")
    print(f"Game version:  {config_tree['version']}")
    print(f"Log level:     {settings.log_level}")
    if settings.log_to_file:
        print(f"Log file:      {settings.log_file_path}")
    print("=" * 60)

    try:
        asyncio.run(run_proxy(transport, config_tree, settings))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")


if __name__ == "__main__":
    main()
