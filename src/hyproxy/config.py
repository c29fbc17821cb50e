"""Configuration management for HyProxy.

Two layers are supported:

- Process settings (``Settings``), layered as CLI args > ENV vars > .env file > defaults.
- The overlay configuration document (``config.yml``), loaded once at startup,
  validated against ``OverlayConfig`` and then handed to the in-memory
  ``ConfigStore`` as a plain nested dict.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Any

import platformdirs
import yaml
from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class ConfigLoadError(Exception):
    """Raised when the overlay configuration document cannot be loaded."""


def get_user_log_dir() -> Path:
    """Get platform-appropriate user logs directory.

    Uses OS-specific conventions:
    - macOS: ~/Library/Logs/HyProxy
    - Windows: %LOCALAPPDATA%/HyProxy/Logs
    - Linux: ~/.local/state/hyproxy/log

    Returns:
        Path to platform-specific logs directory
    """
    return Path(platformdirs.user_log_dir("HyProxy", "HyProxy"))


class Settings(BaseSettings):
    """Process settings with layered configuration support.

    Configuration is loaded in the following priority (highest to lowest):
    1. CLI arguments (passed directly to Settings())
    2. Environment variables (prefixed with HYPROXY_)
    3. .env file (if present in current directory)
    4. Default values

    The Hypixel API key is also accepted from the bare ``HYPIXEL_API_KEY``
    variable, which is how most users already have it set up.

    Environment variables:
        HYPIXEL_API_KEY / HYPROXY_HYPIXEL_API_KEY: Hypixel developer API key
        HYPROXY_CONFIG_PATH: Overlay config document (default: config.yml)
        HYPROXY_LISTEN_PORT: Port the proxy listens on (default: 25565)
        HYPROXY_TRANSPORT: Transport backend import string (module:attribute)
        HYPROXY_LOG_LEVEL: Logging level (default: INFO)
    """

    model_config = SettingsConfigDict(
        env_prefix="HYPROXY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        populate_by_name=True,
    )

    hypixel_api_key: str = Field(
        default="",
        validation_alias=AliasChoices("hypixel_api_key", "HYPROXY_HYPIXEL_API_KEY", "HYPIXEL_API_KEY"),
        description="Hypixel developer API key",
    )
    config_path: Path = Field(
        default=Path("config.yml"),
        description="Overlay configuration document",
    )

    # Network
    listen_host: str = Field(default="127.0.0.1", description="Host the proxy binds to")
    listen_port: int = Field(default=25565, ge=1, le=65535, description="Port the proxy binds to")
    target_host: str = Field(default="mc.hypixel.net", description="Upstream server host")
    target_port: int = Field(default=25565, ge=1, le=65535, description="Upstream server port")
    transport: str = Field(
        default="",
        description="Transport backend factory as 'module:attribute'",
    )
    http_timeout: float = Field(
        default=10.0,
        ge=1.0,
        le=60.0,
        description="Timeout for stats/identity HTTP requests (seconds)",
    )
    debug: bool = Field(default=False, description="Enable debug logging")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="text", description="Log format: 'text' or 'json'")
    log_to_file: bool = Field(default=True, description="Also log to a rotating file")
    log_file_max_bytes: int = Field(
        default=5 * 1024 * 1024,
        ge=1024 * 1024,
        le=100 * 1024 * 1024,
        description="Maximum size of each log file before rotation",
    )
    log_file_backup_count: int = Field(default=3, ge=1, le=20)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a known level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of: {', '.join(valid_levels)}")
        return v_upper

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate log format is supported."""
        v_lower = v.lower()
        if v_lower not in {"text", "json"}:
            raise ValueError(f"Invalid log format: {v}. Must be one of: text, json")
        return v_lower

    @property
    def log_file_path(self) -> Path:
        """Path to the main log file."""
        return get_user_log_dir() / "hyproxy.log"

    def validate(self) -> list[str]:  # type: ignore[override]
        """Strict validation for startup.

        Returns:
            List of error messages (empty if validation passes)
        """
        errors = []
        if not self.hypixel_api_key:
            errors.append(
                "Hypixel API key not found.\n"
                "  → Request a long-term key at https://developer.hypixel.net/dashboard/apps\n"
                "  → Then put HYPIXEL_API_KEY=<your key> in a .env file in the working directory"
            )
        if not self.config_path.exists():
            errors.append(f"Config file not found: {self.config_path}")
        if not self.transport:
            errors.append(
                "No transport backend configured.\n"
                "  → Set HYPROXY_TRANSPORT=package.module:factory"
            )
        return errors

    def print_config(self) -> None:
        """Print current settings to stdout."""
        print("HyProxy Settings:")
        print(f"  Config File: {self.config_path}")
        print(f"  Listen: {self.listen_host}:{self.listen_port}")
        print(f"  Target: {self.target_host}:{self.target_port}")
        print(f"  Transport: {self.transport or '(not set)'}")
        print(f"  API Key: {'set' if self.hypixel_api_key else 'missing'}")
        print(f"  HTTP Timeout: {self.http_timeout}s")
        print(f"  Log Level: {self.log_level}")
        print(f"  Log Format: {self.log_format}")
        if self.log_to_file:
            print(f"  Log File: {self.log_file_path}")


@lru_cache
def get_settings() -> Settings:
    """Get cached process settings.

    Settings are loaded once and cached. To reload settings,
    call reset_settings() first.
    """
    return Settings()


def reset_settings() -> None:
    """Clear settings cache to force reload on next get_settings() call."""
    get_settings.cache_clear()


# ---------------------------------------------------------------------------
# Overlay configuration document
# ---------------------------------------------------------------------------


class ThreatBenchmarks(BaseModel):
    """Thresholds above which a player counts as a threat."""

    fkdr: float = 3.0
    stars: int = 300


class FkdrBenchmarks(BaseModel):
    """FKDR color tiers."""

    good: float = 5.0
    medium: float = 2.0
    low: float = 1.0


class PingBenchmarks(BaseModel):
    """Latency alert thresholds in milliseconds."""

    high: int = 200
    medium: int = 100


class CommandNames(BaseModel):
    """Locally handled command keywords."""

    prefix: str = "/"
    statcheck: str = "sc"
    stat_filter: str = "scfilter"
    update_config: str = "scconfig"

    @field_validator("prefix")
    @classmethod
    def prefix_is_single_character(cls, v: str) -> str:
        """The command prefix must be exactly one character."""
        if len(v) != 1:
            raise ValueError("commands.prefix must be a single character")
        return v

    @model_validator(mode="after")
    def keywords_are_distinct(self) -> CommandNames:
        """Two commands may not share a keyword (compared case-insensitively)."""
        keywords = [k.lower() for k in (self.statcheck, self.stat_filter, self.update_config)]
        if len(set(keywords)) != len(keywords):
            raise ValueError("command keywords must be distinct")
        return self


class OverlayConfig(BaseModel):
    """Schema of the overlay configuration document.

    Every field has a default so a minimal document only needs to override
    what it cares about. Unknown keys are kept so the in-memory tree mirrors
    the document.
    """

    model_config = ConfigDict(extra="allow")

    version: str = "1.8.9"
    check_delay: int = Field(default=500, ge=0)
    threat_benchmarks: ThreatBenchmarks = Field(default_factory=ThreatBenchmarks)
    fkdr_benchmarks: FkdrBenchmarks = Field(default_factory=FkdrBenchmarks)
    threats_only: bool = False
    filter_self: bool = True
    auto_who: bool = True
    ping_alerts: bool = False
    ping_interval: int = Field(default=5000, ge=250)
    ping_benchmarks: PingBenchmarks = Field(default_factory=PingBenchmarks)
    commands: CommandNames = Field(default_factory=CommandNames)
    filter_list: list[str] = Field(default_factory=list)
    guild_list: list[str] = Field(default_factory=list)
    slumber_alert_limit: int = 0
    slumber_alert_delay: int = Field(default=1000, ge=0)
    tag: str = "HYPROXY"
    show_tag: bool = True
    tag_prefix: str = "§8"
    name_prefix: str = ""
    ping_prefix: str = "§7Ping: "

    @field_validator("version", mode="before")
    @classmethod
    def coerce_version(cls, v: Any) -> str:
        """YAML reads ``1.20`` as a float; keep the version as text."""
        return str(v)

    @field_validator("tag")
    @classmethod
    def strip_tag(cls, v: str) -> str:
        """Strip surrounding whitespace from the tag."""
        return v.strip()


def load_overlay_config(path: Path) -> dict[str, Any]:
    """Load and validate the overlay configuration document.

    Args:
        path: YAML document to read

    Returns:
        Validated configuration as a plain nested dict

    Raises:
        ConfigLoadError: If the file is missing, unparsable or fails validation
    """
    if not path.exists():
        raise ConfigLoadError(f"Config file not found: {path}")

    try:
        with path.open(encoding="utf-8") as fh:
            raw = yaml.safe_load(fh) or {}
    except yaml.YAMLError as e:
        raise ConfigLoadError(f"Config file is not valid YAML: {path} ({e})") from e

    if not isinstance(raw, dict):
        raise ConfigLoadError(f"{path} must be a YAML mapping at the top level.")

    try:
        config = OverlayConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigLoadError(f"Invalid config file {path}:\n{e}") from e

    logger.info(f"Loaded config from {path} (version {config.version})")
    return config.model_dump()
