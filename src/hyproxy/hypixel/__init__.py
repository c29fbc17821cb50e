"""Identity and statistics API integration."""

from hyproxy.hypixel.client import (
    GuildLookupError,
    HypixelApi,
    IdentityLookupError,
    LookupFailure,
    StatsLookupError,
)
from hyproxy.hypixel.retry import RateLimitedError, with_retry

__all__ = [
    "GuildLookupError",
    "HypixelApi",
    "IdentityLookupError",
    "LookupFailure",
    "RateLimitedError",
    "StatsLookupError",
    "with_retry",
]
