"""HTTP clients for identity resolution and Hypixel statistics.

All public methods degrade to ``None`` on any failure (network error,
non-success status, missing fields). Failures are logged here and never
raised to the caller, so one bad lookup cannot affect sibling lookups.
"""

from __future__ import annotations

import logging
import re
from typing import Any

import httpx

from hyproxy.hypixel.retry import (
    DEFAULT_MAX_ATTEMPTS,
    RateLimitedError,
    retry_after_seconds,
    with_retry,
)
from hyproxy.models import PlayerIdentity

logger = logging.getLogger(__name__)

MOJANG_PROFILE_URL = "https://api.mojang.com/users/profiles/minecraft/{name}"
HYPIXEL_PLAYER_URL = "https://api.hypixel.net/v2/player"
HYPIXEL_GUILD_URL = "https://api.hypixel.net/v2/guild"

# Minecraft usernames: 1-16 of letters, digits and underscore
_USERNAME_RE = re.compile(r"^[A-Za-z0-9_]{1,16}$")


class LookupFailure(Exception):
    """Base exception for failed external lookups."""


class IdentityLookupError(LookupFailure):
    """Raised when a username cannot be resolved."""


class StatsLookupError(LookupFailure):
    """Raised when player statistics are unavailable."""


class GuildLookupError(LookupFailure):
    """Raised when guild affiliation cannot be fetched."""


class HypixelApi:
    """Async client for the Mojang profile API and the Hypixel v2 API.

    Provides identity resolution, raw statistics fetching and guild lookup
    over one shared ``httpx.AsyncClient``.

    Example:
        ```python
        async with HypixelApi(api_key) as api:
            identity = await api.resolve("Technoblade")
            if identity:
                player = await api.fetch_stats(identity.id)
                guild = await api.fetch_guild(identity.id)
        ```
    """

    def __init__(
        self,
        api_key: str,
        *,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        """Initialize the API client.

        Args:
            api_key: Hypixel developer API key
            timeout: Request timeout in seconds (ignored when client is given)
            client: Preconfigured httpx client (tests pass one with a MockTransport)
            max_attempts: Attempts per request for transient failures
        """
        self._api_key = api_key
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._get = with_retry(max_attempts=max_attempts, operation_name="api request")(
            self._get_once
        )

    async def __aenter__(self) -> HypixelApi:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def _get_once(
        self,
        url: str,
        params: dict[str, str] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        response = await self._client.get(url, params=params, headers=headers)
        if response.status_code == 429:
            raise RateLimitedError(retry_after_seconds(response))
        return response

    async def _get_json(
        self,
        url: str,
        params: dict[str, str] | None = None,
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any] | None:
        response = await self._get(url, params=params, headers=headers)
        if not response.is_success:
            logger.debug(f"GET {response.url.path} returned {response.status_code}")
            return None
        data = response.json()
        return data if isinstance(data, dict) else None

    async def resolve(self, name: str) -> PlayerIdentity | None:
        """Resolve a display name to its canonical identity.

        Returns:
            PlayerIdentity, or None if not found or the lookup failed
        """
        try:
            return await self._resolve(name)
        except (LookupFailure, RateLimitedError, httpx.HTTPError, OSError, ValueError) as e:
            logger.info(f"Identity lookup for {name} failed: {type(e).__name__}: {e}")
            return None

    async def _resolve(self, name: str) -> PlayerIdentity:
        if not _USERNAME_RE.match(name):
            raise IdentityLookupError(f"'{name}' is not a valid username")

        data = await self._get_json(MOJANG_PROFILE_URL.format(name=name))
        if not data or "id" not in data or "name" not in data:
            raise IdentityLookupError(f"No profile for {name}")
        return PlayerIdentity(id=str(data["id"]), username=str(data["name"]))

    async def fetch_stats(self, uuid: str) -> dict[str, Any] | None:
        """Fetch the raw player object for a UUID.

        Returns:
            The ``player`` object (guaranteed to contain ``stats.Bedwars``),
            or None if unavailable
        """
        try:
            return await self._fetch_stats(uuid)
        except (LookupFailure, RateLimitedError, httpx.HTTPError, OSError, ValueError) as e:
            logger.info(f"Stats lookup for {uuid} failed: {type(e).__name__}: {e}")
            return None

    async def _fetch_stats(self, uuid: str) -> dict[str, Any]:
        data = await self._get_json(
            HYPIXEL_PLAYER_URL,
            params={"uuid": uuid},
            headers={"API-Key": self._api_key},
        )
        if not data or not data.get("success") or not isinstance(data.get("player"), dict):
            raise StatsLookupError(f"No player data for {uuid}")

        player: dict[str, Any] = data["player"]
        stats = player.get("stats") or {}
        if not isinstance(stats, dict) or not isinstance(stats.get("Bedwars"), dict):
            raise StatsLookupError(f"No Bedwars stats for {uuid}")
        return player

    async def fetch_guild(self, uuid: str) -> str | None:
        """Fetch the guild name of a player.

        Returns:
            Guild name, or None if the player has no guild or the lookup failed
        """
        try:
            return await self._fetch_guild(uuid)
        except (LookupFailure, RateLimitedError, httpx.HTTPError, OSError, ValueError) as e:
            logger.info(f"Guild lookup for {uuid} failed: {type(e).__name__}: {e}")
            return None

    async def _fetch_guild(self, uuid: str) -> str | None:
        data = await self._get_json(
            HYPIXEL_GUILD_URL,
            params={"player": uuid},
            headers={"API-Key": self._api_key},
        )
        if not data or not data.get("success"):
            raise GuildLookupError(f"Guild request for {uuid} was not successful")

        guild = data.get("guild")
        if not isinstance(guild, dict):
            return None
        name = guild.get("name")
        return str(name) if name else None
