"""Player statistics lookup pipeline.

Resolves a name to its canonical identity, fetches and derives statistics,
classifies the player as a threat or not, formats a colored line and caches
it per canonical username. The cache lives for one match: it is cleared
wholesale when a round starts and never expires otherwise.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import Any, Protocol

from hyproxy.models import CacheEntry, PlayerIdentity, Rank, StatSnapshot
from hyproxy.proxy.config_store import ConfigStore
from hyproxy.proxy.formatter import format_slumber_alert, format_stats_line
from hyproxy.proxy.scheduler import TaskScope

logger = logging.getLogger(__name__)

ROSTER_GROUP = "roster"
MANUAL_GROUP = "statcheck"
SUPERSTAR = "SUPERSTAR"


class IdentityService(Protocol):
    """Resolves display names to canonical identities."""

    async def resolve(self, name: str) -> PlayerIdentity | None: ...


class StatsService(Protocol):
    """Fetches the raw player object for an identity."""

    async def fetch_stats(self, uuid: str) -> dict[str, Any] | None: ...


class GuildService(Protocol):
    """Fetches guild affiliation for an identity."""

    async def fetch_guild(self, uuid: str) -> str | None: ...


def _as_int(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int | float):
        return 0
    return int(value)


def resolve_rank(player: dict[str, Any]) -> Rank:
    """Resolve rank: monthly package > package rank > new package rank > NONE."""
    if player.get("monthlyPackageRank") == SUPERSTAR:
        return Rank.MVP_PLUS_PLUS
    return Rank.parse(player.get("packageRank") or player.get("newPackageRank") or "NONE")


def _mapping(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def derive_snapshot(player: dict[str, Any], guild: str | None) -> StatSnapshot:
    """Derive a StatSnapshot from a raw player object and guild name.

    Sections of the wrong shape are read as empty.
    """
    bedwars = _mapping(_mapping(player.get("stats")).get("Bedwars"))
    achievements = _mapping(player.get("achievements"))

    slumber = bedwars.get("slumber")
    slumber_counts: dict[str, int] = {}
    if isinstance(slumber, dict):
        slumber_counts = {
            name: count
            for name, count in slumber.items()
            if isinstance(count, int) and not isinstance(count, bool)
        }

    return StatSnapshot(
        stars=max(0, _as_int(achievements.get("bedwars_level", 0))),
        fkdr=StatSnapshot.compute_fkdr(
            _as_int(bedwars.get("final_kills_bedwars", 0)),
            _as_int(bedwars.get("final_deaths_bedwars", 0)),
        ),
        rank=resolve_rank(player),
        guild=guild or "No Guild",
        slumber_counts=slumber_counts,
    )


class StatLookupPipeline:
    """Cached, staggered statistics lookups for one session.

    Example:
        ```python
        pipeline = StatLookupPipeline(store, api, api, api, emit=relay.proxy_chat, scope=scope)
        pipeline.schedule_batch(["Alice", "Bob"])  # staggered by check_delay
        await pipeline.statcheck("Carol")
        ```
    """

    def __init__(
        self,
        config: ConfigStore,
        identity: IdentityService,
        stats: StatsService,
        guilds: GuildService,
        *,
        emit: Callable[[str], None],
        scope: TaskScope,
        guild_watch: Iterable[str] = (),
        is_live: Callable[[], bool] = lambda: True,
    ) -> None:
        """Initialize the pipeline.

        Args:
            config: Runtime configuration
            identity: Identity resolution service
            stats: Statistics service
            guilds: Guild affiliation service
            emit: Sends a synthetic chat line to the client
            scope: Session task scope used for staggered scheduling
            guild_watch: Guild names that mark members as threats
            is_live: Returns False once the session is no longer active
        """
        self._config = config
        self._identity = identity
        self._stats = stats
        self._guilds = guilds
        self._emit = emit
        self._scope = scope
        self._guild_watch = {g.lower() for g in guild_watch}
        self._is_live = is_live
        self._cache: dict[str, CacheEntry] = {}

    @property
    def cache(self) -> dict[str, CacheEntry]:
        """Cached entries keyed by canonical username."""
        return self._cache

    def clear_cache(self) -> None:
        """Drop every cached entry (called when a round starts)."""
        if self._cache:
            logger.info(f"Clearing stat cache ({len(self._cache)} entries)")
        self._cache.clear()

    def _send(self, message: str) -> None:
        if not self._is_live():
            logger.debug(f"Session no longer active, dropping: {message}")
            return
        self._emit(message)

    def _is_threat(self, snapshot: StatSnapshot) -> bool:
        benchmarks = self._config.get("threat_benchmarks")
        return (
            float(snapshot.fkdr) >= benchmarks["fkdr"]
            or snapshot.stars >= benchmarks["stars"]
            or snapshot.guild.lower() in self._guild_watch
        )

    def _suppressed(self, from_roster_scan: bool, is_threat: bool) -> bool:
        return from_roster_scan and bool(self._config.get("threats_only")) and not is_threat

    async def statcheck(self, name: str, from_roster_scan: bool = False) -> None:
        """Look up one player and emit their stat line.

        Args:
            name: Name as typed or announced
            from_roster_scan: True when triggered by a roster announcement;
                such lookups are silent for non-threats when threats_only is set
        """
        logger.info(f"Statchecking {name}.")

        try:
            identity = await self._identity.resolve(name)
        except Exception as e:
            logger.warning(f"Identity lookup for {name} failed: {type(e).__name__}: {e}")
            identity = None
        if identity is None:
            logger.info(f"UUID for {name} not found.")
            self._send(f"§f{name}: §cNo user found")
            return

        username = identity.username
        cached = self._cache.get(username)
        if cached is not None:
            logger.info(f"{username} found in cache.")
            if not self._suppressed(from_roster_scan, cached.is_threat):
                self._send(cached.formatted_message)
            return

        snapshot: StatSnapshot | None = None
        try:
            player = await self._stats.fetch_stats(identity.id)
            if player is not None:
                snapshot = derive_snapshot(player, await self._fetch_guild(username, identity.id))
        except Exception as e:
            logger.warning(f"Stats lookup for {username} failed: {type(e).__name__}: {e}")
        if snapshot is None:
            logger.info(f"Stats for {username} not found.")
            self._send(f"{self._config.get('name_prefix', '')}{username}: §cNo stats found")
            return

        is_threat = self._is_threat(snapshot)
        message = format_stats_line(
            username,
            snapshot,
            self._config.get("fkdr_benchmarks"),
            name_prefix=self._config.get("name_prefix", ""),
        )

        logger.info(f"Stats for {username} found. Adding to cache.")
        self._cache[username] = CacheEntry(formatted_message=message, is_threat=is_threat)

        if self._suppressed(from_roster_scan, is_threat):
            logger.debug(f"{username} is not a threat, not shown")
            return

        self._send(message)
        self._schedule_slumber_alert(username, snapshot)

    async def _fetch_guild(self, username: str, uuid: str) -> str | None:
        try:
            return await self._guilds.fetch_guild(uuid)
        except Exception as e:
            logger.warning(f"Guild lookup for {username} failed: {type(e).__name__}: {e}")
            return None

    def _schedule_slumber_alert(self, username: str, snapshot: StatSnapshot) -> None:
        limit = self._config.get("slumber_alert_limit", 0)
        if limit <= 0:
            return
        over = {item: count for item, count in snapshot.slumber_counts.items() if count >= limit}
        if not over:
            return

        message = format_slumber_alert(username, over)

        async def alert() -> None:
            self._send(message)

        delay = self._config.get("slumber_alert_delay", 0) / 1000
        self._scope.schedule(delay, alert)

    def _schedule(self, name: str, delay_ms: float, from_roster_scan: bool) -> None:
        group = ROSTER_GROUP if from_roster_scan else MANUAL_GROUP
        self._scope.schedule(
            delay_ms / 1000,
            lambda: self.statcheck(name, from_roster_scan=from_roster_scan),
            group=group,
        )

    def schedule_batch(self, names: list[str]) -> None:
        """Schedule manual lookups at index × check_delay, in argument order."""
        check_delay = self._config.get("check_delay")
        for i, name in enumerate(names):
            self._schedule(name, i * check_delay, from_roster_scan=False)

    def schedule_roster(
        self,
        names: Iterable[str],
        *,
        viewer: str,
        filter_set: set[str],
    ) -> int:
        """Schedule roster-scan lookups for an online player list.

        The viewer is skipped when filter_self is set, and filtered names are
        skipped case-insensitively. Skipped names do not consume a delay slot.

        Returns:
            Number of lookups scheduled
        """
        check_delay = self._config.get("check_delay")
        filter_self = bool(self._config.get("filter_self"))
        delay = 0
        scheduled = 0
        for name in names:
            if not name:
                continue
            if filter_self and name == viewer:
                continue
            if name.lower() in filter_set:
                continue
            self._schedule(name, delay, from_roster_scan=True)
            delay += check_delay
            scheduled += 1
        return scheduled

    def cancel_pending_roster(self) -> int:
        """Cancel roster-scan lookups that have not fired yet."""
        return self._scope.cancel_group(ROSTER_GROUP)
