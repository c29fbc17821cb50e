"""Domain models for HyProxy.

Models:
    ChatEvent: Union of events derived from inbound chat text
    RosterAnnounce: Online player list announced by the server
    RoundStart: A match has started
    RoundEnd: A match has ended
    PlayerIdentity: Canonical (id, username) pair from identity resolution
    Rank: Enum of purchasable ranks
    StatSnapshot: Derived per-player statistics
    CacheEntry: Cached formatted line and threat flag
"""

from .chat import ChatEvent, RosterAnnounce, RoundEnd, RoundStart
from .stats import CacheEntry, PlayerIdentity, Rank, StatSnapshot

__all__ = [
    "CacheEntry",
    "ChatEvent",
    "PlayerIdentity",
    "Rank",
    "RosterAnnounce",
    "RoundEnd",
    "RoundStart",
    "StatSnapshot",
]
