"""Chat event variants derived from server chat text."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TypeAlias


@dataclass(frozen=True)
class RosterAnnounce:
    """Online player list, as printed by the server in reply to ``/who``.

    Attributes:
        names: Player names in announcement order.
    """

    names: tuple[str, ...]


@dataclass(frozen=True)
class RoundStart:
    """A match has started."""


@dataclass(frozen=True)
class RoundEnd:
    """A match has ended."""


ChatEvent: TypeAlias = RosterAnnounce | RoundStart | RoundEnd
