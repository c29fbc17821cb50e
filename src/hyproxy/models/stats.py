"""Player statistics domain models."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Rank(str, Enum):
    """Purchasable network ranks, lowest to highest."""

    NONE = "NONE"
    VIP = "VIP"
    VIP_PLUS = "VIP_PLUS"
    MVP = "MVP"
    MVP_PLUS = "MVP_PLUS"
    MVP_PLUS_PLUS = "MVP_PLUS_PLUS"

    @classmethod
    def parse(cls, value: object) -> Rank:
        """Map a raw rank string to a Rank, falling back to NONE."""
        if isinstance(value, str):
            try:
                return cls(value)
            except ValueError:
                return cls.NONE
        return cls.NONE


class PlayerIdentity(BaseModel):
    """Canonical identity returned by the identity service.

    Attributes:
        id: Undashed player UUID.
        username: Canonical display name (case as returned by the service).
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str
    username: str


class StatSnapshot(BaseModel):
    """Statistics derived from one stats fetch.

    Attributes:
        stars: Bedwars level.
        fkdr: Final kill/death ratio with two fraction digits.
        rank: Resolved rank.
        guild: Guild name, or "No Guild".
        slumber_counts: Item name to count for slumber inventory items.

    Example:
        >>> snap = StatSnapshot(stars=120, fkdr=Decimal("1.5"), rank=Rank.MVP)
        >>> str(snap.fkdr)
        '1.50'
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    stars: int = Field(default=0, ge=0)
    fkdr: Decimal = Decimal("0.00")
    rank: Rank = Rank.NONE
    guild: str = "No Guild"
    slumber_counts: dict[str, int] = Field(default_factory=dict)

    @field_validator("fkdr")
    @classmethod
    def quantize_fkdr(cls, v: Decimal) -> Decimal:
        """Round FKDR to two decimal places."""
        return v.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

    @staticmethod
    def compute_fkdr(final_kills: int, final_deaths: int) -> Decimal:
        """Compute kills / max(deaths, 1) rounded to two decimals."""
        ratio = Decimal(final_kills) / Decimal(max(final_deaths, 1))
        return ratio.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


class CacheEntry(BaseModel):
    """Formatted stat line cached per canonical username."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    formatted_message: str
    is_threat: bool
