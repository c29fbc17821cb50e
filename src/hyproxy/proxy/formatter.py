"""Colored chat line formatting.

Color codes use the legacy section-sign format (``§`` followed by a hex
digit) understood by the game client.
"""

from __future__ import annotations

import json
from decimal import Decimal
from typing import Any

from hyproxy.models import Rank, StatSnapshot

CHAT_POSITION = 1
ACTION_BAR_POSITION = 2

RANK_COLORS: dict[Rank, str] = {
    Rank.MVP_PLUS_PLUS: "§6",
    Rank.MVP_PLUS: "§b",
    Rank.MVP: "§b",
    Rank.VIP_PLUS: "§a",
    Rank.VIP: "§a",
}

# One color per hundred stars, 0-999
STAR_COLORS = [
    "§7",  # gray
    "§f",  # white
    "§6",  # gold
    "§b",  # aqua
    "§2",  # dark green
    "§3",  # dark aqua
    "§4",  # dark red
    "§d",  # pink
    "§9",  # blue
    "§5",  # purple
]

# 1000+ prestiges: red, gold, yellow, green, pink, purple
RAINBOW = ["§c", "§6", "§e", "§a", "§d", "§5"]


def rank_color(rank: Rank) -> str:
    """Color code for a rank (gray for no rank)."""
    return RANK_COLORS.get(rank, "§7")


def colored_stars(stars: int) -> str:
    """Render a star level, e.g. ``§6[212✫]``."""
    if stars >= 1000:
        digits = str(stars)
        colored = f"{RAINBOW[0]}["
        for i, digit in enumerate(digits, start=1):
            colored += f"{RAINBOW[i % len(RAINBOW)]}{digit}"
        colored += f"✫{RAINBOW[(len(digits) + 1) % len(RAINBOW)]}]"
        return colored

    return f"{STAR_COLORS[stars // 100]}[{stars}✫]"


def colored_fkdr(fkdr: Decimal, benchmarks: dict[str, Any]) -> str:
    """Render an FKDR value colored by benchmark tier."""
    value = float(fkdr)
    if value >= benchmarks["good"]:
        return f"§c{fkdr}"
    if value >= benchmarks["medium"]:
        return f"§6{fkdr}"
    if value >= benchmarks["low"]:
        return f"§e{fkdr}"
    return f"§7{fkdr}"


def format_stats_line(
    username: str,
    stats: StatSnapshot,
    fkdr_benchmarks: dict[str, Any],
    name_prefix: str = "",
) -> str:
    """Build the display line for a player's statistics."""
    return (
        f"{rank_color(stats.rank)}{name_prefix}{username}: {colored_stars(stats.stars)} "
        f"§7| {colored_fkdr(stats.fkdr, fkdr_benchmarks)} FKDR §7| §2{stats.guild}"
    )


def format_slumber_alert(username: str, items: dict[str, int]) -> str:
    """Build the follow-up line listing slumber items over the alert limit."""
    listed = ", ".join(f"{name} x{count}" for name, count in items.items())
    return f"§e{username} §7slumber: §f{listed}"


def build_chat_frame(
    message: str,
    *,
    tag: str = "",
    show_tag: bool = False,
    tag_prefix: str = "",
    position: int = CHAT_POSITION,
) -> dict[str, Any]:
    """Build an outbound chat frame payload shown to the client.

    Args:
        message: Colored text to show
        tag: Tag shown in brackets before the message
        show_tag: Whether to include the tag
        tag_prefix: Color prefix placed before the tag
        position: Chat channel (1 = chat box, 2 = action bar)
    """
    tag_part = f"{tag_prefix}[{tag}] " if show_tag and tag else ""
    return {
        "message": json.dumps({"text": f"§7{tag_part}{message}", "color": "white"}),
        "position": position,
    }
