"""Chat payload interpretation.

Inbound chat frames carry a JSON rich-text tree of the form
``{"text": "...", "extra": [<node>, ...]}``. This module flattens such trees
to plain text and classifies the text into the few server announcements the
relay reacts to.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from hyproxy.models import ChatEvent, RosterAnnounce, RoundEnd, RoundStart

logger = logging.getLogger(__name__)

MAX_NODE_DEPTH = 64

ROSTER_PREFIX = "ONLINE: "
ROSTER_SEPARATOR = ", "
ROUND_START_TEXT = "to access powerful upgrades."
ROUND_END_PREFIX = "1st Killer - "


class MalformedPayloadError(Exception):
    """Raised when a chat payload cannot be parsed or has an unexpected shape."""


def extract_text(node: dict[str, Any], max_depth: int = MAX_NODE_DEPTH) -> str:
    """Flatten a rich-text node to plain text.

    Each node contributes its own ``text`` followed by the flattened text of
    every entry in ``extra``, in order (pre-order traversal). Uses an explicit
    stack so adversarial nesting cannot exhaust the interpreter stack.

    Args:
        node: Rich-text node
        max_depth: Maximum nesting depth accepted

    Returns:
        Concatenated text

    Raises:
        MalformedPayloadError: If a node is not a mapping or nesting exceeds max_depth

    Example:
        >>> extract_text({"text": "a", "extra": [{"text": "b"}, {"text": "c", "extra": [{"text": "d"}]}]})
        'abcd'
    """
    parts: list[str] = []
    stack: list[tuple[Any, int]] = [(node, 0)]

    while stack:
        current, depth = stack.pop()

        # Servers sometimes put bare strings in ``extra``
        if isinstance(current, str):
            parts.append(current)
            continue
        if not isinstance(current, dict):
            raise MalformedPayloadError(f"Unexpected chat node type: {type(current).__name__}")
        if depth > max_depth:
            raise MalformedPayloadError(f"Chat payload nested deeper than {max_depth}")

        text = current.get("text")
        if text:
            parts.append(str(text))

        extra = current.get("extra")
        if extra:
            if not isinstance(extra, list):
                raise MalformedPayloadError("Chat node 'extra' must be a list")
            # Reversed so the first child is popped first
            for child in reversed(extra):
                stack.append((child, depth + 1))

    return "".join(parts)


def parse_chat_message(raw_message: str) -> str:
    """Decode a chat frame's JSON ``message`` field and flatten it.

    Raises:
        MalformedPayloadError: If the JSON is invalid or the tree is malformed
    """
    try:
        node = json.loads(raw_message)
    except (TypeError, ValueError) as e:
        raise MalformedPayloadError(f"Chat message is not valid JSON: {e}") from e

    # A bare JSON string is a valid chat component
    if isinstance(node, str):
        return node
    return extract_text(node)


def classify(text: str) -> ChatEvent | None:
    """Classify plain chat text into a chat event.

    Args:
        text: Flattened chat text

    Returns:
        The matching event, or None for unrecognized text

    Example:
        >>> classify("ONLINE: Alice, Bob, Carol")
        RosterAnnounce(names=('Alice', 'Bob', 'Carol'))
    """
    if text.startswith(ROSTER_PREFIX):
        names = text[len(ROSTER_PREFIX) :].split(ROSTER_SEPARATOR)
        return RosterAnnounce(names=tuple(names))

    trimmed = text.strip()
    if trimmed == ROUND_START_TEXT:
        return RoundStart()
    if trimmed.startswith(ROUND_END_PREFIX):
        return RoundEnd()
    return None
