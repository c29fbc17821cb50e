"""In-memory runtime configuration with validated dotted-path mutation."""

from __future__ import annotations

import copy
import logging
import math
from typing import Any

from pydantic import ValidationError

from hyproxy.config import OverlayConfig

logger = logging.getLogger(__name__)

_MISSING = object()


class ConfigValidationError(Exception):
    """Raised when a config mutation is rejected.

    The message is user-facing and is echoed back into chat as-is.
    """


class ConfigStore:
    """Holds the mutable configuration tree loaded at startup.

    Reads go through :meth:`get`; the only write path is :meth:`set`, which
    validates the whole mutation before applying it. Mutations live in memory
    only and are lost when the process exits.

    Example:
        ```python
        store = ConfigStore({"check_delay": 500, "threat_benchmarks": {"fkdr": 3}})
        store.set("threat_benchmarks.fkdr", "4.5")
        store.get("threat_benchmarks.fkdr")  # 4.5
        ```
    """

    def __init__(self, tree: dict[str, Any]) -> None:
        self._tree = tree

    def get(self, path: str, default: Any = _MISSING) -> Any:
        """Read the value at a dotted path.

        Args:
            path: Dotted key sequence, e.g. ``"ping_benchmarks.high"``
            default: Returned when the path does not exist

        Raises:
            KeyError: If the path does not exist and no default was given
        """
        node: Any = self._tree
        for key in path.split("."):
            if not isinstance(node, dict) or key not in node:
                if default is _MISSING:
                    raise KeyError(path)
                return default
            node = node[key]
        return node

    def set(self, path: str, raw_value: str) -> bool | int | float | str:
        """Validate and apply a mutation at a dotted path.

        The new value is coerced to the primitive type of the value it
        replaces, then the whole tree is checked against the document schema
        (bounds, the single-character prefix, distinct command keywords).
        Nothing is changed unless every check passes.

        Args:
            path: Dotted key sequence addressing an existing leaf
            raw_value: Value as typed by the user

        Returns:
            The coerced value now stored at ``path``

        Raises:
            ConfigValidationError: Bad path, object/list target, type mismatch
                or a value the schema rejects
        """
        keys = path.split(".")
        parent = self._tree
        for key in keys[:-1]:
            if not isinstance(parent, dict) or key not in parent:
                raise ConfigValidationError(f"Invalid config path: {key} not found.")
            parent = parent[key]

        last_key = keys[-1]
        if not isinstance(parent, dict) or last_key not in parent:
            raise ConfigValidationError(f"Invalid config key: {last_key}.")

        current = parent[last_key]
        new_value = self._coerce(path, current, raw_value)

        candidate = self.snapshot()
        node = candidate
        for key in keys[:-1]:
            node = node[key]
        node[last_key] = new_value
        self._check_schema(candidate)

        parent[last_key] = new_value
        logger.info(f"Config updated in memory: {path} = {new_value!r}")
        return new_value

    def snapshot(self) -> dict[str, Any]:
        """Return a deep copy of the current tree."""
        return copy.deepcopy(self._tree)

    @staticmethod
    def _check_schema(tree: dict[str, Any]) -> None:
        try:
            OverlayConfig.model_validate(tree)
        except ValidationError as e:
            error = e.errors()[0]
            location = ".".join(str(part) for part in error["loc"])
            message = str(error["msg"]).removeprefix("Value error, ")
            raise ConfigValidationError(f"Invalid value for {location}: {message}.") from None

    @staticmethod
    def _coerce(path: str, current: Any, raw_value: str) -> bool | int | float | str:
        # bool is checked first: it is a subclass of int
        if isinstance(current, bool):
            if raw_value == "true":
                return True
            if raw_value == "false":
                return False
            raise ConfigValidationError(f"{path} must be a boolean value.")

        if isinstance(current, int | float):
            try:
                number = float(raw_value)
            except ValueError:
                raise ConfigValidationError(f"{path} must be a number value.") from None
            if not math.isfinite(number):
                raise ConfigValidationError(f"{path} must be a number value.")
            if isinstance(current, int) and number.is_integer():
                return int(number)
            return number

        if isinstance(current, str):
            return raw_value

        if isinstance(current, dict):
            raise ConfigValidationError(f"{path} is an object.")
        raise ConfigValidationError(f"{path} is not a settable value.")
