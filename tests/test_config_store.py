"""Tests for the in-memory configuration store."""

from __future__ import annotations

from typing import Any

import pytest

from hyproxy.proxy.config_store import ConfigStore, ConfigValidationError


class TestGet:
    """Tests for dotted-path reads."""

    def test_nested_read(self, config_store: ConfigStore) -> None:
        assert config_store.get("threat_benchmarks.stars") == 300
        assert config_store.get("commands.prefix") == "/"

    def test_missing_path_raises(self, config_store: ConfigStore) -> None:
        with pytest.raises(KeyError):
            config_store.get("threat_benchmarks.nope")

    def test_missing_path_default(self, config_store: ConfigStore) -> None:
        assert config_store.get("nope.deeper", 7) == 7


class TestSet:
    """Tests for validated mutation."""

    def test_integer_kept_integer(self, config_store: ConfigStore) -> None:
        """Test that an integral number replacing an int stays an int."""
        assert config_store.set("check_delay", "750") == 750
        assert isinstance(config_store.get("check_delay"), int)

    def test_float_value(self, config_store: ConfigStore) -> None:
        assert config_store.set("threat_benchmarks.fkdr", "4.5") == 4.5

    def test_fractional_value_for_int(self) -> None:
        """Test that a fractional value for an unconstrained int becomes a float."""
        store = ConfigStore({"custom_delay": 5})
        assert store.set("custom_delay", "2.5") == 2.5

    def test_fractional_value_for_int_setting_rejected(self, config_store: ConfigStore) -> None:
        with pytest.raises(ConfigValidationError, match="check_delay"):
            config_store.set("check_delay", "250.5")
        assert config_store.get("check_delay") == 500

    def test_not_a_number(self, config_store: ConfigStore) -> None:
        """Test that unparsable numbers leave the config unchanged."""
        with pytest.raises(ConfigValidationError, match="must be a number value"):
            config_store.set("check_delay", "notanumber")
        assert config_store.get("check_delay") == 500

    @pytest.mark.parametrize("raw", ["nan", "inf", "-inf", ""])
    def test_non_finite_rejected(self, config_store: ConfigStore, raw: str) -> None:
        with pytest.raises(ConfigValidationError):
            config_store.set("check_delay", raw)

    def test_boolean_literals(self, config_store: ConfigStore) -> None:
        assert config_store.set("threats_only", "true") is True
        assert config_store.set("threats_only", "false") is False

    @pytest.mark.parametrize("raw", ["True", "1", "yes", "0"])
    def test_boolean_rejects_other_tokens(self, config_store: ConfigStore, raw: str) -> None:
        """Test that only the exact literals true/false are accepted."""
        with pytest.raises(ConfigValidationError, match="must be a boolean value"):
            config_store.set("threats_only", raw)
        assert config_store.get("threats_only") is False

    def test_string_verbatim(self, config_store: ConfigStore) -> None:
        assert config_store.set("tag", "MY TAG") == "MY TAG"

    def test_object_leaf_rejected(self, config_store: ConfigStore) -> None:
        """Test that object-valued nodes are never assignable."""
        before = config_store.snapshot()
        with pytest.raises(ConfigValidationError, match="is an object"):
            config_store.set("threat_benchmarks", "true")
        assert config_store.snapshot() == before

    def test_list_rejected(self, config_store: ConfigStore) -> None:
        with pytest.raises(ConfigValidationError, match="not a settable value"):
            config_store.set("filter_list", "alice")

    def test_missing_intermediate(self, config_store: ConfigStore) -> None:
        with pytest.raises(ConfigValidationError, match="Invalid config path: nope not found"):
            config_store.set("nope.fkdr", "3")

    def test_missing_leaf(self, config_store: ConfigStore) -> None:
        with pytest.raises(ConfigValidationError, match="Invalid config key: nope"):
            config_store.set("threat_benchmarks.nope", "3")

    def test_path_through_scalar(self, config_store: ConfigStore) -> None:
        """Test that walking through a scalar is an invalid path."""
        with pytest.raises(ConfigValidationError):
            config_store.set("check_delay.value", "3")


class TestSchemaBounds:
    """Tests for constraints enforced on every mutation."""

    @pytest.mark.parametrize(
        ("path", "raw"),
        [
            ("ping_interval", "0"),
            ("ping_interval", "249"),
            ("check_delay", "-1"),
            ("slumber_alert_delay", "-500"),
        ],
    )
    def test_below_minimum_rejected(self, config_store: ConfigStore, path: str, raw: str) -> None:
        before = config_store.snapshot()
        with pytest.raises(ConfigValidationError, match=f"Invalid value for {path}"):
            config_store.set(path, raw)
        assert config_store.snapshot() == before

    def test_minimum_accepted(self, config_store: ConfigStore) -> None:
        assert config_store.set("ping_interval", "250") == 250

    @pytest.mark.parametrize("raw", ["!!!", ""])
    def test_prefix_must_stay_single_character(self, config_store: ConfigStore, raw: str) -> None:
        with pytest.raises(ConfigValidationError, match="single character"):
            config_store.set("commands.prefix", raw)
        assert config_store.get("commands.prefix") == "/"

    def test_duplicate_command_keyword_rejected(self, config_store: ConfigStore) -> None:
        """Test that two commands can never share a keyword."""
        with pytest.raises(ConfigValidationError, match="distinct"):
            config_store.set("commands.stat_filter", "SC")
        assert config_store.get("commands.stat_filter") == "scfilter"


class TestSnapshot:
    """Tests for snapshot isolation."""

    def test_snapshot_is_deep_copy(self) -> None:
        tree: dict[str, Any] = {"a": {"b": 1}}
        store = ConfigStore(tree)
        snap = store.snapshot()
        snap["a"]["b"] = 2
        assert store.get("a.b") == 1
