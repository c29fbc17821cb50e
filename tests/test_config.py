"""Tests for process settings and the overlay configuration document."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest

from hyproxy.config import (
    ConfigLoadError,
    OverlayConfig,
    Settings,
    get_settings,
    load_overlay_config,
    reset_settings,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Iterator[None]:
    """Isolate settings from the developer's environment and .env file."""
    for var in ("HYPIXEL_API_KEY", "HYPROXY_HYPIXEL_API_KEY", "HYPROXY_LISTEN_PORT", "HYPROXY_TRANSPORT"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
    reset_settings()
    yield
    reset_settings()


class TestSettings:
    """Tests for environment-driven settings."""

    def test_defaults(self) -> None:
        settings = Settings()
        assert settings.listen_port == 25565
        assert settings.target_host == "mc.hypixel.net"
        assert settings.config_path == Path("config.yml")

    def test_bare_api_key_variable(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that HYPIXEL_API_KEY is accepted without the prefix."""
        monkeypatch.setenv("HYPIXEL_API_KEY", "abc-123")
        assert Settings().hypixel_api_key == "abc-123"

    def test_prefixed_variables(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("HYPROXY_LISTEN_PORT", "25570")
        monkeypatch.setenv("HYPROXY_TRANSPORT", "pkg.mod:factory")
        settings = Settings()
        assert settings.listen_port == 25570
        assert settings.transport == "pkg.mod:factory"

    def test_invalid_log_level(self) -> None:
        with pytest.raises(ValueError):
            Settings(log_level="LOUD")

    def test_validate_reports_missing_pieces(self) -> None:
        errors = Settings().validate()
        assert len(errors) == 3
        assert any("API key" in e for e in errors)
        assert any("Config file not found" in e for e in errors)
        assert any("transport" in e for e in errors)

    def test_validate_passes(self, tmp_path: Path) -> None:
        config = tmp_path / "overlay.yml"
        config.write_text("{}\n")
        settings = Settings(hypixel_api_key="k", config_path=config, transport="a:b")
        assert settings.validate() == []

    def test_get_settings_cached(self) -> None:
        assert get_settings() is get_settings()


class TestOverlayConfig:
    """Tests for loading the overlay document."""

    def test_minimal_document_gets_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yml"
        path.write_text("check_delay: 250\nthreat_benchmarks:\n  stars: 500\n")

        tree = load_overlay_config(path)

        assert tree["check_delay"] == 250
        assert tree["threat_benchmarks"] == {"fkdr": 3.0, "stars": 500}
        assert tree["commands"]["statcheck"] == "sc"

    def test_version_kept_as_text(self, tmp_path: Path) -> None:
        """Test that a YAML float version is kept as a string."""
        path = tmp_path / "config.yml"
        path.write_text("version: 1.20\n")
        assert load_overlay_config(path)["version"] == "1.2"

    def test_tag_stripped(self) -> None:
        assert OverlayConfig(tag="  HP  ").tag == "HP"

    def test_prefix_must_be_single_character(self) -> None:
        with pytest.raises(ValueError):
            OverlayConfig.model_validate({"commands": {"prefix": "!!"}})

    def test_command_keywords_must_be_distinct(self) -> None:
        with pytest.raises(ValueError, match="distinct"):
            OverlayConfig.model_validate({"commands": {"statcheck": "x", "stat_filter": "X"}})

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigLoadError, match="not found"):
            load_overlay_config(tmp_path / "missing.yml")

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yml"
        path.write_text("check_delay: [unclosed\n")
        with pytest.raises(ConfigLoadError, match="not valid YAML"):
            load_overlay_config(path)

    def test_not_a_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigLoadError, match="mapping"):
            load_overlay_config(path)

    def test_wrong_type(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yml"
        path.write_text("threats_only: maybe\n")
        with pytest.raises(ConfigLoadError, match="Invalid config"):
            load_overlay_config(path)

    def test_unknown_keys_kept(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yml"
        path.write_text("custom_flag: true\n")
        assert load_overlay_config(path)["custom_flag"] is True
