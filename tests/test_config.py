"""Tests for ConfigLoader, HostConfig and the bundled default plugin set."""
from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from plugin_composer.config.config_loader import ConfigLoader, HostConfig
from plugin_composer.config.defaults import (
    DEFAULT_PLUGIN_CONFIG_YAML,
    default_catalog,
    default_plugin_config,
)


@pytest.fixture()
def loader() -> ConfigLoader:
    return ConfigLoader()


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------


class TestDefaults:
    def test_host_config_defaults(self, loader: ConfigLoader) -> None:
        config = loader.defaults()
        assert config.sources.remote_url is None
        assert config.sources.use_bundled_default is True
        assert config.sources.catalog_url is None
        assert config.sources.catalog_path is None
        assert config.loader.package == "plugins"
        assert config.loader.entry_point == "register"
        assert config.loader.entry_point_group == "plugin_composer.plugins"
        assert config.store.path == Path("installed_plugins.json")
        assert config.store.key == "installedPlugins"
        assert config.routes.strict_collisions is True
        assert config.routes.login_path == "/login"
        assert config.events.log_path is None

    def test_bundled_plugin_config(self) -> None:
        config = default_plugin_config()
        assert config["enabled"] == ["analytics", "calendar", "canvas-display", "uploads"]
        assert config["settings"]["calendar"] == {"defaultView": "month"}

    def test_bundled_config_is_fresh_copy(self) -> None:
        first = default_plugin_config()
        first["enabled"].append("rogue")  # type: ignore[union-attr]
        assert "rogue" not in default_plugin_config()["enabled"]  # type: ignore[operator]

    def test_bundled_catalog(self) -> None:
        catalog = default_catalog()
        assert [entry["id"] for entry in catalog["available"]] == [  # type: ignore[index]
            "analytics",
            "calendar",
            "canvas-display",
            "uploads",
        ]

    def test_bundled_yaml_documented(self) -> None:
        assert DEFAULT_PLUGIN_CONFIG_YAML.startswith("# Default plugin set")


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


class TestLoad:
    def test_load_file(self, loader: ConfigLoader, tmp_path: Path) -> None:
        path = tmp_path / "plugin_host.yaml"
        path.write_text(
            "version: '1'\n"
            "sources:\n"
            "  remote_url: https://config.example.com/api/plugins/config\n"
            "  remote_timeout_seconds: 2\n"
            "loader:\n"
            "  package: acme.plugins\n"
            "store:\n"
            "  path: null\n"
            "routes:\n"
            "  strict_collisions: false\n"
        )
        config = loader.load(path)
        assert config.sources.remote_url == "https://config.example.com/api/plugins/config"
        assert config.sources.remote_timeout_seconds == 2.0
        assert config.loader.package == "acme.plugins"
        assert config.store.path is None
        assert config.routes.strict_collisions is False

    def test_missing_file(self, loader: ConfigLoader, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError, match="not found"):
            loader.load(tmp_path / "absent.yaml")

    def test_empty_file_uses_defaults(self, loader: ConfigLoader, tmp_path: Path) -> None:
        path = tmp_path / "plugin_host.yaml"
        path.write_text("")
        assert loader.load(path) == HostConfig()

    def test_unknown_keys_allowed(self, loader: ConfigLoader) -> None:
        config = loader.load_string("future_section:\n  enabled: true\n")
        assert config.loader.package == "plugins"

    def test_invalid_entry_point(self, loader: ConfigLoader) -> None:
        with pytest.raises(ValidationError, match="identifier"):
            loader.load_string("loader:\n  entry_point: 'not valid'\n")

    def test_invalid_login_path(self, loader: ConfigLoader) -> None:
        with pytest.raises(ValidationError, match="login_path"):
            loader.load_string("routes:\n  login_path: login\n")

    def test_non_positive_timeout(self, loader: ConfigLoader) -> None:
        with pytest.raises(ValidationError):
            loader.load_string("sources:\n  remote_timeout_seconds: 0\n")
