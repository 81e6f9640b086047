"""Tests for the plugin-composer CLI."""
from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest
from click.testing import CliRunner

from plugin_composer.cli.main import cli

ANALYTICS = """
def register():
    return {
        "id": "analytics",
        "name": "Analytics",
        "version": "1.0.0",
        "routes": [{"path": "/analytics", "component": "Dashboard", "exact": True,
                    "permissions": ["analytics.view"]}],
    }
"""

CALENDAR_BROKEN = """
raise ConnectionError("calendar bundle missing")
"""

UPLOADS = """
def register():
    return {"id": "uploads", "name": "Uploads", "version": "0.2.0"}
"""


CATALOG = """\
available:
  - id: analytics
    name: Analytics
    description: Track usage data
    version: 1.0.0
  - id: uploads
    name: Uploads
    description: Handle file uploads
    version: 0.2.0
"""


@pytest.fixture()
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture()
def make_config(
    tmp_path: Path, plugin_package: Callable[[dict[str, str]], str]
) -> Callable[[list[str]], str]:
    """Write a plugin_host.yaml with a local plugin list and catalog; returns its path."""
    package = plugin_package(
        {"analytics": ANALYTICS, "calendar": CALENDAR_BROKEN, "uploads": UPLOADS}
    )

    def _make(enabled: list[str]) -> str:
        plugins = tmp_path / "plugins.yaml"
        plugins.write_text("enabled: [" + ", ".join(enabled) + "]\n", encoding="utf-8")
        catalog = tmp_path / "catalog.yaml"
        catalog.write_text(CATALOG, encoding="utf-8")
        config = tmp_path / "plugin_host.yaml"
        config.write_text(
            "sources:\n"
            f"  local_path: {plugins}\n"
            "  use_bundled_default: false\n"
            f"  catalog_path: {catalog}\n"
            "loader:\n"
            f"  package: {package}\n"
            "store:\n"
            f"  path: {tmp_path / 'installed.json'}\n"
            "events:\n"
            f"  log_path: {tmp_path / 'events.jsonl'}\n",
            encoding="utf-8",
        )
        return str(config)

    return _make


# ---------------------------------------------------------------------------
# version / sources
# ---------------------------------------------------------------------------


class TestVersionAndSources:
    def test_version(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["version"])
        assert result.exit_code == 0
        assert "plugin-composer" in result.output

    def test_sources_local(self, runner: CliRunner, make_config: Callable[[list[str]], str]) -> None:
        config = make_config(["analytics", "uploads"])
        result = runner.invoke(cli, ["sources", "--config", config])
        assert result.exit_code == 0
        assert "analytics" in result.output
        assert "uploads" in result.output
        assert "local" in result.output

    def test_sources_unavailable_exits_nonzero(self, runner: CliRunner, tmp_path: Path) -> None:
        config = tmp_path / "plugin_host.yaml"
        config.write_text(
            f"sources:\n  local_path: {tmp_path / 'absent.yaml'}\n  use_bundled_default: false\n",
            encoding="utf-8",
        )
        result = runner.invoke(cli, ["sources", "-c", str(config)])
        assert result.exit_code == 1


# ---------------------------------------------------------------------------
# load / routes / events
# ---------------------------------------------------------------------------


class TestLoad:
    def test_load_all_good(self, runner: CliRunner, make_config: Callable[[list[str]], str]) -> None:
        result = runner.invoke(cli, ["load", "-c", make_config(["analytics", "uploads"])])
        assert result.exit_code == 0
        assert "analytics" in result.output
        assert "uploads" in result.output

    def test_load_with_failure_exits_nonzero(
        self, runner: CliRunner, make_config: Callable[[list[str]], str]
    ) -> None:
        result = runner.invoke(cli, ["load", "-c", make_config(["analytics", "calendar"])])
        assert result.exit_code == 1
        assert "calendar" in result.output

    def test_routes_resolve_denied(self, runner: CliRunner, make_config: Callable[[list[str]], str]) -> None:
        config = make_config(["analytics"])
        result = runner.invoke(cli, ["routes", "-c", config, "--resolve", "/analytics"])
        assert result.exit_code == 0
        assert "/analytics -> redirect" in result.output

    def test_routes_resolve_granted(self, runner: CliRunner, make_config: Callable[[list[str]], str]) -> None:
        config = make_config(["analytics"])
        result = runner.invoke(
            cli, ["routes", "-c", config, "--resolve", "/analytics", "--grant", "analytics.view"]
        )
        assert result.exit_code == 0
        assert "/analytics -> allowed" in result.output

    def test_events_after_load(self, runner: CliRunner, make_config: Callable[[list[str]], str]) -> None:
        config = make_config(["uploads"])
        runner.invoke(cli, ["load", "-c", config])
        result = runner.invoke(cli, ["events", "-c", config, "--last", "5"])
        assert result.exit_code == 0
        assert "plugin_loaded" in result.output

    def test_events_filtered(self, runner: CliRunner, make_config: Callable[[list[str]], str]) -> None:
        config = make_config(["analytics", "calendar", "uploads"])
        runner.invoke(cli, ["load", "-c", config])

        result = runner.invoke(cli, ["events", "-c", config, "--event", "plugin_loaded"])
        assert result.exit_code == 0
        assert "Matching events: 2" in result.output
        assert "calendar" not in result.output

        result = runner.invoke(cli, ["events", "-c", config, "--plugin", "calendar"])
        assert "Matching events: 1" in result.output

        result = runner.invoke(cli, ["events", "-c", config, "--plugin", "ghost"])
        assert "No plugin events found" in result.output


# ---------------------------------------------------------------------------
# install / installed / uninstall
# ---------------------------------------------------------------------------


class TestInstall:
    def test_install_list_uninstall(self, runner: CliRunner, make_config: Callable[[list[str]], str]) -> None:
        config = make_config([])

        result = runner.invoke(cli, ["install", "uploads", "0.2.0", "-c", config])
        assert result.exit_code == 0
        assert "Installed" in result.output

        result = runner.invoke(cli, ["installed", "-c", config])
        assert "uploads" in result.output
        assert "0.2.0" in result.output

        result = runner.invoke(cli, ["uninstall", "uploads", "-c", config])
        assert result.exit_code == 0

        result = runner.invoke(cli, ["installed", "-c", config])
        assert "No plugins installed" in result.output

    def test_install_unknown_plugin_fails(self, runner: CliRunner, make_config: Callable[[list[str]], str]) -> None:
        config = make_config([])
        result = runner.invoke(cli, ["install", "ghost", "1.0.0", "-c", config])
        assert result.exit_code == 1
        result = runner.invoke(cli, ["installed", "-c", config])
        assert "No plugins installed" in result.output

    def test_uninstall_unknown_fails(self, runner: CliRunner, make_config: Callable[[list[str]], str]) -> None:
        result = runner.invoke(cli, ["uninstall", "ghost", "-c", make_config([])])
        assert result.exit_code == 1

    def test_install_without_version_uses_catalog(
        self, runner: CliRunner, make_config: Callable[[list[str]], str]
    ) -> None:
        config = make_config([])
        result = runner.invoke(cli, ["install", "uploads", "-c", config])
        assert result.exit_code == 0
        assert "Installed" in result.output

        result = runner.invoke(cli, ["installed", "-c", config])
        assert "0.2.0" in result.output

    def test_install_unlisted_without_version_fails(
        self, runner: CliRunner, make_config: Callable[[list[str]], str]
    ) -> None:
        config = make_config([])
        result = runner.invoke(cli, ["install", "ghost", "-c", config])
        assert result.exit_code == 1
        result = runner.invoke(cli, ["installed", "-c", config])
        assert "No plugins installed" in result.output


# ---------------------------------------------------------------------------
# available
# ---------------------------------------------------------------------------


class TestAvailable:
    def test_lists_catalog(self, runner: CliRunner, make_config: Callable[[list[str]], str]) -> None:
        result = runner.invoke(cli, ["available", "-c", make_config([])])
        assert result.exit_code == 0
        assert "analytics" in result.output
        assert "uploads" in result.output
        assert "installed" not in result.output

    def test_marks_installed(self, runner: CliRunner, make_config: Callable[[list[str]], str]) -> None:
        config = make_config([])
        runner.invoke(cli, ["install", "uploads", "0.2.0", "-c", config])
        result = runner.invoke(cli, ["available", "-c", config])
        assert result.exit_code == 0
        assert "installed" in result.output

    def test_no_catalog(self, runner: CliRunner, tmp_path: Path) -> None:
        config = tmp_path / "plugin_host.yaml"
        config.write_text(
            "sources:\n"
            "  use_bundled_default: false\n"
            "store:\n"
            f"  path: {tmp_path / 'installed.json'}\n",
            encoding="utf-8",
        )
        result = runner.invoke(cli, ["available", "-c", str(config)])
        assert result.exit_code == 0
        assert "No plugin catalog available" in result.output
