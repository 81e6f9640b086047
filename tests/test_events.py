"""Tests for PluginEventLog."""
from __future__ import annotations

import json
from pathlib import Path

import pytest

from plugin_composer.events import PluginEventLog


@pytest.fixture()
def log_path(tmp_path: Path) -> Path:
    return tmp_path / "events" / "plugin_events.jsonl"


@pytest.fixture()
def events(log_path: Path) -> PluginEventLog:
    return PluginEventLog(log_path, session_id="session-1")


# ---------------------------------------------------------------------------
# Writing
# ---------------------------------------------------------------------------


class TestLog:
    def test_creates_parent_directories(self, events: PluginEventLog, log_path: Path) -> None:
        events.log({"event": "plugin_loaded", "plugin": "analytics"})
        assert log_path.exists()

    def test_record_fields(self, events: PluginEventLog, log_path: Path) -> None:
        events.log({"event": "plugin_load_failed", "plugin": "calendar"})
        record = json.loads(log_path.read_text(encoding="utf-8").strip())
        assert record["event"] == "plugin_load_failed"
        assert record["session_id"] == "session-1"
        assert "T" in record["timestamp"]

    def test_generated_session_id(self, log_path: Path) -> None:
        PluginEventLog(log_path).log({"event": "host_stopped"})
        record = json.loads(log_path.read_text(encoding="utf-8").strip())
        assert record["session_id"]

    def test_non_json_values_stringified(self, events: PluginEventLog) -> None:
        events.log({"event": "x", "path": Path("/tmp/a")})
        assert events.recent(1)[0]["path"] == "/tmp/a"


# ---------------------------------------------------------------------------
# Reading
# ---------------------------------------------------------------------------


class TestRecent:
    @pytest.fixture()
    def populated(self, events: PluginEventLog) -> PluginEventLog:
        events.log({"event": "plugin_loaded", "plugin": "analytics"})
        events.log({"event": "plugin_load_failed", "plugin": "calendar"})
        events.log({"event": "plugin_loaded", "plugin": "uploads"})
        events.log({"event": "plugin_uninstalled", "plugin": "analytics"})
        return events

    def test_missing_file_is_empty(self, events: PluginEventLog) -> None:
        assert events.recent(10) == []
        assert events.count() == 0

    def test_most_recent_oldest_first(self, events: PluginEventLog) -> None:
        for i in range(5):
            events.log({"event": "e", "i": i})
        assert [r["i"] for r in events.recent(2)] == [3, 4]
        assert len(events.recent(10)) == 5
        assert events.recent(0) == []

    def test_filter_by_event(self, populated: PluginEventLog) -> None:
        loaded = populated.recent(10, event="plugin_loaded")
        assert [r["plugin"] for r in loaded] == ["analytics", "uploads"]
        assert populated.count(event="plugin_loaded") == 2

    def test_filter_by_plugin(self, populated: PluginEventLog) -> None:
        history = populated.recent(10, plugin="analytics")
        assert [r["event"] for r in history] == ["plugin_loaded", "plugin_uninstalled"]

    def test_filters_combine(self, populated: PluginEventLog) -> None:
        assert populated.count(event="plugin_loaded", plugin="calendar") == 0
        assert populated.count() == 4

    def test_torn_lines_skipped(self, events: PluginEventLog, log_path: Path) -> None:
        events.log({"event": "a"})
        with log_path.open("a", encoding="utf-8") as fh:
            fh.write('{"event": "b", "trunc\n')
        events.log({"event": "c"})
        assert [r["event"] for r in events.recent(10)] == ["a", "c"]
        assert events.count() == 2
