"""Append-only JSONL log of plugin lifecycle events for operators.

Individual plugin failures are invisible to end users; this log (next to
the regular ``logging`` output) is where operators find them.  Each record
carries a UTC timestamp, the session that wrote it, and the event fields
supplied by the registry or host, typically ``event`` and ``plugin``.

Example
-------
>>> events = PluginEventLog(Path("/tmp/plugin_events.jsonl"))
>>> events.log({"event": "plugin_load_failed", "plugin": "calendar"})
>>> events.recent(1, plugin="calendar")[0]["event"]
'plugin_load_failed'
"""
from __future__ import annotations

import json
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator


class PluginEventLog:
    """Append-only JSONL plugin event log.

    Parameters
    ----------
    log_path:
        Path to the ``.jsonl`` file; parent directories are created on
        first write.
    session_id:
        Identifier stamped on every record written by this instance
        (default: a random UUID).
    """

    def __init__(self, log_path: Path, session_id: str | None = None) -> None:
        self._log_path = log_path
        self._session_id = session_id or str(uuid.uuid4())
        self._lock = threading.Lock()

    def log(self, entry: dict[str, object]) -> None:
        """Append *entry*, stamped with ``timestamp`` and ``session_id``."""
        record: dict[str, object] = {
            "timestamp": datetime.now(tz=timezone.utc).isoformat(),
            "session_id": self._session_id,
            **entry,
        }
        with self._lock:
            self._log_path.parent.mkdir(parents=True, exist_ok=True)
            with self._log_path.open("a", encoding="utf-8") as fh:
                fh.write(json.dumps(record, default=str) + "\n")

    def recent(
        self,
        n: int,
        *,
        event: str | None = None,
        plugin: str | None = None,
    ) -> list[dict[str, object]]:
        """Return the ``n`` most recent records matching the filters, oldest first."""
        if n <= 0:
            return []
        return list(self._matching(event, plugin))[-n:]

    def count(self, *, event: str | None = None, plugin: str | None = None) -> int:
        """Return the number of records matching the filters."""
        return sum(1 for _ in self._matching(event, plugin))

    def _matching(self, event: str | None, plugin: str | None) -> Iterator[dict[str, object]]:
        for record in self._records():
            if event is not None and record.get("event") != event:
                continue
            if plugin is not None and record.get("plugin") != plugin:
                continue
            yield record

    def _records(self) -> Iterator[dict[str, object]]:
        if not self._log_path.exists():
            return
        with self._lock:
            with self._log_path.open("r", encoding="utf-8") as fh:
                lines = fh.readlines()
        for line in lines:
            line = line.strip()
            if not line:
                continue
            try:
                yield json.loads(line)
            except json.JSONDecodeError:
                continue  # torn write
