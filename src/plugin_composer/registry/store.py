"""Durable storage of installed-plugin records.

The store is a key → serialized-list map: one key holds the JSON list of
``{"id", "version"}`` records.  It is read once at start-up and written on
every install and uninstall.

Example
-------
>>> store = JsonFileStore(Path("installed_plugins.json"))
>>> store.save([InstalledPluginRecord("analytics", "1.0.0")])
>>> store.load()
[InstalledPluginRecord(id='analytics', version='1.0.0')]
"""
from __future__ import annotations

import json
import logging
import os
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Sequence

from plugin_composer.descriptor import InstalledPluginRecord

logger = logging.getLogger(__name__)


class InstalledPluginStore(ABC):
    """Abstract persistence for :class:`InstalledPluginRecord` lists."""

    @abstractmethod
    def load(self) -> list[InstalledPluginRecord]:
        """Return all persisted records in stored order."""

    @abstractmethod
    def save(self, records: Sequence[InstalledPluginRecord]) -> None:
        """Replace the persisted records with *records*."""


class MemoryStore(InstalledPluginStore):
    """In-process store; records do not survive the process."""

    def __init__(self, records: Sequence[InstalledPluginRecord] = ()) -> None:
        self._records: list[InstalledPluginRecord] = list(records)
        self._lock = threading.Lock()

    def load(self) -> list[InstalledPluginRecord]:
        with self._lock:
            return list(self._records)

    def save(self, records: Sequence[InstalledPluginRecord]) -> None:
        with self._lock:
            self._records = list(records)


class JsonFileStore(InstalledPluginStore):
    """JSON file store keeping the record list under a single key.

    Other keys in the same file are preserved on write.  Writes go to a
    temporary file that then replaces the original, so a crash never
    leaves a half-written file behind.

    Parameters
    ----------
    path:
        Path of the JSON file.  Parent directories are created on first write.
    key:
        Key under which the record list is stored.
    """

    def __init__(self, path: Path, key: str = "installedPlugins") -> None:
        self._path = path
        self._key = key
        self._lock = threading.Lock()

    def load(self) -> list[InstalledPluginRecord]:
        with self._lock:
            document = self._read_document()
        raw_records = document.get(self._key, [])
        if not isinstance(raw_records, list):
            logger.error(
                "Installed plugin store %s key '%s' is not a list; ignoring it.",
                self._path,
                self._key,
            )
            return []
        records: list[InstalledPluginRecord] = []
        for raw in raw_records:
            try:
                records.append(InstalledPluginRecord.from_dict(raw))
            except (KeyError, TypeError):
                logger.warning("Skipping malformed installed plugin record: %r", raw)
        return records

    def save(self, records: Sequence[InstalledPluginRecord]) -> None:
        with self._lock:
            document = self._read_document()
            document[self._key] = [record.to_dict() for record in records]
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self._path.with_name(self._path.name + ".tmp")
            with tmp_path.open("w", encoding="utf-8") as fh:
                json.dump(document, fh, indent=2)
            os.replace(tmp_path, self._path)

    def _read_document(self) -> dict[str, object]:
        if not self._path.exists():
            return {}
        try:
            with self._path.open("r", encoding="utf-8") as fh:
                document = json.load(fh)
        except (OSError, json.JSONDecodeError):
            logger.exception("Installed plugin store %s is unreadable; treating it as empty.", self._path)
            return {}
        return document if isinstance(document, dict) else {}

    @property
    def path(self) -> Path:
        """The filesystem path of the store file."""
        return self._path
