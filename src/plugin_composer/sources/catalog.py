"""Catalog of plugins available for installation.

The catalog lists what an operator may install, independently of what is
enabled or already installed.  Catalog sources are tried in order:

1. the remote catalog endpoint (``sources.catalog_url``),
2. a local YAML/JSON catalog file (``sources.catalog_path``),
3. the bundled default catalog.

Payloads are either a bare list of entries or an ``available`` mapping:

.. code-block:: yaml

    available:
      - id: analytics
        name: Analytics
        description: Track usage data
        version: 1.0.0

Example
-------
>>> catalog = asyncio.run(CatalogResolver().load_catalog())
>>> [listing.status for listing in catalog.listing(registry.installed_records())]
['installed', 'available', 'available', 'available']
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, Mapping

from pydantic import BaseModel, Field, ValidationError, field_validator

from plugin_composer.config.config_loader import SourcesConfig
from plugin_composer.config.defaults import default_catalog
from plugin_composer.descriptor import InstalledPluginRecord, is_semver
from plugin_composer.errors import ConfigFetchError
from plugin_composer.sources.fetch import Fetcher, urllib_fetch
from plugin_composer.sources.resolver import fetch_document, read_document

logger = logging.getLogger(__name__)

_BUNDLED_SOURCE = "<bundled catalog>"


# ---------------------------------------------------------------------------
# Payload models
# ---------------------------------------------------------------------------


class CatalogEntry(BaseModel):
    """One installable plugin as advertised by the catalog."""

    model_config = {"extra": "allow", "frozen": True}

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    description: str = Field(default="")
    version: str

    @field_validator("description", mode="before")
    @classmethod
    def coerce_description(cls, value: object) -> object:
        return "" if value is None else value

    @field_validator("version", mode="before")
    @classmethod
    def validate_version(cls, value: object) -> str:
        text = str(value)
        if not is_semver(text):
            raise ValueError(f"version {text!r} is not a semantic version")
        return text


class CatalogPayload(BaseModel):
    """``{available: [{id, name, description, version}]}``"""

    model_config = {"extra": "allow"}

    available: list[CatalogEntry]


def parse_catalog(raw: object, source: str) -> tuple[CatalogEntry, ...]:
    """Validate a catalog payload.

    Duplicate ids keep their first occurrence.

    Raises
    ------
    ConfigFetchError
        If the payload is not a list of entries or an ``available`` mapping.
    """
    if isinstance(raw, list):
        raw = {"available": raw}
    if not isinstance(raw, dict):
        raise ConfigFetchError(source, f"expected a list or an object, got {type(raw).__name__}")
    try:
        payload = CatalogPayload.model_validate(raw)
    except ValidationError as exc:
        raise ConfigFetchError(source, f"malformed catalog: {exc.error_count()} error(s)") from exc

    seen: set[str] = set()
    unique: list[CatalogEntry] = []
    for entry in payload.available:
        if entry.id in seen:
            logger.warning("Catalog %s lists '%s' more than once; keeping the first.", source, entry.id)
            continue
        seen.add(entry.id)
        unique.append(entry)
    return tuple(unique)


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CatalogListing:
    """A catalog entry joined with the installed record for the same id."""

    entry: CatalogEntry
    installed_version: str | None = None

    @property
    def installed(self) -> bool:
        return self.installed_version is not None

    @property
    def status(self) -> str:
        """``"available"``, ``"installed"`` or ``"update available"``."""
        if self.installed_version is None:
            return "available"
        if self.installed_version != self.entry.version:
            return "update available"
        return "installed"


@dataclass(frozen=True)
class PluginCatalog:
    """Installable plugins in catalog order.

    Attributes
    ----------
    entries:
        Catalog entries.
    origin:
        ``"remote"``, ``"local"``, ``"default"`` or ``"none"``.
    """

    entries: tuple[CatalogEntry, ...] = ()
    origin: str = "none"

    def get(self, plugin_id: str) -> CatalogEntry | None:
        return next((entry for entry in self.entries if entry.id == plugin_id), None)

    def listing(self, records: Iterable[InstalledPluginRecord]) -> list[CatalogListing]:
        """Mark every entry with the version installed for it, if any."""
        installed = {record.id: record.version for record in records}
        return [CatalogListing(entry, installed.get(entry.id)) for entry in self.entries]

    def __contains__(self, plugin_id: object) -> bool:
        return any(entry.id == plugin_id for entry in self.entries)

    def __iter__(self) -> Iterator[CatalogEntry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)


class CatalogResolver:
    """Loads the plugin catalog from remote, local or bundled sources.

    A failing source is logged and skipped.  When nothing is available
    the catalog is empty; an unavailable catalog never stops the host.

    Parameters
    ----------
    remote_url:
        Remote catalog endpoint, or ``None`` to skip it.
    local_path:
        Local YAML/JSON catalog file, or ``None`` to skip it.
    default_catalog:
        Fallback catalog payload; the bundled catalog is used when ``None``
        and *use_bundled_default* is true.
    use_bundled_default:
        Whether the bundled catalog may be used as the last resort.
    timeout_seconds:
        Timeout for the remote fetch.
    fetcher:
        Async fetch callable; defaults to :func:`urllib_fetch`.
    """

    def __init__(
        self,
        remote_url: str | None = None,
        *,
        local_path: Path | None = None,
        default_catalog: Mapping[str, object] | list[object] | None = None,
        use_bundled_default: bool = True,
        timeout_seconds: float = 5.0,
        fetcher: Fetcher | None = None,
    ) -> None:
        self._remote_url = remote_url
        self._local_path = local_path
        self._default_catalog = default_catalog
        self._use_bundled_default = use_bundled_default
        self._timeout = timeout_seconds
        self._fetch = fetcher or urllib_fetch

    @classmethod
    def from_config(cls, config: SourcesConfig, fetcher: Fetcher | None = None) -> CatalogResolver:
        """Build a catalog resolver from the ``sources`` section of a host config."""
        return cls(
            remote_url=config.catalog_url,
            local_path=config.catalog_path,
            use_bundled_default=config.use_bundled_default,
            timeout_seconds=config.remote_timeout_seconds,
            fetcher=fetcher,
        )

    async def load_catalog(self) -> PluginCatalog:
        """Return the catalog from the first source that yields one."""
        if self._remote_url:
            try:
                raw = await fetch_document(self._fetch, self._remote_url, self._timeout)
                return PluginCatalog(parse_catalog(raw, self._remote_url), "remote")
            except ConfigFetchError as exc:
                logger.warning("%s; falling back to the next catalog source.", exc)

        if self._local_path is not None:
            try:
                raw = read_document(self._local_path)
                return PluginCatalog(parse_catalog(raw, str(self._local_path)), "local")
            except ConfigFetchError as exc:
                logger.warning("%s; falling back to the next catalog source.", exc)

        default = self._default_payload()
        if default is not None:
            try:
                return PluginCatalog(parse_catalog(default, _BUNDLED_SOURCE), "default")
            except ConfigFetchError as exc:
                logger.error("%s", exc)

        logger.warning("No plugin catalog available.")
        return PluginCatalog()

    def _default_payload(self) -> object | None:
        if self._default_catalog is not None:
            return self._default_catalog
        if self._use_bundled_default:
            return default_catalog()
        return None
