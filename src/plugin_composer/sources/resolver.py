"""Plugin source resolution.

Determines which plugins should be requested and with which settings.
Sources are tried in order:

1. the remote configuration endpoint (when a URL is configured),
2. a local YAML/JSON configuration file (when a path is configured),
3. the bundled default configuration.

A failing source is logged and skipped; only the absence of every source
is an error.

Example
-------
>>> resolver = PluginSourceResolver(remote_url="https://example.com/api/plugins/config")
>>> sources = asyncio.run(resolver.resolve_sources())
>>> sources.enabled
('analytics', 'calendar', 'canvas-display', 'uploads')
"""
from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

from plugin_composer.config.config_loader import SourcesConfig
from plugin_composer.config.defaults import default_plugin_config
from plugin_composer.descriptor import PluginRequest
from plugin_composer.errors import ConfigFetchError, PluginSourceError
from plugin_composer.sources.fetch import Fetcher, urllib_fetch
from plugin_composer.sources.payload import parse_plugin_config

logger = logging.getLogger(__name__)

_BUNDLED_SOURCE = "<bundled default>"


async def fetch_document(fetch: Fetcher, url: str, timeout_seconds: float) -> object:
    """Fetch and decode a JSON document.

    Raises
    ------
    ConfigFetchError
        On any fetch failure, timeout, or undecodable body.
    """
    try:
        body = await fetch(url, timeout_seconds)
    except asyncio.TimeoutError as exc:
        raise ConfigFetchError(url, f"timed out after {timeout_seconds}s") from exc
    except Exception as exc:
        raise ConfigFetchError(url, str(exc) or type(exc).__name__) from exc
    try:
        return json.loads(body)
    except (ValueError, UnicodeDecodeError) as exc:
        raise ConfigFetchError(url, f"response is not valid JSON: {exc}") from exc


def read_document(path: Path) -> object:
    """Read a local YAML (or JSON) document, raising :class:`ConfigFetchError`."""
    if not path.exists():
        raise ConfigFetchError(str(path), "file does not exist")
    try:
        with path.open("r", encoding="utf-8") as fh:
            return yaml.safe_load(fh)
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigFetchError(str(path), str(exc)) from exc


@dataclass(frozen=True)
class ResolvedSources:
    """The effective set of plugin requests.

    Attributes
    ----------
    requests:
        Plugin requests in configuration order.
    origin:
        ``"remote"``, ``"local"`` or ``"default"``.
    fallback_reasons:
        Messages of the sources that were skipped before this one.
        Excluded from equality.
    """

    requests: tuple[PluginRequest, ...]
    origin: str
    fallback_reasons: tuple[str, ...] = field(default=(), compare=False)

    @property
    def enabled(self) -> tuple[str, ...]:
        return tuple(request.id for request in self.requests)

    @property
    def settings(self) -> dict[str, dict[str, Any]]:
        return {request.id: dict(request.settings) for request in self.requests}


class PluginSourceResolver:
    """Resolves the effective plugin set from remote, local or bundled config.

    Parameters
    ----------
    remote_url:
        Remote configuration endpoint, or ``None`` to skip it.
    local_path:
        Local YAML/JSON configuration file, or ``None`` to skip it.
    default_config:
        Fallback configuration payload.  When ``None`` and
        *use_bundled_default* is true, the bundled default is used.
    use_bundled_default:
        Whether the bundled default may be used as the last resort.
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
        default_config: Mapping[str, object] | None = None,
        use_bundled_default: bool = True,
        timeout_seconds: float = 5.0,
        fetcher: Fetcher | None = None,
    ) -> None:
        self._remote_url = remote_url
        self._local_path = local_path
        self._default_config = default_config
        self._use_bundled_default = use_bundled_default
        self._timeout = timeout_seconds
        self._fetch = fetcher or urllib_fetch

    @classmethod
    def from_config(
        cls,
        config: SourcesConfig,
        fetcher: Fetcher | None = None,
    ) -> PluginSourceResolver:
        """Build a resolver from the ``sources`` section of a host config."""
        return cls(
            remote_url=config.remote_url,
            local_path=config.local_path,
            use_bundled_default=config.use_bundled_default,
            timeout_seconds=config.remote_timeout_seconds,
            fetcher=fetcher,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def resolve_sources(self) -> ResolvedSources:
        """Return the effective plugin requests.

        Raises
        ------
        PluginSourceError
            When no source, including the default, yields a configuration.
        """
        reasons: list[str] = []

        if self._remote_url:
            try:
                requests = await self._fetch_remote(self._remote_url)
                return ResolvedSources(requests, "remote", tuple(reasons))
            except ConfigFetchError as exc:
                logger.warning("%s; falling back to the next plugin source.", exc)
                reasons.append(str(exc))

        if self._local_path is not None:
            try:
                requests = self._read_local(self._local_path)
                return ResolvedSources(requests, "local", tuple(reasons))
            except ConfigFetchError as exc:
                logger.warning("%s; falling back to the next plugin source.", exc)
                reasons.append(str(exc))

        default = self._default_payload()
        if default is not None:
            try:
                requests = parse_plugin_config(default, _BUNDLED_SOURCE)
            except ConfigFetchError as exc:
                reasons.append(str(exc))
                raise PluginSourceError(
                    "Default plugin configuration is invalid: " + "; ".join(reasons)
                ) from exc
            return ResolvedSources(requests, "default", tuple(reasons))

        raise PluginSourceError(
            "No plugin configuration could be determined"
            + (": " + "; ".join(reasons) if reasons else ".")
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _fetch_remote(self, url: str) -> tuple[PluginRequest, ...]:
        raw = await fetch_document(self._fetch, url, self._timeout)
        return parse_plugin_config(raw, url)

    def _read_local(self, path: Path) -> tuple[PluginRequest, ...]:
        return parse_plugin_config(read_document(path), str(path))

    def _default_payload(self) -> Mapping[str, object] | None:
        if self._default_config is not None:
            return self._default_config
        if self._use_bundled_default:
            return default_plugin_config()
        return None
