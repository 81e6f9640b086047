"""PluginHost — main entry point wiring the plugin subsystems together.

The host owns one registry and the consumers derived from it, and exposes
a small lifecycle API:

- ``start()``       — resolve sources, load plugins concurrently, activate them
- ``install_plugin(id, version)`` / ``uninstall_plugin(id)``
- ``available_plugins()`` / ``install_from_catalog(id)`` for the plugin catalog
- ``resolve_route(path, principal)`` and ``tree`` for the application
- ``shutdown()``    — cancel in-flight loads and clean everything up
- ``get_status()``  — a health summary

Example
-------
>>> host = PluginHost.from_config_file(Path("plugin_host.yaml"),
...                                    core_routes=[RouteSpec("/", "Home", exact=True)])
>>> report = asyncio.run(host.start())
>>> host.state
<HostState.READY: 'ready'>
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Mapping, Sequence

from plugin_composer.composition.permissions import PermissionChecker, Principal
from plugin_composer.composition.routes import RouteAggregator, RouteResolution, RouteTable
from plugin_composer.composition.scope import ScopeComposer
from plugin_composer.config.config_loader import ConfigLoader, HostConfig
from plugin_composer.descriptor import PluginRequest, RouteSpec
from plugin_composer.errors import (
    DuplicatePluginError,
    PluginCleanupError,
    PluginComposerError,
    PluginInitError,
    PluginNotInCatalogError,
    PluginSourceError,
    RegistryClosedError,
    RouteCollisionError,
)
from plugin_composer.events import PluginEventLog
from plugin_composer.loading.loader import LoadOutcome, PluginModuleLoader
from plugin_composer.registry.registry import PluginRegistry
from plugin_composer.registry.store import InstalledPluginStore, JsonFileStore, MemoryStore
from plugin_composer.sources.catalog import CatalogListing, CatalogResolver
from plugin_composer.sources.fetch import Fetcher
from plugin_composer.sources.resolver import PluginSourceResolver, ResolvedSources

logger = logging.getLogger(__name__)


class HostState(str, Enum):
    """Coarse host state shown to end users."""

    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"
    STOPPED = "stopped"


@dataclass
class StartupReport:
    """What happened during :meth:`PluginHost.start`.

    Attributes
    ----------
    sources:
        The resolved plugin sources (``None`` if start was cancelled first).
    outcome:
        Settled load results.
    activated:
        Ids of plugins that were registered and initialized, in order.
    activation_failures:
        Ids of loaded plugins that could not be activated, with the reason.
    """

    sources: ResolvedSources | None = None
    outcome: LoadOutcome = field(default_factory=LoadOutcome)
    activated: list[str] = field(default_factory=list)
    activation_failures: dict[str, PluginComposerError] = field(default_factory=dict)

    @property
    def failed_ids(self) -> list[str]:
        return [*self.outcome.failed, *self.activation_failures]


class PluginHost:
    """Composes plugins into an application at runtime.

    Parameters
    ----------
    config:
        Host configuration (default: all defaults).
    core_routes:
        Application routes listed before plugin routes.
    tree:
        Application tree wrapped by plugin scope providers.
    checker:
        Permission-checking collaborator for gated routes.
    resolver, catalog, loader, store, event_log:
        Optional overrides of the components built from *config*.
    fetcher:
        Async fetch callable used by the default resolver and loader.
    """

    def __init__(
        self,
        config: HostConfig | None = None,
        *,
        core_routes: Sequence[RouteSpec | Mapping[str, Any]] = (),
        tree: Any = None,
        checker: PermissionChecker | None = None,
        resolver: PluginSourceResolver | None = None,
        catalog: CatalogResolver | None = None,
        loader: PluginModuleLoader | None = None,
        store: InstalledPluginStore | None = None,
        event_log: PluginEventLog | None = None,
        fetcher: Fetcher | None = None,
    ) -> None:
        self._config = config or HostConfig()
        self._resolver = resolver or PluginSourceResolver.from_config(
            self._config.sources, fetcher=fetcher
        )
        self._catalog = catalog or CatalogResolver.from_config(self._config.sources, fetcher=fetcher)
        self._loader = loader or PluginModuleLoader.from_config(self._config.loader, fetcher=fetcher)

        if store is None:
            store_path = self._config.store.path
            store = (
                JsonFileStore(store_path, key=self._config.store.key)
                if store_path is not None
                else MemoryStore()
            )
        if event_log is None and self._config.events.log_path is not None:
            event_log = PluginEventLog(self._config.events.log_path)
        self._event_log = event_log

        self._registry = PluginRegistry(
            store,
            self._loader,
            event_log=event_log,
            core_routes=core_routes,
            strict_routes=self._config.routes.strict_collisions,
        )
        self._scopes = ScopeComposer(self._registry, tree)
        self._routes = RouteAggregator(
            self._registry,
            core_routes,
            checker,
            strict=self._config.routes.strict_collisions,
            login_path=self._config.routes.login_path,
        )

        self._state = HostState.IDLE
        self._error: PluginSourceError | None = None
        self._load_task: asyncio.Task[StartupReport] | None = None
        self._stopping = False
        self._report: StartupReport | None = None

    @classmethod
    def from_config_file(cls, path: str | Path, **kwargs: Any) -> PluginHost:
        """Build a host from a ``plugin_host.yaml`` file.

        Raises
        ------
        FileNotFoundError:
            When the config file does not exist.
        """
        config = ConfigLoader().load(Path(path))
        logger.info("PluginHost loaded config from %s", path)
        return cls(config, **kwargs)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> StartupReport:
        """Resolve sources, load every plugin concurrently and activate them.

        Plugins are activated in request order once all loads settled:
        configured plugins first, then installed plugins not already
        configured.  Per-plugin failures are logged and reported, never
        raised.

        Raises
        ------
        PluginSourceError
            When no plugin configuration at all could be determined; the
            host is left in :attr:`HostState.ERROR`.
        RuntimeError
            When the host was already started.
        """
        if self._state is not HostState.IDLE:
            raise RuntimeError(f"PluginHost cannot start from state '{self._state.value}'.")
        self._state = HostState.LOADING
        self._report = StartupReport()
        self._load_task = asyncio.ensure_future(self._load_pass(self._report))
        try:
            report = await self._load_task
        except asyncio.CancelledError:
            if not self._stopping:
                raise
            logger.info("Plugin loading cancelled by shutdown.")
            return self._report
        except PluginSourceError as exc:
            self._state = HostState.ERROR
            self._error = exc
            logger.error("Plugin host failed to start: %s", exc)
            self._emit({"event": "host_start_failed", "error": str(exc)})
            raise
        finally:
            self._load_task = None

        if self._state is HostState.LOADING:
            self._state = HostState.READY
        return report

    async def shutdown(self) -> list[PluginCleanupError]:
        """Cancel in-flight loading and clean up every registered plugin.

        Returns
        -------
        list[PluginCleanupError]
            Cleanup failures, already logged.
        """
        self._stopping = True
        task = self._load_task
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        errors = await self._registry.teardown()
        self._state = HostState.STOPPED
        self._emit({"event": "host_stopped", "cleanup_errors": len(errors)})
        return errors

    async def __aenter__(self) -> PluginHost:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.shutdown()

    # ------------------------------------------------------------------
    # Install / uninstall
    # ------------------------------------------------------------------

    async def install_plugin(
        self,
        plugin_id: str,
        version: str,
        settings: Mapping[str, Any] | None = None,
    ) -> bool:
        """Install a plugin; see :meth:`PluginRegistry.install_plugin`."""
        return await self._registry.install_plugin(plugin_id, version, settings)

    async def uninstall_plugin(self, plugin_id: str) -> bool:
        """Uninstall a plugin; see :meth:`PluginRegistry.uninstall_plugin`."""
        return await self._registry.uninstall_plugin(plugin_id)

    async def available_plugins(self) -> list[CatalogListing]:
        """Return the plugin catalog, each entry marked with its install state."""
        catalog = await self._catalog.load_catalog()
        return catalog.listing(self._registry.installed_records())

    async def install_from_catalog(
        self,
        plugin_id: str,
        settings: Mapping[str, Any] | None = None,
    ) -> bool:
        """Install *plugin_id* at the version the catalog advertises.

        Raises
        ------
        PluginNotInCatalogError
            When the catalog does not list *plugin_id*; nothing is written.
        """
        catalog = await self._catalog.load_catalog()
        entry = catalog.get(plugin_id)
        if entry is None:
            raise PluginNotInCatalogError(plugin_id, catalog.origin)
        return await self._registry.install_plugin(entry.id, entry.version, settings)

    # ------------------------------------------------------------------
    # Consumers
    # ------------------------------------------------------------------

    def resolve_route(self, path: str, principal: Principal | None = None) -> RouteResolution:
        """Resolve *path* against the current route table."""
        return self._routes.resolve(path, principal)

    @property
    def tree(self) -> Any:
        """The application tree wrapped in every active scope provider."""
        return self._scopes.tree

    @property
    def route_table(self) -> RouteTable:
        return self._routes.table

    def get_status(self) -> dict[str, object]:
        """Return a plugin host health summary."""
        snapshot = self._registry.snapshot
        report = self._report
        return {
            "state": self._state.value,
            "error": str(self._error) if self._error else None,
            "snapshot_version": snapshot.version,
            "plugins": list(snapshot.ids),
            "installed": [record.to_dict() for record in self._registry.installed_records()],
            "sources_origin": report.sources.origin if report and report.sources else None,
            "failed": report.failed_ids if report else [],
            "routes": len(self._routes.table),
        }

    # ------------------------------------------------------------------
    # Properties for direct subsystem access
    # ------------------------------------------------------------------

    @property
    def state(self) -> HostState:
        return self._state

    @property
    def error(self) -> PluginSourceError | None:
        """The fatal start-up error, if any."""
        return self._error

    @property
    def registry(self) -> PluginRegistry:
        return self._registry

    @property
    def routes(self) -> RouteAggregator:
        return self._routes

    @property
    def scopes(self) -> ScopeComposer:
        return self._scopes

    @property
    def resolver(self) -> PluginSourceResolver:
        return self._resolver

    @property
    def catalog(self) -> CatalogResolver:
        return self._catalog

    @property
    def event_log(self) -> PluginEventLog | None:
        return self._event_log

    @property
    def config(self) -> HostConfig:
        return self._config

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _load_pass(self, report: StartupReport) -> StartupReport:
        sources = await self._resolver.resolve_sources()
        report.sources = sources
        for reason in sources.fallback_reasons:
            self._emit({"event": "config_fallback", "reason": reason})
        logger.info("Plugin sources resolved from %s: %s", sources.origin, list(sources.enabled))

        requests: list[PluginRequest] = list(sources.requests)
        requested = {request.id for request in requests}
        installed = self._registry.installed_requests(sources.settings)
        installed_versions = {record.id: record.version for record in self._registry.installed_records()}
        for request in installed:
            if request.id not in requested:
                requests.append(request)
                requested.add(request.id)

        outcome = await self._loader.load_all(requests)
        report.outcome = outcome
        for plugin_id, error in outcome.failed.items():
            self._emit({"event": "plugin_load_failed", "plugin": plugin_id, "error": str(error)})

        for descriptor in outcome.descriptors:
            expected = installed_versions.get(descriptor.id)
            if expected and expected != descriptor.version:
                logger.warning(
                    "Plugin '%s' version mismatch: loaded %s, installed %s.",
                    descriptor.id,
                    descriptor.version,
                    expected,
                )
            try:
                await self._registry.lifecycle.activate(descriptor)
            except RegistryClosedError:
                logger.info("Registry closed; skipping activation of remaining plugins.")
                break
            except (DuplicatePluginError, RouteCollisionError, PluginInitError) as exc:
                logger.error("Plugin '%s' not activated: %s", descriptor.id, exc)
                report.activation_failures[descriptor.id] = exc
                continue
            report.activated.append(descriptor.id)
            self._emit(
                {"event": "plugin_loaded", "plugin": descriptor.id, "version": descriptor.version}
            )
        return report

    def _emit(self, entry: dict[str, object]) -> None:
        if self._event_log is not None:
            self._event_log.log(entry)
