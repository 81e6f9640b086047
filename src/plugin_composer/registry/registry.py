"""Plugin registry: registered descriptors, scope providers and install records.

The registry is the only owner of mutable plugin state.  Consumers never
read its lists directly; they receive immutable
:class:`~plugin_composer.registry.snapshot.RegistrySnapshot` objects,
either from :attr:`PluginRegistry.snapshot` or by subscribing.

Install records are persisted through an
:class:`~plugin_composer.registry.store.InstalledPluginStore` and are the
source of truth for what should be loaded on the next start-up.

Example
-------
>>> registry = PluginRegistry(store=JsonFileStore(Path("installed.json")))
>>> asyncio.run(registry.install_plugin("analytics", "1.0.0"))
True
>>> registry.snapshot.ids
('analytics',)
"""
from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Iterator, Mapping, Sequence

from plugin_composer.composition.routes import find_route_collision
from plugin_composer.descriptor import (
    InstalledPluginRecord,
    PluginDescriptor,
    PluginRequest,
    RouteSpec,
    ScopeProvider,
)
from plugin_composer.errors import (
    DuplicatePluginError,
    InstallRollbackError,
    PluginCleanupError,
    PluginNotFoundError,
    RegistryClosedError,
)
from plugin_composer.events import PluginEventLog
from plugin_composer.loading.loader import PluginModuleLoader
from plugin_composer.registry.lifecycle import LifecycleCoordinator
from plugin_composer.registry.snapshot import RegistrySnapshot
from plugin_composer.registry.store import InstalledPluginStore, MemoryStore

logger = logging.getLogger(__name__)

Subscriber = Callable[[RegistrySnapshot], None]


class PluginRegistry:
    """Holds registered plugins and their persisted install records.

    Parameters
    ----------
    store:
        Persistence for installed-plugin records (default: in-memory).
    loader:
        Loader used by :meth:`install_plugin`.
    name:
        Human-readable registry name used in errors and logs.
    event_log:
        Optional operator event log.
    core_routes:
        Application routes no plugin may declare again.
    strict_routes:
        Reject a plugin whose route paths collide with a core route or with
        another registered plugin.  When ``False`` collisions are left to
        the route table, where the first route wins.
    """

    def __init__(
        self,
        store: InstalledPluginStore | None = None,
        loader: PluginModuleLoader | None = None,
        *,
        name: str = "default",
        event_log: PluginEventLog | None = None,
        core_routes: Sequence[RouteSpec | Mapping[str, Any]] = (),
        strict_routes: bool = True,
    ) -> None:
        self._name = name
        self._core_routes = tuple(core_routes)
        self._strict_routes = strict_routes
        self._store = store or MemoryStore()
        self._loader = loader or PluginModuleLoader()
        self._event_log = event_log
        self._lock = threading.RLock()

        self._plugins: list[PluginDescriptor] = []
        self._providers: list[tuple[str, ScopeProvider]] = []
        self._pending: set[str] = set()
        self._abandoned: set[str] = set()
        self._records: list[InstalledPluginRecord] = self._store.load()
        self._closed = False

        self._snapshot = RegistrySnapshot(version=0)
        self._subscribers: list[Subscriber] = []
        self._lifecycle = LifecycleCoordinator(self)

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register_plugin(self, descriptor: PluginDescriptor) -> RegistrySnapshot:
        """Register *descriptor* without running any lifecycle hook.

        Appends the descriptor and, if it has one, its scope provider.

        Returns
        -------
        RegistrySnapshot
            The snapshot published by this registration.

        Raises
        ------
        DuplicatePluginError
            When ``descriptor.id`` is already registered.
        RouteCollisionError
            When a route path is already taken (strict registries only).
        RegistryClosedError
            When the registry has been torn down.
        """
        return self._attach(descriptor, pending=False)

    async def install_plugin(
        self,
        plugin_id: str,
        version: str,
        settings: Mapping[str, Any] | None = None,
    ) -> bool:
        """Persist, load, register and initialize a plugin.

        The install record is written before anything else so that a crash
        mid-install leaves the intent on disk for the next start-up.  If
        loading, registration or ``initialize`` fails, the records are
        restored to their previous state.

        Returns
        -------
        bool
            ``True`` on success, ``False`` when the install was rolled back.
        """
        with self._lock:
            previous = list(self._records)
            prior_index = next(
                (i for i, record in enumerate(previous) if record.id == plugin_id), None
            )
            updated = [record for record in previous if record.id != plugin_id]
            updated.append(InstalledPluginRecord(plugin_id, version))
            self._write_records(updated)
        logger.info("Installing plugin '%s' v%s.", plugin_id, version)

        try:
            descriptor = await self._loader.load(
                PluginRequest(id=plugin_id, settings=dict(settings or {}))
            )
            if descriptor.version != version:
                logger.warning(
                    "Plugin '%s' version mismatch: loaded %s, requested %s.",
                    plugin_id,
                    descriptor.version,
                    version,
                )
            await self._lifecycle.activate(descriptor)
        except Exception as exc:
            self._rollback_record(plugin_id, previous, prior_index)
            error = InstallRollbackError(plugin_id, f"install failed and was rolled back: {exc}", exc)
            logger.error("%s", error)
            self._emit(
                {"event": "plugin_install_rolled_back", "plugin": plugin_id, "error": str(exc)}
            )
            return False

        self._emit({"event": "plugin_installed", "plugin": plugin_id, "version": version})
        return True

    async def uninstall_plugin(self, plugin_id: str) -> bool:
        """Clean up, unregister and forget a plugin.

        A failing ``cleanup`` is logged and does not prevent removal.

        Returns
        -------
        bool
            ``False`` (and nothing changes) when the plugin is neither
            registered nor installed.
        """
        was_registered = await self._lifecycle.deactivate(plugin_id)
        with self._lock:
            remaining = [record for record in self._records if record.id != plugin_id]
            had_record = len(remaining) != len(self._records)
            if had_record:
                self._write_records(remaining)

        if not was_registered and not had_record:
            logger.info("Uninstall of unknown plugin '%s' ignored.", plugin_id)
            return False

        logger.info("Plugin '%s' uninstalled.", plugin_id)
        self._emit({"event": "plugin_uninstalled", "plugin": plugin_id})
        return True

    async def teardown(self) -> list[PluginCleanupError]:
        """Close the registry and clean up all plugins in reverse order."""
        return await self._lifecycle.teardown()

    # ------------------------------------------------------------------
    # Install records
    # ------------------------------------------------------------------

    def installed_records(self) -> list[InstalledPluginRecord]:
        """Return the current install records."""
        with self._lock:
            return list(self._records)

    def installed_requests(
        self,
        settings: Mapping[str, Mapping[str, Any]] | None = None,
    ) -> list[PluginRequest]:
        """Re-read the store and turn every install record into a request.

        Parameters
        ----------
        settings:
            Optional per-plugin settings to attach.
        """
        records = self._store.load()
        with self._lock:
            self._records = list(records)
        lookup = settings or {}
        return [
            PluginRequest(id=record.id, settings=dict(lookup.get(record.id, {})))
            for record in records
        ]

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    @property
    def snapshot(self) -> RegistrySnapshot:
        """The most recently published snapshot."""
        with self._lock:
            return self._snapshot

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Call *callback* with every new snapshot.

        The callback is invoked once immediately with the current snapshot.
        Exceptions raised by callbacks are logged and ignored.

        Returns
        -------
        Callable[[], None]
            Function that removes the subscription.
        """
        with self._lock:
            self._subscribers.append(callback)
            current = self._snapshot
        self._call_subscriber(callback, current)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, plugin_id: str) -> PluginDescriptor:
        """Return the active descriptor for *plugin_id*.

        Raises
        ------
        PluginNotFoundError
            When the plugin is not registered.
        """
        descriptor = self.snapshot.get(plugin_id)
        if descriptor is None:
            raise PluginNotFoundError(plugin_id, self._name)
        return descriptor

    def __contains__(self, plugin_id: object) -> bool:
        return plugin_id in self.snapshot

    def __len__(self) -> int:
        return len(self.snapshot)

    def __iter__(self) -> Iterator[PluginDescriptor]:
        return iter(self.snapshot.plugins)

    def __repr__(self) -> str:
        return f"PluginRegistry(name={self._name!r}, plugins={list(self.snapshot.ids)!r})"

    @property
    def name(self) -> str:
        return self._name

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def lifecycle(self) -> LifecycleCoordinator:
        """The coordinator running this registry's lifecycle hooks."""
        return self._lifecycle

    @property
    def loader(self) -> PluginModuleLoader:
        return self._loader

    # ------------------------------------------------------------------
    # Mutation primitives (used by LifecycleCoordinator)
    # ------------------------------------------------------------------

    def _attach(self, descriptor: PluginDescriptor, pending: bool) -> RegistrySnapshot:
        with self._lock:
            if self._closed:
                raise RegistryClosedError(self._name)
            if any(plugin.id == descriptor.id for plugin in self._plugins):
                raise DuplicatePluginError(descriptor.id, self._name)
            if self._strict_routes:
                collision = find_route_collision(descriptor, self._plugins, self._core_routes)
                if collision is not None:
                    raise collision
            self._plugins.append(descriptor)
            if descriptor.scope_provider is not None:
                self._providers.append((descriptor.id, descriptor.scope_provider))
            if pending:
                self._pending.add(descriptor.id)
                return self._snapshot
            snapshot = self._publish_locked()
        logger.debug("Registered plugin '%s'.", descriptor.id)
        self._notify(snapshot)
        return snapshot

    def _mark_ready(self, plugin_id: str) -> bool:
        with self._lock:
            if plugin_id not in self._pending:
                return False
            self._pending.discard(plugin_id)
            snapshot = self._publish_locked()
        self._notify(snapshot)
        return True

    def _drop_pending(self, plugin_id: str) -> None:
        with self._lock:
            self._abandoned.discard(plugin_id)
            if plugin_id not in self._pending:
                return
            self._pending.discard(plugin_id)
            self._plugins = [p for p in self._plugins if p.id != plugin_id]
            self._providers = [entry for entry in self._providers if entry[0] != plugin_id]

    def _take_abandoned(self, plugin_id: str) -> bool:
        with self._lock:
            if plugin_id not in self._abandoned:
                return False
            self._abandoned.discard(plugin_id)
            return True

    def _detach(self, plugin_id: str) -> tuple[PluginDescriptor, bool] | None:
        # The flag is False for a plugin still initializing: its activation
        # keeps the cleanup claim.
        with self._lock:
            descriptor = next((p for p in self._plugins if p.id == plugin_id), None)
            if descriptor is None:
                return None
            self._plugins.remove(descriptor)
            self._providers = [entry for entry in self._providers if entry[0] != plugin_id]
            if plugin_id in self._pending:
                self._pending.discard(plugin_id)
                self._abandoned.add(plugin_id)
                return descriptor, False
            snapshot = self._publish_locked()
        self._notify(snapshot)
        return descriptor, True

    def _close(self) -> list[PluginDescriptor]:
        with self._lock:
            self._closed = True
            descriptors = [p for p in self._plugins if p.id not in self._pending]
            self._abandoned.update(self._pending)
            self._plugins.clear()
            self._providers.clear()
            self._pending.clear()
            snapshot = self._publish_locked()
        self._notify(snapshot)
        return descriptors

    def _emit(self, entry: dict[str, object]) -> None:
        if self._event_log is not None:
            self._event_log.log({"registry": self._name, **entry})

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _publish_locked(self) -> RegistrySnapshot:
        self._snapshot = RegistrySnapshot(
            version=self._snapshot.version + 1,
            plugins=tuple(p for p in self._plugins if p.id not in self._pending),
            providers=tuple(e for e in self._providers if e[0] not in self._pending),
        )
        return self._snapshot

    def _notify(self, snapshot: RegistrySnapshot) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            self._call_subscriber(callback, snapshot)

    def _call_subscriber(self, callback: Subscriber, snapshot: RegistrySnapshot) -> None:
        try:
            callback(snapshot)
        except Exception:
            logger.exception("Registry subscriber %r failed on snapshot %d.", callback, snapshot.version)

    def _write_records(self, records: list[InstalledPluginRecord]) -> None:
        self._store.save(records)
        self._records = records

    def _rollback_record(
        self,
        plugin_id: str,
        previous: list[InstalledPluginRecord],
        prior_index: int | None,
    ) -> None:
        with self._lock:
            restored = [record for record in self._records if record.id != plugin_id]
            if prior_index is not None:
                restored.insert(min(prior_index, len(restored)), previous[prior_index])
            self._write_records(restored)
