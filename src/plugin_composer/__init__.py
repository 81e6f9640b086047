"""plugin-composer — runtime composition of optional feature plugins.

Public API
----------
The stable public surface is everything exported from this module.
Anything inside submodules not re-exported here is considered private
and may change without notice.

Example
-------
>>> import asyncio
>>> import plugin_composer as pc
>>> pc.__version__
'0.1.0'
>>> host = pc.PluginHost(core_routes=[pc.RouteSpec("/", "Home", exact=True)])
>>> report = asyncio.run(host.start())
>>> host.resolve_route("/").allowed
True
"""
from __future__ import annotations

__version__: str = "0.1.0"

# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------
from plugin_composer.descriptor import (
    InstalledPluginRecord,
    PluginDescriptor,
    PluginRequest,
    RouteSpec,
    ScopeProvider,
)

# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------
from plugin_composer.errors import (
    ConfigFetchError,
    DescriptorValidationError,
    DuplicatePluginError,
    InstallRollbackError,
    PluginCleanupError,
    PluginComposerError,
    PluginError,
    PluginInitError,
    PluginLoadError,
    PluginNotFoundError,
    PluginNotInCatalogError,
    PluginSourceError,
    RegistryClosedError,
    RouteCollisionError,
)

# ---------------------------------------------------------------------------
# Configuration and sources
# ---------------------------------------------------------------------------
from plugin_composer.config.config_loader import ConfigLoader, HostConfig
from plugin_composer.sources.catalog import CatalogListing, CatalogResolver, PluginCatalog
from plugin_composer.sources.resolver import PluginSourceResolver, ResolvedSources

# ---------------------------------------------------------------------------
# Loading and registry
# ---------------------------------------------------------------------------
from plugin_composer.loading.loader import LoadOutcome, PluginModuleLoader
from plugin_composer.registry.lifecycle import LifecycleCoordinator
from plugin_composer.registry.registry import PluginRegistry
from plugin_composer.registry.snapshot import RegistrySnapshot
from plugin_composer.registry.store import InstalledPluginStore, JsonFileStore, MemoryStore

# ---------------------------------------------------------------------------
# Composition
# ---------------------------------------------------------------------------
from plugin_composer.composition.permissions import (
    GrantedPermissionChecker,
    PermissionChecker,
    Principal,
)
from plugin_composer.composition.routes import (
    RouteAggregator,
    RouteResolution,
    RouteStatus,
    RouteTable,
    build_routes,
)
from plugin_composer.composition.scope import ScopeComposer, compose

# ---------------------------------------------------------------------------
# Host and operator log
# ---------------------------------------------------------------------------
from plugin_composer.events import PluginEventLog
from plugin_composer.host import HostState, PluginHost, StartupReport

__all__ = [
    "__version__",
    # Data model
    "InstalledPluginRecord",
    "PluginDescriptor",
    "PluginRequest",
    "RouteSpec",
    "ScopeProvider",
    # Errors
    "ConfigFetchError",
    "DescriptorValidationError",
    "DuplicatePluginError",
    "InstallRollbackError",
    "PluginCleanupError",
    "PluginComposerError",
    "PluginError",
    "PluginInitError",
    "PluginLoadError",
    "PluginNotFoundError",
    "PluginNotInCatalogError",
    "PluginSourceError",
    "RegistryClosedError",
    "RouteCollisionError",
    # Configuration and sources
    "CatalogListing",
    "CatalogResolver",
    "ConfigLoader",
    "HostConfig",
    "PluginCatalog",
    "PluginSourceResolver",
    "ResolvedSources",
    # Loading and registry
    "InstalledPluginStore",
    "JsonFileStore",
    "LifecycleCoordinator",
    "LoadOutcome",
    "MemoryStore",
    "PluginModuleLoader",
    "PluginRegistry",
    "RegistrySnapshot",
    # Composition
    "GrantedPermissionChecker",
    "PermissionChecker",
    "Principal",
    "RouteAggregator",
    "RouteResolution",
    "RouteStatus",
    "RouteTable",
    "ScopeComposer",
    "build_routes",
    "compose",
    # Host
    "HostState",
    "PluginEventLog",
    "PluginHost",
    "StartupReport",
]
