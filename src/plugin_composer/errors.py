"""Error taxonomy for plugin-composer.

Every error raised by the package derives from :class:`PluginComposerError`.
Per-plugin errors carry the offending ``plugin_id`` and, where one exists,
the underlying ``cause`` so operators can log them without unpacking
exception chains.

Only :class:`PluginSourceError` is fatal to a host start-up.  All other
per-plugin errors are isolated to the plugin that raised them.
"""
from __future__ import annotations


class PluginComposerError(Exception):
    """Base class for all plugin-composer errors."""


# ---------------------------------------------------------------------------
# Source resolution
# ---------------------------------------------------------------------------


class ConfigFetchError(PluginComposerError):
    """Raised when a remote or local plugin configuration cannot be used.

    Always recovered by falling back to the next configuration source.

    Attributes
    ----------
    source:
        URL or path of the configuration that failed.
    """

    def __init__(self, source: str, message: str) -> None:
        self.source = source
        super().__init__(f"Plugin configuration from '{source}' unusable: {message}")


class PluginSourceError(PluginComposerError):
    """Raised when no configuration source yields a plugin set at all."""


# ---------------------------------------------------------------------------
# Per-plugin lifecycle
# ---------------------------------------------------------------------------


class PluginError(PluginComposerError):
    """Base class for errors attributable to a single plugin.

    Attributes
    ----------
    plugin_id:
        Identifier of the plugin the error belongs to.
    cause:
        The underlying exception, if any.
    """

    def __init__(
        self,
        plugin_id: str,
        message: str,
        cause: BaseException | None = None,
    ) -> None:
        self.plugin_id = plugin_id
        self.cause = cause
        super().__init__(f"Plugin '{plugin_id}': {message}")


class PluginLoadError(PluginError):
    """Raised when a plugin module cannot be fetched, evaluated or validated."""


class DescriptorValidationError(PluginLoadError):
    """Raised when a loaded object does not have the shape of a descriptor."""


class PluginInitError(PluginError):
    """Raised when a plugin's ``initialize`` hook fails.

    The plugin has already been unregistered when this is raised.
    """


class PluginCleanupError(PluginError):
    """Raised (and logged, never propagated) when ``cleanup`` fails."""


class InstallRollbackError(PluginError):
    """Describes an install that failed after its record was written.

    The installed record has been restored to its previous state.
    """


# ---------------------------------------------------------------------------
# Registry state
# ---------------------------------------------------------------------------


class DuplicatePluginError(PluginComposerError, ValueError):
    """Raised when registering a plugin id that is already registered.

    Attributes
    ----------
    plugin_id:
        The duplicated plugin identifier.
    registry_name:
        Name of the registry that rejected the registration.
    """

    def __init__(self, plugin_id: str, registry_name: str) -> None:
        self.plugin_id = plugin_id
        self.registry_name = registry_name
        super().__init__(
            f"Plugin '{plugin_id}' is already registered in registry '{registry_name}'."
        )


class PluginNotFoundError(PluginComposerError, KeyError):
    """Raised when looking up a plugin id that is not registered."""

    def __init__(self, plugin_id: str, registry_name: str) -> None:
        self.plugin_id = plugin_id
        self.registry_name = registry_name
        super().__init__(
            f"Plugin '{plugin_id}' is not registered in registry '{registry_name}'."
        )


class PluginNotInCatalogError(PluginComposerError, KeyError):
    """Raised when installing by id a plugin the catalog does not list."""

    def __init__(self, plugin_id: str, catalog_origin: str) -> None:
        self.plugin_id = plugin_id
        self.catalog_origin = catalog_origin
        super().__init__(
            f"Plugin '{plugin_id}' is not listed in the {catalog_origin} plugin catalog."
        )


class RegistryClosedError(PluginComposerError):
    """Raised when registering into a registry that has been torn down."""

    def __init__(self, registry_name: str) -> None:
        self.registry_name = registry_name
        super().__init__(f"Registry '{registry_name}' has been torn down.")


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


class RouteCollisionError(PluginComposerError, ValueError):
    """Raised when two routes declare the same path.

    Attributes
    ----------
    path:
        The colliding route path.
    owners:
        Owners of the colliding routes in table order (``"core"`` for
        core routes, otherwise the plugin id).
    """

    def __init__(self, path: str, owners: tuple[str, ...]) -> None:
        self.path = path
        self.owners = owners
        super().__init__(
            f"Route path '{path}' is declared more than once (by {', '.join(owners)})."
        )
