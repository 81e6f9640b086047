"""Plugin descriptor and related immutable data shapes.

A :class:`PluginDescriptor` is what a plugin module hands to the loader:
its identity, the capabilities it contributes (scope provider, components,
routes) and its lifecycle hooks.  Descriptors are frozen; settings are
attached with :meth:`PluginDescriptor.with_settings` before registration.

Example
-------
>>> descriptor = PluginDescriptor.from_mapping({
...     "id": "analytics",
...     "name": "Analytics",
...     "version": "1.0.0",
...     "routes": [{"path": "/analytics", "component": "Dashboard",
...                 "exact": True, "permissions": ["analytics.view"]}],
... })
>>> descriptor.routes[0].permissions
frozenset({'analytics.view'})
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Mapping

from plugin_composer.errors import DescriptorValidationError

# A scope provider wraps the accumulated tree and returns the wrapped tree.
ScopeProvider = Callable[[Any], Any]
InitializeHook = Callable[[Mapping[str, Any]], "Awaitable[None] | None"]
CleanupHook = Callable[[], "Awaitable[None] | None"]

_SEMVER_RE = re.compile(
    r"^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*)?"
    r"(?:\+[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*)?$"
)


def is_semver(version: str) -> bool:
    """Return True if *version* is a ``MAJOR.MINOR.PATCH`` semantic version."""
    return bool(_SEMVER_RE.match(version))


# ---------------------------------------------------------------------------
# RouteSpec
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RouteSpec:
    """A navigable route contributed by the core application or a plugin.

    Attributes
    ----------
    path:
        URL path, always starting with ``/``.
    component:
        The renderable (or a reference to it) shown for this route.
    exact:
        When ``True`` only the exact path matches; otherwise any path below
        it on a segment boundary matches.
    permissions:
        Permissions a principal must hold.  Empty means public.
    """

    path: str
    component: Any
    exact: bool = False
    permissions: frozenset[str] = frozenset()

    def __post_init__(self) -> None:
        if not isinstance(self.path, str) or not self.path.startswith("/"):
            raise ValueError(f"route path must start with '/', got {self.path!r}")
        if not isinstance(self.permissions, frozenset):
            object.__setattr__(self, "permissions", frozenset(self.permissions))

    @property
    def is_public(self) -> bool:
        return not self.permissions

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> RouteSpec:
        """Build a RouteSpec from a plain mapping.

        Accepts either ``component`` or ``componentRef`` for the target.
        """
        if "path" not in data:
            raise ValueError("route is missing 'path'")
        component = data.get("component", data.get("componentRef"))
        permissions = data.get("permissions") or ()
        if isinstance(permissions, str):
            permissions = (permissions,)
        return cls(
            path=str(data["path"]),
            component=component,
            exact=bool(data.get("exact", False)),
            permissions=frozenset(str(p) for p in permissions),
        )


# ---------------------------------------------------------------------------
# PluginDescriptor
# ---------------------------------------------------------------------------


@dataclass(frozen=True, eq=False)
class PluginDescriptor:
    """Immutable identity, capabilities and lifecycle hooks of a plugin.

    Attributes
    ----------
    id:
        Unique plugin identifier.
    name:
        Human-readable display name.
    version:
        Semantic version string.
    scope_provider:
        Optional callable wrapping the application tree in plugin-owned
        shared state.
    components:
        Mapping of component name to renderable.
    routes:
        Ordered routes the plugin contributes.
    initialize:
        Optional hook called once with the plugin settings after
        registration.  May return an awaitable.
    cleanup:
        Optional hook called exactly once when the plugin is removed.
        May return an awaitable.
    settings:
        Per-plugin settings passed to ``initialize``.
    """

    id: str
    name: str
    version: str
    scope_provider: ScopeProvider | None = None
    components: Mapping[str, Any] = field(default_factory=dict)
    routes: tuple[RouteSpec, ...] = ()
    initialize: InitializeHook | None = None
    cleanup: CleanupHook | None = None
    settings: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for attr in ("id", "name", "version"):
            value = getattr(self, attr)
            if not isinstance(value, str) or not value.strip():
                raise DescriptorValidationError(
                    str(self.id) if attr != "id" else "<unknown>",
                    f"descriptor field '{attr}' must be a non-empty string",
                )
        if not is_semver(self.version):
            raise DescriptorValidationError(
                self.id, f"version {self.version!r} is not a semantic version"
            )
        for hook_name in ("scope_provider", "initialize", "cleanup"):
            hook = getattr(self, hook_name)
            if hook is not None and not callable(hook):
                raise DescriptorValidationError(
                    self.id, f"descriptor field '{hook_name}' must be callable"
                )
        object.__setattr__(self, "components", MappingProxyType(dict(self.components)))
        object.__setattr__(self, "routes", tuple(self.routes))
        object.__setattr__(self, "settings", MappingProxyType(dict(self.settings)))

    @property
    def has_scope(self) -> bool:
        return self.scope_provider is not None

    def with_settings(self, settings: Mapping[str, Any] | None) -> PluginDescriptor:
        """Return a copy of this descriptor carrying *settings*."""
        return replace(self, settings=dict(settings or {}))

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> PluginDescriptor:
        """Build and validate a descriptor from a plain mapping.

        Parameters
        ----------
        data:
            Mapping with ``id``, ``name`` and ``version`` plus any of
            ``scope_provider`` (or ``ContextProvider``), ``components``,
            ``routes``, ``initialize``, ``cleanup``, ``settings``.

        Raises
        ------
        DescriptorValidationError
            If a required field is missing or has the wrong type.
        """
        if not isinstance(data, Mapping):
            raise DescriptorValidationError(
                "<unknown>", f"expected a mapping, got {type(data).__name__}"
            )
        plugin_id = str(data.get("id") or "<unknown>")
        missing = [key for key in ("id", "name", "version") if not data.get(key)]
        if missing:
            raise DescriptorValidationError(
                plugin_id, f"descriptor is missing required fields: {', '.join(missing)}"
            )

        raw_routes = data.get("routes") or ()
        if isinstance(raw_routes, Mapping) or isinstance(raw_routes, str):
            raise DescriptorValidationError(plugin_id, "'routes' must be a list")
        routes: list[RouteSpec] = []
        for raw in raw_routes:
            if isinstance(raw, RouteSpec):
                routes.append(raw)
            elif isinstance(raw, Mapping):
                try:
                    routes.append(RouteSpec.from_mapping(raw))
                except ValueError as exc:
                    raise DescriptorValidationError(plugin_id, str(exc), exc) from exc
            else:
                raise DescriptorValidationError(
                    plugin_id, f"unsupported route entry {raw!r}"
                )

        components = data.get("components") or {}
        if not isinstance(components, Mapping):
            raise DescriptorValidationError(plugin_id, "'components' must be a mapping")

        return cls(
            id=str(data["id"]),
            name=str(data["name"]),
            version=str(data["version"]),
            scope_provider=data.get("scope_provider", data.get("ContextProvider")),
            components=components,
            routes=tuple(routes),
            initialize=data.get("initialize"),
            cleanup=data.get("cleanup"),
            settings=data.get("settings") or {},
        )


# ---------------------------------------------------------------------------
# Requests and records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PluginRequest:
    """A request to load one plugin.

    Attributes
    ----------
    id:
        Plugin identifier.
    script_url:
        URL of an externally hosted plugin script, or ``None`` for a
        bundled plugin module.
    settings:
        Settings to attach to the descriptor before registration.
    """

    id: str
    script_url: str | None = None
    settings: Mapping[str, Any] = field(default_factory=dict, hash=False)

    @property
    def is_external(self) -> bool:
        return self.script_url is not None


@dataclass(frozen=True)
class InstalledPluginRecord:
    """Durable record of an opted-in plugin id and version."""

    id: str
    version: str

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "version": self.version}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> InstalledPluginRecord:
        return cls(id=str(data["id"]), version=str(data.get("version", "")))
