"""Route aggregation with permission gating.

The route table is laid out as:

1. core routes, in the order given, never permission-gated;
2. every registered plugin's routes, in plugin registration order and
   each plugin's own order, gated when they declare permissions;
3. a terminal not-found entry that matches everything.

Resolution short-circuits on the first matching entry.  Two routes with
the same path are a configuration error: strict tables refuse to build,
lenient tables log the collision and let the first entry win.

Example
-------
::

    table = build_routes(
        [RouteSpec("/", "Home", exact=True), RouteSpec("/login", "Login")],
        registry.snapshot.plugins,
    )
    table.resolve("/analytics", principal).status
"""
from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Iterable, Iterator, Mapping, Sequence

from plugin_composer.composition.permissions import (
    GrantedPermissionChecker,
    PermissionChecker,
    PermissionGuard,
    Principal,
)
from plugin_composer.descriptor import PluginDescriptor, RouteSpec
from plugin_composer.errors import RouteCollisionError

if TYPE_CHECKING:
    from plugin_composer.registry.registry import PluginRegistry
    from plugin_composer.registry.snapshot import RegistrySnapshot

logger = logging.getLogger(__name__)

CORE_OWNER = "core"
NOT_FOUND_OWNER = "not-found"


class RouteStatus(str, Enum):
    """Outcome of resolving a path."""

    ALLOWED = "allowed"
    REDIRECT = "redirect"
    NOT_FOUND = "not_found"


def normalize_path(path: str) -> str:
    """Strip query/fragment and trailing slashes (except for the root)."""
    path = path.split("?", 1)[0].split("#", 1)[0] or "/"
    if len(path) > 1:
        path = path.rstrip("/") or "/"
    return path


@dataclass(frozen=True)
class RouteEntry:
    """One row of a route table.

    Attributes
    ----------
    owner:
        ``"core"``, the contributing plugin id, or ``"not-found"``.
    route:
        The route spec, or ``None`` for the terminal not-found entry.
    guard:
        Permission guard for gated plugin routes.
    fallback:
        Component rendered by the not-found entry.
    """

    owner: str
    route: RouteSpec | None = None
    guard: PermissionGuard | None = None
    fallback: Any = None

    @property
    def path(self) -> str | None:
        return self.route.path if self.route is not None else None

    @property
    def component(self) -> Any:
        return self.route.component if self.route is not None else self.fallback

    @property
    def is_terminal(self) -> bool:
        return self.route is None

    def matches(self, path: str) -> bool:
        if self.route is None:
            return True
        target = normalize_path(self.route.path)
        if path == target:
            return True
        if self.route.exact:
            return False
        if target == "/":
            return True
        return path.startswith(target + "/")


@dataclass(frozen=True)
class RouteResolution:
    """Result of resolving a path against a :class:`RouteTable`."""

    status: RouteStatus
    entry: RouteEntry
    redirect_to: str | None = None

    @property
    def allowed(self) -> bool:
        return self.status is RouteStatus.ALLOWED

    @property
    def route(self) -> RouteSpec | None:
        return self.entry.route

    @property
    def component(self) -> Any:
        """Component to render; ``None`` when redirected."""
        if self.status is RouteStatus.REDIRECT:
            return None
        return self.entry.component


@dataclass(frozen=True)
class RouteTable:
    """Ordered route table ending in a not-found entry.

    Attributes
    ----------
    entries:
        Table rows in resolution order.
    collisions:
        ``(path, owners)`` pairs found in a lenient build.
    """

    entries: tuple[RouteEntry, ...]
    collisions: tuple[tuple[str, tuple[str, ...]], ...] = ()

    def resolve(self, path: str, principal: Principal | None = None) -> RouteResolution:
        """Resolve *path* for *principal*; the first matching entry wins."""
        normalized = normalize_path(path)
        for entry in self.entries:
            if not entry.matches(normalized):
                continue
            if entry.is_terminal:
                return RouteResolution(RouteStatus.NOT_FOUND, entry)
            if entry.guard is not None and not entry.guard.allows(principal):
                logger.info(
                    "Denied %s to %s; redirecting to %s.",
                    normalized,
                    principal.subject if principal else "anonymous",
                    entry.guard.redirect_to,
                )
                return RouteResolution(RouteStatus.REDIRECT, entry, entry.guard.redirect_to)
            return RouteResolution(RouteStatus.ALLOWED, entry)
        raise AssertionError("route table has no terminal entry")

    @property
    def paths(self) -> list[str]:
        return [entry.path for entry in self.entries if entry.path is not None]

    def __iter__(self) -> Iterator[RouteEntry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)


def _coerce_route(route: RouteSpec | Mapping[str, Any]) -> RouteSpec:
    return route if isinstance(route, RouteSpec) else RouteSpec.from_mapping(route)


def _find_collisions(entries: Iterable[RouteEntry]) -> list[tuple[str, tuple[str, ...]]]:
    owners_by_path: OrderedDict[str, list[str]] = OrderedDict()
    for entry in entries:
        if entry.route is None:
            continue
        owners_by_path.setdefault(normalize_path(entry.route.path), []).append(entry.owner)
    return [(path, tuple(owners)) for path, owners in owners_by_path.items() if len(owners) > 1]


def find_route_collision(
    candidate: PluginDescriptor,
    plugins: Iterable[PluginDescriptor],
    core_routes: Sequence[RouteSpec | Mapping[str, Any]] = (),
) -> RouteCollisionError | None:
    """Return the first path collision *candidate* would introduce, if any.

    Collisions among *core_routes* and *plugins* that do not involve the
    candidate are ignored.
    """
    entries = [RouteEntry(owner=CORE_OWNER, route=_coerce_route(route)) for route in core_routes]
    entries.extend(
        RouteEntry(owner=plugin.id, route=route) for plugin in plugins for route in plugin.routes
    )
    entries.extend(RouteEntry(owner=candidate.id, route=route) for route in candidate.routes)
    for path, owners in _find_collisions(entries):
        if candidate.id in owners:
            return RouteCollisionError(path, owners)
    return None


def build_routes(
    core_routes: Sequence[RouteSpec | Mapping[str, Any]],
    plugins: Iterable[PluginDescriptor],
    checker: PermissionChecker | None = None,
    *,
    strict: bool = True,
    not_found: Any = "NotFound",
    login_path: str = "/login",
) -> RouteTable:
    """Build the ordered route table.

    Parameters
    ----------
    core_routes:
        Application routes; listed first and never gated.
    plugins:
        Registered plugins in registration order.
    checker:
        Permission-checking collaborator for gated routes
        (default :class:`GrantedPermissionChecker`).
    strict:
        Raise on duplicate paths instead of logging them.
    not_found:
        Component for the terminal not-found entry.
    login_path:
        Where denied principals are redirected.

    Raises
    ------
    RouteCollisionError
        In strict mode, when two routes share a path.
    """
    effective_checker = checker or GrantedPermissionChecker()

    entries: list[RouteEntry] = [
        RouteEntry(owner=CORE_OWNER, route=_coerce_route(route)) for route in core_routes
    ]
    for plugin in plugins:
        for route in plugin.routes:
            guard = (
                None
                if route.is_public
                else PermissionGuard(route.permissions, effective_checker, login_path)
            )
            entries.append(RouteEntry(owner=plugin.id, route=route, guard=guard))

    collisions = _find_collisions(entries)
    if collisions:
        if strict:
            path, owners = collisions[0]
            raise RouteCollisionError(path, owners)
        for path, owners in collisions:
            logger.warning(
                "Route path '%s' declared by %s; '%s' wins.", path, ", ".join(owners), owners[0]
            )

    entries.append(RouteEntry(owner=NOT_FOUND_OWNER, fallback=not_found))
    return RouteTable(entries=tuple(entries), collisions=tuple(collisions))


class RouteAggregator:
    """Keeps a route table in sync with a registry.

    The table is rebuilt from every snapshot.  A strict registry rejects
    colliding plugins before they are published; if a collision reaches the
    aggregator anyway it is logged, recorded in :attr:`last_error`, and the
    table is built leniently so that the first route wins.

    Parameters
    ----------
    registry:
        Registry to subscribe to.
    core_routes:
        Application routes.
    checker:
        Permission-checking collaborator.
    strict:
        See :func:`build_routes`.
    not_found:
        See :func:`build_routes`.
    login_path:
        See :func:`build_routes`.
    """

    def __init__(
        self,
        registry: "PluginRegistry",
        core_routes: Sequence[RouteSpec | Mapping[str, Any]],
        checker: PermissionChecker | None = None,
        *,
        strict: bool = True,
        not_found: Any = "NotFound",
        login_path: str = "/login",
    ) -> None:
        self._core_routes = [_coerce_route(route) for route in core_routes]
        self._checker = checker
        self._strict = strict
        self._not_found = not_found
        self._login_path = login_path
        self._table = build_routes(
            self._core_routes, (), checker, strict=strict, not_found=not_found, login_path=login_path
        )
        self._snapshot_version = -1
        self.last_error: RouteCollisionError | None = None
        self._unsubscribe = registry.subscribe(self._on_snapshot)

    @property
    def table(self) -> RouteTable:
        return self._table

    @property
    def snapshot_version(self) -> int:
        """Version of the snapshot the current table reflects."""
        return self._snapshot_version

    def resolve(self, path: str, principal: Principal | None = None) -> RouteResolution:
        return self._table.resolve(path, principal)

    def close(self) -> None:
        """Stop following the registry."""
        self._unsubscribe()

    def _on_snapshot(self, snapshot: "RegistrySnapshot") -> None:
        try:
            table = build_routes(
                self._core_routes,
                snapshot.plugins,
                self._checker,
                strict=self._strict,
                not_found=self._not_found,
                login_path=self._login_path,
            )
        except RouteCollisionError as exc:
            logger.error("Route collision in snapshot %d: %s", snapshot.version, exc)
            self.last_error = exc
            table = build_routes(
                self._core_routes,
                snapshot.plugins,
                self._checker,
                strict=False,
                not_found=self._not_found,
                login_path=self._login_path,
            )
        else:
            self.last_error = None
        self._table = table
        self._snapshot_version = snapshot.version
