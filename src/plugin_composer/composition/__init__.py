"""Composition of plugin contributions: nested scopes and the route table."""
from __future__ import annotations

from plugin_composer.composition.permissions import (
    ANONYMOUS,
    GrantedPermissionChecker,
    PermissionChecker,
    PermissionGuard,
    Principal,
)
from plugin_composer.composition.routes import (
    RouteAggregator,
    RouteEntry,
    RouteResolution,
    RouteStatus,
    RouteTable,
    build_routes,
    find_route_collision,
)
from plugin_composer.composition.scope import ScopeComposer, compose

__all__ = [
    "ANONYMOUS",
    "GrantedPermissionChecker",
    "PermissionChecker",
    "PermissionGuard",
    "Principal",
    "RouteAggregator",
    "RouteEntry",
    "RouteResolution",
    "RouteStatus",
    "RouteTable",
    "ScopeComposer",
    "build_routes",
    "compose",
    "find_route_collision",
]
