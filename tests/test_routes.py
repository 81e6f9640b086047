"""Tests for build_routes, RouteTable resolution and RouteAggregator."""
from __future__ import annotations

import asyncio
from unittest.mock import MagicMock

import pytest

from conftest import FakeLoader, make_descriptor
from plugin_composer.composition.permissions import PermissionChecker, Principal
from plugin_composer.composition.routes import (
    RouteAggregator,
    RouteStatus,
    build_routes,
    find_route_collision,
    normalize_path,
)
from plugin_composer.descriptor import PluginDescriptor, RouteSpec
from plugin_composer.errors import RouteCollisionError
from plugin_composer.registry.registry import PluginRegistry
from plugin_composer.registry.store import MemoryStore

CORE = [RouteSpec("/", "Home", exact=True), RouteSpec("/login", "Login")]


def _analytics() -> PluginDescriptor:
    return make_descriptor(
        "analytics",
        routes=(
            RouteSpec("/analytics", "Dashboard", exact=True, permissions=frozenset({"analytics.view"})),
            RouteSpec("/settings/analytics", "AnalyticsSettings", permissions=frozenset({"analytics.settings"})),
        ),
    )


def _calendar() -> PluginDescriptor:
    return make_descriptor("calendar", routes=(RouteSpec("/calendar", "CalendarView"),))


# ---------------------------------------------------------------------------
# build_routes: ordering
# ---------------------------------------------------------------------------


class TestBuildRoutes:
    def test_layout_core_plugins_not_found(self) -> None:
        table = build_routes(CORE, [_analytics(), _calendar()])
        assert table.paths == ["/", "/login", "/analytics", "/settings/analytics", "/calendar"]
        assert [e.owner for e in table] == ["core", "core", "analytics", "analytics", "calendar", "not-found"]
        assert table.entries[-1].is_terminal is True

    def test_core_routes_never_gated(self) -> None:
        gated_core = [RouteSpec("/admin", "Admin", permissions=frozenset({"admin"}))]
        table = build_routes(gated_core, [])
        assert table.entries[0].guard is None
        assert table.resolve("/admin", None).status is RouteStatus.ALLOWED

    def test_public_plugin_route_unguarded(self) -> None:
        table = build_routes(CORE, [_calendar()])
        assert table.entries[2].guard is None

    def test_core_routes_from_mappings(self) -> None:
        table = build_routes([{"path": "/", "componentRef": "Home", "exact": True}], [])
        assert table.entries[0].component == "Home"

    def test_empty_table_has_terminal_entry(self) -> None:
        table = build_routes([], [])
        assert len(table) == 1
        assert table.resolve("/anything").status is RouteStatus.NOT_FOUND


# ---------------------------------------------------------------------------
# RouteTable.resolve
# ---------------------------------------------------------------------------


class TestResolve:
    @pytest.fixture()
    def table(self):
        return build_routes(CORE, [_analytics(), _calendar()])

    def test_principal_lacking_permission_redirected(self, table) -> None:
        viewer = Principal("bob", frozenset({"calendar.view"}))
        resolution = table.resolve("/analytics", viewer)
        assert resolution.status is RouteStatus.REDIRECT
        assert resolution.redirect_to == "/login"
        assert resolution.component is None
        assert resolution.allowed is False

    def test_anonymous_redirected(self, table) -> None:
        assert table.resolve("/analytics", None).status is RouteStatus.REDIRECT

    def test_principal_with_permission_allowed(self, table) -> None:
        viewer = Principal("alice", frozenset({"analytics.view"}))
        resolution = table.resolve("/analytics", viewer)
        assert resolution.allowed is True
        assert resolution.component == "Dashboard"

    def test_exact_route_does_not_match_children(self, table) -> None:
        viewer = Principal("alice", frozenset({"analytics.view"}))
        assert table.resolve("/analytics/extra", viewer).status is RouteStatus.NOT_FOUND

    def test_prefix_route_matches_children(self, table) -> None:
        resolution = table.resolve("/calendar/2026/10", None)
        assert resolution.allowed is True
        assert resolution.entry.owner == "calendar"

    def test_prefix_requires_segment_boundary(self, table) -> None:
        assert table.resolve("/calendarx", None).status is RouteStatus.NOT_FOUND

    def test_root_exact(self, table) -> None:
        assert table.resolve("/", None).component == "Home"

    def test_unknown_path_not_found(self, table) -> None:
        resolution = table.resolve("/nowhere", None)
        assert resolution.status is RouteStatus.NOT_FOUND
        assert resolution.component == "NotFound"

    def test_query_and_trailing_slash_ignored(self, table) -> None:
        assert table.resolve("/calendar/?view=week", None).entry.owner == "calendar"

    def test_custom_login_path_and_checker(self) -> None:
        class DenyAll(PermissionChecker):
            def check(self, required: frozenset[str], principal: Principal | None) -> bool:
                return False

        table = build_routes(CORE, [_analytics()], DenyAll(), login_path="/signin")
        resolution = table.resolve("/analytics", Principal("root", frozenset({"*"})))
        assert resolution.redirect_to == "/signin"

    def test_checker_receives_required_permissions(self) -> None:
        checker = MagicMock(spec=PermissionChecker)
        checker.check.return_value = True
        table = build_routes(CORE, [_analytics()], checker)
        alice = Principal("alice")
        resolution = table.resolve("/settings/analytics/general", alice)
        assert resolution.allowed is True
        assert resolution.route is not None and resolution.route.path == "/settings/analytics"
        checker.check.assert_called_once_with(frozenset({"analytics.settings"}), alice)

    @pytest.mark.parametrize(
        "raw,expected",
        [("/", "/"), ("/a/", "/a"), ("/a?x=1", "/a"), ("/a#top", "/a"), ("", "/")],
    )
    def test_normalize_path(self, raw: str, expected: str) -> None:
        assert normalize_path(raw) == expected


# ---------------------------------------------------------------------------
# Collisions
# ---------------------------------------------------------------------------


class TestCollisions:
    def test_find_route_collision_reports_candidate(self) -> None:
        other = make_descriptor("other", routes=(RouteSpec("/calendar/", "OtherCalendar"),))
        collision = find_route_collision(other, [_calendar()], CORE)
        assert collision is not None
        assert collision.path == "/calendar"
        assert collision.owners == ("calendar", "other")

    def test_find_route_collision_ignores_unrelated_collisions(self) -> None:
        first = make_descriptor("x", routes=(RouteSpec("/same", "X"),))
        second = make_descriptor("y", routes=(RouteSpec("/same", "Y"),))
        assert find_route_collision(_calendar(), [first, second], CORE) is None

    def test_strict_collision_raises(self) -> None:
        other = make_descriptor("other", routes=(RouteSpec("/calendar", "OtherCalendar"),))
        with pytest.raises(RouteCollisionError) as exc_info:
            build_routes(CORE, [_calendar(), other])
        assert exc_info.value.path == "/calendar"
        assert exc_info.value.owners == ("calendar", "other")

    def test_plugin_shadowing_core_route_is_a_collision(self) -> None:
        rogue = make_descriptor("rogue", routes=(RouteSpec("/login", "FakeLogin"),))
        with pytest.raises(RouteCollisionError):
            build_routes(CORE, [rogue])

    def test_lenient_first_wins_and_logs(self, caplog: pytest.LogCaptureFixture) -> None:
        other = make_descriptor("other", routes=(RouteSpec("/calendar", "OtherCalendar"),))
        with caplog.at_level("WARNING"):
            table = build_routes(CORE, [_calendar(), other], strict=False)
        assert table.collisions == (("/calendar", ("calendar", "other")),)
        assert table.resolve("/calendar", None).component == "CalendarView"
        assert any("/calendar" in r.getMessage() for r in caplog.records)


# ---------------------------------------------------------------------------
# RouteAggregator
# ---------------------------------------------------------------------------


class TestRouteAggregator:
    def test_follows_registry(self) -> None:
        registry = PluginRegistry(MemoryStore(), FakeLoader())
        aggregator = RouteAggregator(registry, CORE)
        registry.register_plugin(_calendar())
        assert aggregator.resolve("/calendar").allowed is True
        asyncio.run(registry.uninstall_plugin("calendar"))
        assert aggregator.resolve("/calendar").status is RouteStatus.NOT_FOUND
        assert aggregator.snapshot_version == registry.snapshot.version

    def test_colliding_plugin_rejected_and_table_tracks_registry(self) -> None:
        registry = PluginRegistry(MemoryStore(), FakeLoader(), core_routes=CORE)
        aggregator = RouteAggregator(registry, CORE)
        registry.register_plugin(make_descriptor("a", routes=(RouteSpec("/dup", "A"),)))
        registry.register_plugin(make_descriptor("c", routes=(RouteSpec("/c", "C"),)))

        with pytest.raises(RouteCollisionError):
            registry.register_plugin(
                make_descriptor(
                    "b",
                    routes=(RouteSpec("/dup", "B"),),
                    scope_provider=lambda tree: ("B", tree),
                )
            )
        assert "b" not in registry
        assert registry.snapshot.provider_list == []

        asyncio.run(registry.uninstall_plugin("c"))
        assert aggregator.resolve("/c").status is RouteStatus.NOT_FOUND
        assert aggregator.resolve("/dup").component == "A"
        assert aggregator.snapshot_version == registry.snapshot.version
        assert aggregator.last_error is None

    def test_registry_rejects_plugin_shadowing_core_route(self) -> None:
        registry = PluginRegistry(MemoryStore(), FakeLoader(), core_routes=CORE)
        with pytest.raises(RouteCollisionError) as exc_info:
            registry.register_plugin(make_descriptor("rogue", routes=(RouteSpec("/login", "FakeLogin"),)))
        assert exc_info.value.owners == ("core", "rogue")
        assert len(registry) == 0

    def test_collision_from_lenient_registry_builds_first_wins_table(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        registry = PluginRegistry(MemoryStore(), FakeLoader(), strict_routes=False)
        aggregator = RouteAggregator(registry, CORE)
        registry.register_plugin(_calendar())
        with caplog.at_level("ERROR"):
            registry.register_plugin(
                make_descriptor("other", routes=(RouteSpec("/calendar", "OtherCalendar"),))
            )
        assert isinstance(aggregator.last_error, RouteCollisionError)
        assert aggregator.resolve("/calendar").component == "CalendarView"
        assert aggregator.snapshot_version == registry.snapshot.version

        asyncio.run(registry.uninstall_plugin("calendar"))
        assert aggregator.resolve("/calendar").component == "OtherCalendar"
        assert aggregator.last_error is None

    def test_close_stops_following(self) -> None:
        registry = PluginRegistry(MemoryStore(), FakeLoader())
        aggregator = RouteAggregator(registry, CORE)
        aggregator.close()
        registry.register_plugin(_calendar())
        assert aggregator.resolve("/calendar").status is RouteStatus.NOT_FOUND
