"""CLI entry point for plugin-composer.

Invoked as::

    plugin-composer [OPTIONS] COMMAND [ARGS]...

or during development::

    python -m plugin_composer.cli.main

Commands
--------
- version            Show version information
- sources            Show the resolved plugin sources
- load               Run a full loading pass and report the outcome
- installed          List installed-plugin records
- available          List the plugin catalog with install status
- install ID [VER]   Install a plugin (persisted for the next start-up)
- uninstall ID       Uninstall a plugin
- routes             Show the assembled route table, optionally resolve a path
- events             Show recent plugin lifecycle events
"""
from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING

import click
from rich import box
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from plugin_composer.config.config_loader import ConfigLoader, HostConfig

if TYPE_CHECKING:
    from plugin_composer.composition.routes import RouteResolution, RouteTable
    from plugin_composer.host import PluginHost, StartupReport

console = Console()
err_console = Console(stderr=True)

_DEFAULT_CONFIG = Path("plugin_host.yaml")

_CORE_ROUTES = [
    {"path": "/", "component": "Home", "exact": True},
    {"path": "/login", "component": "Login"},
]


def _load_config(config_path: str) -> HostConfig:
    loader = ConfigLoader()
    path = Path(config_path)
    if path.exists():
        return loader.load(path)
    return loader.defaults()


def _build_host(config: HostConfig) -> PluginHost:
    from plugin_composer.host import PluginHost

    return PluginHost(config, core_routes=_CORE_ROUTES)


config_option = click.option(
    "--config",
    "-c",
    "config_path",
    default=str(_DEFAULT_CONFIG),
    show_default=True,
    type=click.Path(),
    help="Path to plugin_host.yaml (defaults apply when missing).",
)


# ---------------------------------------------------------------------------
# Root command group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(package_name="plugin-composer")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Logging verbosity.",
)
def cli(log_level: str) -> None:
    """Plugin Composer CLI: inspect sources, installs and routes."""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
    )


# ---------------------------------------------------------------------------
# version
# ---------------------------------------------------------------------------


@cli.command(name="version")
def version_command() -> None:
    """Show detailed version information."""
    from plugin_composer import __version__

    console.print(
        Panel(
            f"[bold]plugin-composer[/bold]  v[cyan]{__version__}[/cyan]\n"
            "Runtime plugin registry and dynamic loading.",
            title="Version",
            border_style="blue",
        )
    )


# ---------------------------------------------------------------------------
# sources
# ---------------------------------------------------------------------------


@cli.command(name="sources")
@config_option
def sources_command(config_path: str) -> None:
    """Show the resolved plugin sources."""
    from plugin_composer.errors import PluginSourceError
    from plugin_composer.sources.resolver import PluginSourceResolver

    config = _load_config(config_path)
    resolver = PluginSourceResolver.from_config(config.sources)
    try:
        sources = asyncio.run(resolver.resolve_sources())
    except PluginSourceError as exc:
        err_console.print(f"[red]No plugin configuration:[/red] {exc}")
        sys.exit(1)

    table = Table(title=f"Plugin Sources ({sources.origin})", box=box.SIMPLE)
    table.add_column("Plugin", style="cyan")
    table.add_column("Script URL", style="magenta")
    table.add_column("Settings")
    for request in sources.requests:
        table.add_row(request.id, request.script_url or "-", str(dict(request.settings)))
    console.print(table)
    for reason in sources.fallback_reasons:
        console.print(f"  [yellow]Fallback:[/yellow] {reason}")


# ---------------------------------------------------------------------------
# load
# ---------------------------------------------------------------------------


@cli.command(name="load")
@config_option
def load_command(config_path: str) -> None:
    """Run a full loading pass, report it, then tear everything down."""
    from plugin_composer.errors import PluginSourceError

    host = _build_host(_load_config(config_path))

    async def _run() -> StartupReport:
        try:
            return await host.start()
        finally:
            await host.shutdown()

    with console.status("Loading plugins..."):
        try:
            report = asyncio.run(_run())
        except PluginSourceError as exc:
            err_console.print(f"[red]Error loading plugins:[/red] {exc}")
            sys.exit(1)

    table = Table(title="Plugin Load Report", box=box.SIMPLE)
    table.add_column("Plugin", style="cyan")
    table.add_column("Status")
    table.add_column("Detail")
    for plugin_id in report.activated:
        descriptor = report.outcome.loaded[plugin_id]
        table.add_row(plugin_id, "[green]active[/green]", f"v{descriptor.version}")
    for plugin_id, error in report.outcome.failed.items():
        table.add_row(plugin_id, "[red]load failed[/red]", str(error))
    for plugin_id, error in report.activation_failures.items():
        table.add_row(plugin_id, "[yellow]not activated[/yellow]", str(error))
    console.print(table)

    sys.exit(1 if report.failed_ids else 0)


# ---------------------------------------------------------------------------
# installed / install / uninstall
# ---------------------------------------------------------------------------


@cli.command(name="installed")
@config_option
def installed_command(config_path: str) -> None:
    """List installed-plugin records."""
    from plugin_composer.registry.store import JsonFileStore

    config = _load_config(config_path)
    if config.store.path is None:
        console.print("[yellow]No persistent store configured.[/yellow]")
        return
    records = JsonFileStore(config.store.path, key=config.store.key).load()
    if not records:
        console.print("[yellow]No plugins installed.[/yellow]")
        return

    table = Table(title="Installed Plugins", box=box.SIMPLE)
    table.add_column("Plugin", style="cyan")
    table.add_column("Version", style="magenta")
    for record in records:
        table.add_row(record.id, record.version)
    console.print(table)


@cli.command(name="available")
@config_option
def available_command(config_path: str) -> None:
    """List the plugin catalog, marking installed plugins."""
    host = _build_host(_load_config(config_path))
    listings = asyncio.run(host.available_plugins())
    if not listings:
        console.print("[yellow]No plugin catalog available.[/yellow]")
        return

    styles = {"available": "dim", "installed": "green", "update available": "yellow"}
    table = Table(title="Plugin Catalog", box=box.SIMPLE)
    table.add_column("Plugin", style="cyan")
    table.add_column("Name")
    table.add_column("Version", style="magenta")
    table.add_column("Description")
    table.add_column("Status")
    for listing in listings:
        entry = listing.entry
        status = listing.status
        if listing.installed_version and status != "installed":
            status = f"{status} (v{listing.installed_version} installed)"
        style = styles[listing.status]
        table.add_row(entry.id, entry.name, entry.version, entry.description, f"[{style}]{status}[/{style}]")
    console.print(table)


@cli.command(name="install")
@click.argument("plugin_id")
@click.argument("version", required=False)
@config_option
def install_command(plugin_id: str, version: str | None, config_path: str) -> None:
    """Install PLUGIN_ID at VERSION (default: the catalog version)."""
    from plugin_composer.errors import PluginNotInCatalogError

    host = _build_host(_load_config(config_path))

    async def _run() -> bool:
        try:
            if version is None:
                return await host.install_from_catalog(plugin_id)
            return await host.install_plugin(plugin_id, version)
        finally:
            await host.shutdown()

    try:
        installed = asyncio.run(_run())
    except PluginNotInCatalogError as exc:
        err_console.print(
            f"[red]Error:[/red] '{plugin_id}' is not in the {exc.catalog_origin} catalog; "
            "pass a VERSION to install it anyway."
        )
        sys.exit(1)

    label = f"{plugin_id} v{version}" if version else plugin_id
    if installed:
        console.print(f"[green]Installed[/green] {label}")
        return
    err_console.print(f"[red]Failed to install[/red] {label} (rolled back)")
    sys.exit(1)


@cli.command(name="uninstall")
@click.argument("plugin_id")
@config_option
def uninstall_command(plugin_id: str, config_path: str) -> None:
    """Uninstall PLUGIN_ID."""
    host = _build_host(_load_config(config_path))

    async def _run() -> bool:
        try:
            return await host.uninstall_plugin(plugin_id)
        finally:
            await host.shutdown()

    if asyncio.run(_run()):
        console.print(f"[green]Uninstalled[/green] {plugin_id}")
        return
    err_console.print(f"[yellow]Plugin '{plugin_id}' is not installed.[/yellow]")
    sys.exit(1)


# ---------------------------------------------------------------------------
# routes
# ---------------------------------------------------------------------------


@cli.command(name="routes")
@config_option
@click.option("--resolve", "resolve_path", default=None, help="Resolve this path after loading.")
@click.option(
    "--grant",
    "grants",
    multiple=True,
    help="Permission granted to the principal used with --resolve (repeatable).",
)
def routes_command(config_path: str, resolve_path: str | None, grants: tuple[str, ...]) -> None:
    """Show the route table assembled from the loaded plugins."""
    from plugin_composer.composition.permissions import Principal
    from plugin_composer.errors import PluginSourceError

    host = _build_host(_load_config(config_path))

    async def _run() -> tuple[RouteTable, RouteResolution | None]:
        try:
            await host.start()
            resolution = (
                host.resolve_route(resolve_path, Principal("cli", frozenset(grants)))
                if resolve_path
                else None
            )
            return host.route_table, resolution
        finally:
            await host.shutdown()

    try:
        route_table, resolution = asyncio.run(_run())
    except PluginSourceError as exc:
        err_console.print(f"[red]Error loading plugins:[/red] {exc}")
        sys.exit(1)

    table = Table(title="Route Table", box=box.SIMPLE)
    table.add_column("#", style="dim")
    table.add_column("Path", style="cyan")
    table.add_column("Owner", style="magenta")
    table.add_column("Exact")
    table.add_column("Permissions")
    for index, entry in enumerate(route_table, start=1):
        route = entry.route
        table.add_row(
            str(index),
            route.path if route else "*",
            entry.owner,
            ("yes" if route.exact else "no") if route else "-",
            ", ".join(sorted(route.permissions)) if route and route.permissions else "public",
        )
    console.print(table)

    if resolution is not None:
        status = resolution.status.value
        detail = resolution.redirect_to or resolution.entry.owner
        console.print(f"  {resolve_path} -> [bold]{status}[/bold] ({detail})")


# ---------------------------------------------------------------------------
# events
# ---------------------------------------------------------------------------


@cli.command(name="events")
@click.option("--last", "-n", default=20, show_default=True, type=int, help="Number of recent events to show.")
@click.option("--event", "event_kind", default=None, help="Only show events of this kind.")
@click.option("--plugin", "plugin_id", default=None, help="Only show events for this plugin.")
@config_option
def events_command(
    last: int, event_kind: str | None, plugin_id: str | None, config_path: str
) -> None:
    """Show recent plugin lifecycle events."""
    from plugin_composer.events import PluginEventLog

    config = _load_config(config_path)
    if config.events.log_path is None:
        console.print("[yellow]No event log configured (events.log_path).[/yellow]")
        return

    events = PluginEventLog(config.events.log_path)
    records = events.recent(last, event=event_kind, plugin=plugin_id)
    if not records:
        console.print("[yellow]No plugin events found.[/yellow]")
        return

    table = Table(title=f"Last {last} Plugin Events", box=box.SIMPLE)
    table.add_column("Timestamp", style="dim", no_wrap=True)
    table.add_column("Event", style="cyan")
    table.add_column("Plugin", style="magenta")
    table.add_column("Detail")
    for record in records:
        ts = str(record.get("timestamp", ""))[:19].replace("T", " ")
        detail = str(record.get("error", record.get("version", record.get("reason", ""))))
        table.add_row(ts, str(record.get("event", "")), str(record.get("plugin", "")), detail)
    console.print(table)
    total = events.count(event=event_kind, plugin=plugin_id)
    console.print(f"  Matching events: [cyan]{total}[/cyan]")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    cli()
