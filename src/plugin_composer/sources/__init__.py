"""Plugin source resolution and the installable-plugin catalog."""
from __future__ import annotations

from plugin_composer.sources.catalog import (
    CatalogEntry,
    CatalogListing,
    CatalogResolver,
    PluginCatalog,
    parse_catalog,
)
from plugin_composer.sources.fetch import Fetcher, FetchStatusError, urllib_fetch
from plugin_composer.sources.payload import parse_plugin_config
from plugin_composer.sources.resolver import PluginSourceResolver, ResolvedSources

__all__ = [
    "CatalogEntry",
    "CatalogListing",
    "CatalogResolver",
    "FetchStatusError",
    "Fetcher",
    "PluginCatalog",
    "PluginSourceResolver",
    "ResolvedSources",
    "parse_catalog",
    "parse_plugin_config",
    "urllib_fetch",
]
