"""Configuration for plugin-composer hosts.

Exports the YAML configuration loader, its Pydantic schema, and the
bundled default plugin configuration and catalog.
"""
from __future__ import annotations

from plugin_composer.config.config_loader import (
    ConfigLoader,
    EventsConfig,
    HostConfig,
    LoaderConfig,
    RoutesConfig,
    SourcesConfig,
    StoreConfig,
)
from plugin_composer.config.defaults import (
    DEFAULT_CATALOG_YAML,
    DEFAULT_PLUGIN_CONFIG_YAML,
    default_catalog,
    default_plugin_config,
)

__all__ = [
    "ConfigLoader",
    "DEFAULT_CATALOG_YAML",
    "DEFAULT_PLUGIN_CONFIG_YAML",
    "EventsConfig",
    "HostConfig",
    "LoaderConfig",
    "RoutesConfig",
    "SourcesConfig",
    "StoreConfig",
    "default_catalog",
    "default_plugin_config",
]
