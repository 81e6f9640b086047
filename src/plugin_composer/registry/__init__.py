"""Plugin registry, lifecycle coordination and install-record persistence."""
from __future__ import annotations

from plugin_composer.registry.lifecycle import LifecycleCoordinator
from plugin_composer.registry.registry import PluginRegistry, Subscriber
from plugin_composer.registry.snapshot import RegistrySnapshot
from plugin_composer.registry.store import InstalledPluginStore, JsonFileStore, MemoryStore

__all__ = [
    "InstalledPluginStore",
    "JsonFileStore",
    "LifecycleCoordinator",
    "MemoryStore",
    "PluginRegistry",
    "RegistrySnapshot",
    "Subscriber",
]
