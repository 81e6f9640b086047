"""Immutable, versioned view of the registry state."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from plugin_composer.descriptor import PluginDescriptor, ScopeProvider


@dataclass(frozen=True)
class RegistrySnapshot:
    """Registry state published to consumers after every mutation.

    Attributes
    ----------
    version:
        Monotonically increasing snapshot number.
    plugins:
        Registered descriptors in registration order.
    providers:
        ``(plugin_id, provider)`` pairs in the same relative order as
        their owning descriptors.
    """

    version: int
    plugins: tuple[PluginDescriptor, ...] = ()
    providers: tuple[tuple[str, ScopeProvider], ...] = ()

    @property
    def ids(self) -> tuple[str, ...]:
        return tuple(plugin.id for plugin in self.plugins)

    @property
    def provider_list(self) -> list[ScopeProvider]:
        return [provider for _, provider in self.providers]

    def get(self, plugin_id: str) -> PluginDescriptor | None:
        for plugin in self.plugins:
            if plugin.id == plugin_id:
                return plugin
        return None

    def components(self) -> dict[str, Any]:
        """Return every plugin component keyed ``"<plugin_id>.<name>"``."""
        merged: dict[str, Any] = {}
        for plugin in self.plugins:
            for name, component in plugin.components.items():
                merged[f"{plugin.id}.{name}"] = component
        return merged

    def __len__(self) -> int:
        return len(self.plugins)

    def __contains__(self, plugin_id: object) -> bool:
        return any(plugin.id == plugin_id for plugin in self.plugins)
