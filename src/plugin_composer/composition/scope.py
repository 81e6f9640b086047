"""Deterministic nesting of plugin-contributed scopes.

Each scope provider wraps the tree it is given.  Providers are folded from
the right, so for providers registered as P1, P2, P3::

    compose(tree, [P1, P2, P3]) == P1(P2(P3(tree)))

The first-registered provider is outermost and the original tree is the
innermost node.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Sequence

from plugin_composer.descriptor import ScopeProvider

if TYPE_CHECKING:
    from plugin_composer.registry.registry import PluginRegistry
    from plugin_composer.registry.snapshot import RegistrySnapshot

logger = logging.getLogger(__name__)


def compose(tree: Any, providers: Sequence[ScopeProvider]) -> Any:
    """Wrap *tree* in every provider, first provider outermost."""
    composed = tree
    for provider in reversed(providers):
        composed = provider(composed)
    return composed


class ScopeComposer:
    """Keeps a composed tree in sync with a registry's providers.

    The tree is recomposed only when the provider list of a new snapshot
    differs from the one last composed.

    Parameters
    ----------
    registry:
        Registry to subscribe to.
    tree:
        The application tree to wrap.
    """

    def __init__(self, registry: "PluginRegistry", tree: Any) -> None:
        self._tree = tree
        self._providers: tuple[tuple[str, ScopeProvider], ...] | None = None
        self._composed: Any = tree
        self._snapshot_version = -1
        self._compositions = 0
        self._unsubscribe = registry.subscribe(self._on_snapshot)

    @property
    def tree(self) -> Any:
        """The current composed tree."""
        return self._composed

    @property
    def snapshot_version(self) -> int:
        """Version of the snapshot the current tree reflects."""
        return self._snapshot_version

    @property
    def compositions(self) -> int:
        """How many times the tree has been recomposed."""
        return self._compositions

    def close(self) -> None:
        """Stop following the registry."""
        self._unsubscribe()

    def _on_snapshot(self, snapshot: "RegistrySnapshot") -> None:
        self._snapshot_version = snapshot.version
        if snapshot.providers == self._providers:
            return
        self._composed = compose(self._tree, snapshot.provider_list)
        self._providers = snapshot.providers
        self._compositions += 1
        logger.debug(
            "Recomposed scopes for snapshot %d: %s",
            snapshot.version,
            [plugin_id for plugin_id, _ in snapshot.providers],
        )
