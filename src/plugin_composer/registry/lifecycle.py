"""Lifecycle coordination for registered plugins.

The coordinator owns the ordering rules around the ``initialize`` and
``cleanup`` hooks:

- a plugin becomes visible in snapshots only after ``initialize`` succeeded;
- a plugin whose ``initialize`` failed is unregistered and never cleaned up;
- ``cleanup`` runs exactly once, on explicit removal or on teardown;
- teardown cleans up in reverse registration order and a failing
  ``cleanup`` never skips the next one.

Removal from the registry is the claim on ``cleanup``: whichever path
detaches an initialized descriptor is the one that runs the hook.  A
plugin removed while its ``initialize`` is still running is handed back
to its activation, which runs ``cleanup`` only if ``initialize`` succeeds.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
from typing import TYPE_CHECKING

from plugin_composer.descriptor import PluginDescriptor
from plugin_composer.errors import PluginCleanupError, PluginInitError

if TYPE_CHECKING:
    from plugin_composer.registry.registry import PluginRegistry

logger = logging.getLogger(__name__)


class LifecycleCoordinator:
    """Runs plugin lifecycle hooks against one :class:`PluginRegistry`.

    Parameters
    ----------
    registry:
        The registry whose plugins this coordinator manages.
    """

    def __init__(self, registry: "PluginRegistry") -> None:
        self._registry = registry

    # ------------------------------------------------------------------
    # Activation
    # ------------------------------------------------------------------

    async def activate(self, descriptor: PluginDescriptor) -> PluginDescriptor:
        """Register *descriptor* and run its ``initialize`` hook.

        Raises
        ------
        DuplicatePluginError
            When the id is already registered.
        RouteCollisionError
            When a route path is already taken; nothing was registered.
        RegistryClosedError
            When the registry has been torn down.
        PluginInitError
            When ``initialize`` fails; the plugin has been unregistered.
        """
        self._registry._attach(descriptor, pending=True)

        if descriptor.initialize is not None:
            try:
                result = descriptor.initialize(dict(descriptor.settings))
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError:
                self._registry._drop_pending(descriptor.id)
                raise
            except Exception as exc:
                self._registry._drop_pending(descriptor.id)
                error = PluginInitError(descriptor.id, f"initialize failed: {exc}", exc)
                logger.error("%s; plugin unregistered.", error)
                self._registry._emit(
                    {"event": "plugin_init_failed", "plugin": descriptor.id, "error": str(exc)}
                )
                raise error from exc

        if not self._registry._mark_ready(descriptor.id):
            if self._registry._take_abandoned(descriptor.id):
                logger.info(
                    "Plugin '%s' was removed while initializing; cleaning up.", descriptor.id
                )
                await self.run_cleanup(descriptor)
            return descriptor

        logger.info("Plugin '%s' v%s active.", descriptor.id, descriptor.version)
        return descriptor

    # ------------------------------------------------------------------
    # Removal
    # ------------------------------------------------------------------

    async def deactivate(self, plugin_id: str) -> bool:
        """Unregister *plugin_id* and run its ``cleanup`` hook.

        Returns
        -------
        bool
            ``False`` when the plugin was not registered.
        """
        detached = self._registry._detach(plugin_id)
        if detached is None:
            return False
        descriptor, owes_cleanup = detached
        if owes_cleanup:
            await self.run_cleanup(descriptor)
        return True

    async def teardown(self) -> list[PluginCleanupError]:
        """Close the registry and clean up every plugin still registered.

        Cleanup runs in reverse registration order.  Plugins still
        initializing are left to their activation.

        Returns
        -------
        list[PluginCleanupError]
            Errors raised by ``cleanup`` hooks, in the order they ran.
        """
        descriptors = self._registry._close()
        errors: list[PluginCleanupError] = []
        for descriptor in reversed(descriptors):
            error = await self.run_cleanup(descriptor)
            if error is not None:
                errors.append(error)
        logger.info(
            "Registry '%s' torn down: %d plugin(s) cleaned up, %d cleanup error(s).",
            self._registry.name,
            len(descriptors),
            len(errors),
        )
        return errors

    async def run_cleanup(self, descriptor: PluginDescriptor) -> PluginCleanupError | None:
        """Invoke ``cleanup`` on an already detached descriptor.

        Errors are logged and returned, never raised.
        """
        if descriptor.cleanup is None:
            return None
        try:
            result = descriptor.cleanup()
            if inspect.isawaitable(result):
                await result
        except Exception as exc:
            error = PluginCleanupError(descriptor.id, f"cleanup failed: {exc}", exc)
            logger.error("%s", error)
            self._registry._emit(
                {"event": "plugin_cleanup_failed", "plugin": descriptor.id, "error": str(exc)}
            )
            return error
        logger.debug("Plugin '%s' cleaned up.", descriptor.id)
        return None
