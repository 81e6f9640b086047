"""Plugin module loader.

Loads one plugin per :class:`~plugin_composer.descriptor.PluginRequest`
and validates what it produces into a
:class:`~plugin_composer.descriptor.PluginDescriptor`.

Bundled plugins are located through the ``plugin_composer.plugins``
entry-point group first, then imported from the configured package:

.. code-block:: toml

    [project.entry-points."plugin_composer.plugins"]
    analytics = "my_package.plugins.analytics"

Externally hosted plugins are fetched from their ``script_url``, compiled
and executed into a fresh module object.  In both cases the loader calls
the module's entry point (``register`` by default) and receives the
descriptor as the return value::

    def register():
        return {"id": "analytics", "name": "Analytics", "version": "1.0.0"}

Bundled modules may instead expose a module-level ``plugin`` attribute.
"""
from __future__ import annotations

import asyncio
import importlib
import inspect
import logging
import re
from dataclasses import dataclass, field
from importlib.metadata import entry_points
from types import ModuleType
from typing import Any, Mapping, Sequence

from plugin_composer.config.config_loader import LoaderConfig
from plugin_composer.descriptor import PluginDescriptor, PluginRequest
from plugin_composer.errors import DescriptorValidationError, PluginLoadError
from plugin_composer.sources.fetch import Fetcher, urllib_fetch

logger = logging.getLogger(__name__)

_UNSAFE_NAME_RE = re.compile(r"[^0-9A-Za-z_]")


@dataclass
class LoadOutcome:
    """Settled results of a loading pass, in original request order.

    Attributes
    ----------
    loaded:
        Plugin id to loaded descriptor.
    failed:
        Plugin id to the :class:`PluginLoadError` explaining the failure.
    """

    loaded: dict[str, PluginDescriptor] = field(default_factory=dict)
    failed: dict[str, PluginLoadError] = field(default_factory=dict)

    @property
    def descriptors(self) -> list[PluginDescriptor]:
        return list(self.loaded.values())

    @property
    def total(self) -> int:
        return len(self.loaded) + len(self.failed)


class PluginModuleLoader:
    """Asynchronously loads plugin modules and validates their descriptors.

    Parameters
    ----------
    package:
        Package bundled plugin modules are imported from.
    entry_point:
        Name of the module-level function returning the descriptor.
    entry_point_group:
        ``importlib.metadata`` entry-point group searched before *package*.
    timeout_seconds:
        Per-plugin timeout covering fetch, import and the entry point call.
    fetcher:
        Async fetch callable for externally hosted plugins.
    """

    def __init__(
        self,
        package: str = "plugins",
        *,
        entry_point: str = "register",
        entry_point_group: str = "plugin_composer.plugins",
        timeout_seconds: float = 10.0,
        fetcher: Fetcher | None = None,
    ) -> None:
        self._package = package
        self._entry_point = entry_point
        self._group = entry_point_group
        self._timeout = timeout_seconds
        self._fetch = fetcher or urllib_fetch

    @classmethod
    def from_config(
        cls,
        config: LoaderConfig,
        fetcher: Fetcher | None = None,
    ) -> PluginModuleLoader:
        """Build a loader from the ``loader`` section of a host config."""
        return cls(
            package=config.package,
            entry_point=config.entry_point,
            entry_point_group=config.entry_point_group,
            timeout_seconds=config.module_timeout_seconds,
            fetcher=fetcher,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def load(self, request: PluginRequest) -> PluginDescriptor:
        """Load a single plugin.

        Settings from *request* are merged over any settings the module
        declares and attached to the returned descriptor.

        Raises
        ------
        PluginLoadError
            When the module cannot be fetched or evaluated, times out, or
            does not produce a valid descriptor for ``request.id``.
        """
        try:
            descriptor = await asyncio.wait_for(self._load(request), timeout=self._timeout)
        except PluginLoadError:
            raise
        except asyncio.TimeoutError as exc:
            raise PluginLoadError(
                request.id, f"load timed out after {self._timeout}s", exc
            ) from exc
        except Exception as exc:
            raise PluginLoadError(request.id, f"module could not be loaded: {exc}", exc) from exc

        if descriptor.id != request.id:
            raise PluginLoadError(
                request.id, f"module registered a descriptor for '{descriptor.id}' instead"
            )
        if request.settings:
            descriptor = descriptor.with_settings({**descriptor.settings, **request.settings})
        return descriptor

    async def load_all(self, requests: Sequence[PluginRequest]) -> LoadOutcome:
        """Load every request concurrently and wait for all to settle.

        A failing load never cancels or blocks the others.  The outcome
        is ordered by the original request order regardless of which load
        finished first.
        """
        unique: list[PluginRequest] = []
        seen: set[str] = set()
        for request in requests:
            if request.id in seen:
                logger.warning("Plugin '%s' requested more than once; ignoring repeat.", request.id)
                continue
            seen.add(request.id)
            unique.append(request)

        results = await asyncio.gather(
            *(self.load(request) for request in unique),
            return_exceptions=True,
        )

        outcome = LoadOutcome()
        for request, result in zip(unique, results):
            if isinstance(result, PluginDescriptor):
                outcome.loaded[request.id] = result
                continue
            if isinstance(result, PluginLoadError):
                error = result
            else:
                error = PluginLoadError(request.id, f"load aborted: {result!r}", result)
            logger.error("Failed to load plugin '%s': %s", request.id, error)
            outcome.failed[request.id] = error

        logger.info(
            "Plugin loading settled: %d loaded, %d failed.",
            len(outcome.loaded),
            len(outcome.failed),
        )
        return outcome

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _load(self, request: PluginRequest) -> PluginDescriptor:
        if request.is_external:
            target: object = await self._load_external(request)
        else:
            target = await asyncio.to_thread(self._import_bundled, request.id)
        return await self._describe(request.id, target, external=request.is_external)

    def _import_bundled(self, plugin_id: str) -> object:
        """Return the entry-point object or module for a bundled plugin."""
        for entry in entry_points(group=self._group):
            if entry.name == plugin_id:
                logger.debug("Plugin '%s' found via entry point %s", plugin_id, entry.value)
                return entry.load()
        module_name = f"{self._package}.{plugin_id.replace('-', '_')}"
        return importlib.import_module(module_name)

    async def _load_external(self, request: PluginRequest) -> ModuleType:
        if not request.script_url:
            raise PluginLoadError(request.id, "external plugin request has no script URL")
        body = await self._fetch(request.script_url, self._timeout)
        source = body.decode("utf-8")
        module = ModuleType(f"plugin_composer.external.{_UNSAFE_NAME_RE.sub('_', request.id)}")
        module.__file__ = request.script_url
        code = compile(source, request.script_url, "exec")
        exec(code, module.__dict__)  # noqa: S102
        return module

    async def _describe(self, plugin_id: str, target: object, external: bool) -> PluginDescriptor:
        produced: Any
        if isinstance(target, ModuleType):
            entry = getattr(target, self._entry_point, None)
            if entry is None:
                if external:
                    raise PluginLoadError(
                        plugin_id, f"script did not define entry point '{self._entry_point}()'"
                    )
                produced = getattr(target, "plugin", None)
                if produced is None:
                    raise PluginLoadError(
                        plugin_id,
                        f"module '{target.__name__}' defines neither "
                        f"'{self._entry_point}()' nor 'plugin'",
                    )
            elif not callable(entry):
                raise PluginLoadError(plugin_id, f"entry point '{self._entry_point}' is not callable")
            else:
                produced = entry()
        elif isinstance(target, (PluginDescriptor, Mapping)):
            produced = target
        elif callable(target):
            produced = target()
        else:
            raise PluginLoadError(plugin_id, f"unsupported plugin object {target!r}")

        if inspect.isawaitable(produced):
            produced = await produced
        return _coerce_descriptor(plugin_id, produced)


def _coerce_descriptor(plugin_id: str, produced: object) -> PluginDescriptor:
    if isinstance(produced, PluginDescriptor):
        return produced
    if isinstance(produced, Mapping):
        return PluginDescriptor.from_mapping(produced)
    if produced is None:
        raise PluginLoadError(plugin_id, "entry point returned no descriptor")
    raise DescriptorValidationError(
        plugin_id, f"expected a descriptor or mapping, got {type(produced).__name__}"
    )
