"""Plugin module loading for plugin-composer."""
from __future__ import annotations

from plugin_composer.loading.loader import LoadOutcome, PluginModuleLoader

__all__ = ["LoadOutcome", "PluginModuleLoader"]
