"""Bundled default plugin configuration and catalog.

Used whenever neither a remote nor a local plugin configuration (or
catalog) can be obtained.  Both texts use the shapes accepted from the
remote endpoints.
"""
from __future__ import annotations

import yaml

DEFAULT_PLUGIN_CONFIG_YAML = """\
# Default plugin set
# ------------------
# Plugins enabled when no remote or local configuration is available.

enabled:
  - analytics
  - calendar
  - canvas-display
  - uploads

settings:
  analytics:
    refreshInterval: 60000
  calendar:
    defaultView: month
"""


def default_plugin_config() -> dict[str, object]:
    """Return a fresh parsed copy of the bundled default configuration."""
    return yaml.safe_load(DEFAULT_PLUGIN_CONFIG_YAML) or {}


DEFAULT_CATALOG_YAML = """\
# Default plugin catalog
# ----------------------
# Plugins offered for installation when no catalog endpoint or file is
# configured.

available:
  - id: analytics
    name: Analytics
    description: Track usage data
    version: 1.0.0
  - id: calendar
    name: Calendar
    description: Schedule management
    version: 1.2.0
  - id: canvas-display
    name: Canvas Display
    description: Interactive canvas
    version: 0.9.0
  - id: uploads
    name: File Uploads
    description: Handle file uploads
    version: 2.1.0
"""


def default_catalog() -> dict[str, object]:
    """Return a fresh parsed copy of the bundled default catalog."""
    return yaml.safe_load(DEFAULT_CATALOG_YAML) or {}
