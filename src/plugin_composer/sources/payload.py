"""Validation of plugin configuration payloads.

Two shapes are accepted, both from the remote endpoint and from local or
bundled configuration:

.. code-block:: yaml

    # enabled-list shape
    enabled: [analytics, calendar]
    settings:
      analytics: {refreshInterval: 60000}

    # hosted-plugins shape
    plugins:
      - id: analytics
        scriptUrl: https://cdn.example.com/plugins/analytics.py
        settings: {refreshInterval: 60000}
"""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator

from plugin_composer.descriptor import PluginRequest
from plugin_composer.errors import ConfigFetchError


class EnabledPluginsPayload(BaseModel):
    """``{enabled: [ids], settings: {id: {...}}}``"""

    model_config = {"extra": "allow"}

    enabled: list[str]
    settings: dict[str, dict[str, Any]] = Field(default_factory=dict)

    @field_validator("enabled")
    @classmethod
    def validate_enabled(cls, values: list[str]) -> list[str]:
        for value in values:
            if not value.strip():
                raise ValueError("plugin ids must be non-empty strings")
        return values

    @field_validator("settings", mode="before")
    @classmethod
    def coerce_settings(cls, value: object) -> object:
        if value is None:
            return {}
        if isinstance(value, dict):
            return {k: (v if v is not None else {}) for k, v in value.items()}
        return value


class HostedPluginEntry(BaseModel):
    """One entry of the hosted-plugins shape."""

    model_config = {"extra": "allow", "populate_by_name": True}

    id: str = Field(min_length=1)
    script_url: str | None = Field(default=None, alias="scriptUrl")
    settings: dict[str, Any] = Field(default_factory=dict)

    @field_validator("settings", mode="before")
    @classmethod
    def coerce_settings(cls, value: object) -> object:
        return {} if value is None else value


class HostedPluginsPayload(BaseModel):
    """``{plugins: [{id, scriptUrl, settings}]}``"""

    model_config = {"extra": "allow"}

    plugins: list[HostedPluginEntry]


def parse_plugin_config(raw: object, source: str) -> tuple[PluginRequest, ...]:
    """Validate a configuration payload and turn it into plugin requests.

    Duplicate ids keep their first occurrence.

    Parameters
    ----------
    raw:
        Decoded JSON/YAML payload.
    source:
        URL or path the payload came from, used in error messages.

    Raises
    ------
    ConfigFetchError
        If the payload matches neither accepted shape.
    """
    if not isinstance(raw, dict):
        raise ConfigFetchError(source, f"expected an object, got {type(raw).__name__}")

    requests: list[PluginRequest] = []
    try:
        if "plugins" in raw:
            hosted = HostedPluginsPayload.model_validate(raw)
            for entry in hosted.plugins:
                requests.append(
                    PluginRequest(id=entry.id, script_url=entry.script_url, settings=entry.settings)
                )
        elif "enabled" in raw:
            enabled = EnabledPluginsPayload.model_validate(raw)
            for plugin_id in enabled.enabled:
                requests.append(
                    PluginRequest(id=plugin_id, settings=enabled.settings.get(plugin_id, {}))
                )
        else:
            raise ConfigFetchError(source, "payload has neither 'enabled' nor 'plugins'")
    except ValidationError as exc:
        raise ConfigFetchError(source, f"malformed payload: {exc.error_count()} error(s)") from exc

    seen: set[str] = set()
    unique: list[PluginRequest] = []
    for request in requests:
        if request.id in seen:
            continue
        seen.add(request.id)
        unique.append(request)
    return tuple(unique)
