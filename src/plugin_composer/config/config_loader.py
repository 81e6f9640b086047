"""Host configuration loader with Pydantic v2 validation.

Loads and validates a ``plugin_host.yaml`` file into a typed
:class:`HostConfig` object.  Unknown keys are allowed to support future
schema additions without breakage.

Example
-------
>>> loader = ConfigLoader()
>>> config = loader.load(Path("plugin_host.yaml"))
>>> config.store.path
PosixPath('installed_plugins.json')
"""
from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator


class SourcesConfig(BaseModel):
    """Where the plugin list comes from."""

    model_config = {"extra": "allow"}

    remote_url: str | None = Field(default=None)
    remote_timeout_seconds: float = Field(default=5.0, gt=0)
    local_path: Path | None = Field(default=None)
    use_bundled_default: bool = Field(default=True)
    catalog_url: str | None = Field(default=None)
    catalog_path: Path | None = Field(default=None)


class LoaderConfig(BaseModel):
    """How plugin modules are located and loaded."""

    model_config = {"extra": "allow"}

    package: str = Field(default="plugins")
    entry_point: str = Field(default="register")
    entry_point_group: str = Field(default="plugin_composer.plugins")
    module_timeout_seconds: float = Field(default=10.0, gt=0)

    @field_validator("entry_point")
    @classmethod
    def validate_entry_point(cls, value: str) -> str:
        if not value.isidentifier():
            raise ValueError(f"entry_point must be a Python identifier, got '{value}'")
        return value


class StoreConfig(BaseModel):
    """Persistence of installed-plugin records."""

    model_config = {"extra": "allow"}

    path: Path | None = Field(default=Path("installed_plugins.json"))
    key: str = Field(default="installedPlugins", min_length=1)


class RoutesConfig(BaseModel):
    """Route table assembly."""

    model_config = {"extra": "allow"}

    strict_collisions: bool = Field(default=True)
    login_path: str = Field(default="/login")

    @field_validator("login_path")
    @classmethod
    def validate_login_path(cls, value: str) -> str:
        if not value.startswith("/"):
            raise ValueError(f"login_path must start with '/', got '{value}'")
        return value


class EventsConfig(BaseModel):
    """Operator event log."""

    model_config = {"extra": "allow"}

    log_path: Path | None = Field(default=None)


class HostConfig(BaseModel):
    """Top-level plugin host configuration schema.

    Loaded from ``plugin_host.yaml``.  All sections are optional and
    fall back to sensible defaults.
    """

    model_config = {"extra": "allow"}

    version: str = Field(default="1")
    sources: SourcesConfig = Field(default_factory=SourcesConfig)
    loader: LoaderConfig = Field(default_factory=LoaderConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    routes: RoutesConfig = Field(default_factory=RoutesConfig)
    events: EventsConfig = Field(default_factory=EventsConfig)


class ConfigLoader:
    """Loads and validates plugin host YAML configuration.

    Example
    -------
    >>> loader = ConfigLoader()
    >>> config = loader.load(Path("plugin_host.yaml"))
    """

    def load(self, config_path: Path) -> HostConfig:
        """Load and validate a host YAML file.

        Parameters
        ----------
        config_path:
            Path to the ``plugin_host.yaml`` file.

        Returns
        -------
        HostConfig
            Validated configuration object.

        Raises
        ------
        FileNotFoundError:
            When the config file does not exist.
        ValueError:
            When the YAML content fails Pydantic validation.
        """
        if not config_path.exists():
            raise FileNotFoundError(f"Plugin host config not found: {config_path}")

        with config_path.open("r", encoding="utf-8") as fh:
            raw: dict[str, object] = yaml.safe_load(fh) or {}

        return HostConfig.model_validate(raw)

    def load_string(self, yaml_content: str) -> HostConfig:
        """Load and validate a YAML string directly."""
        raw: dict[str, object] = yaml.safe_load(yaml_content) or {}
        return HostConfig.model_validate(raw)

    def defaults(self) -> HostConfig:
        """Return a default configuration with all defaults applied."""
        return HostConfig()
