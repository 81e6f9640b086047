"""Shared fixtures: on-disk plugin packages, fake fetchers and fake loaders."""
from __future__ import annotations

import asyncio
import textwrap
import uuid
from pathlib import Path
from typing import Callable

import pytest

from plugin_composer.descriptor import PluginDescriptor, PluginRequest
from plugin_composer.errors import PluginLoadError


@pytest.fixture()
def plugin_package(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Callable[[dict[str, str]], str]:
    """Write a throwaway plugin package and put it on ``sys.path``.

    Returns a factory taking ``{module_name: source}`` and returning the
    unique package name to pass as the loader's ``package``.
    """
    monkeypatch.syspath_prepend(str(tmp_path))

    def _make(modules: dict[str, str]) -> str:
        package = f"pc_test_plugins_{uuid.uuid4().hex[:10]}"
        package_dir = tmp_path / package
        package_dir.mkdir()
        (package_dir / "__init__.py").write_text("", encoding="utf-8")
        for name, source in modules.items():
            (package_dir / f"{name}.py").write_text(textwrap.dedent(source), encoding="utf-8")
        return package

    return _make


class FakeFetcher:
    """In-memory async fetcher keyed by URL.

    Values may be bytes, an exception instance to raise, or a float delay
    (seconds) after which an empty JSON object is returned.
    """

    def __init__(self, responses: dict[str, object] | None = None) -> None:
        self.responses: dict[str, object] = dict(responses or {})
        self.calls: list[str] = []

    async def __call__(self, url: str, timeout_seconds: float) -> bytes:
        self.calls.append(url)
        response = self.responses.get(url)
        if response is None:
            raise OSError(f"connection refused: {url}")
        if isinstance(response, BaseException):
            raise response
        if isinstance(response, float):
            await asyncio.sleep(response)
            return b"{}"
        assert isinstance(response, bytes)
        return response


class FakeLoader:
    """Loader stand-in serving prepared descriptors by id."""

    def __init__(self, descriptors: dict[str, PluginDescriptor] | None = None) -> None:
        self.descriptors: dict[str, PluginDescriptor] = dict(descriptors or {})
        self.requests: list[PluginRequest] = []

    async def load(self, request: PluginRequest) -> PluginDescriptor:
        self.requests.append(request)
        descriptor = self.descriptors.get(request.id)
        if descriptor is None:
            raise PluginLoadError(request.id, "no such plugin")
        if request.settings:
            descriptor = descriptor.with_settings({**descriptor.settings, **request.settings})
        return descriptor


@pytest.fixture()
def fake_fetcher() -> FakeFetcher:
    return FakeFetcher()


def make_descriptor(plugin_id: str, version: str = "1.0.0", **kwargs: object) -> PluginDescriptor:
    return PluginDescriptor(id=plugin_id, name=plugin_id.title(), version=version, **kwargs)  # type: ignore[arg-type]
