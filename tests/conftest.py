"""Test configuration and fakes shared by the test modules."""

from __future__ import annotations

import asyncio
from typing import Any, Optional

import pytest

from tubeshell.core.config_store import ConfigStore
from tubeshell.errors import RendererError
from tubeshell.plugins.manager import PluginHost
from tubeshell.proxy import ProxyChannel
from tubeshell.renderer.context import RendererContext
from tubeshell.renderer.discovery import PROBE_EXPRESSION
from tubeshell.renderer.injector import ScriptInjector
from tubeshell.renderer.monitor import SAMPLE_EXPRESSION
from tubeshell.renderer.programs import CALL_EXPRESSION, RUNTIME_PROGRAM, default_library

PLAYER_URL = "https://music.youtube.com/watch?v=abc"


def run(coro):
    return asyncio.run(coro)


async def settle(delay: float = 0.05) -> None:
    """Let scheduled re-asserts and background tasks run."""
    await asyncio.sleep(delay)


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeContext(RendererContext):
    """
    In-memory renderer context.

    Emulates the page runtime closely enough for the host: program bodies
    install units once per document, unit calls answer ``found: false``
    after the document is replaced, and probe expressions return whatever
    the test put in ``media`` / ``sample``.
    """

    def __init__(self, url: str = PLAYER_URL, name: Optional[str] = None):
        super().__init__(name)
        self._url = url
        self.library = default_library()
        self.bodies = {self.library.body(name): name for name in self.library.behaviors()}
        self.runtime_installed = False
        self.units: dict[str, dict] = {}
        self.installs: list[tuple[str, str]] = []
        self.calls: list[tuple[str, str]] = []
        self.init_scripts: list[str] = []
        self.evaluations = 0
        self.media: Optional[dict] = None
        self.sample: Optional[dict] = None
        self.fail = False

    @property
    def url(self) -> str:
        return self._url

    def new_document(self, url: Optional[str] = None) -> None:
        """Simulate a full page load: the page forgets every unit."""
        if url is not None:
            self._url = url
        self.units.clear()
        self.runtime_installed = bool(self.init_scripts)

    async def navigate(self, url: str, source: str = "pushState") -> None:
        """Simulate an in-app route change reported by the runtime."""
        self._url = url
        await self.emit("location", {"url": url, "source": source})

    def install_count(self, unit: str) -> int:
        return sum(1 for name, _ in self.installs if name == unit)

    def call_count(self, unit: str, method: str) -> int:
        return self.calls.count((unit, method))

    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        self.evaluations += 1
        if self.closed or self.fail:
            raise RendererError("context unavailable")

        if expression == PROBE_EXPRESSION:
            return self.media
        if expression == SAMPLE_EXPRESSION:
            return self.sample
        if expression == CALL_EXPRESSION:
            unit, method = arg["unit"], arg["method"]
            if unit not in self.units:
                return {"found": False}
            self.calls.append((unit, method))
            if method == "dispose":
                del self.units[unit]
            else:
                self.units[unit] = arg["config"]
            return {"found": True, "result": True}

        behavior = self.bodies.get(expression)
        if behavior == RUNTIME_PROGRAM:
            self.runtime_installed = True
            return None
        if behavior is not None:
            unit = arg["unit"]
            if unit in self.units:
                return {"installed": False}
            self.units[unit] = arg["config"]
            self.installs.append((unit, behavior))
            return {"installed": True}

        raise RendererError(f"unexpected expression: {expression[:40]}")

    async def add_init_script(self, script: str) -> None:
        if self.closed:
            raise RendererError("context closed")
        self.init_scripts.append(script)


class RecordingPlugin:
    """Plugin that records every hook call; optionally fails in one hook."""

    def __init__(self, name: str, defaults: Optional[dict] = None, fail_in: Optional[str] = None, program=None):
        from tubeshell.plugins.base import PluginMetadata

        self.metadata = PluginMetadata(name=name, description=f"{name} plugin", version="1.2.3")
        self.defaults = defaults or {}
        self.fail_in = fail_in
        self.program = program
        self.api = None
        self.events: list[tuple] = []

    def bind(self, api) -> None:
        self.api = api

    def renderer_program(self, config):
        return self.program

    def _record(self, hook: str, *args) -> None:
        self.events.append((hook, *args))
        if hook == self.fail_in:
            raise RuntimeError(f"{self.metadata.name} broke in {hook}")

    async def on_host_ready(self) -> None:
        self._record("on_host_ready")

    async def on_context_created(self, context) -> None:
        self._record("on_context_created", context.id)

    async def on_content_loaded(self, context) -> None:
        self._record("on_content_loaded", context.id)
        if self.program is not None:
            await self.api.inject(context)

    async def on_config_changed(self, config) -> None:
        self._record("on_config_changed", config)

    async def on_disabled(self) -> None:
        self._record("on_disabled")

    def hooks(self) -> list[str]:
        return [event[0] for event in self.events]


def fast_injector() -> ScriptInjector:
    return ScriptInjector(reassert_delays=(0.01,), settle_delay=0.01, poll_interval=0.01, poll_window=0.05)


@pytest.fixture
def store(tmp_path) -> ConfigStore:
    store = ConfigStore(tmp_path / "plugins.json")
    store.load()
    return store


@pytest.fixture
def host(store) -> PluginHost:
    return PluginHost(store, injector=fast_injector(), proxy=ProxyChannel(), monitor_playback=False)
