"""
Shared discovery utility.

Installed once per renderer context ahead of any plugin program so plugins
do not each poll the page. Two independent watchers:

- NavigationWatcher: the page reports every location signal it sees
  (route-finish event, history pop, patched pushState/replaceState, main
  frame navigations); the watcher compares against the last seen URL
  before dispatching, so one change produces one callback.
- MediaWatcher: an adaptive polling loop looking for the page's media
  element. Aggressive interval while searching, relaxed once found, back
  to aggressive as soon as the element is lost.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Mapping, Optional

from tubeshell.errors import RendererError
from tubeshell.obs import logger
from tubeshell.renderer.programs import ProgramLibrary, default_library
from tubeshell.utils import call_listener, spawn

if TYPE_CHECKING:
    from tubeshell.renderer.context import RendererContext

AGGRESSIVE_INTERVAL = 1.0
RELAXED_INTERVAL = 5.0

PROBE_EXPRESSION = "() => window.__tubeshell ? window.__tubeshell.probeMedia() : null"

NavigationCallback = Callable[[str], Any]
MediaCallback = Callable[["MediaElement"], Any]


class WatchState(str, Enum):
    SEARCHING = "searching"
    FOUND = "found"
    LOST = "lost"


@dataclass(frozen=True)
class MediaElement:
    """Snapshot of the page's primary media element."""

    id: str
    src: str = ""
    paused: bool = True
    current_time: float = 0.0
    duration: float = 0.0

    @classmethod
    def from_payload(cls, payload: Any) -> Optional[MediaElement]:
        if not isinstance(payload, Mapping) or not payload.get("id"):
            return None
        return cls(
            id=str(payload["id"]),
            src=payload.get("src") or "",
            paused=bool(payload.get("paused", True)),
            current_time=float(payload.get("currentTime") or 0.0),
            duration=float(payload.get("duration") or 0.0),
        )


class NavigationWatcher:
    def __init__(self, initial_url: str = ""):
        self.last_url = initial_url
        self._callbacks: list[NavigationCallback] = []

    def subscribe(self, callback: NavigationCallback) -> Callable[[], None]:
        self._callbacks.append(callback)
        return lambda: self._callbacks.remove(callback) if callback in self._callbacks else None

    async def observe(self, url: str, source: str = "") -> bool:
        """Report a location signal. Returns True when it was a new URL."""
        if not url or url == self.last_url:
            return False
        self.last_url = url
        logger.debug(f"Navigation to {url} ({source or 'unknown source'})")
        for callback in list(self._callbacks):
            await call_listener(callback, url, label="navigation callback")
        return True


class MediaWatcher:
    """
    States:
        searching: no element seen since start or the last navigation
        found: element present, polled at the relaxed interval
        lost: element disappeared, polled at the aggressive interval
    """

    def __init__(
        self,
        probe: Callable[[], Awaitable[Optional[MediaElement]]],
        *,
        aggressive_interval: float = AGGRESSIVE_INTERVAL,
        relaxed_interval: float = RELAXED_INTERVAL,
    ):
        self.probe = probe
        self.aggressive_interval = aggressive_interval
        self.relaxed_interval = relaxed_interval
        self.state = WatchState.SEARCHING
        self.element: Optional[MediaElement] = None
        self._found_callbacks: list[MediaCallback] = []
        self._lost_callbacks: list[Callable[[], Any]] = []
        self._wake = asyncio.Event()

    @property
    def interval(self) -> float:
        if self.state is WatchState.FOUND:
            return self.relaxed_interval
        return self.aggressive_interval

    async def subscribe_found(self, callback: MediaCallback) -> Callable[[], None]:
        """Subscribe to discoveries; called right away if an element is already present."""
        self._found_callbacks.append(callback)
        if self.element is not None:
            await call_listener(callback, self.element, label="media-found callback")
        return lambda: self._found_callbacks.remove(callback) if callback in self._found_callbacks else None

    def subscribe_lost(self, callback: Callable[[], Any]) -> Callable[[], None]:
        self._lost_callbacks.append(callback)
        return lambda: self._lost_callbacks.remove(callback) if callback in self._lost_callbacks else None

    async def observe(self, element: Optional[MediaElement]) -> None:
        """Apply one probe result."""
        if element is None:
            if self.state is WatchState.FOUND:
                self.state = WatchState.LOST
                self.element = None
                logger.debug("Media element lost, searching aggressively")
                for callback in list(self._lost_callbacks):
                    await call_listener(callback, label="media-lost callback")
            return

        if self.state is WatchState.FOUND and self.element is not None:
            if self.element.id == element.id:
                self.element = element
                return
            # A different element replaced the old one between polls
            for callback in list(self._lost_callbacks):
                await call_listener(callback, label="media-lost callback")

        self.state = WatchState.FOUND
        self.element = element
        logger.debug(f"Media element {element.id} found, relaxing poll interval")
        for callback in list(self._found_callbacks):
            await call_listener(callback, element, label="media-found callback")

    def reset(self) -> None:
        """Forget the current element (navigation); the next probe rediscovers it."""
        self.state = WatchState.SEARCHING
        self.element = None
        self.poke()

    def poke(self) -> None:
        """Wake the loop for an early poll."""
        self._wake.set()

    async def poll_once(self) -> None:
        try:
            element = await self.probe()
        except RendererError as e:
            logger.debug(f"Media probe failed: {e}")
            element = None
        await self.observe(element)

    async def run(self) -> None:
        while True:
            # Cleared before probing so a poke during the probe still wakes the next wait
            self._wake.clear()
            await self.poll_once()
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass


class DiscoveryUtility:
    """Per-context owner of the navigation and media watchers."""

    def __init__(
        self,
        context: RendererContext,
        library: Optional[ProgramLibrary] = None,
        *,
        aggressive_interval: float = AGGRESSIVE_INTERVAL,
        relaxed_interval: float = RELAXED_INTERVAL,
    ):
        self.context = context
        self.library = library or default_library()
        self.navigation = NavigationWatcher(context.url if not context.closed else "")
        self.media = MediaWatcher(
            self._probe,
            aggressive_interval=aggressive_interval,
            relaxed_interval=relaxed_interval,
        )
        self.navigation.subscribe(lambda _url: self.media.reset())
        self._init_script_added = False
        self._tasks: set[asyncio.Task] = set()
        self._loop_task: Optional[asyncio.Task] = None
        self._unsubscribe = [
            context.on("location", self._on_location),
            context.on("poke", lambda _payload: self.media.poke()),
        ]
        context.discovery = self

    async def install(self) -> None:
        """Install the runtime for the current document and start the media loop."""
        runtime = self.library.runtime()
        if not self._init_script_added:
            await self.context.add_init_script(runtime)
            self._init_script_added = True
        try:
            await self.context.evaluate(runtime)
        except RendererError as e:
            logger.debug(f"{self.context.id}: runtime evaluate deferred to init script: {e}")
        if self._loop_task is None or self._loop_task.done():
            self._loop_task = spawn(self.media.run(), self._tasks, name=f"{self.context.id}-media")

    def on_navigation(self, callback: NavigationCallback) -> Callable[[], None]:
        return self.navigation.subscribe(callback)

    async def on_media_found(self, callback: MediaCallback) -> Callable[[], None]:
        return await self.media.subscribe_found(callback)

    def on_media_lost(self, callback: Callable[[], Any]) -> Callable[[], None]:
        return self.media.subscribe_lost(callback)

    def close(self) -> None:
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._unsubscribe.clear()
        for task in list(self._tasks):
            task.cancel()

    async def _on_location(self, payload: Any) -> None:
        if isinstance(payload, Mapping):
            await self.navigation.observe(str(payload.get("url") or ""), str(payload.get("source") or ""))

    async def _probe(self) -> Optional[MediaElement]:
        if self.context.closed:
            return None
        return MediaElement.from_payload(await self.context.evaluate(PROBE_EXPRESSION))
