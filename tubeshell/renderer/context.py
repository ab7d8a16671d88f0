"""
Renderer contexts.

A RendererContext is the host's handle on one browser page. Everything the
host does to a page goes through ``evaluate`` and ``add_init_script``;
everything a page tells the host arrives as a bridge message and is
dispatched to listeners by kind ("location", "poke", "playback", ...).
Requests ("request" kind) are answered by the proxy channel.
"""

from __future__ import annotations

import itertools
from collections import defaultdict
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Mapping, Optional

from tubeshell.obs import logger
from tubeshell.utils import call_listener

if TYPE_CHECKING:
    from tubeshell.renderer.discovery import DiscoveryUtility
    from tubeshell.renderer.monitor import PlaybackMonitor

# Name of the function exposed to every page for renderer -> host messages
BRIDGE_NAME = "__tubeshellBridge"

RequestHandler = Callable[[str, Any], Awaitable[Any]]

_context_ids = itertools.count(1)


class RendererContext:
    """
    Base class for page handles.

    Subclasses implement ``url``, ``evaluate`` and ``add_init_script``.
    """

    def __init__(self, name: Optional[str] = None):
        self.id = name or f"ctx-{next(_context_ids)}"
        # Bumped on every new document; injected programs die with their document
        self.generation = 0
        self.content_loaded = False
        self.closed = False
        self.discovery: Optional[DiscoveryUtility] = None
        self.monitor: Optional[PlaybackMonitor] = None
        self._listeners: dict[str, list[Callable[[Any], Any]]] = defaultdict(list)
        self._request_handler: Optional[RequestHandler] = None

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.id} gen={self.generation}>"

    @property
    def url(self) -> str:
        raise NotImplementedError

    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        """Run a JS expression or function in the page; raises RendererError on failure."""
        raise NotImplementedError

    async def add_init_script(self, script: str) -> None:
        """Register a script that runs before page scripts in every new document."""
        raise NotImplementedError

    # Lifecycle

    def mark_loaded(self) -> int:
        """Record a new document; returns the new generation."""
        self.generation += 1
        self.content_loaded = True
        return self.generation

    def close(self) -> None:
        self.closed = True
        self.content_loaded = False
        self._listeners.clear()
        self._request_handler = None
        if self.monitor is not None:
            self.monitor.close()
        if self.discovery is not None:
            self.discovery.close()

    # Renderer -> host

    def on(self, kind: str, listener: Callable[[Any], Any]) -> Callable[[], None]:
        """Subscribe to bridge messages of one kind. Returns an unsubscribe callable."""
        self._listeners[kind].append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners.get(kind, []):
                self._listeners[kind].remove(listener)

        return unsubscribe

    def set_request_handler(self, handler: Optional[RequestHandler]) -> None:
        self._request_handler = handler

    async def emit(self, kind: str, payload: Any = None) -> None:
        for listener in list(self._listeners.get(kind, [])):
            await call_listener(listener, payload, label=f"{self.id} {kind} listener")

    async def handle_bridge(self, message: Any) -> Any:
        """Entry point for messages posted by the page through the bridge."""
        if self.closed or not isinstance(message, Mapping):
            return None

        kind = message.get("kind")
        if kind == "request":
            if self._request_handler is None:
                return {"error": True, "message": "No request handler"}
            return await self._request_handler(str(message.get("name", "")), message.get("payload"))

        if not isinstance(kind, str):
            logger.debug(f"{self.id}: ignoring bridge message without kind")
            return None

        await self.emit(kind, message.get("payload"))
        return None
