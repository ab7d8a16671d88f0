"""
Playback monitor: feeds one context's playback samples into the session hub.

Samples arrive from the probe program on player mutations and media events;
a slow poll covers pages where neither fires.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, Optional

from tubeshell.core.hub import SessionHub
from tubeshell.core.session import PlaybackSample
from tubeshell.errors import RendererError
from tubeshell.obs import logger
from tubeshell.renderer.programs import RendererProgram
from tubeshell.utils import spawn

if TYPE_CHECKING:
    from tubeshell.renderer.context import RendererContext
    from tubeshell.renderer.injector import ScriptInjector

PROBE_UNIT = "session-probe"
POLL_INTERVAL = 5.0
MIN_PUSH_INTERVAL_MS = 1000

SAMPLE_EXPRESSION = """(sources) => {
  const shell = window.__tubeshell;
  return shell && shell.samplePlayback ? shell.samplePlayback(sources) : null;
}"""


class PlaybackMonitor:
    def __init__(
        self,
        context: RendererContext,
        hub: SessionHub,
        injector: ScriptInjector,
        metadata_sources: list[str],
        poll_interval: float = POLL_INTERVAL,
    ):
        self.context = context
        self.hub = hub
        self.injector = injector
        self.metadata_sources = list(metadata_sources)
        self.poll_interval = poll_interval
        self._tasks: set[asyncio.Task] = set()
        self._poll_task: Optional[asyncio.Task] = None
        self._unsubscribe = [context.on("playback", self._on_playback)]
        if context.discovery is not None:
            self._unsubscribe.append(context.discovery.on_navigation(self._on_navigation))
            self._unsubscribe.append(context.discovery.on_media_lost(self._on_media_lost))

    @property
    def program(self) -> RendererProgram:
        return RendererProgram(
            "player_probe",
            {"sources": self.metadata_sources, "minPushInterval": MIN_PUSH_INTERVAL_MS},
        )

    async def start(self) -> None:
        """Install the probe for the current document and make sure the poll loop runs."""
        await self.injector.inject(PROBE_UNIT, self.context, self.program)
        if self._poll_task is None or self._poll_task.done():
            self._poll_task = spawn(self._poll(), self._tasks, name=f"{self.context.id}-playback")

    async def sample(self) -> Optional[PlaybackSample]:
        try:
            payload = await self.context.evaluate(SAMPLE_EXPRESSION, self.metadata_sources)
        except RendererError as e:
            logger.debug(f"{self.context.id}: playback sample unavailable: {e}")
            return None
        if not isinstance(payload, dict):
            return None
        return PlaybackSample.from_payload(payload)

    def close(self) -> None:
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._unsubscribe.clear()
        for task in list(self._tasks):
            task.cancel()

    async def _poll(self) -> None:
        while not self.context.closed:
            await asyncio.sleep(self.poll_interval)
            await self._poll_once()

    async def _poll_once(self) -> None:
        if not self.hub.has_listeners:
            return
        sample = await self.sample()
        if sample is not None:
            await self.hub.publish(self.context.id, sample)

    async def _on_playback(self, payload: Any) -> None:
        if isinstance(payload, dict) and not self.context.closed:
            await self.hub.publish(self.context.id, PlaybackSample.from_payload(payload))

    async def _on_navigation(self, url: str) -> None:
        await self.hub.navigated(self.context.id, url)

    async def _on_media_lost(self) -> None:
        await self._poll_once()
