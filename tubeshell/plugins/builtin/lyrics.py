"""
Lyrics Plugin

Replaces the page's static lyrics with synced lines from LRCLIB. The panel
lives in the page; lookups are answered by the host through the
``lyrics.fetch`` proxy request, so the page never talks to LRCLIB itself.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

from tubeshell.errors import ProxyError
from tubeshell.integrations.lyrics import FETCH_REQUEST, LyricsClient
from tubeshell.plugins.base import PluginApi, PluginMetadata
from tubeshell.renderer.context import RendererContext
from tubeshell.renderer.programs import RendererProgram

CONTAINER_ID = "tubeshell-lyrics"
STYLE_ID = "tubeshell-lyrics-style"


def _number(value: Any, default: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


class LyricsPlugin:
    metadata = PluginMetadata(
        name="lyrics",
        description="Synced lyrics from LRCLIB in the Lyrics tab",
        version="1.0.0",
    )

    defaults = {
        "enabled": False,
        "font_size": 24,
        # Seconds added to the playback position when picking the active line
        "offset": 0.0,
    }

    def __init__(self):
        self.api: Optional[PluginApi] = None
        self.client: Optional[LyricsClient] = None

    def bind(self, api: PluginApi) -> None:
        self.api = api
        self.client = LyricsClient(api.proxy)
        api.proxy.register(FETCH_REQUEST, self.fetch)

    async def fetch(self, payload: Any) -> dict[str, Any]:
        if not self.api.is_enabled():
            raise ProxyError("lyrics plugin is disabled")
        return await self.client.handle(payload)

    def renderer_program(self, config: Mapping[str, Any]) -> RendererProgram:
        return RendererProgram(
            "lyrics_panel",
            {
                "containerId": CONTAINER_ID,
                "styleId": STYLE_ID,
                "request": FETCH_REQUEST,
                "fontSize": int(_number(config.get("font_size"), 24)),
                "offset": _number(config.get("offset"), 0.0),
            },
        )

    async def on_content_loaded(self, context: RendererContext) -> None:
        await self.api.inject(context)

    async def on_config_changed(self, config: dict) -> None:
        await self.api.push_config()

    async def on_disabled(self) -> None:
        self.client.clear()
