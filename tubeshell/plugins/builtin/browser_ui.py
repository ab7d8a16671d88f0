"""
Browser UI Plugin

Back, forward, refresh and settings buttons pinned over the page header.
The page rebuilds its header on most navigations, so the bar is a critical
program: re-asserted on a polling loop as well as on navigation.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

from tubeshell.plugins.base import PluginApi, PluginMetadata
from tubeshell.renderer.context import RendererContext
from tubeshell.renderer.programs import RendererProgram

BUTTONS = ("back", "forward", "refresh", "settings")


class BrowserUiPlugin:
    metadata = PluginMetadata(
        name="browser-ui",
        description="Browser navigation buttons in the page header",
        version="1.0.0",
    )

    defaults = {
        "buttons": list(BUTTONS),
        "height": 64,
        # Header content is shifted right to make room for the buttons
        "offset": 210,
    }

    def __init__(self):
        self.api: Optional[PluginApi] = None

    def bind(self, api: PluginApi) -> None:
        self.api = api

    def renderer_program(self, config: Mapping[str, Any]) -> Optional[RendererProgram]:
        buttons = [name for name in config.get("buttons") or [] if name in BUTTONS]
        if not buttons:
            return None
        return RendererProgram(
            "control_bar",
            {
                "containerId": "tubeshell-browser-ui",
                "buttons": buttons,
                "height": config.get("height", 64),
                "offset": config.get("offset", 210),
            },
            critical=True,
        )

    async def on_content_loaded(self, context: RendererContext) -> None:
        await self.api.inject(context)

    async def on_config_changed(self, config: dict) -> None:
        await self.api.push_config()
