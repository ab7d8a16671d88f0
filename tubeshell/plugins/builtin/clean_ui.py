"""Clean UI Plugin: hides page clutter with one stylesheet patch."""

from __future__ import annotations

from typing import Any, Mapping, Optional

from tubeshell.plugins.base import PluginApi, PluginMetadata
from tubeshell.renderer.context import RendererContext
from tubeshell.renderer.programs import RendererProgram

STYLE_ID = "tubeshell-clean-ui"

# Config flag -> selectors hidden when the flag is on
RULES = {
    "hide_upgrade": [
        'ytmusic-guide-entry-renderer:has(a[href^="/music_premium"])',
        'ytmusic-pivot-bar-item-renderer[tab-id="SPunlimited"]',
    ],
    "hide_promos": [
        "ytmusic-mealbar-promo-renderer",
        "ytmusic-statement-banner-renderer",
        "ytmusic-popup-container tp-yt-paper-toast",
    ],
    "hide_cast_button": [
        "ytmusic-cast-button",
    ],
}


def build_css(config: Mapping[str, Any]) -> str:
    selectors = [selector for flag, rules in RULES.items() if config.get(flag) for selector in rules]
    css = ""
    if selectors:
        css = ",\n".join(selectors) + " { display: none !important; }\n"
    extra = config.get("extra_css") or ""
    return css + extra


class CleanUiPlugin:
    metadata = PluginMetadata(
        name="clean-ui",
        description="Hide upgrade buttons, promos and other clutter",
        version="1.0.0",
    )

    defaults = {
        "hide_upgrade": True,
        "hide_promos": True,
        "hide_cast_button": False,
        "extra_css": "",
    }

    def __init__(self):
        self.api: Optional[PluginApi] = None

    def bind(self, api: PluginApi) -> None:
        self.api = api

    def renderer_program(self, config: Mapping[str, Any]) -> Optional[RendererProgram]:
        css = build_css(config)
        if not css:
            return None
        return RendererProgram("style_patch", {"styleId": STYLE_ID, "css": css})

    async def on_content_loaded(self, context: RendererContext) -> None:
        await self.api.inject(context)

    async def on_config_changed(self, config: dict) -> None:
        await self.api.push_config()
