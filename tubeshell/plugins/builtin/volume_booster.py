"""
Volume Booster Plugin

Amplifies playback past the page's own 100% through a WebAudio gain stage.
Gain changes from the settings page reach a live unit as an update, without
re-injecting.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

from tubeshell.plugins.base import PluginApi, PluginMetadata
from tubeshell.renderer.context import RendererContext
from tubeshell.renderer.programs import RendererProgram

MIN_GAIN = 1.0
MAX_GAIN = 10.0


def clamp_gain(value: Any) -> float:
    """Gain multiplier within [1, 10]; anything unreadable means no boost."""
    try:
        gain = float(value)
    except (TypeError, ValueError):
        return MIN_GAIN
    if gain != gain:
        return MIN_GAIN
    return min(max(gain, MIN_GAIN), MAX_GAIN)


class VolumeBoosterPlugin:
    metadata = PluginMetadata(
        name="volume-booster",
        description="Boost volume up to 10x (1000%)",
        version="1.0.0",
    )

    defaults = {
        "enabled": False,
        "gain": 1.0,
    }

    def __init__(self):
        self.api: Optional[PluginApi] = None

    def bind(self, api: PluginApi) -> None:
        self.api = api

    def renderer_program(self, config: Mapping[str, Any]) -> RendererProgram:
        return RendererProgram("volume_boost", {"gain": clamp_gain(config.get("gain"))})

    async def on_content_loaded(self, context: RendererContext) -> None:
        await self.api.inject(context)
        # The media element usually mounts after the document loads
        await self.api.reassert_on_media(context)

    async def on_config_changed(self, config: dict) -> None:
        await self.api.push_config()
