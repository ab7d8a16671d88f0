"""
Audio Output Plugin

Sends playback to a chosen output device. Pages report the devices they
can see as ``audio-devices`` bridge messages; the settings page lists them
so the user can pick one by id. An empty id means the system default.
"""

from __future__ import annotations

import weakref
from typing import Any, Mapping, Optional

from tubeshell.obs import logger
from tubeshell.plugins.base import PluginApi, PluginMetadata
from tubeshell.renderer.context import RendererContext
from tubeshell.renderer.programs import RendererProgram

DEVICES_MESSAGE = "audio-devices"


class AudioOutputPlugin:
    metadata = PluginMetadata(
        name="audio-output",
        description="Select a specific audio output device",
        version="1.0.0",
    )

    defaults = {
        "enabled": False,
        "device_id": "",
    }

    def __init__(self):
        self.api: Optional[PluginApi] = None
        self._devices: weakref.WeakKeyDictionary = weakref.WeakKeyDictionary()
        self._listening: weakref.WeakSet = weakref.WeakSet()

    def bind(self, api: PluginApi) -> None:
        self.api = api

    def renderer_program(self, config: Mapping[str, Any]) -> RendererProgram:
        return RendererProgram("audio_output", {"deviceId": str(config.get("device_id") or "")})

    def devices(self) -> list[dict[str, str]]:
        """Output devices seen by any open page, deduplicated by id."""
        seen: dict[str, dict[str, str]] = {}
        for context, devices in list(self._devices.items()):
            if context.closed:
                continue
            for device in devices:
                seen.setdefault(device["deviceId"], device)
        return list(seen.values())

    async def on_context_created(self, context: RendererContext) -> None:
        # Replayed on every enable; subscribe once per context
        if context in self._listening:
            return
        self._listening.add(context)
        context.on(DEVICES_MESSAGE, lambda payload: self._devices_reported(context, payload))

    async def on_content_loaded(self, context: RendererContext) -> None:
        await self.api.inject(context)
        await self.api.reassert_on_media(context)

    async def on_config_changed(self, config: dict) -> None:
        await self.api.push_config()

    def _devices_reported(self, context: RendererContext, payload: Any) -> None:
        reported = payload.get("devices") if isinstance(payload, Mapping) else None
        devices = [
            {"deviceId": str(device.get("deviceId") or ""), "label": str(device.get("label") or "")}
            for device in reported or []
            if isinstance(device, Mapping)
        ]
        self._devices[context] = devices
        logger.debug(f"{context.id}: {len(devices)} audio output(s) available")

        wanted = self.api.config.get("device_id") or ""
        if wanted and self.api.is_enabled() and wanted not in {device["deviceId"] for device in devices}:
            logger.warning(f"Audio output {wanted} is not available in {context.id}, keeping current output")
