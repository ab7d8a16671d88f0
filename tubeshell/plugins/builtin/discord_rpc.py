"""
Discord Rich Presence Plugin

Shows the current track as a Discord activity. Needs a Discord application
client id; the connection is retried in the background while Discord is
not running.
"""

from __future__ import annotations

from typing import Any, Callable, Mapping, Optional

from pypresence import AioPresence

from tubeshell.integrations.presence import ACTIVITY_TIMEOUT, RECONNECT_INTERVAL, PresenceBroadcaster
from tubeshell.plugins.base import PluginApi, PluginMetadata


class DiscordPresencePlugin:
    metadata = PluginMetadata(
        name="discord-rpc",
        description="Show what you're listening to on Discord",
        version="1.0.0",
    )

    defaults = {
        "enabled": False,
        "client_id": "",
        "auto_reconnect": True,
        "reconnect_interval": RECONNECT_INTERVAL,
        "activity_timeout_enabled": True,
        "activity_timeout": ACTIVITY_TIMEOUT,
        "show_time_left": True,
        "play_button": True,
    }

    def __init__(self, client_factory: Callable[[str], Any] = AioPresence):
        self.client_factory = client_factory
        self.api: Optional[PluginApi] = None
        self.broadcaster: Optional[PresenceBroadcaster] = None
        self._config: dict = {}

    def bind(self, api: PluginApi) -> None:
        self.api = api

    def build_broadcaster(self, config: Mapping[str, Any]) -> PresenceBroadcaster:
        return PresenceBroadcaster(
            str(config.get("client_id") or ""),
            client_factory=self.client_factory,
            auto_reconnect=bool(config.get("auto_reconnect", True)),
            reconnect_interval=float(config.get("reconnect_interval") or RECONNECT_INTERVAL),
            activity_timeout=float(config.get("activity_timeout") or ACTIVITY_TIMEOUT)
            if config.get("activity_timeout_enabled", True)
            else None,
            show_time_left=bool(config.get("show_time_left", True)),
            play_button=bool(config.get("play_button", True)),
        )

    async def on_host_ready(self) -> None:
        await self._start()

    async def on_config_changed(self, config: dict) -> None:
        if self.broadcaster is not None and self.api.is_enabled() and config == self._config:
            return
        await self._stop()
        if self.api.is_enabled():
            await self._start()

    async def on_disabled(self) -> None:
        await self._stop()

    async def _start(self) -> None:
        if self.broadcaster is not None:
            return
        self._config = self.api.config
        self.broadcaster = self.build_broadcaster(self._config)
        self.broadcaster.attach(self.api.hub)
        await self.broadcaster.connect()

    async def _stop(self) -> None:
        broadcaster, self.broadcaster = self.broadcaster, None
        if broadcaster is not None:
            broadcaster.detach()
            await broadcaster.disconnect()
