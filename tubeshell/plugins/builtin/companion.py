"""
Companion Server Plugin

Serves the local query API for widgets and stream-deck style clients while
enabled. Changing host or port restarts the server.
"""

from __future__ import annotations

from typing import Optional

from tubeshell.plugins.base import PluginApi, PluginMetadata
from tubeshell.web.companion import DEFAULT_HOST, DEFAULT_PORT, create_companion_app
from tubeshell.web.server import EmbeddedServer


class CompanionServerPlugin:
    metadata = PluginMetadata(
        name="companion-server",
        description="Local API server for external widgets",
        version="1.0.0",
    )

    defaults = {
        "host": DEFAULT_HOST,
        "port": DEFAULT_PORT,
    }

    def __init__(self):
        self.api: Optional[PluginApi] = None
        self.server: Optional[EmbeddedServer] = None

    def bind(self, api: PluginApi) -> None:
        self.api = api
        self.server = EmbeddedServer(create_companion_app(api.hub.latest), name="companion-server")

    async def on_host_ready(self) -> None:
        await self._apply()

    async def on_config_changed(self, config: dict) -> None:
        await self._apply()

    async def on_disabled(self) -> None:
        await self.server.stop()

    async def _apply(self) -> None:
        if not self.api.is_enabled():
            await self.server.stop()
            return
        config = self.api.config
        port = config.get("port")
        await self.server.start(str(config.get("host") or DEFAULT_HOST), DEFAULT_PORT if port in (None, "") else int(port))
