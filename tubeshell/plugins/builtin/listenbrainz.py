"""ListenBrainz Plugin: submits listens with a user token."""

from __future__ import annotations

from typing import Optional

from tubeshell.integrations.listenbrainz import ListenBrainzScrobbler
from tubeshell.obs import logger
from tubeshell.plugins.base import PluginApi, PluginMetadata


class ListenBrainzPlugin:
    metadata = PluginMetadata(
        name="listenbrainz",
        description="Submit listens to ListenBrainz",
        version="1.0.0",
    )

    defaults = {
        "enabled": False,
        "token": "",
    }

    def __init__(self):
        self.api: Optional[PluginApi] = None
        self.scrobbler: Optional[ListenBrainzScrobbler] = None

    def bind(self, api: PluginApi) -> None:
        self.api = api
        self.scrobbler = ListenBrainzScrobbler(api.proxy, api.config)

    async def on_host_ready(self) -> None:
        self._sync()

    async def on_config_changed(self, config: dict) -> None:
        self._sync()

    async def on_disabled(self) -> None:
        self.scrobbler.detach()

    def _sync(self) -> None:
        self.scrobbler.configure(self.api.config)
        if not self.api.is_enabled():
            self.scrobbler.detach()
            return
        if not self.scrobbler.configured:
            logger.warning("ListenBrainz: no token configured, not submitting listens")
        self.scrobbler.attach(self.api.hub)
