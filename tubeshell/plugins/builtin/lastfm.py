"""
Last.fm Plugin

Scrobbles what plays in any window. Credentials come from the settings
page: the user supplies an API key and secret, then authorizes the shell
through the desktop auth flow, which stores the session key.
"""

from __future__ import annotations

from typing import Optional

from tubeshell.integrations.lastfm import SIGNATURE_REQUEST, LastFmScrobbler
from tubeshell.obs import logger
from tubeshell.plugins.base import PluginApi, PluginMetadata


class LastFmPlugin:
    metadata = PluginMetadata(
        name="lastfm",
        description="Scrobble tracks to Last.fm",
        version="1.0.0",
    )

    defaults = {
        "enabled": False,
        "api_key": "",
        "api_secret": "",
        "session_key": "",
        "username": "",
    }

    def __init__(self):
        self.api: Optional[PluginApi] = None
        self.scrobbler: Optional[LastFmScrobbler] = None

    def bind(self, api: PluginApi) -> None:
        self.api = api
        self.scrobbler = LastFmScrobbler(api.proxy, api.config)
        # The secret is read from config on every signature and never sent to a page
        api.proxy.register_signature(SIGNATURE_REQUEST, lambda: self.api.config.get("api_secret") or "")

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
            logger.warning("Last.fm: api_key, api_secret and session_key are required, not scrobbling")
        self.scrobbler.attach(self.api.hub)

    # Auth flow, driven by the settings API

    async def begin_auth(self) -> dict[str, str]:
        self.scrobbler.configure(self.api.config)
        token = await self.scrobbler.get_token()
        return {"token": token, "url": self.scrobbler.auth_url(token)}

    async def complete_auth(self, token: str) -> dict[str, str]:
        self.scrobbler.configure(self.api.config)
        session = await self.scrobbler.get_session(token)
        await self.api.update_config(**session)
        logger.info(f"Last.fm: authorized as {session['username'] or 'unknown user'}")
        return session
