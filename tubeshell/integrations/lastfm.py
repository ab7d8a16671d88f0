"""
Last.fm scrobbler.

Every call is a signed, form-encoded POST to the 2.0 API. The signature is
computed by the ``lastfm.signature`` proxy handler so the shared secret
never reaches a renderer.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Mapping, Optional
from urllib.parse import urlencode

from tubeshell.core.session import NowPlaying, Scrobble
from tubeshell.errors import ProxyError
from tubeshell.integrations.base import ScrobbleAdapter
from tubeshell.proxy import HTTP_REQUEST, ProxyChannel, is_error

API_URL = "https://ws.audioscrobbler.com/2.0/"
AUTH_URL = "https://www.last.fm/api/auth/"

SIGNATURE_REQUEST = "lastfm.signature"


class LastFmScrobbler(ScrobbleAdapter):
    name = "lastfm"
    refreshes = True

    def __init__(
        self,
        proxy: ProxyChannel,
        config: Optional[Mapping[str, Any]] = None,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(proxy, clock)
        self.config: dict[str, Any] = {}
        self.configure(config or {})

    def configure(self, config: Mapping[str, Any]) -> None:
        self.config = dict(config)

    @property
    def api_key(self) -> str:
        return self.config.get("api_key") or ""

    @property
    def api_secret(self) -> str:
        return self.config.get("api_secret") or ""

    @property
    def session_key(self) -> str:
        return self.config.get("session_key") or ""

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.api_secret and self.session_key)

    # API calls

    async def call(self, params: Mapping[str, Any], http_method: str = "POST") -> Any:
        """Sign and send one API call; returns the decoded response or an error marker."""
        params = {key: str(value) for key, value in params.items() if value is not None}
        params["api_key"] = self.api_key
        params["format"] = "json"

        signed = await self.proxy.request(SIGNATURE_REQUEST, {"params": params})
        if is_error(signed):
            raise ProxyError(f"could not sign request: {signed.get('message') if signed else 'no response'}")
        params["api_sig"] = signed["signature"]

        if http_method == "GET":
            return await self.proxy.request(HTTP_REQUEST, {"url": f"{API_URL}?{urlencode(params)}", "method": "GET"})
        return await self.proxy.request(
            HTTP_REQUEST,
            {
                "url": API_URL,
                "method": "POST",
                "headers": {"Content-Type": "application/x-www-form-urlencoded"},
                "body": urlencode(params),
            },
        )

    async def now_playing(self, action: NowPlaying) -> Any:
        params = {
            "method": "track.updateNowPlaying",
            "sk": self.session_key,
            "artist": action.identity.artist,
            "track": action.identity.title,
            "album": action.album,
        }
        return await self.call(params)

    async def scrobble(self, action: Scrobble) -> Any:
        params = {
            "method": "track.scrobble",
            "sk": self.session_key,
            "artist": action.identity.artist,
            "track": action.identity.title,
            "album": action.album,
            "timestamp": action.timestamp,
        }
        return await self.call(params)

    # Auth flow used by the settings UI

    async def get_token(self) -> str:
        """Request an unauthorized token (step 1 of desktop auth)."""
        if not self.api_key:
            raise ProxyError("no api_key configured")
        result = await self.proxy.request(
            HTTP_REQUEST,
            {"url": f"{API_URL}?{urlencode({'method': 'auth.getToken', 'api_key': self.api_key, 'format': 'json'})}"},
        )
        if is_error(result) or not result.get("token"):
            raise ProxyError(f"auth.getToken failed: {result.get('message') if result else 'no response'}")
        return result["token"]

    def auth_url(self, token: str) -> str:
        """Page where the user authorizes the token (step 2)."""
        return f"{AUTH_URL}?{urlencode({'api_key': self.api_key, 'token': token})}"

    async def get_session(self, token: str) -> dict[str, str]:
        """
        Exchange an authorized token for a session (step 3).

        Returns:
            {"session_key": ..., "username": ...}
        """
        result = await self.call({"method": "auth.getSession", "token": token}, http_method="GET")
        session = result.get("session") if isinstance(result, Mapping) else None
        if is_error(result) or not isinstance(session, Mapping) or not session.get("key"):
            message = result.get("message") if isinstance(result, Mapping) else "no response"
            raise ProxyError(f"auth.getSession failed: {message}")
        return {"session_key": session["key"], "username": session.get("name") or ""}
