"""ListenBrainz scrobbler: playing_now on track change, one import listen per scrobble."""

from __future__ import annotations

import json
import time
from typing import Any, Callable, Mapping, Optional

from tubeshell.core.session import NowPlaying, Scrobble
from tubeshell.integrations.base import ScrobbleAdapter
from tubeshell.proxy import HTTP_REQUEST, ProxyChannel
from tubeshell.version import __version__

SUBMIT_URL = "https://api.listenbrainz.org/1/submit-listens"

CLIENT_NAME = "tubeshell"


def listen_payload(
    listen_type: str,
    title: str,
    artist: str,
    album: Optional[str] = None,
    listened_at: Optional[int] = None,
) -> dict[str, Any]:
    metadata: dict[str, Any] = {
        "artist_name": artist,
        "track_name": title,
        "additional_info": {
            "media_player": CLIENT_NAME,
            "submission_client": CLIENT_NAME,
            "submission_client_version": __version__,
        },
    }
    if album:
        metadata["release_name"] = album

    listen: dict[str, Any] = {"track_metadata": metadata}
    if listen_type != "playing_now" and listened_at is not None:
        listen["listened_at"] = listened_at

    return {"listen_type": listen_type, "payload": [listen]}


class ListenBrainzScrobbler(ScrobbleAdapter):
    name = "listenbrainz"

    # playing_now is only sent when the track changes
    refreshes = False

    def __init__(
        self,
        proxy: ProxyChannel,
        config: Optional[Mapping[str, Any]] = None,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(proxy, clock)
        self.config: dict[str, Any] = dict(config or {})

    def configure(self, config: Mapping[str, Any]) -> None:
        self.config = dict(config)

    @property
    def token(self) -> str:
        return self.config.get("token") or ""

    @property
    def configured(self) -> bool:
        return bool(self.token)

    async def submit(self, payload: dict[str, Any]) -> Any:
        return await self.proxy.request(
            HTTP_REQUEST,
            {
                "url": self.config.get("api_url") or SUBMIT_URL,
                "method": "POST",
                "headers": {"Content-Type": "application/json", "Authorization": f"Token {self.token}"},
                "body": json.dumps(payload),
            },
        )

    async def now_playing(self, action: NowPlaying) -> Any:
        return await self.submit(
            listen_payload("playing_now", action.identity.title, action.identity.artist, action.album)
        )

    async def scrobble(self, action: Scrobble) -> Any:
        return await self.submit(
            listen_payload("import", action.identity.title, action.identity.artist, action.album, action.timestamp)
        )
