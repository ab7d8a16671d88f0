"""
Local query server.

Emulates the companion API of the YouTube Music Desktop App so existing
widgets and stream-deck plugins can read what is playing. Read-only: every
answer comes from the latest session push; the auth endpoints are stubs
that accept any client.
"""

from __future__ import annotations

from typing import Callable, Optional

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from tubeshell.core.hub import NowPlayingUpdate
from tubeshell.utils import format_time

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 9863

# Version reported to clients; the widgets check it against the desktop app's API
API_VERSION = "2.3.0"

PLAYER_URL = "https://music.youtube.com/watch?v={video_id}"

IDLE_TITLE = "Idle"
IDLE_ARTIST = "Waiting for music..."

# playState values understood by companion clients
PLAY_STATE_PLAYING = 1
PLAY_STATE_PAUSED = 2

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}

ANY_METHOD = ["GET", "POST", "PUT", "PATCH", "DELETE"]

StateProvider = Callable[[], Optional[NowPlayingUpdate]]


def build_state_payload(update: Optional[NowPlayingUpdate]) -> dict:
    """Format the latest push the way companion clients expect it."""
    if update is None:
        title, artist, album, cover, url = IDLE_TITLE, IDLE_ARTIST, "", "", ""
        duration = position = 0.0
        paused = True
    else:
        title, artist = update.identity.title, update.identity.artist
        album = update.album or ""
        cover = update.artwork_url
        url = PLAYER_URL.format(video_id=update.video_id) if update.video_id else update.url
        duration, position = update.duration, update.position
        paused = update.paused

    return {
        "player": {
            "track": {
                "title": title,
                "author": artist,
                "album": album,
                "cover": cover,
                "duration": duration,
                "durationHuman": format_time(duration),
                "url": url,
            },
            "statePercent": position / duration if duration > 0 else 0,
            "likeStatus": "INDIFFERENT",
            "repeatType": "NONE",
            "playState": PLAY_STATE_PAUSED if paused else PLAY_STATE_PLAYING,
            "volume": 100,
            "seekbarCurrentPosition": position,
            "seekbarCurrentPositionHuman": format_time(position),
        },
        "version": API_VERSION,
    }


def create_companion_app(state: StateProvider) -> FastAPI:
    """
    Create the companion API app.

    Args:
        state: Returns the latest now-playing push, or None when idle
    """
    app = FastAPI(title="tubeshell companion", docs_url=None, redoc_url=None, openapi_url=None)

    @app.middleware("http")
    async def open_cors(request: Request, call_next):
        if request.method == "OPTIONS":
            return Response(status_code=204, headers=CORS_HEADERS)
        response = await call_next(request)
        response.headers.update(CORS_HEADERS)
        return response

    # Routing 404s are raised as Starlette's HTTPException, the base of FastAPI's
    @app.exception_handler(StarletteHTTPException)
    async def not_found(request: Request, exc: StarletteHTTPException):
        if exc.status_code in (404, 405):
            return JSONResponse({"error": "Not found"}, status_code=404)
        return JSONResponse({"error": exc.detail}, status_code=exc.status_code)

    @app.api_route("/api/v1/state", methods=ANY_METHOD)
    @app.api_route("/query", methods=ANY_METHOD)
    async def player_state() -> dict:
        return build_state_payload(state())

    # --- Auth stubs ---

    @app.api_route("/api/v1/auth/requestcode", methods=ANY_METHOD)
    async def request_code() -> dict:
        return {"code": "123456"}

    @app.api_route("/api/v1/auth/request", methods=ANY_METHOD)
    async def request_token() -> dict:
        return {"token": "dummy-token", "accessToken": "dummy-token"}

    @app.api_route("/api/v1/auth/{rest:path}", methods=ANY_METHOD)
    async def auth_other(rest: str) -> dict:
        return {"success": True}

    return app
