"""
Synced lyrics from LRCLIB.

The page asks for lyrics through the ``lyrics.fetch`` proxy request; the
host looks the track up with an exact match first and falls back to a
free-text search, then hands back parsed, time-ordered lines. Both HTTP
calls go through the ``http.request`` handler.
"""

from __future__ import annotations

import re
from collections import OrderedDict
from dataclasses import asdict, dataclass
from typing import Any, Mapping, Optional
from urllib.parse import urlencode

from tubeshell.errors import ProxyError
from tubeshell.obs import logger
from tubeshell.proxy import HTTP_REQUEST, ProxyChannel, is_error
from tubeshell.version import __version__

API_URL = "https://lrclib.net/api"

FETCH_REQUEST = "lyrics.fetch"

CACHE_SIZE = 64

# [mm:ss], [mm:ss.xx] or [mm:ss.xxx]; a line may carry several stamps
TIMESTAMP = re.compile(r"\[(\d{1,3}):(\d{2})(?:[.:](\d{1,3}))?\]")


@dataclass(frozen=True)
class LyricLine:
    time: float
    text: str


def parse_lrc(lrc: str) -> list[LyricLine]:
    """Parse LRC text into lines sorted by time. Tag lines like ``[ar:...]`` are dropped."""
    lines = []
    for raw in (lrc or "").splitlines():
        stamps = list(TIMESTAMP.finditer(raw))
        if not stamps:
            continue
        text = TIMESTAMP.sub("", raw).strip()
        for stamp in stamps:
            minutes, seconds, fraction = stamp.groups()
            millis = int((fraction or "0").ljust(3, "0"))
            lines.append(LyricLine(int(minutes) * 60 + int(seconds) + millis / 1000, text))
    return sorted(lines, key=lambda line: line.time)


class LyricsClient:
    def __init__(self, proxy: ProxyChannel, cache_size: int = CACHE_SIZE):
        self.proxy = proxy
        self.cache_size = cache_size
        self._cache: OrderedDict[tuple[str, str], dict[str, Any]] = OrderedDict()

    async def handle(self, payload: Any) -> dict[str, Any]:
        """Proxy handler: ``{title, artist, album?, duration?}`` in, lyrics result out."""
        if not isinstance(payload, Mapping):
            raise ProxyError("lyrics request needs track metadata")
        title = str(payload.get("title") or "").strip()
        artist = str(payload.get("artist") or "").strip()
        if not title or not artist:
            raise ProxyError("lyrics request needs title and artist")
        return await self.fetch(title, artist, payload.get("album") or None, payload.get("duration"))

    async def fetch(
        self,
        title: str,
        artist: str,
        album: Optional[str] = None,
        duration: Any = None,
    ) -> dict[str, Any]:
        """
        Look up synced lyrics for one track.

        Returns:
            ``{"found": True, "lines": [...], "source": ...}`` or ``{"found": False}``;
            misses are cached like hits

        Raises:
            ProxyError: both lookups failed for reasons other than "not found"
        """
        key = (artist.casefold(), title.casefold())
        if key in self._cache:
            self._cache.move_to_end(key)
            return self._cache[key]

        failures = []

        params = {"artist_name": artist, "track_name": title}
        if album:
            params["album_name"] = album
        if _positive(duration):
            params["duration"] = str(round(float(duration)))
        exact = await self._get("get", params)
        if _found(exact) and exact.get("syncedLyrics"):
            return self._remember(key, exact["syncedLyrics"], "lrclib:get")
        if is_error(exact) and exact.get("status") != 404:
            failures.append(exact)

        results = await self._get("search", {"q": f"{artist} {title}"})
        if isinstance(results, list):
            match = next((item for item in results if isinstance(item, Mapping) and item.get("syncedLyrics")), None)
            if match is not None:
                return self._remember(key, match["syncedLyrics"], "lrclib:search")
        elif is_error(results):
            failures.append(results)

        if len(failures) == 2:
            raise ProxyError(f"lyrics lookup failed: {failures[-1].get('message')}")

        logger.debug(f"No synced lyrics for {artist} - {title}")
        result = {"found": False}
        self._store(key, result)
        return result

    def clear(self) -> None:
        self._cache.clear()

    async def _get(self, endpoint: str, params: Mapping[str, str]) -> Any:
        return await self.proxy.request(
            HTTP_REQUEST,
            {
                "url": f"{API_URL}/{endpoint}?{urlencode(params)}",
                "method": "GET",
                "headers": {"User-Agent": f"tubeshell/{__version__}"},
            },
        )

    def _remember(self, key: tuple[str, str], lrc: str, source: str) -> dict[str, Any]:
        lines = parse_lrc(lrc)
        if not lines:
            result = {"found": False}
        else:
            result = {"found": True, "source": source, "lines": [asdict(line) for line in lines]}
        self._store(key, result)
        return result

    def _store(self, key: tuple[str, str], result: dict[str, Any]) -> None:
        self._cache[key] = result
        self._cache.move_to_end(key)
        while len(self._cache) > self.cache_size:
            self._cache.popitem(last=False)


def _found(result: Any) -> bool:
    return isinstance(result, Mapping) and not is_error(result)


def _positive(value: Any) -> bool:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return False
    return number == number and 0 < number < float("inf")
