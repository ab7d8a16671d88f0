"""
Track session state machine.

One TrackSession exists per (integration, renderer context). It is fed
PlaybackSamples from the renderer and answers with the actions the
integration should perform: an immediate now-playing push on a new track,
throttled now-playing refreshes while playing, and a single scrobble once
the listening threshold is reached.

The machine is pure: it never performs I/O and takes its clock as an
argument, so integrations decide how (and whether) to run the actions.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Union

# Scrobble once the track played for half its length or four minutes, whichever is greater
SCROBBLE_FRACTION = 0.5
SCROBBLE_MIN_SECONDS = 240.0

# Minimum spacing of now-playing refreshes for one session
NOW_PLAYING_INTERVAL = 30.0


@dataclass(frozen=True)
class TrackIdentity:
    """Composite track key. Equality is case-sensitive on both fields."""

    title: str
    artist: str

    def __str__(self) -> str:
        return f"{self.title} - {self.artist}"


@dataclass(frozen=True)
class PlaybackSample:
    """One observation of the player, as reported by the renderer probe."""

    identity: Optional[TrackIdentity] = None
    album: Optional[str] = None
    position: float = 0.0
    duration: float = 0.0
    paused: bool = True
    artwork_url: str = ""
    video_id: Optional[str] = None
    url: str = ""
    media_present: bool = False

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> PlaybackSample:
        """Build a sample from the probe's JSON payload, tolerating missing fields."""
        title = (payload.get("title") or "").strip()
        artist = (payload.get("artist") or "").strip()
        identity = TrackIdentity(title, artist) if title and artist else None
        return cls(
            identity=identity,
            album=payload.get("album") or None,
            position=_as_seconds(payload.get("position")),
            duration=_as_seconds(payload.get("duration")),
            paused=bool(payload.get("paused", True)),
            artwork_url=payload.get("artwork") or "",
            video_id=payload.get("videoId") or None,
            url=payload.get("url") or "",
            media_present=bool(payload.get("mediaPresent", False)),
        )


def _as_seconds(value: Any) -> float:
    # Media elements report NaN/Infinity before metadata loads
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        return 0.0
    if seconds != seconds or seconds in (float("inf"), float("-inf")) or seconds < 0:
        return 0.0
    return seconds


def scrobble_threshold(duration: float) -> float:
    """Position (seconds) a track must reach before it is scrobbled."""
    return max(duration * SCROBBLE_FRACTION, SCROBBLE_MIN_SECONDS)


@dataclass
class SessionState:
    identity: TrackIdentity
    album: Optional[str]
    start_timestamp: Optional[float]
    scrobbled: bool = False
    last_now_playing_push: Optional[float] = None


@dataclass(frozen=True)
class NowPlaying:
    identity: TrackIdentity
    album: Optional[str]
    # True when the push announces a track change and bypassed the throttle
    forced: bool


@dataclass(frozen=True)
class Scrobble:
    identity: TrackIdentity
    album: Optional[str]
    timestamp: int


SessionAction = Union[NowPlaying, Scrobble]


class TrackSession:
    """
    States: idle (state is None) and tracking. "Scrobbled" and "refreshed"
    are flags on the tracking state rather than separate states.
    """

    def __init__(
        self,
        *,
        scrobbles: bool = True,
        refreshes: bool = True,
        throttle: float = NOW_PLAYING_INTERVAL,
        clock: Callable[[], float] = time.time,
    ):
        self.scrobbles = scrobbles
        self.refreshes = refreshes
        self.throttle = throttle
        self.clock = clock
        self.state: Optional[SessionState] = None

    @property
    def idle(self) -> bool:
        return self.state is None

    def reset(self) -> None:
        """Drop the tracked session without scrobbling it."""
        self.state = None

    def observe(self, sample: PlaybackSample) -> list[SessionAction]:
        if sample.identity is None and not sample.media_present:
            self.reset()
            return []
        if sample.identity is None or not sample.media_present:
            return []

        now = self.clock()
        actions: list[SessionAction] = []
        state = self.state

        if state is None or state.identity != sample.identity:
            state = SessionState(
                identity=sample.identity,
                album=sample.album,
                start_timestamp=now,
                last_now_playing_push=now,
            )
            self.state = state
            actions.append(NowPlaying(state.identity, state.album, forced=True))
        elif not state.album and sample.album:
            state.album = sample.album

        if self.scrobbles and self._should_scrobble(sample):
            state.scrobbled = True
            actions.append(Scrobble(state.identity, state.album, int(state.start_timestamp)))

        if self.refreshes and not sample.paused and not actions:
            if self.accept_push(now):
                actions.append(NowPlaying(state.identity, state.album, forced=False))

        return actions

    def accept_push(self, now: Optional[float] = None) -> bool:
        """Throttle gate for now-playing refreshes; records the push when accepted."""
        if self.state is None:
            return False
        now = self.clock() if now is None else now
        last = self.state.last_now_playing_push
        if last is not None and now - last < self.throttle:
            return False
        self.state.last_now_playing_push = now
        return True

    def _should_scrobble(self, sample: PlaybackSample) -> bool:
        state = self.state
        if state is None or state.scrobbled or state.start_timestamp is None:
            return False
        if sample.position <= 0:
            return False
        return sample.position >= scrobble_threshold(sample.duration)
