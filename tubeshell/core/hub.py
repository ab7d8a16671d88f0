"""
Session hub: the host side of the session push channel.

Renderer contexts publish PlaybackSamples here. The hub forwards raw
samples to scrobblers (each runs its own TrackSession per context) and
turns samples into NowPlayingUpdate pushes for consumers that only need
"what is playing now" (presence, query server). A push of ``None`` is the
clear variant, sent when identity or playback is lost.
"""

from __future__ import annotations

import re
import time
from dataclasses import asdict, dataclass
from typing import Any, Awaitable, Callable, Optional, Union

from tubeshell.core.session import PlaybackSample, TrackIdentity
from tubeshell.obs import logger
from tubeshell.utils import call_listener


@dataclass(frozen=True)
class NowPlayingUpdate:
    context_id: str
    identity: TrackIdentity
    album: Optional[str]
    start_timestamp: float
    position: float
    duration: float
    artwork_url: str
    paused: bool
    video_id: Optional[str] = None
    url: str = ""

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["title"] = self.identity.title
        data["artist"] = self.identity.artist
        del data["identity"]
        return data


SampleListener = Callable[[str, PlaybackSample], Union[Awaitable[None], None]]
UpdateListener = Callable[[str, Optional[NowPlayingUpdate]], Union[Awaitable[None], None]]
ResetListener = Callable[[str], Union[Awaitable[None], None]]


class SessionHub:
    def __init__(self, player_url_pattern: str = "", clock: Callable[[], float] = time.time):
        self.player_url = re.compile(player_url_pattern) if player_url_pattern else None
        self.clock = clock
        self._current: dict[str, NowPlayingUpdate] = {}
        self._last_context: Optional[str] = None
        self._sample_listeners: list[SampleListener] = []
        self._update_listeners: list[UpdateListener] = []
        self._reset_listeners: list[ResetListener] = []

    # Subscriptions

    def subscribe_samples(self, listener: SampleListener, on_reset: Optional[ResetListener] = None) -> Callable[[], None]:
        """Raw samples for integrations running their own session machine."""
        self._sample_listeners.append(listener)
        if on_reset is not None:
            self._reset_listeners.append(on_reset)

        def unsubscribe() -> None:
            if listener in self._sample_listeners:
                self._sample_listeners.remove(listener)
            if on_reset is not None and on_reset in self._reset_listeners:
                self._reset_listeners.remove(on_reset)

        return unsubscribe

    def subscribe_updates(self, listener: UpdateListener) -> Callable[[], None]:
        """Now-playing pushes and clears."""
        self._update_listeners.append(listener)
        return lambda: self._update_listeners.remove(listener) if listener in self._update_listeners else None

    @property
    def has_listeners(self) -> bool:
        return bool(self._sample_listeners or self._update_listeners)

    # State

    def latest(self, context_id: Optional[str] = None) -> Optional[NowPlayingUpdate]:
        """Latest push for a context, or for the most recently active context."""
        if context_id is None:
            context_id = self._last_context
        if context_id is None:
            return None
        return self._current.get(context_id)

    def is_player_url(self, url: str) -> bool:
        return self.player_url is None or bool(self.player_url.search(url))

    # Publishing

    async def publish(self, context_id: str, sample: PlaybackSample) -> None:
        for listener in list(self._sample_listeners):
            await call_listener(listener, context_id, sample, label="sample listener")

        if sample.identity is None or not sample.media_present:
            if context_id in self._current:
                await self._clear(context_id)
            return

        previous = self._current.get(context_id)
        if previous is not None and previous.identity == sample.identity:
            start = previous.start_timestamp
        else:
            start = self.clock()
            logger.info(f"Now playing in {context_id}: {sample.identity}")

        update = NowPlayingUpdate(
            context_id=context_id,
            identity=sample.identity,
            album=sample.album,
            start_timestamp=start,
            position=sample.position,
            duration=sample.duration,
            artwork_url=sample.artwork_url,
            paused=sample.paused,
            video_id=sample.video_id,
            url=sample.url,
        )
        self._current[context_id] = update
        self._last_context = context_id
        for listener in list(self._update_listeners):
            await call_listener(listener, context_id, update, label="update listener")

    async def navigated(self, context_id: str, url: str) -> None:
        """Navigation inside a context; leaving the player ends its session."""
        if not self.is_player_url(url):
            await self.reset(context_id)

    async def reset(self, context_id: str) -> None:
        """Send a context back to idle: scrobblers drop their session, consumers get a clear."""
        for listener in list(self._reset_listeners):
            await call_listener(listener, context_id, label="reset listener")
        if context_id in self._current:
            await self._clear(context_id)

    async def _clear(self, context_id: str) -> None:
        self._current.pop(context_id, None)
        if self._last_context == context_id:
            self._last_context = next(iter(self._current), None)
        logger.info(f"Playback cleared in {context_id}")
        for listener in list(self._update_listeners):
            await call_listener(listener, context_id, None, label="update listener")
