"""
Scrobble adapter base.

Runs one TrackSession per renderer context and performs the actions it
emits through the proxy channel. Failures are soft: logged, the action is
skipped, nothing is queued for retry.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Callable, Optional

from tubeshell.core.hub import SessionHub
from tubeshell.core.session import NowPlaying, PlaybackSample, Scrobble, SessionAction, TrackSession
from tubeshell.errors import ProxyError
from tubeshell.obs import logger
from tubeshell.proxy import ProxyChannel, is_error
from tubeshell.utils import spawn


class ScrobbleAdapter:
    """
    Subclasses set ``name`` and ``refreshes`` and implement ``configured``,
    ``now_playing`` and ``scrobble``.
    """

    name = "scrobbler"

    # Periodic now-playing refreshes while a track keeps playing
    refreshes = True

    def __init__(self, proxy: ProxyChannel, clock: Callable[[], float] = time.time):
        self.proxy = proxy
        self.clock = clock
        self.sessions: dict[str, TrackSession] = {}
        self._tasks: set[asyncio.Task] = set()
        self._unsubscribe: Optional[Callable[[], None]] = None

    @property
    def configured(self) -> bool:
        raise NotImplementedError

    @property
    def attached(self) -> bool:
        return self._unsubscribe is not None

    def attach(self, hub: SessionHub) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = hub.subscribe_samples(self.observe, self.reset)
            logger.info(f"{self.name}: listening for playback")

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        for task in list(self._tasks):
            task.cancel()
        self.sessions.clear()

    def observe(self, context_id: str, sample: PlaybackSample) -> None:
        """Feed one sample; actions run as background tasks."""
        if not self.configured:
            return
        session = self.sessions.get(context_id)
        if session is None:
            session = TrackSession(refreshes=self.refreshes, clock=self.clock)
            self.sessions[context_id] = session
        for action in session.observe(sample):
            spawn(self.perform(context_id, session, action), self._tasks, name=f"{self.name}-{context_id}")

    def reset(self, context_id: str) -> None:
        """Navigation away or teardown: forget the session, nothing is scrobbled."""
        if self.sessions.pop(context_id, None) is not None:
            logger.debug(f"{self.name}: session in {context_id} reset")

    async def drain(self) -> None:
        """Wait for in-flight actions."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def perform(self, context_id: str, session: TrackSession, action: SessionAction) -> bool:
        """
        Run one action.

        Returns:
            True when the remote side accepted it
        """
        kind = "scrobble" if isinstance(action, Scrobble) else "now playing"
        try:
            if isinstance(action, Scrobble):
                result = await self.scrobble(action)
            else:
                result = await self.now_playing(action)
        except ProxyError as e:
            logger.warning(f"{self.name}: {kind} failed for {action.identity}: {e}")
            return False

        if self.sessions.get(context_id) is not session:
            logger.debug(f"{self.name}: ignoring {kind} result for closed session in {context_id}")
            return False

        if is_error(result):
            message = result.get("message") if isinstance(result, dict) else "no response"
            logger.warning(f"{self.name}: {kind} failed for {action.identity}: {message}")
            return False

        logger.info(f"{self.name}: {'scrobbled' if kind == 'scrobble' else 'now playing'} {action.identity}")
        return True

    async def now_playing(self, action: NowPlaying) -> Any:
        raise NotImplementedError

    async def scrobble(self, action: Scrobble) -> Any:
        raise NotImplementedError
