"""
Discord presence broadcaster.

Consumes now-playing pushes from the session hub and mirrors them as a
Discord activity over the local RPC socket.

Connection states: disconnected -> connecting -> connected. A failed
connect or a lost connection goes back to disconnected and, with
auto-reconnect on, retries after a fixed interval. The last wanted
activity is re-sent once a connection comes up.
"""

from __future__ import annotations

import asyncio
import time
from enum import Enum
from typing import Any, Callable, Optional

from pypresence import AioPresence
from pypresence.exceptions import PyPresenceException

from tubeshell.core.hub import NowPlayingUpdate, SessionHub
from tubeshell.core.session import TrackIdentity
from tubeshell.obs import logger
from tubeshell.utils import spawn

RECONNECT_INTERVAL = 15.0

# Clear the activity once playback has been paused this long
ACTIVITY_TIMEOUT = 600.0

# Timestamps derived from sampled positions jitter by a second or two
TIMESTAMP_TOLERANCE = 2

PLAYER_URL = "https://music.youtube.com/watch?v={video_id}"

CONNECT_ERRORS = (PyPresenceException, OSError, asyncio.TimeoutError)


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


def build_activity(
    update: NowPlayingUpdate,
    now: float,
    *,
    show_time_left: bool = True,
    play_button: bool = True,
) -> dict[str, Any]:
    """Activity fields for AioPresence.update()."""
    title = update.identity.title
    activity: dict[str, Any] = {
        "details": title[:128],
        "state": update.identity.artist[:128],
        "large_image": update.artwork_url or "ytmusic",
        "large_text": (update.album or title)[:128],
    }
    if update.paused:
        activity["small_text"] = "Paused"
    else:
        start = int(now - update.position)
        activity["start"] = start
        if show_time_left and update.duration > 0:
            activity["end"] = start + int(update.duration)
    if play_button and update.video_id:
        activity["buttons"] = [
            {"label": "Play on YouTube Music", "url": PLAYER_URL.format(video_id=update.video_id)}
        ]
    return activity


def same_activity(a: Optional[dict[str, Any]], b: Optional[dict[str, Any]]) -> bool:
    """Equal apart from timestamp jitter."""
    if a is None or b is None:
        return a is b
    if a.keys() != b.keys():
        return False
    for key in a:
        if key in ("start", "end"):
            if abs(a[key] - b[key]) > TIMESTAMP_TOLERANCE:
                return False
        elif a[key] != b[key]:
            return False
    return True


class PresenceBroadcaster:
    def __init__(
        self,
        client_id: str,
        *,
        client_factory: Callable[[str], Any] = AioPresence,
        auto_reconnect: bool = True,
        reconnect_interval: float = RECONNECT_INTERVAL,
        activity_timeout: Optional[float] = ACTIVITY_TIMEOUT,
        show_time_left: bool = True,
        play_button: bool = True,
        clock: Callable[[], float] = time.time,
    ):
        self.client_id = client_id
        self.client_factory = client_factory
        self.auto_reconnect = auto_reconnect
        self.reconnect_interval = reconnect_interval
        self.activity_timeout = activity_timeout
        self.show_time_left = show_time_left
        self.play_button = play_button
        self.clock = clock
        self.state = ConnectionState.DISCONNECTED
        self.client: Any = None
        # What Discord should show; None means cleared
        self.activity: Optional[dict[str, Any]] = None
        self._sent: Optional[dict[str, Any]] = None
        self._paused_since: Optional[float] = None
        # Track the pause timer belongs to; a new track starts a fresh timer
        self._identity: Optional[TrackIdentity] = None
        self._tasks: set[asyncio.Task] = set()
        self._reconnect_task: Optional[asyncio.Task] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

    @property
    def connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    def attach(self, hub: SessionHub) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = hub.subscribe_updates(self.on_update)
            latest = hub.latest()
            if latest is not None:
                spawn(self.on_update(latest.context_id, latest), self._tasks, name="presence-initial")

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    # Connection

    async def connect(self) -> bool:
        if self.state is not ConnectionState.DISCONNECTED:
            return self.connected
        if not self.client_id:
            logger.warning("Discord presence: no client_id configured")
            return False

        self.state = ConnectionState.CONNECTING
        logger.info("Discord presence: connecting...")
        try:
            client = self.client_factory(self.client_id)
            await client.connect()
        except CONNECT_ERRORS as e:
            self.state = ConnectionState.DISCONNECTED
            logger.warning(f"Discord presence: connect failed: {e}")
            self._schedule_reconnect()
            return False

        self.client = client
        self.state = ConnectionState.CONNECTED
        self._sent = None
        logger.info("Discord presence: connected")
        if self.activity is not None:
            await self._send(self.activity)
        return True

    async def disconnect(self) -> None:
        if self._reconnect_task is not None:
            self._reconnect_task.cancel()
            self._reconnect_task = None
        for task in list(self._tasks):
            task.cancel()
        client, self.client = self.client, None
        was_connected = self.connected
        self.state = ConnectionState.DISCONNECTED
        self._sent = None
        if client is not None and was_connected:
            try:
                await client.clear()
                client.close()
            except CONNECT_ERRORS + (RuntimeError,) as e:
                logger.debug(f"Discord presence: error while closing: {e}")
        logger.info("Discord presence: disconnected")

    # Activity

    async def on_update(self, context_id: str, update: Optional[NowPlayingUpdate]) -> None:
        """Session hub listener."""
        if update is None:
            await self.clear()
            return

        now = self.clock()
        if update.identity != self._identity:
            self._identity = update.identity
            self._paused_since = None
        if update.paused:
            if self._paused_since is None:
                self._paused_since = now
            if self.activity_timeout is not None and now - self._paused_since >= self.activity_timeout:
                if self.activity is not None:
                    logger.info("Discord presence: paused too long, clearing activity")
                    await self._clear_activity()
                return
        else:
            self._paused_since = None

        activity = build_activity(update, now, show_time_left=self.show_time_left, play_button=self.play_button)
        if same_activity(activity, self.activity):
            return
        self.activity = activity
        if self.connected:
            await self._send(activity)

    async def clear(self) -> None:
        """Playback ended: clear the activity and forget the pause timer."""
        self._identity = None
        self._paused_since = None
        await self._clear_activity()

    async def _clear_activity(self) -> None:
        self.activity = None
        if not self.connected or self._sent is None:
            return
        try:
            await self.client.clear()
            self._sent = None
        except CONNECT_ERRORS as e:
            logger.warning(f"Discord presence: clear failed: {e}")
            self._connection_lost()

    async def _send(self, activity: dict[str, Any]) -> None:
        if same_activity(activity, self._sent):
            return
        try:
            await self.client.update(**activity)
            self._sent = activity
            logger.debug(f"Discord presence: {activity['details']} - {activity['state']}")
        except CONNECT_ERRORS as e:
            logger.warning(f"Discord presence: update failed: {e}")
            self._connection_lost()

    def _connection_lost(self) -> None:
        self.client = None
        self._sent = None
        self.state = ConnectionState.DISCONNECTED
        self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        if not self.auto_reconnect:
            return
        if self._reconnect_task is not None and not self._reconnect_task.done():
            return
        self._reconnect_task = spawn(self._reconnect_later(), self._tasks, name="presence-reconnect")

    async def _reconnect_later(self) -> None:
        await asyncio.sleep(self.reconnect_interval)
        self._reconnect_task = None
        await self.connect()
