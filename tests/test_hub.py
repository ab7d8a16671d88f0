"""Tests for the session hub push channel."""

from __future__ import annotations

from conftest import FakeClock, run

from tubeshell.core.hub import SessionHub
from tubeshell.core.session import PlaybackSample, TrackIdentity

SONG = TrackIdentity("Song", "Artist")


def _playing(position: float = 10.0, identity=SONG) -> PlaybackSample:
    return PlaybackSample(
        identity=identity,
        position=position,
        duration=200.0,
        paused=False,
        video_id="abc",
        media_present=True,
    )


def test_publish_pushes_update_and_keeps_start() -> None:
    async def scenario():
        clock = FakeClock()
        hub = SessionHub(clock=clock)
        updates = []
        hub.subscribe_updates(lambda cid, update: updates.append((cid, update)))

        await hub.publish("ctx-a", _playing(10))
        clock.advance(5)
        await hub.publish("ctx-a", _playing(15))
        return hub, updates, clock

    hub, updates, clock = run(scenario())

    assert len(updates) == 2
    assert updates[0][1].start_timestamp == updates[1][1].start_timestamp == clock.now - 5
    assert hub.latest().position == 15
    assert hub.latest("ctx-a").video_id == "abc"


def test_lost_identity_sends_clear() -> None:
    async def scenario():
        hub = SessionHub()
        updates = []
        hub.subscribe_updates(lambda cid, update: updates.append(update))
        await hub.publish("ctx-a", _playing())
        await hub.publish("ctx-a", PlaybackSample())
        await hub.publish("ctx-a", PlaybackSample())
        return hub, updates

    hub, updates = run(scenario())

    assert updates[-1] is None
    assert len(updates) == 2
    assert hub.latest() is None


def test_navigation_away_from_player_resets() -> None:
    async def scenario():
        hub = SessionHub(r"^https://music\.youtube\.com/watch")
        resets, updates = [], []
        hub.subscribe_samples(lambda cid, sample: None, on_reset=resets.append)
        hub.subscribe_updates(lambda cid, update: updates.append(update))

        await hub.publish("ctx-a", _playing())
        await hub.navigated("ctx-a", "https://music.youtube.com/watch?v=other")
        await hub.navigated("ctx-a", "https://music.youtube.com/library")
        return resets, updates

    resets, updates = run(scenario())

    assert resets == ["ctx-a"]
    assert updates[-1] is None


def test_failing_listener_does_not_block_others() -> None:
    async def scenario():
        hub = SessionHub()
        seen = []

        def broken(cid, sample):
            raise RuntimeError("boom")

        hub.subscribe_samples(broken)
        hub.subscribe_samples(lambda cid, sample: seen.append(cid))
        await hub.publish("ctx-a", _playing())
        return seen

    assert run(scenario()) == ["ctx-a"]


def test_latest_follows_remaining_context_after_clear() -> None:
    async def scenario():
        hub = SessionHub()
        await hub.publish("ctx-a", _playing(identity=TrackIdentity("A", "X")))
        await hub.publish("ctx-b", _playing(identity=TrackIdentity("B", "X")))
        await hub.reset("ctx-b")
        return hub

    hub = run(scenario())

    assert hub.latest().context_id == "ctx-a"


def test_unsubscribe() -> None:
    hub = SessionHub()
    unsubscribe = hub.subscribe_updates(lambda cid, update: None)
    assert hub.has_listeners

    unsubscribe()

    assert not hub.has_listeners


def test_update_to_dict_flattens_identity() -> None:
    async def scenario():
        hub = SessionHub()
        await hub.publish("ctx-a", _playing())
        return hub.latest().to_dict()

    data = run(scenario())

    assert data["title"] == "Song"
    assert data["artist"] == "Artist"
    assert "identity" not in data
