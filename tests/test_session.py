"""Tests for the track session state machine."""

from __future__ import annotations

from conftest import FakeClock

from tubeshell.core.session import (
    NowPlaying,
    PlaybackSample,
    Scrobble,
    TrackIdentity,
    TrackSession,
    scrobble_threshold,
)

SONG = TrackIdentity("Song", "Artist")
OTHER = TrackIdentity("Other", "Artist")


def _sample(identity=SONG, position=1.0, duration=200.0, paused=False, album=None, media=True) -> PlaybackSample:
    return PlaybackSample(
        identity=identity,
        album=album,
        position=position,
        duration=duration,
        paused=paused,
        media_present=media,
    )


def test_threshold_is_half_or_four_minutes() -> None:
    assert scrobble_threshold(200.0) == 240.0
    assert scrobble_threshold(600.0) == 300.0
    assert scrobble_threshold(0.0) == 240.0
    assert scrobble_threshold(300.0) == 240.0
    assert scrobble_threshold(1000.0) == 500.0


def test_five_minute_track_waits_for_four_minutes() -> None:
    clock = FakeClock()
    session = TrackSession(clock=clock)
    session.observe(_sample(duration=300.0))
    start = int(clock.now)

    # half the track is not enough on its own
    assert session.observe(_sample(position=150, duration=300.0, paused=True)) == []
    assert session.observe(_sample(position=240, duration=300.0, paused=True)) == [Scrobble(SONG, None, start)]


def test_new_track_forces_now_playing() -> None:
    clock = FakeClock()
    session = TrackSession(clock=clock)

    actions = session.observe(_sample(album="LP"))

    assert actions == [NowPlaying(SONG, "LP", forced=True)]
    assert session.state.start_timestamp == clock.now
    assert session.state.last_now_playing_push == clock.now


def test_refresh_is_throttled() -> None:
    clock = FakeClock()
    session = TrackSession(clock=clock)
    session.observe(_sample())

    clock.advance(10)
    assert session.observe(_sample(position=11)) == []

    clock.advance(25)
    assert session.observe(_sample(position=36)) == [NowPlaying(SONG, None, forced=False)]


def test_paused_sample_does_not_refresh() -> None:
    clock = FakeClock()
    session = TrackSession(clock=clock)
    session.observe(_sample())

    clock.advance(60)

    assert session.observe(_sample(position=61, paused=True)) == []


def test_scrobbles_once_past_threshold() -> None:
    clock = FakeClock()
    session = TrackSession(clock=clock)
    session.observe(_sample(duration=600.0))
    start = int(clock.now)

    clock.advance(5)
    assert session.observe(_sample(position=299, duration=600.0, paused=True)) == []
    actions = session.observe(_sample(position=300, duration=600.0, paused=True))
    assert actions == [Scrobble(SONG, None, start)]

    assert session.observe(_sample(position=400, duration=600.0, paused=True)) == []


def test_track_change_starts_new_session() -> None:
    clock = FakeClock()
    session = TrackSession(clock=clock)
    session.observe(_sample())
    clock.advance(100)

    actions = session.observe(_sample(identity=OTHER))

    assert actions == [NowPlaying(OTHER, None, forced=True)]
    assert session.state.identity == OTHER
    assert session.state.start_timestamp == clock.now


def test_identity_is_case_sensitive() -> None:
    session = TrackSession(clock=FakeClock())
    session.observe(_sample())

    actions = session.observe(_sample(identity=TrackIdentity("song", "Artist")))

    assert actions and actions[0].forced


def test_missing_identity_and_media_goes_idle() -> None:
    session = TrackSession(clock=FakeClock())
    session.observe(_sample())

    assert session.observe(PlaybackSample()) == []
    assert session.idle


def test_missing_media_only_keeps_session() -> None:
    session = TrackSession(clock=FakeClock())
    session.observe(_sample())

    assert session.observe(_sample(media=False)) == []
    assert session.state.identity == SONG


def test_album_filled_in_later() -> None:
    session = TrackSession(clock=FakeClock())
    session.observe(_sample())

    session.observe(_sample(album="LP", position=2))

    assert session.state.album == "LP"


def test_refresh_disabled_only_announces_changes() -> None:
    clock = FakeClock()
    session = TrackSession(refreshes=False, clock=clock)
    session.observe(_sample())

    clock.advance(120)

    assert session.observe(_sample(position=121)) == []


def test_from_payload_tolerates_bad_numbers() -> None:
    sample = PlaybackSample.from_payload(
        {"title": " Song ", "artist": "Artist", "position": "NaN", "duration": None, "mediaPresent": True}
    )

    assert sample.identity == SONG
    assert sample.position == 0.0
    assert sample.duration == 0.0
    assert sample.paused is True


def test_from_payload_without_artist_has_no_identity() -> None:
    assert PlaybackSample.from_payload({"title": "Song", "artist": ""}).identity is None
