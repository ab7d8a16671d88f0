"""
Integration adapters.

Scrobblers (Last.fm, ListenBrainz) consume raw playback samples through a
TrackSession per context; the presence broadcaster consumes now-playing
pushes from the session hub.
"""
