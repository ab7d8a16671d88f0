"""Tests for the navigation and media watchers."""

from __future__ import annotations

import asyncio

from conftest import FakeContext, run, settle

from tubeshell.renderer.discovery import DiscoveryUtility, MediaElement, MediaWatcher, NavigationWatcher, WatchState


def test_navigation_deduplicates_signals() -> None:
    async def scenario():
        watcher = NavigationWatcher("https://music.youtube.com/")
        seen = []
        watcher.subscribe(seen.append)
        results = [
            await watcher.observe("https://music.youtube.com/watch?v=1", "yt-navigate-finish"),
            await watcher.observe("https://music.youtube.com/watch?v=1", "pushState"),
            await watcher.observe("https://music.youtube.com/watch?v=1", "frame"),
            await watcher.observe("https://music.youtube.com/library", "popstate"),
        ]
        return seen, results

    seen, results = run(scenario())

    assert results == [True, False, False, True]
    assert seen == ["https://music.youtube.com/watch?v=1", "https://music.youtube.com/library"]


def test_media_watcher_states_and_intervals() -> None:
    async def scenario():
        watcher = MediaWatcher(lambda: None, aggressive_interval=1.0, relaxed_interval=5.0)
        found, lost = [], []
        await watcher.subscribe_found(found.append)
        watcher.subscribe_lost(lambda: lost.append(True))

        assert watcher.state is WatchState.SEARCHING and watcher.interval == 1.0
        await watcher.observe(MediaElement("m1"))
        assert watcher.state is WatchState.FOUND and watcher.interval == 5.0
        await watcher.observe(MediaElement("m1", current_time=3.0))
        await watcher.observe(None)
        assert watcher.state is WatchState.LOST and watcher.interval == 1.0
        await watcher.observe(MediaElement("m2"))
        return found, lost

    found, lost = run(scenario())

    assert [element.id for element in found] == ["m1", "m2"]
    assert lost == [True]


def test_replaced_media_element_is_lost_then_found() -> None:
    async def scenario():
        watcher = MediaWatcher(lambda: None)
        events = []
        await watcher.subscribe_found(lambda element: events.append(("found", element.id)))
        watcher.subscribe_lost(lambda: events.append(("lost",)))
        await watcher.observe(MediaElement("m1"))
        await watcher.observe(MediaElement("m2"))
        return events

    assert run(scenario()) == [("found", "m1"), ("lost",), ("found", "m2")]


def test_late_subscriber_gets_current_element() -> None:
    async def scenario():
        watcher = MediaWatcher(lambda: None)
        await watcher.observe(MediaElement("m1"))
        found = []
        await watcher.subscribe_found(found.append)
        return found

    assert [element.id for element in run(scenario())] == ["m1"]


def test_utility_installs_runtime_and_finds_media() -> None:
    async def scenario():
        context = FakeContext()
        context.media = {"id": "media-1", "paused": False, "currentTime": 4, "duration": 200}
        discovery = DiscoveryUtility(context, aggressive_interval=0.01, relaxed_interval=0.05)
        found = []
        await discovery.on_media_found(found.append)

        await discovery.install()
        await settle(0.03)
        discovery.close()
        return context, discovery, found

    context, discovery, found = run(scenario())

    assert context.runtime_installed
    assert len(context.init_scripts) == 1
    assert context.discovery is discovery
    assert found[0] == MediaElement("media-1", paused=False, current_time=4.0, duration=200.0)


def test_navigation_resets_media_search() -> None:
    async def scenario():
        context = FakeContext()
        discovery = DiscoveryUtility(context, aggressive_interval=10, relaxed_interval=10)
        await discovery.media.observe(MediaElement("m1"))
        urls = []
        discovery.on_navigation(urls.append)

        await context.navigate("https://music.youtube.com/library")
        await context.navigate("https://music.youtube.com/library", source="yt-navigate-finish")
        return discovery, urls

    discovery, urls = run(scenario())

    assert urls == ["https://music.youtube.com/library"]
    assert discovery.media.state is WatchState.SEARCHING
    assert discovery.media.element is None


def test_probe_failure_counts_as_no_element() -> None:
    async def scenario():
        context = FakeContext()
        discovery = DiscoveryUtility(context)
        await discovery.media.observe(MediaElement("m1"))
        context.fail = True
        await discovery.media.poll_once()
        return discovery

    assert run(scenario()).media.state is WatchState.LOST


def test_close_stops_loop_and_listeners() -> None:
    async def scenario():
        context = FakeContext()
        discovery = DiscoveryUtility(context, aggressive_interval=0.01)
        await discovery.install()
        await settle(0.02)
        discovery.close()
        await asyncio.sleep(0)
        evaluations = context.evaluations
        await settle(0.03)
        urls = []
        discovery.on_navigation(urls.append)
        await context.navigate("https://music.youtube.com/explore")
        return evaluations, context.evaluations, urls

    before, after, urls = run(scenario())

    assert before == after
    assert urls == []


def test_poke_during_media_check_is_not_lost() -> None:
    async def scenario():
        checks = []

        async def find_media():
            checks.append(len(checks))
            if len(checks) == 1:
                # playback started while the first check was in flight
                watcher.poke()
            await asyncio.sleep(0)
            return None

        watcher = MediaWatcher(find_media, aggressive_interval=10, relaxed_interval=10)
        task = asyncio.ensure_future(watcher.run())
        await settle(0.05)
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        return checks

    assert run(scenario()) == [0, 1]
