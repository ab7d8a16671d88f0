"""Tests for plugin registration, hook dispatch and runtime enable/config changes."""

from __future__ import annotations

import pytest
from conftest import FakeContext, RecordingPlugin, run, settle

from tubeshell.errors import DuplicatePluginError, PluginNotFoundError
from tubeshell.plugins.base import Plugin
from tubeshell.renderer.programs import RendererProgram

STYLE = RendererProgram("style_patch", {"styleId": "rec", "css": "a {}"})


def test_duplicate_name_is_rejected(host) -> None:
    host.register(RecordingPlugin("demo"))

    with pytest.raises(DuplicatePluginError):
        host.register(RecordingPlugin("demo"))


def test_unknown_plugin_lookup_raises(host) -> None:
    with pytest.raises(PluginNotFoundError):
        host.get_plugin("nope")


def test_recording_plugin_matches_contract() -> None:
    assert isinstance(RecordingPlugin("demo"), Plugin)


def test_register_applies_defaults_and_binds(host) -> None:
    plugin = RecordingPlugin("demo", defaults={"color": "red"})

    api = host.register(plugin)

    assert plugin.api is api
    assert api.config == {"enabled": True, "color": "red"}
    assert host.get_plugins() == [
        {"name": "demo", "description": "demo plugin", "version": "1.2.3", "enabled": True}
    ]


def test_hooks_run_in_lifecycle_order(host) -> None:
    plugin = RecordingPlugin("demo")
    host.register(plugin)

    async def scenario():
        context = FakeContext()
        await host.start()
        await host.attach_context(context)
        await host.content_loaded(context)
        await host.shutdown()

    run(scenario())

    assert plugin.hooks() == ["on_host_ready", "on_context_created", "on_content_loaded", "on_disabled"]


def test_disabled_plugin_gets_no_hooks(host) -> None:
    plugin = RecordingPlugin("off", defaults={"enabled": False})
    host.register(plugin)

    async def scenario():
        context = FakeContext()
        await host.start()
        await host.content_loaded(context)

    run(scenario())

    assert plugin.events == []


def test_failing_hook_does_not_stop_others(host) -> None:
    broken = RecordingPlugin("broken", fail_in="on_content_loaded")
    healthy = RecordingPlugin("healthy")
    host.register(broken)
    host.register(healthy)

    async def scenario():
        context = FakeContext()
        await host.start()
        await host.content_loaded(context)

    run(scenario())

    assert "on_content_loaded" in broken.hooks()
    assert healthy.hooks() == ["on_host_ready", "on_context_created", "on_content_loaded"]


def test_failing_enable_predicate_means_disabled(host) -> None:
    plugin = RecordingPlugin("picky")

    def is_enabled(config):
        raise ValueError("bad config")

    plugin.is_enabled = is_enabled
    host.register(plugin)

    assert host.is_enabled("picky") is False


def test_enable_replays_missed_hooks(host) -> None:
    plugin = RecordingPlugin("late", defaults={"enabled": False}, program=STYLE)
    host.register(plugin)

    async def scenario():
        context = FakeContext()
        await host.start()
        await host.content_loaded(context)
        enabled = await host.set_enabled("late", True)
        return context, enabled

    context, enabled = run(scenario())

    assert enabled is True
    assert plugin.hooks() == ["on_host_ready", "on_context_created", "on_content_loaded"]
    assert context.install_count("late") == 1
    assert host.store.overrides("late") == {"enabled": True}


def test_disable_withdraws_and_calls_hook(host) -> None:
    plugin = RecordingPlugin("style", program=STYLE)
    host.register(plugin)

    async def scenario():
        context = FakeContext()
        await host.start()
        await host.content_loaded(context)
        await host.set_enabled("style", False)
        await settle(0.03)
        return context

    context = run(scenario())

    assert plugin.hooks()[-1] == "on_disabled"
    assert context.call_count("style", "dispose") == 1
    assert "style" not in context.units
    assert host.injector.unit("style", context) is None


def test_disabled_plugin_cannot_inject(host) -> None:
    plugin = RecordingPlugin("style", defaults={"enabled": False}, program=STYLE)
    api = host.register(plugin)

    async def scenario():
        context = FakeContext()
        context.mark_loaded()
        return await api.inject(context), context

    injected, context = run(scenario())

    assert injected is False
    assert context.installs == []


def test_config_change_is_persisted_and_broadcast(host) -> None:
    plugin = RecordingPlugin("demo", defaults={"color": "red"})
    host.register(plugin)

    async def scenario():
        return await host.set_plugin_config("demo", {"color": "blue"})

    merged = run(scenario())

    assert merged == {"enabled": True, "color": "blue"}
    assert plugin.events == [("on_config_changed", merged)]
    assert host.get_plugin_config("demo")["color"] == "blue"


def test_config_change_with_enabled_false_disables(host) -> None:
    plugin = RecordingPlugin("demo")
    host.register(plugin)

    async def scenario():
        await host.start()
        await host.set_plugin_config("demo", {"enabled": False})

    run(scenario())

    assert plugin.hooks() == ["on_host_ready", "on_disabled", "on_config_changed"]
    assert host.is_enabled("demo") is False


def test_update_config_merges_overrides(host) -> None:
    plugin = RecordingPlugin("demo", defaults={"a": 1, "b": 2})
    api = host.register(plugin)
    host.store.set("demo", {"a": 10})

    async def scenario():
        return await api.update_config(b=20)

    merged = run(scenario())

    assert merged == {"enabled": True, "a": 10, "b": 20}
    assert host.store.overrides("demo") == {"a": 10, "b": 20}


def test_detach_drops_context(host) -> None:
    plugin = RecordingPlugin("style", program=STYLE)
    host.register(plugin)

    async def scenario():
        context = FakeContext()
        await host.start()
        await host.content_loaded(context)
        await host.detach_context(context)
        return context

    context = run(scenario())

    assert context.closed
    assert host.contexts() == []
    assert host.injector.unit("style", context) is None


def test_content_loaded_installs_discovery_and_proxy_bridge(host) -> None:
    async def scenario():
        context = FakeContext()
        await host.content_loaded(context)
        answer = await context.handle_bridge({"kind": "request", "name": "nope", "payload": None})
        return context, answer

    context, answer = run(scenario())

    assert context.generation == 1
    assert context.discovery is not None
    assert context.runtime_installed
    assert answer["error"] is True


def test_navigation_in_context_reasserts_programs(host) -> None:
    plugin = RecordingPlugin("style", program=STYLE)
    host.register(plugin)

    async def scenario():
        context = FakeContext()
        await host.start()
        await host.content_loaded(context)
        await settle(0.03)
        before = context.call_count("style", "reassert")
        await context.navigate("https://music.youtube.com/library")
        await settle(0.03)
        return before, context.call_count("style", "reassert")

    before, after = run(scenario())

    assert after == before + 1


def test_playback_monitor_publishes_samples(store) -> None:
    from conftest import fast_injector

    from tubeshell.plugins.manager import PluginHost
    from tubeshell.proxy import ProxyChannel

    host = PluginHost(store, injector=fast_injector(), proxy=ProxyChannel())

    async def scenario():
        context = FakeContext()
        updates = []
        host.hub.subscribe_updates(lambda cid, update: updates.append(update))
        await host.content_loaded(context)
        await context.handle_bridge(
            {
                "kind": "playback",
                "payload": {"title": "Song", "artist": "Artist", "mediaPresent": True, "paused": False},
            }
        )
        return context, updates

    context, updates = run(scenario())

    assert context.install_count("session-probe") == 1
    assert context.monitor is not None
    assert updates[0].identity.title == "Song"
