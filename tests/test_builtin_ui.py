"""Tests for the page UI plugins."""

from __future__ import annotations

from conftest import FakeContext, run, settle

from tubeshell.plugins.builtin.browser_ui import BrowserUiPlugin
from tubeshell.plugins.builtin.clean_ui import RULES, STYLE_ID, CleanUiPlugin, build_css


def test_build_css_from_flags() -> None:
    css = build_css({"hide_upgrade": True, "hide_promos": False, "hide_cast_button": True, "extra_css": "p {}"})

    for selector in RULES["hide_upgrade"] + RULES["hide_cast_button"]:
        assert selector in css
    assert RULES["hide_promos"][0] not in css
    assert css.endswith("p {}")
    assert "display: none !important" in css


def test_nothing_to_hide_means_no_program() -> None:
    plugin = CleanUiPlugin()

    assert plugin.renderer_program({}) is None
    assert plugin.renderer_program(CleanUiPlugin.defaults).config["styleId"] == STYLE_ID


def test_clean_ui_config_change_updates_page(host) -> None:
    plugin = CleanUiPlugin()
    host.register(plugin)

    async def scenario():
        context = FakeContext()
        await host.start()
        await host.content_loaded(context)
        await host.set_plugin_config("clean-ui", {"hide_cast_button": True})
        css = context.units["clean-ui"]["css"]
        await host.set_plugin_config("clean-ui", {"hide_upgrade": False, "hide_promos": False})
        return context, css

    context, css = run(scenario())

    assert RULES["hide_cast_button"][0] in css
    assert context.call_count("clean-ui", "update") == 1
    # nothing left to hide: the stylesheet is removed
    assert context.call_count("clean-ui", "dispose") == 1
    assert "clean-ui" not in context.units


def test_browser_ui_is_critical_and_filters_buttons() -> None:
    program = BrowserUiPlugin().renderer_program({"buttons": ["back", "bogus", "settings"], "height": 48})

    assert program.critical
    assert program.behavior == "control_bar"
    assert program.config["buttons"] == ["back", "settings"]
    assert program.config["height"] == 48
    assert BrowserUiPlugin().renderer_program({"buttons": []}) is None


def test_browser_ui_survives_header_rebuilds(host) -> None:
    plugin = BrowserUiPlugin()
    host.register(plugin)

    async def scenario():
        context = FakeContext()
        await host.start()
        await host.content_loaded(context)
        installed = context.install_count("browser-ui")
        await settle(0.1)
        # full reload: the page forgets the bar, the next document gets it again
        context.new_document()
        await host.content_loaded(context)
        return context, installed

    context, installed = run(scenario())

    assert installed == 1
    assert context.call_count("browser-ui", "reassert") >= 2
    assert context.install_count("browser-ui") == 2
