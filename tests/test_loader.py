"""Tests for user plugin discovery and the built-in registry."""

from __future__ import annotations

from textwrap import dedent

from tubeshell.plugins.loader import discover_plugins, load_plugin, load_user_plugins
from tubeshell.plugins.registry import BUILTIN_PLUGINS, create_builtin_plugins

FACTORY_PLUGIN = dedent(
    '''
    from tubeshell.plugins.base import PluginMetadata


    class Hello:
        metadata = PluginMetadata(name="hello", description="Says hello", version="0.1.0")
        defaults = {"greeting": "hi"}

        def bind(self, api):
            self.api = api


    def create_plugin():
        return Hello()
    '''
)

OBJECT_PLUGIN = dedent(
    '''
    from tubeshell.plugins.base import PluginMetadata


    class Quiet:
        metadata = PluginMetadata(name="quiet")
        defaults = {}

        def bind(self, api):
            pass


    plugin = Quiet()
    '''
)


def _write_plugin(root, name: str, source: str):
    directory = root / name
    directory.mkdir(parents=True)
    (directory / "plugin.py").write_text(source, encoding="utf-8")
    return directory


def test_discover_skips_hidden_and_incomplete_dirs(tmp_path) -> None:
    _write_plugin(tmp_path, "hello", FACTORY_PLUGIN)
    _write_plugin(tmp_path, "_private", FACTORY_PLUGIN)
    (tmp_path / "empty").mkdir()
    (tmp_path / "notes.txt").write_text("x", encoding="utf-8")

    assert [path.name for path in discover_plugins(tmp_path)] == ["hello"]


def test_missing_directory_discovers_nothing(tmp_path) -> None:
    assert discover_plugins(tmp_path / "missing") == []
    assert load_user_plugins(None) == []


def test_load_factory_and_module_object(tmp_path) -> None:
    hello = load_plugin(_write_plugin(tmp_path, "hello", FACTORY_PLUGIN))
    quiet = load_plugin(_write_plugin(tmp_path, "quiet", OBJECT_PLUGIN))

    assert hello.metadata.name == "hello"
    assert hello.defaults == {"greeting": "hi"}
    assert quiet.metadata.name == "quiet"


def test_broken_plugins_are_skipped(tmp_path) -> None:
    _write_plugin(tmp_path, "a_syntax", "def broken(:\n")
    _write_plugin(tmp_path, "b_empty", "VALUE = 1\n")
    _write_plugin(tmp_path, "c_hello", FACTORY_PLUGIN)

    plugins = load_user_plugins(tmp_path)

    assert [plugin.metadata.name for plugin in plugins] == ["hello"]


def test_builtin_registry_creates_requested_plugins() -> None:
    assert set(BUILTIN_PLUGINS) == {
        "browser-ui",
        "clean-ui",
        "lyrics",
        "volume-booster",
        "audio-output",
        "lastfm",
        "listenbrainz",
        "discord-rpc",
        "companion-server",
    }

    plugins = create_builtin_plugins(["clean-ui", "unknown", "lastfm"])

    assert [plugin.metadata.name for plugin in plugins] == ["clean-ui", "lastfm"]
