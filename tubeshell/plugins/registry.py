"""
Built-in plugin registry.

Plugins are plain classes; the registry maps each built-in name to a
factory so the shell can pick which ones to create.
"""

from __future__ import annotations

from typing import Callable, Iterable, Optional

from tubeshell.obs import logger
from tubeshell.plugins.base import Plugin
from tubeshell.plugins.builtin.audio_output import AudioOutputPlugin
from tubeshell.plugins.builtin.browser_ui import BrowserUiPlugin
from tubeshell.plugins.builtin.clean_ui import CleanUiPlugin
from tubeshell.plugins.builtin.companion import CompanionServerPlugin
from tubeshell.plugins.builtin.discord_rpc import DiscordPresencePlugin
from tubeshell.plugins.builtin.lastfm import LastFmPlugin
from tubeshell.plugins.builtin.listenbrainz import ListenBrainzPlugin
from tubeshell.plugins.builtin.lyrics import LyricsPlugin
from tubeshell.plugins.builtin.volume_booster import VolumeBoosterPlugin

BUILTIN_PLUGINS: dict[str, Callable[[], Plugin]] = {
    "browser-ui": BrowserUiPlugin,
    "clean-ui": CleanUiPlugin,
    "lyrics": LyricsPlugin,
    "volume-booster": VolumeBoosterPlugin,
    "audio-output": AudioOutputPlugin,
    "lastfm": LastFmPlugin,
    "listenbrainz": ListenBrainzPlugin,
    "discord-rpc": DiscordPresencePlugin,
    "companion-server": CompanionServerPlugin,
}


def create_builtin_plugins(names: Optional[Iterable[str]] = None) -> list[Plugin]:
    """
    Instantiate built-in plugins, all of them by default.

    Unknown names are logged and skipped.
    """
    plugins = []
    for name in BUILTIN_PLUGINS if names is None else names:
        factory = BUILTIN_PLUGINS.get(name)
        if factory is None:
            logger.warning(f"Unknown built-in plugin: {name}")
            continue
        plugins.append(factory())
    return plugins
