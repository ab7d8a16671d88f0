"""
tubeshell entry point.

Wires settings, config store, plugin host, settings server and the
browser shell together and runs until the browser is closed.
"""

import argparse
import asyncio
import sys
from pathlib import Path

from pydantic import ValidationError

from tubeshell import obs
from tubeshell.core.config_store import ConfigStore
from tubeshell.errors import TubeshellError
from tubeshell.obs import logger
from tubeshell.plugins.loader import load_user_plugins
from tubeshell.plugins.manager import PluginHost
from tubeshell.plugins.registry import BUILTIN_PLUGINS, create_builtin_plugins
from tubeshell.renderer.shell import BrowserShell
from tubeshell.settings import ShellSettings
from tubeshell.version import __version__
from tubeshell.web.server import EmbeddedServer
from tubeshell.web.settings_api import create_settings_app


def build_settings(args: argparse.Namespace) -> ShellSettings:
    """Environment settings, overridden by whatever was given on the command line."""
    overrides = {
        'start_url': args.url,
        'config_dir': args.config_dir,
        'plugins_dir': args.plugins_dir,
        'settings_port': args.settings_port,
        'log_level': args.log_level,
        'browser_channel': args.channel,
    }
    kwargs = {key: value for key, value in overrides.items() if value is not None}
    if args.headless:
        kwargs['headless'] = True
    # Applied after the None filter: here None means "no settings server"
    if args.no_settings_server:
        kwargs['settings_port'] = None
    return ShellSettings(**kwargs)


async def run(settings: ShellSettings, plugin_names=None) -> None:
    store = ConfigStore(settings.config_file)
    store.load()

    host = PluginHost(store, settings)
    for plugin in create_builtin_plugins(plugin_names) + load_user_plugins(settings.plugins_dir):
        host.register(plugin)

    settings_server = None
    if settings.settings_port is not None:
        settings_server = EmbeddedServer(create_settings_app(host), name='settings')
        await settings_server.start(settings.settings_host, settings.settings_port)

    await host.start()
    shell = BrowserShell(host, settings)
    try:
        await shell.start()
        await shell.wait_closed()
    finally:
        await shell.close()
        await host.shutdown()
        if settings_server is not None:
            await settings_server.stop()


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description='tubeshell - YouTube Music desktop shell with plugins')
    parser.add_argument('--url', help='Start URL (default: https://music.youtube.com/)')
    parser.add_argument('--config-dir', type=Path, help='Config and browser profile directory')
    parser.add_argument('--plugins-dir', type=Path, help='Directory of user plugins')
    parser.add_argument('--plugins', nargs='*', choices=sorted(BUILTIN_PLUGINS), help='Built-in plugins to load (default: all)')
    parser.add_argument('--settings-port', type=int, help='Settings server port (default: 9870)')
    parser.add_argument('--no-settings-server', action='store_true', help='Do not serve the settings page')
    parser.add_argument('--channel', help='Browser channel, e.g. chrome or msedge (default: bundled Chromium)')
    parser.add_argument('--headless', action='store_true', help='Run without a visible window')
    parser.add_argument('--log-level', help='Log level (default: INFO)')
    parser.add_argument('--version', action='version', version=f'tubeshell {__version__}')

    args = parser.parse_args()

    try:
        settings = build_settings(args)
    except ValidationError as e:
        print(f"Invalid settings: {e}", file=sys.stderr)
        sys.exit(2)

    obs.set_level(settings.log_level)
    logger.info(f"tubeshell {__version__}")

    try:
        asyncio.run(run(settings, args.plugins))
    except KeyboardInterrupt:
        logger.info("Interrupted, exiting")
    except TubeshellError as e:
        logger.error(f"Fatal: {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
