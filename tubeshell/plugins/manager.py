"""
tubeshell Plugin Host

Owns the plugin instances, routes window lifecycle events to them and
applies enable/config changes at runtime.
"""

from __future__ import annotations

import asyncio
import inspect
import weakref
from typing import TYPE_CHECKING, Any, Optional

from tubeshell.core.config_store import ENABLED_KEY, ConfigStore
from tubeshell.core.hub import SessionHub
from tubeshell.errors import DuplicatePluginError, PluginNotFoundError, RendererError
from tubeshell.obs import logger
from tubeshell.plugins.base import Plugin, PluginApi
from tubeshell.proxy import DEFAULT_TIMEOUT, ProxyChannel
from tubeshell.renderer.discovery import DiscoveryUtility
from tubeshell.renderer.injector import ScriptInjector
from tubeshell.renderer.monitor import PlaybackMonitor
from tubeshell.settings import DEFAULT_METADATA_SOURCES

if TYPE_CHECKING:
    from tubeshell.renderer.context import RendererContext
    from tubeshell.settings import ShellSettings


class PluginHost:
    """
    Manages all tubeshell plugins.

    Handles:
    - Registration and config defaults
    - Dispatching lifecycle hooks, one plugin failure never stopping the rest
    - Enabling/disabling plugins, with replay of missed hooks on enable
    - Per-context discovery, session monitoring and injector teardown
    """

    def __init__(
        self,
        store: ConfigStore,
        settings: Optional[ShellSettings] = None,
        *,
        injector: Optional[ScriptInjector] = None,
        hub: Optional[SessionHub] = None,
        proxy: Optional[ProxyChannel] = None,
        monitor_playback: bool = True,
    ):
        """
        Initialize the plugin host.

        Args:
            store: Config store holding per-plugin settings
            settings: Shell settings (metadata sources, player URL, timeouts)
            injector: Script injector shared by all plugins
            hub: Session hub; built from settings if omitted
            proxy: Proxy channel; built from settings if omitted
            monitor_playback: Install the session probe in every loaded context
        """
        self.store = store
        self.settings = settings
        self.injector = injector or ScriptInjector()
        self.hub = hub or SessionHub(settings.player_url_pattern if settings else "")
        self.proxy = proxy or ProxyChannel(timeout=settings.proxy_timeout if settings else DEFAULT_TIMEOUT)
        self.monitor_playback = monitor_playback
        self.plugins: dict[str, Plugin] = {}
        self.apis: dict[str, PluginApi] = {}
        self.started = False
        # Contexts belong to the browser; the host never keeps one alive
        self._contexts: weakref.WeakValueDictionary[str, RendererContext] = weakref.WeakValueDictionary()

    # Registration

    def register(self, plugin: Plugin) -> PluginApi:
        """
        Add a plugin to the managed set.

        Raises:
            DuplicatePluginError: a plugin with the same name is already registered
        """
        name = plugin.metadata.name
        if name in self.plugins:
            raise DuplicatePluginError(name)

        self.store.register_defaults(name, getattr(plugin, "defaults", None) or {})
        api = PluginApi(self, plugin)
        self.plugins[name] = plugin
        self.apis[name] = api
        plugin.bind(api)
        logger.info(f"Registered plugin: {name} ({'enabled' if self.is_enabled(name) else 'disabled'})")
        return api

    def get_plugin(self, name: str) -> Plugin:
        plugin = self.plugins.get(name)
        if plugin is None:
            raise PluginNotFoundError(name)
        return plugin

    def is_enabled(self, name: str) -> bool:
        plugin = self.get_plugin(name)
        config = self.store.get(name)
        predicate = getattr(plugin, "is_enabled", None)
        if predicate is None:
            return config.get(ENABLED_KEY, True) is not False
        try:
            return bool(predicate(config))
        except Exception:
            logger.exception(f"Plugin {name} failed in is_enabled, treating as disabled")
            return False

    def contexts(self) -> list[RendererContext]:
        return [context for context in list(self._contexts.values()) if not context.closed]

    # Lifecycle

    @logger.instrument("Starting plugin host...")
    async def start(self) -> None:
        if self.started:
            return
        self.started = True
        await self._dispatch("on_host_ready")
        logger.info(f"Plugin host ready with {len(self.plugins)} plugin(s)")

    async def attach_context(self, context: RendererContext) -> None:
        """A new window/page exists."""
        if context.id in self._contexts:
            return
        self._contexts[context.id] = context
        context.set_request_handler(self.proxy.request)
        logger.info(f"Context attached: {context.id}")
        await self._dispatch("on_context_created", context)

    async def content_loaded(self, context: RendererContext) -> None:
        """A context finished loading a new document."""
        if context.closed:
            return
        if context.id not in self._contexts:
            await self.attach_context(context)

        generation = context.mark_loaded()
        logger.debug(f"Content loaded in {context.id} (generation {generation})")

        await self._install_discovery(context)
        if self.monitor_playback:
            await self._install_monitor(context)

        await self._dispatch("on_content_loaded", context)

    async def detach_context(self, context: RendererContext) -> None:
        """A window/page closed: drop everything that belonged to it."""
        self._contexts.pop(context.id, None)
        self.injector.teardown_context(context.id)
        await self.hub.reset(context.id)
        context.close()
        logger.info(f"Context detached: {context.id}")

    @logger.instrument("Shutting down plugin host...")
    async def shutdown(self) -> None:
        """Disable hooks for every enabled plugin (not persisted) and release resources."""
        await self._dispatch("on_disabled")
        for context in self.contexts():
            self.injector.teardown_context(context.id)
            if context.monitor is not None:
                context.monitor.close()
            if context.discovery is not None:
                context.discovery.close()
        await self.proxy.aclose()
        self.started = False

    # Enable / config

    async def set_enabled(self, name: str, enabled: bool) -> bool:
        """
        Persist a plugin's enabled flag and apply the transition.

        Returns:
            The plugin's enablement after the change
        """
        self.get_plugin(name)
        was_enabled = self.is_enabled(name)
        self.store.update(name, **{ENABLED_KEY: bool(enabled)})
        now_enabled = self.is_enabled(name)
        await self._apply_transition(name, was_enabled, now_enabled)
        return now_enabled

    async def broadcast_config_change(self, name: str, config: dict[str, Any]) -> dict[str, Any]:
        """
        Persist a plugin's config, apply any enablement change and notify the plugin.

        Returns:
            The new merged config
        """
        self.get_plugin(name)
        was_enabled = self.is_enabled(name)
        merged = self.store.set(name, config)
        now_enabled = self.is_enabled(name)
        await self._apply_transition(name, was_enabled, now_enabled)
        await self._call_hook(name, "on_config_changed", merged)
        return merged

    # Config surface

    def get_plugins(self) -> list[dict[str, Any]]:
        return [
            {
                "name": name,
                "description": plugin.metadata.description,
                "version": plugin.metadata.version,
                "enabled": self.is_enabled(name),
            }
            for name, plugin in self.plugins.items()
        ]

    def get_plugin_config(self, name: str) -> dict[str, Any]:
        self.get_plugin(name)
        return self.store.get(name)

    async def set_plugin_config(self, name: str, config: dict[str, Any]) -> dict[str, Any]:
        return await self.broadcast_config_change(name, config)

    # Internal helpers

    async def _apply_transition(self, name: str, was_enabled: bool, now_enabled: bool) -> None:
        if was_enabled and not now_enabled:
            await self._call_hook(name, "on_disabled")
            await self.injector.withdraw(name, self.contexts())
            logger.info(f"Disabled plugin: {name}")
        elif now_enabled and not was_enabled:
            logger.info(f"Enabled plugin: {name}")
            await self._replay(name)

    async def _replay(self, name: str) -> None:
        """Deliver the hooks a freshly enabled plugin missed."""
        if self.started:
            await self._call_hook(name, "on_host_ready")
        for context in self.contexts():
            await self._call_hook(name, "on_context_created", context)
            if context.content_loaded:
                await self._call_hook(name, "on_content_loaded", context)

    async def _dispatch(self, hook: str, *args: Any) -> None:
        """Call a hook on every enabled plugin, in registration order."""
        for name in list(self.plugins):
            if self.is_enabled(name):
                await self._call_hook(name, hook, *args)

    async def _call_hook(self, name: str, hook: str, *args: Any) -> None:
        plugin = self.plugins.get(name)
        method = getattr(plugin, hook, None)
        if method is None:
            return
        try:
            result = method(*args)
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(f"Plugin {name} failed in {hook}")

    async def _install_discovery(self, context: RendererContext) -> None:
        if context.discovery is None:
            discovery = DiscoveryUtility(context, self.injector.library)
            discovery.on_navigation(lambda _url: self.injector.handle_navigation(context))
        try:
            await context.discovery.install()
        except RendererError as e:
            logger.warning(f"{context.id}: discovery runtime not installed: {e}")

    async def _install_monitor(self, context: RendererContext) -> None:
        if context.monitor is None:
            sources = self.settings.metadata_sources if self.settings else DEFAULT_METADATA_SOURCES
            context.monitor = PlaybackMonitor(context, self.hub, self.injector, sources)
        await context.monitor.start()
