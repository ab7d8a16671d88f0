"""
tubeshell Plugin Contract

A plugin is any object with ``metadata``, ``defaults`` and ``bind``; the
lifecycle hooks are optional and looked up by name. Plugins are plain
classes picked from a registry, not subclasses of a framework base.
"""

from __future__ import annotations

import weakref
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Mapping, Optional, Protocol, runtime_checkable

from tubeshell.renderer.programs import RendererProgram

if TYPE_CHECKING:
    from tubeshell.core.hub import SessionHub
    from tubeshell.plugins.manager import PluginHost
    from tubeshell.proxy import ProxyChannel
    from tubeshell.renderer.context import RendererContext
    from tubeshell.renderer.injector import ScriptInjector
    from tubeshell.settings import ShellSettings


@dataclass(frozen=True)
class PluginMetadata:
    name: str
    description: str = ""
    version: str = "1.0.0"


@runtime_checkable
class Plugin(Protocol):
    """
    The shape every plugin implements.

    Required:
        metadata: PluginMetadata - ``name`` is the unique key
        defaults: dict - author defaults, merged under the user's config
        bind(api) - receives the PluginApi once, at registration

    Optional:
        is_enabled(config) -> bool - defaults to ``config["enabled"]``
        renderer_program(config) -> RendererProgram | None
        async on_host_ready()
        async on_context_created(context)
        async on_content_loaded(context)
        async on_config_changed(config)
        async on_disabled()
    """

    metadata: PluginMetadata
    defaults: Mapping[str, Any]

    def bind(self, api: PluginApi) -> None: ...


class PluginApi:
    """
    The host services a plugin may use. One instance per plugin.
    """

    def __init__(self, host: PluginHost, plugin: Plugin):
        self._host = host
        self._plugin = plugin
        self.name = plugin.metadata.name
        self._followed: weakref.WeakSet = weakref.WeakSet()

    @property
    def config(self) -> dict[str, Any]:
        """Merged config (defaults + persisted overrides)."""
        return self._host.store.get(self.name)

    def is_enabled(self) -> bool:
        return self._host.is_enabled(self.name)

    async def update_config(self, **values: Any) -> dict[str, Any]:
        """Persist individual keys and broadcast the change like a settings UI edit."""
        overrides = self._host.store.overrides(self.name)
        overrides.update(values)
        return await self._host.broadcast_config_change(self.name, overrides)

    @property
    def injector(self) -> ScriptInjector:
        return self._host.injector

    @property
    def hub(self) -> SessionHub:
        return self._host.hub

    @property
    def proxy(self) -> ProxyChannel:
        return self._host.proxy

    @property
    def settings(self) -> Optional[ShellSettings]:
        return self._host.settings

    def contexts(self) -> list[RendererContext]:
        return self._host.contexts()

    def program(self) -> Optional[RendererProgram]:
        factory = getattr(self._plugin, "renderer_program", None)
        if factory is None:
            return None
        return factory(self.config)

    async def inject(self, context: RendererContext) -> bool:
        """Inject this plugin's renderer program; never injects while disabled."""
        if not self.is_enabled():
            return False
        program = self.program()
        if program is None:
            return False
        return await self._host.injector.inject(self.name, context, program)

    async def push_config(self) -> None:
        """Send the current config to every context, injecting where missing."""
        if not self.is_enabled():
            return
        program = self.program()
        if program is None:
            await self.withdraw()
            return
        for context in self.contexts():
            if context.content_loaded:
                await self._host.injector.push_config(self.name, context, program)

    async def withdraw(self) -> None:
        await self._host.injector.withdraw(self.name, self.contexts())

    async def reassert_on_media(self, context: RendererContext) -> None:
        """Re-assert this plugin's unit whenever the context discovers a new media element."""
        discovery = context.discovery
        if discovery is None or discovery in self._followed:
            return
        self._followed.add(discovery)
        await discovery.on_media_found(lambda _element: self._host.injector.reassert(self.name, context))
