"""
tubeshell Plugin System

Plugins implement the contract in ``base``; the host in ``manager`` drives
them. Built-ins are listed in ``registry``, user plugins are discovered by
``loader``.
"""

from tubeshell.plugins.base import Plugin, PluginApi, PluginMetadata
from tubeshell.plugins.manager import PluginHost

__all__ = [
    "Plugin",
    "PluginApi",
    "PluginHost",
    "PluginMetadata",
]
