"""
tubeshell Web Module

HTTP surfaces served from inside the shell: the companion query server
and the settings API.
"""

from tubeshell.web.companion import create_companion_app
from tubeshell.web.server import EmbeddedServer
from tubeshell.web.settings_api import create_settings_app, create_settings_router

__all__ = [
    "EmbeddedServer",
    "create_companion_app",
    "create_settings_app",
    "create_settings_router",
]
