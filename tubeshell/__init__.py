"""
tubeshell - a plugin host that augments a music web page in a desktop browser window.
"""

from tubeshell.version import __version__

__all__ = ['__version__']
