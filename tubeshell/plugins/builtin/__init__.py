"""
tubeshell Built-in Plugins

Shipped with the shell and registered through ``tubeshell.plugins.registry``.
"""
