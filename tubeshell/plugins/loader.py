"""
tubeshell Plugin Loader

Discovers user plugins dropped into the plugins directory and loads them
next to the built-ins. Each plugin is a directory containing a plugin.py
that exposes either ``create_plugin()`` or a module-level ``plugin``
object implementing the plugin contract.
"""

from __future__ import annotations

import importlib.util
import logging
import sys
from pathlib import Path
from typing import Any, Optional

from tubeshell.obs import logger
from tubeshell.plugins.base import Plugin

ENTRY_POINT = "plugin.py"
FACTORY_NAME = "create_plugin"
OBJECT_NAME = "plugin"


def discover_plugins(plugins_dir: Path) -> list[Path]:
    """
    Discover plugin directories.

    Each plugin must be a directory containing at least a plugin.py file.

    Args:
        plugins_dir: Root directory to scan for plugins

    Returns:
        List of paths to valid plugin directories, sorted by name
    """
    if not plugins_dir.exists():
        logger.info(f"Plugins directory does not exist: {plugins_dir}")
        return []

    plugin_dirs = []
    for item in sorted(plugins_dir.iterdir()):
        if not item.is_dir() or item.name.startswith(("_", ".")):
            continue
        if (item / ENTRY_POINT).exists():
            plugin_dirs.append(item)
            logger.debug(f"Found plugin directory: {item.name}")
        else:
            logger.debug(f"Skipping {item.name}: no {ENTRY_POINT} found")

    return plugin_dirs


def is_plugin(candidate: Any) -> bool:
    metadata = getattr(candidate, "metadata", None)
    return (
        not isinstance(candidate, type)
        and isinstance(getattr(metadata, "name", None), str)
        and callable(getattr(candidate, "bind", None))
    )


@logger.instrument("Loading user plugin from {plugin_dir}...", level=logging.DEBUG)
def load_plugin(plugin_dir: Path) -> Optional[Plugin]:
    """
    Load one plugin from its directory.

    Returns:
        Plugin instance if found, None otherwise (errors are logged)
    """
    plugin_file = plugin_dir / ENTRY_POINT

    try:
        # Unique module name to avoid clashing with installed packages
        module_name = f"tubeshell_plugin_{plugin_dir.name}"

        spec = importlib.util.spec_from_file_location(module_name, plugin_file)
        if spec is None or spec.loader is None:
            logger.error(f"Failed to create module spec for {plugin_file}")
            return None

        module = importlib.util.module_from_spec(spec)
        sys.modules[module_name] = module
        spec.loader.exec_module(module)

        factory = getattr(module, FACTORY_NAME, None)
        candidate = factory() if callable(factory) else getattr(module, OBJECT_NAME, None)

        if not is_plugin(candidate):
            logger.error(f"No plugin found in {plugin_file} (expected {FACTORY_NAME}() or {OBJECT_NAME})")
            return None

        logger.info(f"Loaded user plugin: {candidate.metadata.name} v{candidate.metadata.version}")
        return candidate

    except Exception as e:
        logger.error(f"Failed to load plugin from {plugin_dir}: {e}")
        return None


def load_user_plugins(plugins_dir: Optional[Path]) -> list[Plugin]:
    """Load every valid plugin under ``plugins_dir``; broken ones are skipped."""
    if plugins_dir is None:
        return []
    plugins = []
    for plugin_dir in discover_plugins(plugins_dir):
        plugin = load_plugin(plugin_dir)
        if plugin is not None:
            plugins.append(plugin)
    logger.info(f"Found {len(plugins)} user plugin(s) in {plugins_dir}")
    return plugins
