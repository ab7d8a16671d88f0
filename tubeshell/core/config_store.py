"""
Plugin Config Store

Per-plugin key/value configuration persisted to a JSON file.
Plugins always read a merged view of author defaults and user overrides;
only the overrides are written to disk.
"""

from __future__ import annotations

import copy
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from tubeshell.errors import ConfigError
from tubeshell.obs import logger

ENABLED_KEY = "enabled"


@dataclass
class StoredConfig:
    """
    Complete persisted config.
    Saved to <config_dir>/plugins.json
    """

    plugins: dict[str, dict[str, Any]] = field(default_factory=dict)

    # Version for future migrations
    version: int = 1

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "plugins": self.plugins,
        }

    @classmethod
    def from_dict(cls, data: dict) -> StoredConfig:
        state = cls()
        state.version = data.get("version", 1)
        plugins = data.get("plugins") or {}
        if isinstance(plugins, dict):
            state.plugins = {
                name: dict(values) for name, values in plugins.items() if isinstance(values, dict)
            }
        return state


def _check_serializable(name: str, values: Mapping[str, Any]) -> None:
    try:
        json.dumps(values)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Config for {name} is not JSON-serializable: {e}") from e


class ConfigStore:
    """
    Manages loading, merging and saving of plugin configs.
    """

    def __init__(self, config_file: Path):
        self.config_file = config_file
        self.state = StoredConfig()
        self._defaults: dict[str, dict[str, Any]] = {}

    @logger.instrument("Loading plugin config from {self.config_file}...")
    def load(self) -> StoredConfig:
        """Load config from disk, or start empty if it does not exist."""
        if not self.config_file.exists():
            logger.info("  No existing config file, using defaults")
            self.state = StoredConfig()
            return self.state

        try:
            data = json.loads(self.config_file.read_text(encoding="utf-8"))
            self.state = StoredConfig.from_dict(data)
            logger.info(f"  Loaded config for {len(self.state.plugins)} plugin(s)")
        except (OSError, ValueError) as e:
            logger.error(f"  Failed to load config: {e}")
            self.state = StoredConfig()

        return self.state

    def save(self) -> None:
        """Persist overrides to disk."""
        try:
            self.config_file.parent.mkdir(parents=True, exist_ok=True)
            self.config_file.write_text(json.dumps(self.state.to_dict(), indent=2), encoding="utf-8")
            logger.debug(f"Saved plugin config to {self.config_file}")
        except OSError as e:
            logger.error(f"Failed to save plugin config: {e}")
            raise

    def register_defaults(self, name: str, defaults: Mapping[str, Any]) -> None:
        """Record the author defaults for a plugin."""
        _check_serializable(name, defaults)
        self._defaults[name] = copy.deepcopy(dict(defaults))

    def overrides(self, name: str) -> dict[str, Any]:
        return copy.deepcopy(self.state.plugins.get(name, {}))

    def get(self, name: str) -> dict[str, Any]:
        """Merged view: enabled flag, then author defaults, then persisted overrides."""
        merged: dict[str, Any] = {ENABLED_KEY: True}
        merged.update(copy.deepcopy(self._defaults.get(name, {})))
        merged.update(self.overrides(name))
        return merged

    def set(self, name: str, config: Mapping[str, Any]) -> dict[str, Any]:
        """
        Replace the overrides for a plugin and persist.

        Keys equal to the default are still stored, so a user choice survives
        a later change of the author default.

        Returns:
            The new merged config
        """
        values = dict(config)
        _check_serializable(name, values)
        self.state.plugins[name] = copy.deepcopy(values)
        self.save()
        return self.get(name)

    def update(self, name: str, **values: Any) -> dict[str, Any]:
        """Merge individual keys into the overrides and persist."""
        current = self.overrides(name)
        current.update(values)
        return self.set(name, current)

    def is_enabled(self, name: str) -> bool:
        return self.get(name).get(ENABLED_KEY, True) is not False
