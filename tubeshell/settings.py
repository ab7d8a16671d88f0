"""
Shell settings.

Process-level settings loaded from the environment (``TUBESHELL_*``) and
overridden from the command line. Per-plugin settings live in the
ConfigStore, not here.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

APP_NAME = 'tubeshell'

DEFAULT_START_URL = 'https://music.youtube.com/'

# Order in which the renderer probe tries metadata sources
DEFAULT_METADATA_SOURCES = ['media_session', 'player_bar', 'player_page', 'document_title']
METADATA_SOURCES = frozenset(DEFAULT_METADATA_SOURCES)


def get_config_dir() -> Path:
    """Get the platform config directory for the shell."""
    if os.name == 'nt':
        base = Path(os.environ.get('APPDATA', Path.home() / 'AppData' / 'Roaming'))
    elif sys.platform == 'darwin':
        base = Path.home() / 'Library' / 'Application Support'
    else:
        base = Path(os.environ.get('XDG_CONFIG_HOME', Path.home() / '.config'))
    return base / APP_NAME


class ShellSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix='TUBESHELL_')

    start_url: str = DEFAULT_START_URL

    config_dir: Path = Field(default_factory=get_config_dir)

    # User plugins dropped in here are loaded next to the built-ins
    plugins_dir: Optional[Path] = None

    headless: bool = False
    browser_channel: Optional[str] = None

    # Config surface for the settings UI; None disables it
    settings_host: str = '127.0.0.1'
    settings_port: Optional[int] = 9870

    # Bounded timeout for outbound requests proxied through the host
    proxy_timeout: float = 10.0

    metadata_sources: list[str] = Field(default_factory=lambda: list(DEFAULT_METADATA_SOURCES))

    # Navigating to a URL outside this pattern ends any tracked session
    player_url_pattern: str = r'^https://music\.youtube\.com/'

    log_level: str = 'INFO'

    @field_validator('metadata_sources')
    @classmethod
    def check_metadata_sources(cls, value: list[str]) -> list[str]:
        unknown = [source for source in value if source not in METADATA_SOURCES]
        if unknown:
            raise ValueError(f'Unknown metadata sources: {unknown}')
        return value

    @property
    def config_file(self) -> Path:
        return self.config_dir / 'plugins.json'

    @property
    def profile_dir(self) -> Path:
        """Browser profile directory (cookies, logins) for the persistent context."""
        return self.config_dir / 'profile'

    @property
    def settings_url(self) -> Optional[str]:
        if self.settings_port is None:
            return None
        return f'http://{self.settings_host}:{self.settings_port}'
