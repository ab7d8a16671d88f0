"""Tests for shell settings and command-line overrides."""

from __future__ import annotations

import argparse
from pathlib import Path

import pytest
from pydantic import ValidationError

from tubeshell.entrypoint import build_settings
from tubeshell.settings import DEFAULT_METADATA_SOURCES, ShellSettings
from tubeshell.utils import format_time


def _args(**overrides) -> argparse.Namespace:
    values = dict(
        url=None,
        config_dir=None,
        plugins_dir=None,
        settings_port=None,
        log_level=None,
        channel=None,
        headless=False,
        no_settings_server=False,
    )
    values.update(overrides)
    return argparse.Namespace(**values)


def test_defaults(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("TUBESHELL_CONFIG_DIR", str(tmp_path))

    settings = build_settings(_args())

    assert settings.start_url == "https://music.youtube.com/"
    assert settings.config_file == tmp_path / "plugins.json"
    assert settings.profile_dir == tmp_path / "profile"
    assert settings.metadata_sources == DEFAULT_METADATA_SOURCES
    assert settings.settings_url == "http://127.0.0.1:9870"


def test_command_line_overrides_environment(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("TUBESHELL_HEADLESS", "false")
    monkeypatch.setenv("TUBESHELL_LOG_LEVEL", "WARNING")

    settings = build_settings(_args(config_dir=Path(tmp_path), headless=True, log_level="DEBUG", no_settings_server=True))

    assert settings.headless is True
    assert settings.log_level == "DEBUG"
    assert settings.settings_port is None
    assert settings.settings_url is None


def test_unknown_metadata_source_is_rejected() -> None:
    with pytest.raises(ValidationError):
        ShellSettings(metadata_sources=["media_session", "tea_leaves"])


def test_format_time() -> None:
    assert format_time(200) == "3:20"
    assert format_time(59.9) == "0:59"
    assert format_time(None) == "0:00"
    assert format_time(float("nan")) == "0:00"
