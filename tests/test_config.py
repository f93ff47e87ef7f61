"""Tests for configuration loading."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from leadsync.core.config import clear_settings_cache, load_app_settings


def test_defaults_loaded_without_env_file() -> None:
    """Default values should be returned when no overrides are present."""

    settings = load_app_settings(include_environment=False)
    assert settings.api.base_url == "http://localhost:3000/api"
    assert settings.cache.max_size == 1000
    assert settings.sync.user_id is None
    assert settings.sync.check_interval_seconds == 300


def test_env_file_overrides(tmp_path: Path) -> None:
    """Values defined in an env file should override defaults."""

    env_file = tmp_path / "test.env"
    env_file.write_text(
        "LEADSYNC_API__BASE_URL=https://gateway.example.com/api\n"
        "LEADSYNC_SYNC__POLLING=false\n"
        "LEADSYNC_SYNC__USER_ID=user-7\n"
        "OTHER_SETTING=ignored\n",
        encoding="utf-8",
    )

    settings = load_app_settings(env_file=env_file, include_environment=False)
    assert settings.api.base_url == "https://gateway.example.com/api"
    assert settings.sync.polling is False
    assert settings.sync.user_id == "user-7"


def test_environment_wins_over_env_file(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    env_file = tmp_path / "test.env"
    env_file.write_text("LEADSYNC_CACHE__MAX_SIZE=10\n", encoding="utf-8")
    monkeypatch.setenv("LEADSYNC_CACHE__MAX_SIZE", "25")

    settings = load_app_settings(env_file=env_file)
    assert settings.cache.max_size == 25


def test_invalid_values_are_rejected() -> None:
    with pytest.raises(ValidationError):
        load_app_settings(include_environment=False, cache={"max_size": 0})


def test_section_overrides_merge_with_loaded_values(tmp_path: Path) -> None:
    """Dict overrides replace only the fields they name."""

    env_file = tmp_path / "test.env"
    env_file.write_text("LEADSYNC_CACHE__DEFAULT_TTL_SECONDS=42\n", encoding="utf-8")

    settings = load_app_settings(
        env_file=env_file, include_environment=False, cache={"max_size": 5}
    )
    assert settings.cache.max_size == 5
    assert settings.cache.default_ttl_seconds == 42


def test_loads_without_overrides_are_cached() -> None:
    first = load_app_settings(include_environment=False)
    assert load_app_settings(include_environment=False) is first

    clear_settings_cache()
    assert load_app_settings(include_environment=False) is not first
