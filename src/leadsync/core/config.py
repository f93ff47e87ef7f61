"""Application configuration models and loader utilities."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, cast

from dotenv import dotenv_values
from pydantic import BaseModel, Field


class ApiSettings(BaseModel):
    """Settings controlling access to the backend gateway."""

    base_url: str = Field(
        default="http://localhost:3000/api", description="Gateway base URL"
    )
    timeout_seconds: float = Field(
        default=30.0, gt=0, description="Request timeout for gateway calls"
    )
    cache_ttl_seconds: float = Field(
        default=300.0, ge=0, description="Lifetime of cached GET responses"
    )


class CacheSettings(BaseModel):
    """Bounds for the process-wide in-memory cache."""

    max_size: int = Field(default=1000, ge=1, description="Maximum cached entries")
    default_ttl_seconds: float = Field(
        default=300.0, gt=0, description="Entry lifetime when no TTL is given"
    )


class SyncSettings(BaseModel):
    """Settings controlling thread refresh cadence."""

    user_id: str | None = Field(
        default=None, description="User whose threads are synchronised"
    )
    polling: bool = Field(
        default=True, description="Check for new threads on visibility and interval"
    )
    refetch_interval_seconds: float | None = Field(
        default=None, gt=0, description="Blind refetch interval for the thread list"
    )
    check_interval_seconds: float = Field(
        default=300.0, gt=0, description="Interval between new-item checks"
    )
    fetch_retries: int = Field(
        default=3, ge=0, description="Retries for a retryable thread fetch failure"
    )
    retry_delay_seconds: float = Field(
        default=1.0, gt=0, description="First retry delay, doubled per attempt"
    )


class LoggingSettings(BaseModel):
    """Logging preferences."""

    level: str = Field(default="INFO", description="Root logging level")
    structured: bool = Field(
        default=False, description="Toggle key/value structured logging"
    )


class AppSettings(BaseModel):
    """Aggregated application configuration."""

    api: ApiSettings = Field(default_factory=ApiSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    sync: SyncSettings = Field(default_factory=SyncSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


ENV_PREFIX = "LEADSYNC_"


def _normalize_key(raw_key: str) -> list[str]:
    """Convert an environment variable key into a nested attribute path."""
    trimmed = raw_key.removeprefix(ENV_PREFIX)
    return [segment.lower() for segment in trimmed.split("__") if segment]


def _merge_into_tree(tree: dict[str, Any], path: list[str], value: Any) -> None:
    """Assign a value to a nested dictionary given a path."""
    cursor = tree
    for segment in path[:-1]:
        next_node = cursor.setdefault(segment, {})
        cursor = cast(dict[str, Any], next_node)
    cursor[path[-1]] = value


def _coerce_value(value: Any) -> Any:
    if isinstance(value, str) and value == "":
        return None
    if isinstance(value, str):
        lowercase_value = value.lower()
        if lowercase_value == "true":
            return True
        if lowercase_value == "false":
            return False
    return value


def _collect_env_values(
    env_file: Path | str | None, *, include_environment: bool
) -> dict[str, Any]:
    """Load configuration values from environment variables and optional file."""
    collected: dict[str, Any] = {}

    file_values = {}
    if env_file:
        env_path = Path(env_file)
        if env_path.is_file():
            file_values = {
                key: value
                for key, value in dotenv_values(env_path).items()
                if key and key.startswith(ENV_PREFIX)
            }

    env_values = {}
    if include_environment:
        env_values = {
            key: value
            for key, value in os.environ.items()
            if key.startswith(ENV_PREFIX)
        }

    combined: dict[str, Any] = {**file_values, **env_values}

    for key, value in combined.items():
        path = _normalize_key(key)
        if not path:
            continue
        _merge_into_tree(collected, path, _coerce_value(value))

    return collected


@lru_cache(maxsize=1)
def _load_base_settings(
    env_file: Path | str | None, include_environment: bool
) -> AppSettings:
    collected = _collect_env_values(env_file, include_environment=include_environment)
    return AppSettings.model_validate(collected)


def _apply_overrides(collected: dict[str, Any], overrides: dict[str, Any]) -> None:
    """Merge keyword overrides, combining section dicts with loaded values."""
    for key, value in overrides.items():
        current = collected.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            collected[key] = {**current, **value}
        else:
            collected[key] = value


def load_app_settings(
    env_file: Path | str | None = None,
    include_environment: bool = True,
    **overrides: Any,
) -> AppSettings:
    """Load application settings, applying env files and overrides.

    Settings without overrides are cached per source; overrides may carry
    unhashable section dicts, so those loads are always rebuilt.
    """
    if not overrides:
        return _load_base_settings(env_file, include_environment)
    collected = _collect_env_values(env_file, include_environment=include_environment)
    _apply_overrides(collected, overrides)
    return AppSettings.model_validate(collected)


def clear_settings_cache() -> None:
    """Forget cached settings so the next load re-reads its sources."""
    _load_base_settings.cache_clear()


__all__ = [
    "ApiSettings",
    "AppSettings",
    "CacheSettings",
    "LoggingSettings",
    "SyncSettings",
    "clear_settings_cache",
    "load_app_settings",
]
