"""Shared fixtures resetting process-wide singletons between tests."""

from __future__ import annotations

from collections.abc import Iterator

import pytest

from leadsync.core.config import clear_settings_cache
from leadsync.errors.pipeline import get_error_pipeline
from leadsync.storage.cache import get_cache


@pytest.fixture(autouse=True)
def reset_singletons() -> Iterator[None]:
    """Give each test fresh settings, cache and error pipeline instances."""

    clear_settings_cache()
    get_cache.cache_clear()
    get_error_pipeline.cache_clear()
    yield
    clear_settings_cache()
    get_cache.cache_clear()
    get_error_pipeline.cache_clear()
