"""Shared test fixtures for all test groups."""

import os

import pytest

# Debug mode skips startup secret validation; set before any riskmapper import reads settings
os.environ.setdefault("DEBUG", "true")


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    """Settings are lru_cached; tests that patch env vars need a fresh read."""
    from riskmapper.core.config import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
