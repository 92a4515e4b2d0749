"""Pytest configuration and fixtures for gpthelper tests.

All tests are pure unit tests:
- No live provider calls; HTTP is mocked with respx
- No real API keys anywhere in test code
- Stores are the in-memory implementations from gpthelper.stores
"""

import httpx
import pytest
import structlog

from gpthelper.config import Settings, clear_settings_cache
from gpthelper.stores import DictConfigStore, InMemorySecretStore, InMemoryStateStore


@pytest.fixture(autouse=True)
def test_env(monkeypatch):
    """Run every test with GPTHELPER_ENV=test so log guard violations raise."""
    monkeypatch.setenv("GPTHELPER_ENV", "test")
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def settings() -> Settings:
    """Default settings in the test environment."""
    return Settings(GPTHELPER_ENV="test")


@pytest.fixture
def httpx_client():
    """Create an httpx AsyncClient for testing."""
    return httpx.AsyncClient()


@pytest.fixture
def config_store() -> DictConfigStore:
    return DictConfigStore()


@pytest.fixture
def secret_store() -> InMemorySecretStore:
    return InMemorySecretStore()


@pytest.fixture
def state_store() -> InMemoryStateStore:
    return InMemoryStateStore()


@pytest.fixture
def log_sink():
    """Configure structlog to capture events into a list.

    Returns a list that will contain all emitted log event dicts.
    After the test, structlog is reset to normal.
    """
    events: list[dict] = []
    original_config = structlog.get_config()

    def capture_processor(logger, method_name, event_dict):
        event_dict = event_dict.copy()
        event_dict["log_level"] = method_name
        events.append(event_dict)
        raise structlog.DropEvent

    structlog.configure(
        processors=[capture_processor],
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    yield events

    structlog.configure(**original_config)
