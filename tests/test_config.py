"""Tests for router settings."""

import pytest
from pydantic import ValidationError

from gpthelper.config import (
    DEFAULT_HARD_CHAR_CAP,
    DEFAULT_RETRY_HISTORY_MESSAGES,
    DEFAULT_RETRY_USER_MAX_CHARS,
    Environment,
    Settings,
    get_settings,
)


def _make_settings(**overrides) -> Settings:
    """Build a Settings instance with test defaults + overrides."""
    defaults = {"GPTHELPER_ENV": "test"}
    defaults.update(overrides)
    return Settings(**defaults)


class TestDefaults:
    def test_sizing_defaults(self):
        s = _make_settings()
        assert s.hard_char_cap == DEFAULT_HARD_CHAR_CAP == 1_500_000
        assert s.retry_user_max_chars == DEFAULT_RETRY_USER_MAX_CHARS == 200_000
        assert s.retry_history_messages == DEFAULT_RETRY_HISTORY_MESSAGES == 6

    def test_transport_defaults(self):
        s = _make_settings()
        assert s.request_timeout_s == 120.0
        assert s.connect_timeout_s == 10.0
        assert s.model_cache_ttl_s == 24 * 60 * 60
        assert s.anthropic_default_max_tokens == 1024

    def test_env(self):
        s = _make_settings()
        assert s.env == Environment.TEST
        assert s.is_strict is True
        assert _make_settings(GPTHELPER_ENV="prod").is_strict is False


class TestValidation:
    def test_overrides_accepted(self):
        s = _make_settings(GPTHELPER_HARD_CHAR_CAP=500_000, GPTHELPER_RETRY_USER_MAX_CHARS=50_000)
        assert s.hard_char_cap == 500_000
        assert s.retry_user_max_chars == 50_000

    def test_retry_ceiling_above_cap_rejected(self):
        with pytest.raises(ValidationError, match="GPTHELPER_RETRY_USER_MAX_CHARS"):
            _make_settings(GPTHELPER_HARD_CHAR_CAP=100_000, GPTHELPER_RETRY_USER_MAX_CHARS=150_000)

    def test_tiny_cap_rejected(self):
        with pytest.raises(ValidationError):
            _make_settings(GPTHELPER_HARD_CHAR_CAP=10, GPTHELPER_RETRY_USER_MAX_CHARS=10)

    @pytest.mark.parametrize(
        "field", ["GPTHELPER_REQUEST_TIMEOUT_S", "GPTHELPER_ANTHROPIC_DEFAULT_MAX_TOKENS"]
    )
    def test_non_positive_rejected(self, field):
        with pytest.raises(ValidationError):
            _make_settings(**{field: 0})

    def test_unknown_env_rejected(self):
        with pytest.raises(ValidationError):
            _make_settings(GPTHELPER_ENV="staging")


class TestEnvironmentLoading:
    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("GPTHELPER_HARD_CHAR_CAP", "300000")
        monkeypatch.setenv("GPTHELPER_RETRY_HISTORY_MESSAGES", "2")

        s = get_settings()

        assert s.hard_char_cap == 300_000
        assert s.retry_history_messages == 2

    def test_cached(self):
        assert get_settings() is get_settings()
