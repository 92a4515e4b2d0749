"""Tests for error helpers: Retry-After, request ids, user messages."""

import asyncio
from datetime import UTC, datetime

import httpx
import pytest

from gpthelper.llm.errors import (
    LLMCancelledError,
    LLMError,
    LLMErrorKind,
    extract_request_id,
    is_cancellation_error,
    parse_retry_after_sec,
    to_user_message,
)


class TestParseRetryAfter:
    """Tests for parse_retry_after_sec."""

    def test_integer_seconds(self):
        assert parse_retry_after_sec({"retry-after": "30"}) == 30

    def test_header_lookup_is_case_insensitive(self):
        assert parse_retry_after_sec({"Retry-After": "5"}) == 5
        assert parse_retry_after_sec(httpx.Headers({"RETRY-AFTER": "9"})) == 9

    def test_negative_clamps_to_zero(self):
        assert parse_retry_after_sec({"retry-after": "-4"}) == 0

    def test_http_date(self):
        now = datetime(2025, 1, 1, 12, 0, 0, tzinfo=UTC)
        headers = {"retry-after": "Wed, 01 Jan 2025 12:00:42 GMT"}
        assert parse_retry_after_sec(headers, now=now) == 42

    def test_http_date_in_past_clamps_to_zero(self):
        now = datetime(2025, 1, 1, 12, 0, 0, tzinfo=UTC)
        headers = {"retry-after": "Wed, 01 Jan 2025 11:00:00 GMT"}
        assert parse_retry_after_sec(headers, now=now) == 0

    @pytest.mark.parametrize("headers", [None, {}, {"retry-after": ""}, {"retry-after": "soon"}])
    def test_missing_or_garbage(self, headers):
        assert parse_retry_after_sec(headers) is None


class TestExtractRequestId:
    """Tests for extract_request_id."""

    def test_first_known_header_wins(self):
        headers = {"request-id": "req-b", "x-request-id": "req-a"}
        assert extract_request_id(headers) == "req-a"

    def test_blank_values_skipped(self):
        headers = {"x-request-id": "  ", "openai-request-id": "req-c"}
        assert extract_request_id(headers) == "req-c"

    def test_none_when_absent(self):
        assert extract_request_id({"content-type": "application/json"}) is None
        assert extract_request_id(None) is None


class TestCancellation:
    """Tests for is_cancellation_error."""

    def test_cancellation_types(self):
        assert is_cancellation_error(LLMCancelledError("openai"))
        assert is_cancellation_error(asyncio.CancelledError())

    def test_errors_are_not_cancellation(self):
        assert not is_cancellation_error(LLMError(LLMErrorKind.NETWORK, "x", provider="openai"))
        assert not is_cancellation_error(None)


class TestLLMError:
    """Tests for the LLMError exception type."""

    def test_fields(self):
        err = LLMError(
            LLMErrorKind.RATE_LIMIT,
            "slow down",
            provider="openai",
            status=429,
            provider_code="rate_limit_exceeded",
            retry_after_sec=3,
            request_id="req-1",
            is_retryable=True,
        )
        assert err.kind == LLMErrorKind.RATE_LIMIT
        assert err.kind.value == "RateLimit"
        assert err.status == 429
        assert err.is_retryable is True
        assert str(err) == "slow down"

    def test_kind_values(self):
        assert {k.value for k in LLMErrorKind} == {
            "Auth",
            "RateLimit",
            "NotFoundModel",
            "NotFoundEndpoint",
            "InvalidRequest",
            "ContextTooLarge",
            "Network",
            "Unknown",
        }


class TestToUserMessage:
    """Tests for to_user_message."""

    def test_auth_mentions_key_command(self):
        err = LLMError(LLMErrorKind.AUTH, "bad key", provider="openai")
        msg = to_user_message(err, "OpenAI")
        assert "OpenAI API key is missing or invalid." in msg
        assert "GPT: Manage API Keys" in msg

    def test_not_found_model_mentions_model(self):
        err = LLMError(LLMErrorKind.NOT_FOUND_MODEL, "missing", provider="gemini")
        msg = to_user_message(err, "Gemini", "gemini-9", change_model_command="Pick Model")
        assert "(gemini-9)" in msg
        assert "Pick Model" in msg

    def test_rate_limit_with_retry_after(self):
        err = LLMError(LLMErrorKind.RATE_LIMIT, "x", provider="openai", retry_after_sec=20)
        assert "Retry after ~20s." in to_user_message(err, "OpenAI")

    def test_request_id_appended(self):
        err = LLMError(LLMErrorKind.NETWORK, "x", provider="openai", request_id="req-9")
        assert to_user_message(err, "OpenAI").endswith("Request ID: req-9")

    def test_anthropic_overload(self):
        err = LLMError(
            LLMErrorKind.UNKNOWN,
            "overloaded",
            provider="anthropic",
            status=529,
            retry_after_sec=4,
            is_retryable=True,
        )
        msg = to_user_message(err, "Anthropic")
        assert msg.startswith("Anthropic is temporarily overloaded.")
        assert "Retry after ~4s." in msg

    def test_non_llm_error_renders_as_unknown(self):
        msg = to_user_message(ValueError("boom"), "Gemini")
        assert msg.startswith("Gemini request failed.")
        assert "boom" not in msg
