"""LLM error taxonomy and normalization helpers.

Every adapter converts provider failures into exactly one LLMErrorKind at its
boundary (see each adapter's normalize_error). Raw httpx exceptions never
escape an adapter; they are chained as __cause__.

Error kinds:
- Auth: Missing or rejected credential (401/403, or no key configured)
- RateLimit: Rate limit or quota exceeded (429)
- NotFoundModel: Model id unknown to the provider
- NotFoundEndpoint: Endpoint missing or unreachable
- InvalidRequest: Provider rejected the payload (400)
- ContextTooLarge: Prompt exceeds the model's context window
- Network: No HTTP response (connect error, timeout)
- Unknown: Everything else (5xx, overload, unexpected)

Cancellation is NOT an error kind. A cancelled call raises LLMCancelledError
from the adapter and the router turns it into a None result.
"""

import asyncio
import math
import re
from collections.abc import Mapping
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from enum import Enum
from typing import Any

REQUEST_ID_HEADERS = (
    "x-request-id",
    "x-requestid",
    "request-id",
    "x-amzn-requestid",
    "x-amz-request-id",
    "openai-request-id",
)

DEFAULT_SET_KEY_COMMAND = "GPT: Manage API Keys"
DEFAULT_CHANGE_MODEL_COMMAND = "GPT: Change Model"

_LEADING_INT = re.compile(r"^\s*(-?\d+)")


class LLMErrorKind(str, Enum):
    """Normalized LLM error classifications."""

    AUTH = "Auth"
    RATE_LIMIT = "RateLimit"
    NOT_FOUND_MODEL = "NotFoundModel"
    NOT_FOUND_ENDPOINT = "NotFoundEndpoint"
    INVALID_REQUEST = "InvalidRequest"
    CONTEXT_TOO_LARGE = "ContextTooLarge"
    NETWORK = "Network"
    UNKNOWN = "Unknown"


class LLMError(Exception):
    """Normalized LLM failure.

    Attributes:
        kind: The normalized error classification
        provider: Provider id that produced the failure
        message: Short human-readable message (never the upstream text verbatim)
        status: HTTP status code, if a response was received
        provider_code: Provider error code/type (e.g. "model_not_found")
        retry_after_sec: Seconds to wait before retrying, if the provider said so
        request_id: Provider request id, if returned
        is_retryable: Whether retrying the same call later may succeed
    """

    def __init__(
        self,
        kind: LLMErrorKind,
        message: str,
        provider: str,
        *,
        status: int | None = None,
        provider_code: str | None = None,
        retry_after_sec: int | None = None,
        request_id: str | None = None,
        is_retryable: bool = False,
    ):
        self.kind = kind
        self.message = message
        self.provider = provider
        self.status = status
        self.provider_code = provider_code
        self.retry_after_sec = retry_after_sec
        self.request_id = request_id
        self.is_retryable = is_retryable
        super().__init__(message)

    def __repr__(self) -> str:
        return (
            f"LLMError(kind={self.kind.value!r}, provider={self.provider!r}, "
            f"status={self.status!r}, provider_code={self.provider_code!r})"
        )


class LLMCancelledError(Exception):
    """Raised by an adapter when the caller's cancellation signal fired."""

    def __init__(self, provider: str):
        self.provider = provider
        super().__init__(f"{provider} request cancelled")


def is_cancellation_error(exc: BaseException | None) -> bool:
    """Return True if exc represents a caller-initiated cancellation."""
    return isinstance(exc, (LLMCancelledError, asyncio.CancelledError))


def _header(headers: Mapping[str, Any] | None, name: str) -> Any:
    """Case-insensitive header lookup for httpx.Headers or plain dicts."""
    if not headers:
        return None
    value = headers.get(name)
    if value is not None:
        return value
    lowered = name.lower()
    for key, val in headers.items():
        if isinstance(key, str) and key.lower() == lowered:
            return val
    return None


def parse_retry_after_sec(
    headers: Mapping[str, Any] | None, *, now: datetime | None = None
) -> int | None:
    """Parse a Retry-After header.

    Accepts integer seconds or an HTTP date (converted to a delta from now).
    Negative values clamp to 0. Unparseable values return None.
    """
    raw = _header(headers, "retry-after")
    if raw is None or raw == "":
        return None

    if isinstance(raw, bool):
        return None
    if isinstance(raw, int | float):
        return max(0, int(raw))

    if isinstance(raw, str):
        match = _LEADING_INT.match(raw)
        if match:
            return max(0, int(match.group(1)))

        try:
            when = parsedate_to_datetime(raw)
        except (TypeError, ValueError):
            return None
        if when.tzinfo is None:
            when = when.replace(tzinfo=UTC)
        current = now or datetime.now(UTC)
        delta = (when - current).total_seconds()
        return max(0, math.ceil(delta))

    return None


def extract_request_id(headers: Mapping[str, Any] | None) -> str | None:
    """Extract a best-effort request id from common provider headers."""
    if not headers:
        return None
    for name in REQUEST_ID_HEADERS:
        value = _header(headers, name)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _is_anthropic_overload(err: LLMError) -> bool:
    return err.provider == "anthropic" and (
        err.status == 529 or err.provider_code == "overloaded_error"
    )


def to_user_message(
    err: BaseException,
    provider_label: str,
    model: str | None = None,
    *,
    set_key_command: str = DEFAULT_SET_KEY_COMMAND,
    change_model_command: str = DEFAULT_CHANGE_MODEL_COMMAND,
) -> str:
    """Render an error as one sentence plus an actionable hint.

    Args:
        err: Normalized LLMError (other exceptions render as Unknown).
        provider_label: Display name, e.g. "OpenAI".
        model: Model id, appended when the hint depends on it.
        set_key_command: Command name suggested for credential problems.
        change_model_command: Command name suggested for model problems.

    Returns:
        A single line suitable for an editor notification.
    """
    llm_err = err if isinstance(err, LLMError) else None
    kind = llm_err.kind if llm_err else LLMErrorKind.UNKNOWN
    request_id = llm_err.request_id if llm_err and llm_err.request_id else None
    retry_after = llm_err.retry_after_sec if llm_err else None
    model_suffix = f" ({model})" if model else ""

    lines: list[str] = []

    if llm_err and _is_anthropic_overload(llm_err):
        lines.append("Anthropic is temporarily overloaded.")
        if retry_after is not None:
            lines.append(f"Retry after ~{retry_after}s.")
        else:
            lines.append("Try again in a moment.")
        if request_id:
            lines.append(f"Request ID: {request_id}")
        return " ".join(lines)

    if kind == LLMErrorKind.AUTH:
        lines.append(f"{provider_label} API key is missing or invalid.")
        lines.append(f"Run '{set_key_command}' to set or update your API key.")
    elif kind == LLMErrorKind.NOT_FOUND_MODEL:
        lines.append(f"Model not available for {provider_label}{model_suffix}.")
        lines.append(
            f"Run '{change_model_command}' to refresh the model list or select a different model."
        )
    elif kind == LLMErrorKind.NOT_FOUND_ENDPOINT:
        lines.append(f"{provider_label} endpoint not found or unreachable.")
        lines.append("Check network connectivity, proxy settings, or corporate firewall rules.")
    elif kind == LLMErrorKind.CONTEXT_TOO_LARGE:
        lines.append(f"Input is too large for {provider_label}{model_suffix}.")
        lines.append(
            "Reduce selection/file size, lower context mode, or lower max output tokens."
        )
    elif kind == LLMErrorKind.RATE_LIMIT:
        lines.append(f"{provider_label} rate limit or quota exceeded.")
        if retry_after is not None:
            lines.append(f"Retry after ~{retry_after}s.")
        else:
            lines.append("Retry later, or check your plan/quota in the provider dashboard.")
    elif kind == LLMErrorKind.NETWORK:
        lines.append(f"Network error contacting {provider_label}.")
        lines.append("Check connectivity and try again.")
    elif kind == LLMErrorKind.INVALID_REQUEST:
        lines.append(f"Invalid request sent to {provider_label}{model_suffix}.")
        lines.append(f"Try '{change_model_command}', or reduce prompt size.")
    else:
        lines.append(f"{provider_label} request failed{model_suffix}.")
        lines.append("Try again. If this persists, check the debug log for request metadata.")

    if request_id:
        lines.append(f"Request ID: {request_id}")

    return " ".join(lines)
