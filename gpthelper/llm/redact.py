"""Redaction and log guard utilities.

- sanitize_for_debug: render arbitrary payloads safe for the debug log
- safe_kv: log guard that blocks forbidden keys at call site

Never-log policy:
- API keys and Authorization headers
- Prompt text, instruction text, selection/file content
- Response text

Allowed (with suffix):
- _chars, _length: length of text
- _hash: hash of text
- Token counts, provider request ID, model id, status codes
"""

import re
from collections.abc import Mapping, Sequence
from typing import Any

import structlog

from gpthelper.config import get_settings

REDACTED = "[REDACTED]"

MAX_DEPTH = 4
MAX_LIST_ITEMS = 20
MAX_SAFE_STRING_CHARS = 200

SECRET_KEY_PATTERN = re.compile(
    r"^(authorization|x-api-key|x-goog-api-key|api[-_]?key|key|token|password)$",
    re.IGNORECASE,
)

# Metadata keys whose short string values may be logged verbatim.
SAFE_STRING_KEYS = frozenset(
    {
        "name",
        "code",
        "provider",
        "providerLabel",
        "provider_label",
        "model",
        "host",
        "path",
        "method",
        "status",
        "requestId",
        "request_id",
        "retryAfterSec",
        "retry_after_sec",
        "errorKind",
        "error_kind",
        "providerCode",
        "provider_code",
        "command",
        "endpoint",
        "url",
    }
)

FORBIDDEN_KEYS = frozenset(
    {
        "prompt",
        "user_prompt",
        "system",
        "instruction",
        "content",
        "text",
        "selection",
        "messages",
        "api_key",
        "authorization",
        "bearer",
        "token",
        "secret",
        "password",
        "raw_body",
    }
)

REDACTED_SUFFIXES = ("_hash", "_length", "_chars")


def _summarize_string(value: str) -> str:
    return f"[string len={len(value)}]"


def sanitize_for_debug(value: Any, depth: int = 0) -> Any:
    """Sanitize an arbitrary object for debug logging.

    - Redacts secret-looking keys (Authorization, API keys, tokens, passwords)
    - Replaces any "headers" mapping with its key names only
    - Never emits raw strings; only allow-listed metadata keys may pass short values
    - Caps recursion depth and list length

    Args:
        value: Payload to sanitize (mappings, sequences, scalars).
        depth: Current recursion depth (callers leave the default).

    Returns:
        A structure safe to serialize into the debug log.
    """
    if depth > MAX_DEPTH:
        return "[Truncated]"

    if value is None or isinstance(value, bool | int | float):
        return value

    if isinstance(value, str):
        return _summarize_string(value)

    if isinstance(value, Mapping):
        out: dict[str, Any] = {}
        for raw_key, item in value.items():
            key = str(raw_key)
            if SECRET_KEY_PATTERN.match(key):
                out[key] = REDACTED
                continue

            if key.lower() == "headers":
                if isinstance(item, Mapping):
                    out[key] = {"redacted": True, "keys": [str(k) for k in item.keys()]}
                else:
                    out[key] = REDACTED
                continue

            if isinstance(item, str):
                if key in SAFE_STRING_KEYS and len(item) <= MAX_SAFE_STRING_CHARS:
                    out[key] = item
                else:
                    out[key] = _summarize_string(item)
                continue

            out[key] = sanitize_for_debug(item, depth + 1)
        return out

    if isinstance(value, Sequence | set | frozenset) and not isinstance(value, bytes | bytearray):
        items = list(value)
        if not items:
            return []
        if depth >= MAX_DEPTH:
            return f"[array len={len(items)}]"
        sanitized = [sanitize_for_debug(item, depth + 1) for item in items[:MAX_LIST_ITEMS]]
        if len(items) > MAX_LIST_ITEMS:
            sanitized.append(f"[+{len(items) - MAX_LIST_ITEMS} more]")
        return sanitized

    return f"[{type(value).__name__}]"


def _has_redacted_suffix(key: str) -> bool:
    """Check if key ends with a recognized redacted suffix."""
    return any(key.endswith(suffix) for suffix in REDACTED_SUFFIXES)


def safe_kv(*, _env: str | None = None, **kwargs) -> dict:
    """Validate that no forbidden keys are present unless already redacted.

    Raises ValueError in local/test environments if a forbidden key is used
    without a redacted suffix. In production, logs a warning instead.

    Usage:
        logger.info("llm.request.started", **safe_kv(
            provider="openai",
            model="gpt-4o",
            user_chars=1234,          # OK: _chars suffix
            # prompt="hello world",   # BLOCKED: forbidden key
        ))

    Args:
        _env: Override for GPTHELPER_ENV (test-only). If None, Settings.is_strict decides.
        **kwargs: Keyword arguments to validate and return.

    Returns:
        The same kwargs dict, after validation.

    Raises:
        ValueError: In local/test, if a forbidden key is used without redacted suffix.
    """
    violations = [
        key for key in kwargs if key in FORBIDDEN_KEYS and not _has_redacted_suffix(key)
    ]

    if violations:
        msg = f"Forbidden log keys without redacted suffix: {violations}"
        strict = get_settings().is_strict if _env is None else _env in ("local", "test")
        if strict:
            raise ValueError(msg)
        _logger = structlog.get_logger("gpthelper.llm.redact")
        _logger.warning("safe_kv_violation", forbidden_keys=violations)
        for key in violations:
            kwargs.pop(key)

    return kwargs
