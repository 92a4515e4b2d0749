"""Character-based request sizing.

Provider-agnostic. Counts characters (not tokens) and trims long text while
keeping both ends, since the start and the end of a file or selection are
usually the informative parts.

Token estimates here are informational only. Actual counts come from
provider usage data.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

DEFAULT_TRUNCATION_MARKER = "\n...[TRUNCATED]...\n"
DEFAULT_HEAD_RATIO = 0.5


@dataclass(frozen=True)
class CharCounts:
    """Character totals for one request."""

    system_chars: int
    messages_chars: int
    total_chars: int


@dataclass(frozen=True)
class TruncateResult:
    """Outcome of truncate_head_tail."""

    text: str
    truncated: bool


def _content_of(message: Any) -> Any:
    if isinstance(message, Mapping):
        return message.get("content")
    return getattr(message, "content", None)


def count_request_chars(system: Any, messages: Iterable[Any] | None) -> CharCounts:
    """Count system and message characters.

    Missing or non-string content counts as zero.

    Args:
        system: Instruction text.
        messages: ChatMessage objects or mappings with a "content" key.

    Returns:
        CharCounts with system, messages, and total character counts.
    """
    system_chars = len(system) if isinstance(system, str) else 0
    messages_chars = 0
    for message in messages or ():
        content = _content_of(message)
        if isinstance(content, str):
            messages_chars += len(content)
    return CharCounts(
        system_chars=system_chars,
        messages_chars=messages_chars,
        total_chars=system_chars + messages_chars,
    )


def truncate_head_tail(
    text: Any,
    max_chars: int,
    *,
    marker: str = DEFAULT_TRUNCATION_MARKER,
    head_ratio: float = DEFAULT_HEAD_RATIO,
) -> TruncateResult:
    """Trim text to max_chars, keeping a head and a tail around a marker.

    Edge cases:
    - non-string text: ("", truncated=False)
    - max_chars <= 0: ("", truncated=True)
    - text within the limit: unchanged, truncated=False
    - max_chars too small for the marker: hard prefix cut of exactly max_chars

    Args:
        text: Text to trim.
        max_chars: Maximum length of the result.
        marker: String inserted between head and tail.
        head_ratio: Share of the remaining budget given to the head (clamped to 0.1-0.9).

    Returns:
        TruncateResult with the (possibly) trimmed text.
    """
    if not isinstance(text, str):
        return TruncateResult(text="", truncated=False)
    if max_chars <= 0:
        return TruncateResult(text="", truncated=True)
    if len(text) <= max_chars:
        return TruncateResult(text=text, truncated=False)

    ratio = min(0.9, max(0.1, head_ratio))

    if max_chars <= len(marker) + 2:
        return TruncateResult(text=text[:max_chars], truncated=True)

    budget = max_chars - len(marker)
    head_len = max(1, int(budget * ratio))
    tail_len = max(1, budget - head_len)

    return TruncateResult(text=text[:head_len] + marker + text[-tail_len:], truncated=True)


def estimate_tokens_from_chars(chars: int) -> int:
    """Rough token estimate (~4 chars per token). Diagnostics only."""
    if chars <= 0:
        return 0
    return max(1, -(-chars // 4))
