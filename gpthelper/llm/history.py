"""Volatile chat history and provider-isolated context selection.

History lives in process memory only and is cleared explicitly by the
caller. Every entry is tagged with the provider that produced it. When
building context for a request, only entries tagged with the active provider
are used: continuations from a different provider or model tend to be
stylistically and structurally incompatible.
"""

import time
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from gpthelper.llm.model_registry import DEFAULT_PROVIDER_ID, provider_display_name
from gpthelper.llm.types import ChatMessage, ChatRole, ContextMode, HistoryEntry, RouterResult


@dataclass(frozen=True)
class HistorySelection:
    """History converted to messages for one provider.

    Attributes:
        messages: Messages to send before the new user prompt
        dropped_leading: Assistant messages removed from the front
    """

    messages: list[ChatMessage]
    dropped_leading: int


def entry_provider(entry: HistoryEntry) -> str:
    """Provider tag of an entry; untagged entries count as openai."""
    if entry.provider and entry.provider.strip():
        return entry.provider.strip()
    return DEFAULT_PROVIDER_ID


def select_history(
    history: Iterable[HistoryEntry] | None,
    provider_id: str,
    context_mode: ContextMode,
    context_length: int,
) -> HistorySelection:
    """Apply provider isolation and the context-mode policy.

    Args:
        history: Full session history (all providers).
        provider_id: Active provider; other providers' entries are ignored.
        context_mode: "none" (empty), "lastN" (last context_length entries), "full".
        context_length: N for "lastN"; non-positive means no history.

    Returns:
        HistorySelection whose messages never start with an assistant message.
    """
    provider_history = [e for e in history or () if entry_provider(e) == provider_id]

    if context_mode == "full":
        selected = provider_history
    elif context_mode == "lastN":
        n = int(context_length) if context_length and context_length > 0 else 0
        selected = provider_history[-n:] if n > 0 else []
    else:
        selected = []

    messages = [
        ChatMessage(role=e.role, content=e.content)
        for e in selected
        if e.role in ("user", "assistant") and isinstance(e.content, str)
    ]

    # Providers require user-initiated turns
    dropped_leading = 0
    while messages and messages[0].role == "assistant":
        messages.pop(0)
        dropped_leading += 1

    return HistorySelection(messages=messages, dropped_leading=dropped_leading)


class ChatHistory:
    """In-memory conversation log for the current session."""

    def __init__(self, entries: Iterable[HistoryEntry] | None = None):
        self._entries: list[HistoryEntry] = list(entries or ())

    @property
    def entries(self) -> list[HistoryEntry]:
        """Snapshot of the recorded entries, oldest first."""
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def append(
        self,
        role: ChatRole,
        content: str,
        provider: str,
        model: str,
        timestamp: float | None = None,
    ) -> HistoryEntry:
        """Record one message."""
        entry = HistoryEntry(
            role=role,
            content=content,
            provider=provider,
            model=model,
            timestamp=time.time() if timestamp is None else timestamp,
        )
        self._entries.append(entry)
        return entry

    def record_exchange(self, user_prompt: str, result: RouterResult) -> None:
        """Record a successful prompt/response pair.

        Only called for completed calls; cancelled calls leave no trace.
        """
        now = time.time()
        self.append("user", user_prompt, result.provider, result.model, timestamp=now)
        self.append("assistant", result.text, result.provider, result.model, timestamp=now)

    def clear(self) -> None:
        """Forget the whole session history."""
        self._entries.clear()


def format_chat_history(entries: Iterable[HistoryEntry]) -> str:
    """Render history as a readable transcript (for an editor document)."""
    rule = "=" * 10
    blocks = []
    for entry in entries:
        role = "User" if entry.role == "user" else "Assistant"
        provider = provider_display_name(entry_provider(entry))
        model = entry.model or "unknown-model"
        time_str = datetime.fromtimestamp(entry.timestamp).strftime("%H:%M:%S")
        blocks.append(
            f"{rule}\n**{role} ({provider}/{model}) [{time_str}]:**\n{entry.content}\n{rule}\n"
        )
    return "\n".join(blocks)
