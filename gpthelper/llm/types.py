"""Shared type definitions for the LLM router.

- ChatMessage: Provider-agnostic conversation message (user/assistant only)
- HistoryEntry: ChatMessage plus provider/model/timestamp metadata
- SendArgs / SendResult: Adapter call contract
- SendRequest / RouterResult: Router call contract

System text is never a message. It travels separately (SendRequest.system,
SendArgs.system) and each adapter places it where its wire format expects.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Literal

ProviderId = Literal["openai", "anthropic", "gemini"]
ChatRole = Literal["user", "assistant"]
ContextMode = Literal["none", "lastN", "full"]


@dataclass(frozen=True)
class ChatMessage:
    """Provider-agnostic conversation message.

    Attributes:
        role: "user" or "assistant"
        content: The text content of the message
    """

    role: ChatRole
    content: str


@dataclass(frozen=True)
class HistoryEntry:
    """Chat message recorded in the volatile session history.

    Attributes:
        role: "user" or "assistant"
        content: Message text
        provider: Provider that produced (or received) the message. None means
            the entry predates multi-provider support and is treated as openai.
        model: Model id used for the exchange
        timestamp: Epoch seconds when the entry was recorded
    """

    role: ChatRole
    content: str
    provider: str | None = None
    model: str | None = None
    timestamp: float = 0.0


@dataclass(frozen=True)
class SendArgs:
    """Arguments for one adapter call.

    Attributes:
        api_key: Provider credential
        model: Provider model id
        messages: Conversation, never starting with an assistant message
        system: Instruction text (empty string means none)
        max_output_tokens: Output budget, None lets the provider default apply
        temperature: Sampling temperature, None omits it
        top_p: Nucleus sampling, None omits it
        signal: Cancellation event; setting it aborts the HTTP call
        debug: Emit sanitized request metadata at debug level
    """

    api_key: str
    model: str
    messages: list[ChatMessage]
    system: str = ""
    max_output_tokens: int | None = None
    temperature: float | None = None
    top_p: float | None = None
    signal: asyncio.Event | None = None
    debug: bool = False


@dataclass(frozen=True)
class SendResult:
    """Normalized adapter result.

    Attributes:
        text: Generated text
        usage: Raw provider usage object (token counts), if returned
        request_id: Provider request id from response headers, if any
        status: HTTP status code
    """

    text: str
    usage: dict[str, Any] | None = None
    request_id: str | None = None
    status: int | None = None


@dataclass
class SendRequest:
    """Envelope for one router call. Built fresh per invocation.

    Attributes:
        user_prompt: The new user message
        system: Resolved project instruction text
        history: Full session history; the router filters it per provider
        context_mode: "none", "lastN", or "full"
        context_length: N for "lastN"
        temperature: Optional sampling temperature
        top_p: Optional nucleus sampling value
        signal: Optional cancellation event
        debug: Emit sanitized request metadata
    """

    user_prompt: str
    system: str = ""
    history: list[HistoryEntry] = field(default_factory=list)
    context_mode: ContextMode = "none"
    context_length: int = 0
    temperature: float | None = None
    top_p: float | None = None
    signal: asyncio.Event | None = None
    debug: bool = False


@dataclass(frozen=True)
class RouterResult:
    """Successful router response."""

    text: str
    provider: ProviderId
    model: str
    request_id: str | None = None
    usage: dict[str, Any] | None = None


@dataclass(frozen=True)
class KeyUpdate:
    """Outcome of a credential change.

    Attributes:
        persisted: True if the secret store accepted the change. False means the
            key is held for this session only (or the delete did not reach storage).
    """

    persisted: bool
