"""LLM routing layer for provider-agnostic prompt sending.

This module puts OpenAI, Anthropic, and Gemini behind one interface. It
includes:

- Provider adapters over a shared httpx.AsyncClient
- Error normalization into a closed set of kinds
- Character-based request sizing and head/tail truncation
- Provider-isolated chat history
- Model registry and cached model discovery

Usage:
    from gpthelper.llm import LLMRouter, SendRequest

    router = LLMRouter(httpx_client, config, secrets, state)
    result = await router.send(SendRequest(user_prompt="Hello!"))

Rules:
- No retries inside adapters (the router retries once on ContextTooLarge)
- No logging of prompt or response text, or of keys
- A cancelled request returns None instead of raising
"""

from gpthelper.llm.adapter import LLMAdapter
from gpthelper.llm.anthropic_adapter import AnthropicAdapter
from gpthelper.llm.errors import (
    LLMCancelledError,
    LLMError,
    LLMErrorKind,
    extract_request_id,
    is_cancellation_error,
    parse_retry_after_sec,
    to_user_message,
)
from gpthelper.llm.gemini_adapter import GeminiAdapter
from gpthelper.llm.history import ChatHistory, HistorySelection, format_chat_history, select_history
from gpthelper.llm.model_discovery import ModelDiscovery, ModelsCacheEntry
from gpthelper.llm.model_registry import (
    PROVIDER_IDS,
    ModelItem,
    build_picker_items,
    default_model_id,
    is_valid_provider_id,
    known_max_output_tokens,
    provider_display_name,
    static_model_list,
)
from gpthelper.llm.openai_adapter import OpenAIAdapter
from gpthelper.llm.redact import safe_kv, sanitize_for_debug
from gpthelper.llm.router import LLMRouter
from gpthelper.llm.sizing import count_request_chars, truncate_head_tail
from gpthelper.llm.types import (
    ChatMessage,
    HistoryEntry,
    KeyUpdate,
    RouterResult,
    SendArgs,
    SendRequest,
    SendResult,
)

__all__ = [
    # Core types
    "ChatMessage",
    "HistoryEntry",
    "SendArgs",
    "SendResult",
    "SendRequest",
    "RouterResult",
    "KeyUpdate",
    # Adapters
    "LLMAdapter",
    "OpenAIAdapter",
    "AnthropicAdapter",
    "GeminiAdapter",
    # Router
    "LLMRouter",
    # Errors
    "LLMError",
    "LLMErrorKind",
    "LLMCancelledError",
    "is_cancellation_error",
    "parse_retry_after_sec",
    "extract_request_id",
    "to_user_message",
    # Sizing
    "count_request_chars",
    "truncate_head_tail",
    # History
    "ChatHistory",
    "HistorySelection",
    "select_history",
    "format_chat_history",
    # Models
    "PROVIDER_IDS",
    "ModelItem",
    "ModelDiscovery",
    "ModelsCacheEntry",
    "build_picker_items",
    "default_model_id",
    "is_valid_provider_id",
    "known_max_output_tokens",
    "provider_display_name",
    "static_model_list",
    # Logging guards
    "safe_kv",
    "sanitize_for_debug",
]
