"""Static model data per provider.

- Provider id space is closed: openai, anthropic, gemini
- Default model ids and static fallback lists for the model picker
- Known output-token ceilings (OpenAI only; the other providers do not
  publish stable per-model caps)

Dynamic listing is layered on top in model_discovery.
"""

from dataclasses import dataclass
from typing import TypeGuard

from gpthelper.llm.types import ProviderId

PROVIDER_IDS: tuple[ProviderId, ...] = ("openai", "anthropic", "gemini")

DEFAULT_PROVIDER_ID: ProviderId = "openai"

PROVIDER_DISPLAY_NAMES: dict[str, str] = {
    "openai": "OpenAI",
    "anthropic": "Anthropic",
    "gemini": "Gemini",
}

DEFAULT_MODELS: dict[str, str] = {
    "openai": "gpt-5.2",
    "anthropic": "claude-sonnet-4-5-20250929",
    "gemini": "gemini-2.5-flash",
}

OPENAI_KNOWN_MAX_OUTPUT_TOKENS: dict[str, int] = {
    "o3-mini": 100_000,
    "o1": 100_000,
    "o1-mini": 65_536,
    "gpt-4o": 16_384,
    "gpt-4o-mini": 16_384,
    "gpt-4-turbo": 4_096,
    "gpt-3.5-turbo": 4_096,
}

REFRESH_ITEM_ID = "__refresh__"
CUSTOM_ITEM_ID = "__custom__"


@dataclass(frozen=True)
class ModelItem:
    """One entry in a model picker."""

    id: str
    label: str
    detail: str | None = None


OPENAI_MODELS: tuple[ModelItem, ...] = (
    ModelItem("gpt-5.2", "GPT-5.2"),
    ModelItem("gpt-5.2-pro", "GPT-5.2 pro"),
    ModelItem("gpt-5.1", "GPT-5.1"),
    ModelItem("gpt-5", "GPT-5"),
    ModelItem("gpt-5-mini", "GPT-5 mini"),
    ModelItem("gpt-5-nano", "GPT-5 nano"),
    ModelItem("o3", "o3"),
    ModelItem("o3-mini", "o3-mini"),
    ModelItem("o4-mini", "o4-mini"),
    ModelItem("gpt-4.1", "GPT-4.1"),
    ModelItem("gpt-4.1-mini", "GPT-4.1 mini"),
    ModelItem("gpt-4.1-nano", "GPT-4.1 nano"),
    ModelItem("gpt-4o", "GPT-4o"),
    ModelItem("gpt-4o-mini", "GPT-4o mini"),
)

ANTHROPIC_MODELS: tuple[ModelItem, ...] = (
    ModelItem("claude-sonnet-4-5-20250929", "Claude Sonnet 4.5"),
    ModelItem("claude-haiku-4-5-20251001", "Claude Haiku 4.5"),
    ModelItem("claude-opus-4-5-20251101", "Claude Opus 4.5"),
    ModelItem("claude-opus-4-1-20250805", "Claude Opus 4.1"),
    ModelItem("claude-sonnet-4-20250514", "Claude Sonnet 4"),
    ModelItem("claude-opus-4-20250514", "Claude Opus 4"),
)

GEMINI_MODELS: tuple[ModelItem, ...] = (
    ModelItem("gemini-2.5-flash", "Gemini 2.5 Flash"),
    ModelItem("gemini-2.5-pro", "Gemini 2.5 Pro"),
    ModelItem("gemini-2.5-flash-lite", "Gemini 2.5 Flash-Lite"),
    ModelItem("gemini-2.0-flash", "Gemini 2.0 Flash"),
    ModelItem("gemini-2.0-flash-lite", "Gemini 2.0 Flash-Lite"),
)

REFRESH_ITEM = ModelItem(
    REFRESH_ITEM_ID, "Refresh model list (online)", "Fetch latest models from provider"
)
CUSTOM_MODEL_ITEM = ModelItem(CUSTOM_ITEM_ID, "Custom model id…", "Enter any provider model id")

_STATIC_MODELS: dict[str, tuple[ModelItem, ...]] = {
    "openai": OPENAI_MODELS,
    "anthropic": ANTHROPIC_MODELS,
    "gemini": GEMINI_MODELS,
}


def is_valid_provider_id(provider_id: object) -> TypeGuard[ProviderId]:
    """Check membership in the closed provider set."""
    return isinstance(provider_id, str) and provider_id in PROVIDER_IDS


def provider_display_name(provider_id: str) -> str:
    """Human-readable provider name, falling back to the raw id."""
    return PROVIDER_DISPLAY_NAMES.get(provider_id, provider_id)


def static_model_list(provider_id: str) -> list[ModelItem]:
    """Static fallback models only (no refresh/custom entries)."""
    return list(_STATIC_MODELS.get(provider_id, ()))


def default_model_id(provider_id: str) -> str:
    """Default model for a provider; unknown ids get the OpenAI default."""
    return DEFAULT_MODELS.get(provider_id, DEFAULT_MODELS[DEFAULT_PROVIDER_ID])


def known_max_output_tokens(provider_id: str, model_id: str) -> int | None:
    """Known output-token ceiling for a model, or None when not published."""
    if provider_id != "openai":
        return None
    return OPENAI_KNOWN_MAX_OUTPUT_TOKENS.get(model_id)


def build_picker_items(models: list[ModelItem]) -> list[ModelItem]:
    """Picker order: refresh action, models, custom-entry action."""
    return [REFRESH_ITEM, *models, CUSTOM_MODEL_ITEM]
