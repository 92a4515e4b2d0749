"""Tests for static model data."""

import pytest

from gpthelper.llm.model_registry import (
    CUSTOM_ITEM_ID,
    PROVIDER_IDS,
    REFRESH_ITEM_ID,
    build_picker_items,
    default_model_id,
    is_valid_provider_id,
    known_max_output_tokens,
    provider_display_name,
    static_model_list,
)


class TestProviderIds:
    def test_closed_set(self):
        assert PROVIDER_IDS == ("openai", "anthropic", "gemini")

    @pytest.mark.parametrize("value", ["openai", "anthropic", "gemini"])
    def test_valid(self, value):
        assert is_valid_provider_id(value)

    @pytest.mark.parametrize("value", ["", "OpenAI", "mistral", None, 3])
    def test_invalid(self, value):
        assert not is_valid_provider_id(value)

    def test_display_names(self):
        assert provider_display_name("openai") == "OpenAI"
        assert provider_display_name("anthropic") == "Anthropic"
        assert provider_display_name("gemini") == "Gemini"
        assert provider_display_name("other") == "other"


class TestDefaults:
    def test_default_models(self):
        assert default_model_id("openai") == "gpt-5.2"
        assert default_model_id("anthropic") == "claude-sonnet-4-5-20250929"
        assert default_model_id("gemini") == "gemini-2.5-flash"

    def test_unknown_provider_falls_back_to_openai(self):
        assert default_model_id("mistral") == "gpt-5.2"

    @pytest.mark.parametrize("provider_id", PROVIDER_IDS)
    def test_default_is_in_static_list(self, provider_id):
        ids = [m.id for m in static_model_list(provider_id)]
        assert default_model_id(provider_id) in ids

    def test_static_list_is_a_copy(self):
        models = static_model_list("openai")
        models.clear()
        assert static_model_list("openai")

    def test_unknown_provider_static_list_empty(self):
        assert static_model_list("mistral") == []


class TestKnownMaxOutputTokens:
    def test_openai_known(self):
        assert known_max_output_tokens("openai", "gpt-4o") == 16_384
        assert known_max_output_tokens("openai", "o1-mini") == 65_536

    def test_openai_unknown_model(self):
        assert known_max_output_tokens("openai", "gpt-5.2") is None

    def test_other_providers_have_no_table(self):
        assert known_max_output_tokens("anthropic", "gpt-4o") is None
        assert known_max_output_tokens("gemini", "gemini-2.5-flash") is None


class TestPickerItems:
    def test_refresh_first_custom_last(self):
        items = build_picker_items(static_model_list("gemini"))
        assert items[0].id == REFRESH_ITEM_ID
        assert items[-1].id == CUSTOM_ITEM_ID
        assert [i.id for i in items[1:-1]] == [m.id for m in static_model_list("gemini")]
