"""LLM router: provider selection, credentials, sizing, and the bounded retry.

One send() call goes through a fixed pipeline:
1. Resolve provider (closed set, default openai), adapter, and model
2. Resolve the API key (session override -> secret store -> legacy state key)
3. Resolve the output-token budget from the maxOutputTokens setting
4. Select provider-isolated history and append the user prompt
5. Enforce the hard character cap (drop history, then trim user, then system)
6. Normalize sampling parameters per provider
7. Dispatch; on ContextTooLarge retry exactly once with reduced input

Observability:
- Emits llm.request.started / llm.request.finished / llm.request.failed /
  llm.request.cancelled / llm.request.retry events
- All events use safe_kv(); only sizes and metadata are logged, never text

Cancellation (the request's signal fired, or LLMCancelledError) yields None
and is never retried or reported as an error.
"""

import asyncio
import math
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, replace
from typing import Any

import httpx

from gpthelper.config import Settings, get_settings
from gpthelper.llm.adapter import LLMAdapter
from gpthelper.llm.anthropic_adapter import AnthropicAdapter
from gpthelper.llm.errors import LLMCancelledError, LLMError, LLMErrorKind
from gpthelper.llm.gemini_adapter import GeminiAdapter
from gpthelper.llm.history import select_history
from gpthelper.llm.model_registry import (
    DEFAULT_PROVIDER_ID,
    default_model_id,
    is_valid_provider_id,
    known_max_output_tokens,
    provider_display_name,
)
from gpthelper.llm.openai_adapter import OpenAIAdapter
from gpthelper.llm.redact import safe_kv, sanitize_for_debug
from gpthelper.llm.sizing import count_request_chars, truncate_head_tail
from gpthelper.llm.types import (
    ChatMessage,
    KeyUpdate,
    ProviderId,
    RouterResult,
    SendArgs,
    SendRequest,
    SendResult,
)
from gpthelper.logging import get_logger
from gpthelper.stores import ConfigStore, SecretStore, StateStore

logger = get_logger(__name__)

SECRET_KEY_NAMES: dict[str, str] = {
    "openai": "openaiApiKey",
    "anthropic": "anthropicApiKey",
    "gemini": "geminiApiKey",
}
MODEL_SETTING_KEYS: dict[str, str] = {
    "openai": "openai.model",
    "anthropic": "anthropic.model",
    "gemini": "gemini.model",
}
PROVIDER_SETTING_KEY = "provider"
MAX_OUTPUT_TOKENS_SETTING_KEY = "maxOutputTokens"

# Pre-SecretStore releases kept the OpenAI key in plain state
LEGACY_OPENAI_KEY = "openaiApiKey"

TRUNCATION_WARNING = (
    "Input was truncated to fit safety limits (large selection/file or extensive history)."
)
ANTHROPIC_SAMPLING_WARNING = (
    "Anthropic models do not support using both temperature and top-p. "
    "This request will use temperature and ignore top-p."
)
SECRET_STORE_WARNING = (
    "Secure key storage is unavailable. API keys will only be kept for this session."
)


@dataclass(frozen=True)
class CapMeta:
    """What the hard character cap changed."""

    dropped_history: int
    truncated_user: bool
    truncated_system: bool
    total_chars_before: int
    total_chars_after: int

    @property
    def changed(self) -> bool:
        return self.truncated_user or self.truncated_system or self.dropped_history > 0


@dataclass(frozen=True)
class CappedRequest:
    system: str
    messages: list[ChatMessage]
    meta: CapMeta


def default_adapters(
    client: httpx.AsyncClient, settings: Settings | None = None
) -> dict[str, LLMAdapter]:
    """Build one adapter per provider over a shared client."""
    return {
        "openai": OpenAIAdapter(client, settings),
        "anthropic": AnthropicAdapter(client, settings),
        "gemini": GeminiAdapter(client, settings),
    }


class LLMRouter:
    """Routes prompts to the active provider.

    Handles:
    - Adapter selection from the "provider" setting
    - API key lookup, storage, and legacy key migration
    - Output-token budget, request size cap, sampling normalization
    - Error normalization and the single ContextTooLarge retry
    - Observability event emission
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        config: ConfigStore,
        secrets: SecretStore,
        state: StateStore,
        *,
        adapters: Mapping[str, LLMAdapter] | None = None,
        warn_user: Callable[[str], None] | None = None,
        settings: Settings | None = None,
    ):
        """Initialize router with its host context.

        Args:
            client: Shared httpx.AsyncClient for connection pooling.
            config: User preferences (provider, models, maxOutputTokens).
            secrets: API key storage.
            state: Persisted state (legacy OpenAI key location).
            adapters: Adapter per provider id. Defaults to the three HTTP adapters.
            warn_user: Callback for user-visible warnings.
            settings: Router settings. Defaults to get_settings().
        """
        self._settings = settings or get_settings()
        self._config = config
        self._secrets = secrets
        self._state = state
        self._warn_user = warn_user or (lambda _msg: None)
        self._adapters: dict[str, LLMAdapter] = dict(
            adapters if adapters is not None else default_adapters(client, self._settings)
        )

        self._session_keys: dict[str, str | None] = {p: None for p in SECRET_KEY_NAMES}
        self._warned_truncation = False
        self._warned_sampling = False
        self._warned_secret_store = False

    # ------------------------------------------------------------------
    # Settings

    def get_active_provider_id(self) -> ProviderId:
        """Active provider from configuration; anything unknown means openai."""
        raw = self._config.get(PROVIDER_SETTING_KEY, DEFAULT_PROVIDER_ID)
        return raw if is_valid_provider_id(raw) else DEFAULT_PROVIDER_ID

    def get_provider_display_name(self, provider_id: str) -> str:
        """Adapter display name, falling back to the registry label."""
        adapter = self._adapters.get(provider_id)
        name = getattr(adapter, "display_name", None)
        return name if isinstance(name, str) and name else provider_display_name(provider_id)

    def get_model(self, provider_id: str) -> str:
        """Configured model id (trimmed), or the provider default."""
        key = MODEL_SETTING_KEYS.get(provider_id)
        raw = self._config.get(key) if key else None
        if isinstance(raw, str) and raw.strip():
            return raw.strip()
        return default_model_id(provider_id)

    def get_max_output_tokens_setting(self, provider_id: str | None = None) -> int:
        """maxOutputTokens as an int; non-numeric values read as 0 (provider default)."""
        raw = self._config.get(MAX_OUTPUT_TOKENS_SETTING_KEY, 0)
        if isinstance(raw, bool) or not isinstance(raw, int | float):
            return 0
        if not math.isfinite(raw):
            return 0
        return math.floor(raw)

    async def set_model(self, provider_id: str, model_id: str) -> None:
        key = MODEL_SETTING_KEYS.get(provider_id)
        if key:
            await self._config.update(key, model_id)

    async def set_provider(self, provider_id: str) -> None:
        if not is_valid_provider_id(provider_id):
            raise LLMError(
                LLMErrorKind.INVALID_REQUEST,
                f"Unknown provider: {provider_id}",
                provider=provider_id,
            )
        await self._config.update(PROVIDER_SETTING_KEY, provider_id)

    async def set_max_output_tokens(self, value: int) -> None:
        if value < 0:
            raise LLMError(
                LLMErrorKind.INVALID_REQUEST,
                "maxOutputTokens must be >= 0.",
                provider=self.get_active_provider_id(),
            )
        await self._config.update(MAX_OUTPUT_TOKENS_SETTING_KEY, int(value))

    def _resolve_max_output_tokens(
        self, provider_id: str, model: str, setting: int
    ) -> tuple[int | None, int | None]:
        """Turn the maxOutputTokens setting into a per-request budget.

        Returns:
            (resolved, clamped_from). resolved None omits the field; clamped_from
            is the original setting when it exceeded the model's known ceiling.

        Raises:
            LLMError: InvalidRequest for a negative setting.
        """
        if setting < 0:
            raise LLMError(
                LLMErrorKind.INVALID_REQUEST,
                "maxOutputTokens must be >= 0.",
                provider=provider_id,
            )

        known_max = known_max_output_tokens(provider_id, model)

        # 0 means provider default
        if setting == 0:
            if provider_id == "openai":
                return known_max, None
            if provider_id == "anthropic":
                return self._settings.anthropic_default_max_tokens, None
            return None, None

        if known_max is not None and setting > known_max:
            return known_max, setting
        return setting, None

    # ------------------------------------------------------------------
    # Credentials

    def _warn_secret_store_once(self) -> None:
        if not self._warned_secret_store:
            self._warned_secret_store = True
            self._warn_user(SECRET_STORE_WARNING)

    async def get_api_key(self, provider_id: str) -> str | None:
        """Resolve the API key for a provider.

        Order: session override, secret store, then (openai only) the legacy
        state key, which is copied into the secret store and removed.
        """
        session_key = self._session_keys.get(provider_id)
        if session_key and session_key.strip():
            return session_key.strip()

        storage_key = SECRET_KEY_NAMES.get(provider_id)
        if not storage_key:
            return None

        secret = None
        try:
            secret = await self._secrets.get(storage_key)
        except Exception as e:
            self._warn_secret_store_once()
            logger.warning(
                "secret_store.get_failed",
                **safe_kv(provider=provider_id, error_type=type(e).__name__),
            )

        if isinstance(secret, str) and secret.strip():
            return secret.strip()

        if provider_id == "openai":
            return await self._migrate_legacy_key()
        return None

    async def _migrate_legacy_key(self) -> str | None:
        legacy = self._state.get(LEGACY_OPENAI_KEY)
        if not isinstance(legacy, str) or not legacy.strip():
            return None
        legacy = legacy.strip()

        try:
            await self._secrets.store(SECRET_KEY_NAMES["openai"], legacy)
        except Exception as e:
            self._warn_secret_store_once()
            logger.warning(
                "secret_store.store_failed",
                **safe_kv(provider="openai", error_type=type(e).__name__, migration=True),
            )
            return legacy

        await self._clear_legacy_key()
        logger.info("legacy_key.migrated", **safe_kv(provider="openai"))
        return legacy

    async def _clear_legacy_key(self) -> None:
        try:
            await self._state.update(LEGACY_OPENAI_KEY, None)
        except Exception as e:
            logger.warning("legacy_key.cleanup_failed", **safe_kv(error_type=type(e).__name__))

    async def set_api_key(self, provider_id: str, api_key: str) -> KeyUpdate:
        """Store a key, keeping it for the session even if storage fails.

        Raises:
            LLMError: InvalidRequest for a blank key or an unknown provider.
        """
        key = api_key.strip() if isinstance(api_key, str) else ""
        if not key:
            raise LLMError(LLMErrorKind.INVALID_REQUEST, "API key is empty.", provider=provider_id)
        if not is_valid_provider_id(provider_id):
            raise LLMError(
                LLMErrorKind.INVALID_REQUEST,
                f"Unknown provider: {provider_id}",
                provider=provider_id,
            )

        self._session_keys[provider_id] = key

        try:
            await self._secrets.store(SECRET_KEY_NAMES[provider_id], key)
        except Exception as e:
            self._warn_secret_store_once()
            logger.warning(
                "secret_store.store_failed",
                **safe_kv(provider=provider_id, error_type=type(e).__name__),
            )
            return KeyUpdate(persisted=False)

        if provider_id == "openai":
            await self._clear_legacy_key()
        return KeyUpdate(persisted=True)

    async def remove_api_key(self, provider_id: str) -> KeyUpdate:
        """Forget a key in memory and (best effort) in storage."""
        storage_key = SECRET_KEY_NAMES.get(provider_id)
        if not storage_key:
            return KeyUpdate(persisted=False)

        self._session_keys[provider_id] = None

        deleted = False
        try:
            await self._secrets.delete(storage_key)
            deleted = True
        except Exception as e:
            self._warn_secret_store_once()
            logger.warning(
                "secret_store.delete_failed",
                **safe_kv(provider=provider_id, error_type=type(e).__name__),
            )

        if provider_id == "openai":
            await self._clear_legacy_key()
        return KeyUpdate(persisted=deleted)

    # ------------------------------------------------------------------
    # Sizing

    def _enforce_char_cap(self, system: str, messages: list[ChatMessage]) -> CappedRequest:
        """Fit system + messages under the hard cap.

        Oldest history goes first (the final user message is never dropped),
        along with any assistant reply left at the front. Then the user
        message is head/tail truncated, then the system text.
        """
        cap = self._settings.hard_char_cap
        system_text = system if isinstance(system, str) else ""
        msgs = list(messages)

        before = count_request_chars(system_text, msgs).total_chars

        dropped = 0
        while len(msgs) > 1 and count_request_chars(system_text, msgs).total_chars > cap:
            msgs.pop(0)
            dropped += 1
        # Conversations must open with a user turn
        while len(msgs) > 1 and msgs[0].role == "assistant":
            msgs.pop(0)
            dropped += 1

        truncated_user = False
        if msgs:
            user = msgs[-1]
            available = max(0, cap - count_request_chars(system_text, msgs[:-1]).total_chars)
            if len(user.content) > available:
                msgs[-1] = replace(user, content=truncate_head_tail(user.content, available).text)
                truncated_user = True

        truncated_system = False
        available = max(0, cap - count_request_chars("", msgs).total_chars)
        if len(system_text) > available:
            system_text = truncate_head_tail(system_text, available).text
            truncated_system = True

        return CappedRequest(
            system=system_text,
            messages=msgs,
            meta=CapMeta(
                dropped_history=dropped,
                truncated_user=truncated_user,
                truncated_system=truncated_system,
                total_chars_before=before,
                total_chars_after=count_request_chars(system_text, msgs).total_chars,
            ),
        )

    def _reduce_for_retry(self, capped: CappedRequest) -> CappedRequest:
        """Smaller request for the single ContextTooLarge retry."""
        history = capped.messages[:-1]
        user = capped.messages[-1].content if capped.messages else ""

        keep = self._settings.retry_history_messages
        reduced_history = history[-keep:] if keep > 0 else []
        reduced_user = truncate_head_tail(user, self._settings.retry_user_max_chars).text

        return self._enforce_char_cap(
            capped.system, [*reduced_history, ChatMessage(role="user", content=reduced_user)]
        )

    # ------------------------------------------------------------------
    # Sending

    def _normalize_sampling(
        self, provider_id: str, temperature: float | None, top_p: float | None
    ) -> tuple[float | None, float | None]:
        """Anthropic rejects temperature and top_p together; temperature wins."""
        if provider_id != "anthropic":
            return temperature, top_p
        if temperature is not None and top_p is not None:
            if not self._warned_sampling:
                self._warned_sampling = True
                self._warn_user(ANTHROPIC_SAMPLING_WARNING)
            return temperature, None
        return temperature, top_p

    async def send(self, request: SendRequest) -> RouterResult | None:
        """Send a prompt to the active provider.

        Args:
            request: Prompt, system text, session history, and options.

        Returns:
            RouterResult on success, None if the request was cancelled.

        Raises:
            LLMError: NotFoundEndpoint (no adapter), Auth (no key),
                InvalidRequest (bad settings), or the normalized provider error.
        """
        provider_id = self.get_active_provider_id()
        adapter = self._adapters.get(provider_id)
        model = self.get_model(provider_id)

        if adapter is None:
            raise LLMError(
                LLMErrorKind.NOT_FOUND_ENDPOINT,
                "Provider adapter not available.",
                provider=provider_id,
            )

        api_key = await self.get_api_key(provider_id)
        if not api_key:
            raise LLMError(LLMErrorKind.AUTH, "Missing API key.", provider=provider_id)

        max_setting = self.get_max_output_tokens_setting(provider_id)
        max_output_tokens, clamped_from = self._resolve_max_output_tokens(
            provider_id, model, max_setting
        )
        if clamped_from is not None:
            logger.info(
                "llm.max_tokens.clamped",
                **safe_kv(
                    provider=provider_id,
                    model=model,
                    requested_max_tokens=clamped_from,
                    resolved_max_tokens=max_output_tokens,
                ),
            )

        user_prompt = request.user_prompt if isinstance(request.user_prompt, str) else ""
        selection = select_history(
            request.history, provider_id, request.context_mode, request.context_length
        )
        messages = [*selection.messages, ChatMessage(role="user", content=user_prompt)]
        capped = self._enforce_char_cap(request.system, messages)

        if capped.meta.changed:
            logger.info(
                "llm.prompt.capped",
                **safe_kv(
                    provider=provider_id,
                    dropped_history=capped.meta.dropped_history,
                    truncated_user=capped.meta.truncated_user,
                    truncated_system=capped.meta.truncated_system,
                    total_chars_before=capped.meta.total_chars_before,
                    total_chars_after=capped.meta.total_chars_after,
                ),
            )
            if not self._warned_truncation:
                self._warned_truncation = True
                self._warn_user(TRUNCATION_WARNING)

        temperature, top_p = self._normalize_sampling(
            provider_id, request.temperature, request.top_p
        )

        base: dict[str, Any] = {"provider": provider_id, "model": model}
        pre_cap = count_request_chars(request.system, messages)
        logger.info(
            "llm.request.started",
            **safe_kv(
                **base,
                context_mode=request.context_mode,
                history_messages=len(selection.messages),
                dropped_leading=selection.dropped_leading,
                system_chars=pre_cap.system_chars,
                user_chars=len(user_prompt),
                total_chars=pre_cap.total_chars,
                total_chars_after_cap=capped.meta.total_chars_after,
            ),
        )
        debug = request.debug or self._settings.debug
        if debug:
            logger.debug(
                "llm.request.params",
                **safe_kv(
                    **base,
                    params=sanitize_for_debug(
                        {
                            "maxOutputTokensSetting": max_setting,
                            "resolvedMaxOutputTokens": max_output_tokens,
                            "clampedFrom": clamped_from,
                            "temperatureSent": temperature,
                            "topPSent": top_p,
                            "temperatureRaw": request.temperature,
                            "topPRaw": request.top_p,
                        }
                    ),
                ),
            )

        def build_args(target: CappedRequest) -> SendArgs:
            return SendArgs(
                api_key=api_key,
                model=model,
                messages=target.messages,
                system=target.system,
                max_output_tokens=max_output_tokens,
                temperature=temperature,
                top_p=top_p,
                signal=request.signal,
                debug=debug,
            )

        start = time.monotonic()
        try:
            result = await adapter.send(build_args(capped))
        except Exception as e:
            if self._is_cancelled(request.signal, e):
                self._log_cancelled(base, start)
                return None

            error = self._normalize(adapter, e, model)
            if error.kind != LLMErrorKind.CONTEXT_TOO_LARGE:
                self._log_failed(base, start, error, attempt=1)
                if error is e:
                    raise
                raise error from e

            retry = self._reduce_for_retry(capped)
            logger.info(
                "llm.request.retry",
                **safe_kv(
                    **base,
                    attempt=2,
                    original_total_chars=capped.meta.total_chars_after,
                    retry_total_chars=retry.meta.total_chars_after,
                    retry_dropped_history=retry.meta.dropped_history,
                    retry_truncated_user=retry.meta.truncated_user,
                ),
            )

            try:
                result = await adapter.send(build_args(retry))
            except Exception as e2:
                if self._is_cancelled(request.signal, e2):
                    self._log_cancelled(base, start)
                    return None
                error2 = self._normalize(adapter, e2, model)
                self._log_failed(base, start, error2, attempt=2)
                if error2 is e2:
                    raise
                raise error2 from e2

        return self._finish(base, start, provider_id, model, result)

    @staticmethod
    def _is_cancelled(signal: asyncio.Event | None, exc: BaseException) -> bool:
        return (signal is not None and signal.is_set()) or isinstance(exc, LLMCancelledError)

    @staticmethod
    def _normalize(adapter: LLMAdapter, exc: Exception, model: str) -> LLMError:
        if isinstance(exc, LLMError):
            return exc
        return adapter.normalize_error(exc, model=model)

    @staticmethod
    def _latency_ms(start: float) -> int:
        return int((time.monotonic() - start) * 1000)

    def _log_cancelled(self, base: dict[str, Any], start: float) -> None:
        logger.debug(
            "llm.request.cancelled",
            **safe_kv(**base, outcome="cancelled", latency_ms=self._latency_ms(start)),
        )

    def _log_failed(
        self, base: dict[str, Any], start: float, error: LLMError, *, attempt: int
    ) -> None:
        logger.error(
            "llm.request.failed",
            **safe_kv(
                **base,
                outcome="error",
                attempt=attempt,
                error_kind=error.kind.value,
                status=error.status,
                provider_code=error.provider_code,
                retryable=error.is_retryable,
                provider_request_id=error.request_id,
                latency_ms=self._latency_ms(start),
            ),
        )

    def _finish(
        self,
        base: dict[str, Any],
        start: float,
        provider_id: ProviderId,
        model: str,
        result: SendResult,
    ) -> RouterResult:
        logger.info(
            "llm.request.finished",
            **safe_kv(
                **base,
                outcome="success",
                latency_ms=self._latency_ms(start),
                output_chars=len(result.text),
                provider_request_id=result.request_id,
            ),
        )
        return RouterResult(
            text=result.text,
            provider=provider_id,
            model=model,
            request_id=result.request_id,
            usage=result.usage,
        )
