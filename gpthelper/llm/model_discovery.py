"""Model discovery with a per-provider cache.

Lists models from each provider's native endpoint, filters out models that
cannot do text generation, and caches the result in the state store under
"modelsCache.<provider>" for 24 hours (Settings.model_cache_ttl_s).

Listing endpoints:
- OpenAI: GET https://api.openai.com/v1/models (single page)
- Anthropic: GET https://api.anthropic.com/v1/models (cursor: has_more / last_id)
- Gemini: GET https://generativelanguage.googleapis.com/v1beta/models (nextPageToken)

Failures never surface to the caller: discovery only feeds a picker, so any
error falls back to the cached list, then to the static list.
"""

import asyncio
import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Literal

import httpx

from gpthelper.config import Settings, get_settings
from gpthelper.llm.adapter import await_unless_cancelled
from gpthelper.llm.anthropic_adapter import ANTHROPIC_API_VERSION
from gpthelper.llm.errors import is_cancellation_error
from gpthelper.llm.gemini_adapter import GEMINI_HOST
from gpthelper.llm.model_registry import ModelItem
from gpthelper.llm.redact import safe_kv
from gpthelper.logging import get_logger
from gpthelper.stores import StateStore

logger = get_logger(__name__)

CACHE_VERSION = 1
MAX_PAGES = 10
MAX_MODELS = 500
PAGE_SIZE = 100

OPENAI_MODELS_URL = "https://api.openai.com/v1/models"
ANTHROPIC_MODELS_URL = "https://api.anthropic.com/v1/models"
GEMINI_MODELS_URL = f"{GEMINI_HOST}/v1beta/models"

OPENAI_DENY_SUBSTRINGS = (
    # Embeddings
    "text-embedding-",
    "embedding-",
    # Moderation
    "omni-moderation",
    "moderation",
    # Image generation
    "dall-e",
    "gpt-image",
    "chatgpt-image",
    "image-",
    # Audio / speech / transcription
    "whisper",
    "transcribe",
    "tts",
    "audio",
    # Realtime
    "realtime",
    # Legacy base engines
    "davinci",
    "curie",
    "babbage",
    "ada",
)
OPENAI_ALLOW_PREFIXES = ("gpt-", "o1", "o3", "o4")

GEMINI_DENY_SUBSTRINGS = ("embed", "tts", "transcribe", "audio", "image")


@dataclass
class ModelsCacheEntry:
    """Cached model list for one provider."""

    fetched_at: float
    items: list[ModelItem]
    source: Literal["remote", "static"]
    v: int = CACHE_VERSION

    def to_dict(self) -> dict[str, Any]:
        return {
            "v": self.v,
            "fetched_at": self.fetched_at,
            "items": [{"id": i.id, "label": i.label, "detail": i.detail} for i in self.items],
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, raw: Any) -> "ModelsCacheEntry | None":
        """Parse a stored entry; anything malformed is treated as no cache."""
        if not isinstance(raw, dict) or raw.get("v") != CACHE_VERSION:
            return None
        fetched_at = raw.get("fetched_at")
        items = raw.get("items")
        source = raw.get("source")
        if not isinstance(fetched_at, int | float) or isinstance(fetched_at, bool):
            return None
        if not isinstance(items, list) or source not in ("remote", "static"):
            return None
        parsed = [
            ModelItem(id=i["id"], label=i.get("label") or i["id"], detail=i.get("detail"))
            for i in items
            if isinstance(i, dict) and isinstance(i.get("id"), str)
        ]
        return cls(fetched_at=float(fetched_at), items=parsed, source=source)


@dataclass
class _Candidate:
    id: str
    methods: list[str] | None = field(default=None)


def _openai_allowed(model_id: str) -> bool:
    lowered = model_id.lower()
    if any(s in lowered for s in OPENAI_DENY_SUBSTRINGS):
        return False
    # Fail closed for unknown families
    return lowered.startswith(OPENAI_ALLOW_PREFIXES)


def _gemini_allowed(candidate: _Candidate) -> bool:
    if candidate.methods is not None:
        return "generateContent" in candidate.methods
    lowered = candidate.id.lower()
    return not any(s in lowered for s in GEMINI_DENY_SUBSTRINGS)


def filter_models(provider_id: str, raw: Iterable[Any]) -> list[ModelItem]:
    """Keep only text-generation models, mapped to picker items.

    Args:
        provider_id: Provider whose listing format `raw` follows.
        raw: Model objects as returned by the provider listing endpoint.

    Returns:
        ModelItem list (label = id).
    """
    items = [m for m in raw or () if isinstance(m, dict)]

    if provider_id == "anthropic":
        ids = [m.get("id") for m in items]
        return [
            ModelItem(id=i, label=i)
            for i in ids
            if isinstance(i, str) and i.startswith("claude-")
        ]

    if provider_id == "gemini":
        candidates = []
        for m in items:
            model_id = str(m.get("name") or "").removeprefix("models/")
            if not model_id:
                continue
            methods = None
            for key in ("supportedGenerationMethods", "supported_actions", "supportedActions"):
                if isinstance(m.get(key), list):
                    methods = m[key]
                    break
            candidates.append(_Candidate(id=model_id, methods=methods))
        return [ModelItem(id=c.id, label=c.id) for c in candidates if _gemini_allowed(c)]

    ids = [m.get("id") for m in items]
    return [
        ModelItem(id=i, label=i)
        for i in ids
        if isinstance(i, str) and i.strip() and _openai_allowed(i)
    ]


def cache_key(provider_id: str) -> str:
    return f"modelsCache.{provider_id}"


class ModelDiscovery:
    """Lists provider models, caching results in the state store."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        state: StateStore,
        settings: Settings | None = None,
    ):
        self._client = client
        self._state = state
        self._settings = settings or get_settings()

    def _is_fresh(self, entry: ModelsCacheEntry | None) -> bool:
        if entry is None:
            return False
        return time.time() - entry.fetched_at < self._settings.model_cache_ttl_s

    async def get_models(
        self,
        provider_id: str,
        api_key: str | None,
        *,
        force: bool = False,
        signal: asyncio.Event | None = None,
        static_fallback: Iterable[ModelItem] = (),
    ) -> ModelsCacheEntry | None:
        """Return the model list for a provider.

        Order of preference: fresh cache (unless force), remote listing,
        stale cache, static fallback.

        Args:
            provider_id: Provider to list.
            api_key: Provider credential. Without one, nothing is fetched.
            force: Ignore a fresh cache (the picker's refresh action).
            signal: Cancellation event; a cancelled refresh returns the cache.
            static_fallback: Models to use when nothing better is available.

        Returns:
            A cache entry, or None when there is nothing to offer.
        """
        key = cache_key(provider_id)
        cached = ModelsCacheEntry.from_dict(self._state.get(key))
        fallback = list(static_fallback)

        if not force and self._is_fresh(cached):
            return cached

        if not api_key:
            if cached is None and fallback:
                entry = ModelsCacheEntry(fetched_at=time.time(), items=fallback, source="static")
                await self._state.update(key, entry.to_dict())
                return entry
            return cached

        try:
            items = await self._fetch_remote(provider_id, api_key, signal)
        except Exception as e:
            if is_cancellation_error(e):
                return cached
            logger.warning(
                "model_discovery.fetch_failed",
                **safe_kv(provider=provider_id, error_type=type(e).__name__),
            )
            return cached or self._static_entry(fallback)

        if not items:
            return cached or self._static_entry(fallback)

        entry = ModelsCacheEntry(fetched_at=time.time(), items=items, source="remote")
        await self._state.update(key, entry.to_dict())
        logger.info(
            "model_discovery.refreshed", **safe_kv(provider=provider_id, model_count=len(items))
        )
        return entry

    @staticmethod
    def _static_entry(fallback: list[ModelItem]) -> ModelsCacheEntry | None:
        if not fallback:
            return None
        return ModelsCacheEntry(fetched_at=time.time(), items=fallback, source="static")

    async def _fetch_remote(
        self, provider_id: str, api_key: str, signal: asyncio.Event | None
    ) -> list[ModelItem]:
        if provider_id == "openai":
            return await self._list_openai(api_key, signal)
        if provider_id == "anthropic":
            return await self._list_anthropic(api_key, signal)
        if provider_id == "gemini":
            return await self._list_gemini(api_key, signal)
        return []

    async def _get(
        self,
        provider_id: str,
        url: str,
        *,
        headers: dict[str, str],
        params: dict[str, Any] | None,
        signal: asyncio.Event | None,
    ) -> dict:
        timeout = httpx.Timeout(
            self._settings.model_list_timeout_s, connect=self._settings.connect_timeout_s
        )
        request = self._client.get(url, headers=headers, params=params, timeout=timeout)
        response = await await_unless_cancelled(request, signal, provider_id)
        response.raise_for_status()
        data = response.json()
        return data if isinstance(data, dict) else {}

    async def _list_openai(self, api_key: str, signal: asyncio.Event | None) -> list[ModelItem]:
        data = await self._get(
            "openai",
            OPENAI_MODELS_URL,
            headers={"Authorization": f"Bearer {api_key}"},
            params=None,
            signal=signal,
        )
        raw = data.get("data")
        return filter_models("openai", raw if isinstance(raw, list) else [])[:MAX_MODELS]

    async def _list_anthropic(self, api_key: str, signal: asyncio.Event | None) -> list[ModelItem]:
        out: list[ModelItem] = []
        after_id: str | None = None

        for _ in range(MAX_PAGES):
            params: dict[str, Any] = {"limit": PAGE_SIZE}
            if after_id:
                params["after_id"] = after_id
            data = await self._get(
                "anthropic",
                ANTHROPIC_MODELS_URL,
                headers={"x-api-key": api_key, "anthropic-version": ANTHROPIC_API_VERSION},
                params=params,
                signal=signal,
            )
            raw = data.get("data")
            if not isinstance(raw, list) or not raw:
                break
            out.extend(filter_models("anthropic", raw))
            if len(out) >= MAX_MODELS or not data.get("has_more"):
                break
            after_id = data.get("last_id")
            if not after_id:
                break

        return out[:MAX_MODELS]

    async def _list_gemini(self, api_key: str, signal: asyncio.Event | None) -> list[ModelItem]:
        out: list[ModelItem] = []
        page_token: str | None = None

        for _ in range(MAX_PAGES):
            params: dict[str, Any] = {"pageSize": PAGE_SIZE}
            if page_token:
                params["pageToken"] = page_token
            data = await self._get(
                "gemini",
                GEMINI_MODELS_URL,
                headers={"x-goog-api-key": api_key},
                params=params,
                signal=signal,
            )
            raw = data.get("models")
            out.extend(filter_models("gemini", raw if isinstance(raw, list) else []))
            page_token = data.get("nextPageToken")
            if len(out) >= MAX_MODELS or not page_token:
                break

        return out[:MAX_MODELS]
