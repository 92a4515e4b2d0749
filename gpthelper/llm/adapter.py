"""Abstract base class for provider adapters.

Rules:
- Async, sharing one httpx.AsyncClient for connection pooling
- No retries inside adapters (the router owns the single bounded retry)
- No logging of request/response bodies
- Every failure leaves the adapter as an LLMError (raised from the httpx
  exception) or as LLMCancelledError; nothing else escapes
- asyncio.CancelledError is never caught; task cancellation propagates as-is

Each adapter owns its Turn -> wire format conversion and its own
normalize_error, because status-code semantics differ per provider.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable
from typing import Any, ClassVar

import httpx

from gpthelper.config import Settings, get_settings
from gpthelper.llm.errors import LLMCancelledError, LLMError, LLMErrorKind, extract_request_id
from gpthelper.llm.redact import safe_kv
from gpthelper.llm.types import ProviderId, SendArgs, SendResult
from gpthelper.logging import get_logger

logger = get_logger(__name__)


async def await_unless_cancelled(
    request: Awaitable[httpx.Response],
    signal: asyncio.Event | None,
    provider: str,
) -> httpx.Response:
    """Await an HTTP request unless the signal fires first.

    Args:
        request: Pending client call (coroutine).
        signal: Cancellation event; None awaits the request directly.
        provider: Provider id for the raised LLMCancelledError.

    Raises:
        LLMCancelledError: If the signal was already set or fired first.
    """
    if signal is None:
        return await request

    if signal.is_set():
        if asyncio.iscoroutine(request):
            request.close()
        raise LLMCancelledError(provider)

    request_task = asyncio.ensure_future(request)
    signal_task = asyncio.ensure_future(signal.wait())
    try:
        done, _ = await asyncio.wait(
            {request_task, signal_task}, return_when=asyncio.FIRST_COMPLETED
        )
    except asyncio.CancelledError:
        request_task.cancel()
        signal_task.cancel()
        raise

    signal_task.cancel()
    if request_task in done:
        return request_task.result()

    request_task.cancel()
    await asyncio.gather(request_task, return_exceptions=True)
    raise LLMCancelledError(provider)


class LLMAdapter(ABC):
    """Abstract base class for provider adapters.

    Subclasses set `id` and `display_name` and implement `send` and
    `normalize_error`.
    """

    id: ClassVar[ProviderId]
    display_name: ClassVar[str]

    def __init__(self, client: httpx.AsyncClient, settings: Settings | None = None):
        """Initialize adapter with shared HTTP client.

        Args:
            client: Shared httpx.AsyncClient for connection pooling.
            settings: Router settings (timeouts). Defaults to get_settings().
        """
        self._client = client
        self._settings = settings or get_settings()

    @abstractmethod
    async def send(self, args: SendArgs) -> SendResult:
        """Perform one generation call.

        Args:
            args: Model, credential, messages, and sampling parameters.

        Returns:
            SendResult with generated text, usage, request id and status.

        Raises:
            LLMError: Normalized provider or transport failure.
            LLMCancelledError: args.signal fired before the response arrived.
        """

    @abstractmethod
    def normalize_error(self, exc: BaseException, model: str | None = None) -> LLMError:
        """Map any adapter-side exception to exactly one LLMErrorKind.

        Args:
            exc: The raised exception (typically httpx.HTTPStatusError or
                httpx.RequestError).
            model: Model id of the failed call, for diagnostics.

        Returns:
            The normalized LLMError (not raised).
        """

    def _timeout(self) -> httpx.Timeout:
        return httpx.Timeout(
            self._settings.request_timeout_s, connect=self._settings.connect_timeout_s
        )

    async def _post_json(
        self,
        url: str,
        *,
        headers: dict[str, str],
        body: dict[str, Any],
        signal: asyncio.Event | None,
        debug: bool = False,
    ) -> httpx.Response:
        """POST a JSON body, honoring the cancellation signal.

        Raises:
            httpx.HTTPStatusError: On non-2xx HTTP response.
            httpx.RequestError: On timeout or network failure.
            LLMCancelledError: If signal fired first.
        """
        start = time.monotonic()
        request = self._client.post(url, headers=headers, json=body, timeout=self._timeout())

        response = await await_unless_cancelled(request, signal, self.id)

        if debug:
            logger.debug(
                "llm.http.completed",
                **safe_kv(
                    provider=self.id,
                    status=response.status_code,
                    request_id=extract_request_id(response.headers),
                    latency_ms=int((time.monotonic() - start) * 1000),
                ),
            )

        response.raise_for_status()
        return response

    def _network_error(self) -> LLMError:
        return LLMError(
            LLMErrorKind.NETWORK,
            f"Network error while contacting {self.display_name}.",
            provider=self.id,
            is_retryable=True,
        )

    def _unexpected_error(self, exc: BaseException) -> LLMError:
        return LLMError(
            LLMErrorKind.UNKNOWN,
            f"Unexpected error: {type(exc).__name__}",
            provider=self.id,
        )

    @staticmethod
    def _safe_parse_json(response: httpx.Response) -> dict | None:
        """Safely parse a JSON object from a response, returning None on failure."""
        try:
            data = response.json()
        except ValueError:
            return None
        return data if isinstance(data, dict) else None

    @staticmethod
    def _error_fields(body: dict | None) -> dict:
        """Return body["error"] when it is an object, else {}."""
        if not body:
            return {}
        error = body.get("error")
        return error if isinstance(error, dict) else {}
