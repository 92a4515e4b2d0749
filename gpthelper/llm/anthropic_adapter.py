"""Anthropic adapter (Messages API).

- Endpoint: POST https://api.anthropic.com/v1/messages
- Headers: x-api-key: <key>, anthropic-version: 2023-06-01, Content-Type: application/json

System text goes to the top-level "system" field. The wire format has no
"system" message role.

Request body:
{
  "model": "<model>",
  "max_tokens": 1024,                       # required; 1024 when unset
  "system": "<system>",                     # omitted when blank
  "messages": [
    {"role": "user", "content": "..."},
    {"role": "assistant", "content": "..."}
  ],
  "temperature": 0.7                        # omitted when unset
}

Response:
{
  "id": "msg_...",
  "content": [{"type": "text", "text": "<output_text>"}],
  "usage": {"input_tokens": 100, "output_tokens": 50}
}

- text = concatenate all content[].text where type="text"
- request_id = request-id header (Anthropic also echoes it on errors)

Error body: {"type": "error", "error": {"type": "<error_type>", "message": "..."}}
HTTP 529 is Anthropic's "overloaded_error" (transient).
"""

import httpx

from gpthelper.llm.adapter import LLMAdapter
from gpthelper.llm.errors import (
    LLMCancelledError,
    LLMError,
    LLMErrorKind,
    extract_request_id,
    parse_retry_after_sec,
)
from gpthelper.llm.types import SendArgs, SendResult

ANTHROPIC_MESSAGES_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_API_VERSION = "2023-06-01"
ANTHROPIC_DEFAULT_MAX_TOKENS = 1024
ANTHROPIC_OVERLOADED_STATUS = 529


def extract_text(data: dict) -> str:
    """Concatenate the text of all text-typed content blocks."""
    parts = []
    for block in data.get("content") or []:
        if isinstance(block, dict) and block.get("type") == "text":
            text = block.get("text")
            if isinstance(text, str):
                parts.append(text)
    return "".join(parts)


class AnthropicAdapter(LLMAdapter):
    """Anthropic Messages API adapter."""

    id = "anthropic"
    display_name = "Anthropic"

    async def send(self, args: SendArgs) -> SendResult:
        """Non-streaming message generation."""
        try:
            response = await self._post_json(
                ANTHROPIC_MESSAGES_URL,
                headers=self._build_headers(args.api_key),
                body=self._build_request_body(args),
                signal=args.signal,
                debug=args.debug,
            )
            data = self._safe_parse_json(response) or {}
        except LLMCancelledError:
            raise
        except Exception as e:
            raise self.normalize_error(e, model=args.model) from e

        return SendResult(
            text=extract_text(data),
            usage=data.get("usage"),
            request_id=extract_request_id(response.headers),
            status=response.status_code,
        )

    def _build_headers(self, api_key: str) -> dict[str, str]:
        """Build request headers."""
        return {
            "x-api-key": api_key,
            "anthropic-version": ANTHROPIC_API_VERSION,
            "Content-Type": "application/json",
        }

    def _build_request_body(self, args: SendArgs) -> dict:
        """Build request body from SendArgs.

        max_tokens is required by the Messages API; fall back to the default
        when the router passes nothing.
        """
        max_tokens = args.max_output_tokens
        if max_tokens is None or max_tokens <= 0:
            max_tokens = self._settings.anthropic_default_max_tokens

        body: dict = {
            "model": args.model,
            "max_tokens": max_tokens,
            "messages": [{"role": m.role, "content": m.content} for m in args.messages],
        }

        if args.system and args.system.strip():
            body["system"] = args.system

        if args.temperature is not None:
            body["temperature"] = args.temperature

        if args.top_p is not None:
            body["top_p"] = args.top_p

        return body

    def normalize_error(self, exc: BaseException, model: str | None = None) -> LLMError:
        """Classify Anthropic errors.

        - No response -> Network (retryable)
        - 401 or 403 -> Auth
        - 404 -> NotFoundModel (provider_code = error type)
        - 429 -> RateLimit (retryable)
        - 400 + "too long" / "too many tokens" / "context" -> ContextTooLarge, else InvalidRequest
        - 529 (overloaded_error) -> Unknown (retryable, Retry-After honored)
        - 500 / 503 -> Unknown (retryable)
        """
        if isinstance(exc, LLMError):
            return exc
        if isinstance(exc, httpx.RequestError):
            return self._network_error()
        if not isinstance(exc, httpx.HTTPStatusError):
            return self._unexpected_error(exc)

        response = exc.response
        status = response.status_code
        error = self._error_fields(self._safe_parse_json(response))

        error_type = error.get("type")
        provider_code = error_type if isinstance(error_type, str) else None
        raw_message = error.get("message")
        msg = raw_message.lower() if isinstance(raw_message, str) else ""

        kind = LLMErrorKind.UNKNOWN
        is_retryable = False

        if status in (401, 403):
            kind = LLMErrorKind.AUTH
        elif status == 404:
            kind = LLMErrorKind.NOT_FOUND_MODEL
        elif status == 429:
            kind = LLMErrorKind.RATE_LIMIT
            is_retryable = True
        elif status == 400:
            if "too long" in msg or "too many tokens" in msg or "context" in msg:
                kind = LLMErrorKind.CONTEXT_TOO_LARGE
            else:
                kind = LLMErrorKind.INVALID_REQUEST
        elif status in (500, 503, ANTHROPIC_OVERLOADED_STATUS):
            is_retryable = True

        return LLMError(
            kind,
            "Anthropic request failed.",
            provider=self.id,
            status=status,
            provider_code=provider_code,
            retry_after_sec=parse_retry_after_sec(response.headers),
            request_id=extract_request_id(response.headers),
            is_retryable=is_retryable,
        )
