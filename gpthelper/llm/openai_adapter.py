"""OpenAI adapter (Responses API).

- Endpoint: POST https://api.openai.com/v1/responses
- Headers: Authorization: Bearer <key>, Content-Type: application/json

The Responses endpoint takes a single input string, so the conversation is
flattened into role-prefixed paragraphs. System text goes to the top-level
"instructions" field.

Request body:
{
  "model": "<model>",
  "instructions": "<system>",               # omitted when blank
  "input": "User: ...\n\nAssistant: ...\n\nUser: ...",
  "max_output_tokens": 4096,                # omitted when unset
  "temperature": 0.7,                       # omitted when unset
  "top_p": 0.9                              # omitted when unset
}

Response - extract:
- text = output_text if present, else concatenated output[].content[].text
- usage = usage object as returned
- request_id = x-request-id (or another known request-id header)
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
from gpthelper.llm.types import ChatMessage, SendArgs, SendResult

OPENAI_RESPONSES_URL = "https://api.openai.com/v1/responses"


def build_input_text(messages: list[ChatMessage]) -> str:
    """Flatten messages into "User: ..." / "Assistant: ..." paragraphs."""
    parts = []
    for message in messages:
        if not message.content:
            continue
        role = "Assistant" if message.role == "assistant" else "User"
        parts.append(f"{role}: {message.content}")
    return "\n\n".join(parts)


def extract_output_text(data: dict) -> str:
    """Return output_text, or concatenate text blocks from the output array."""
    output_text = data.get("output_text")
    if isinstance(output_text, str):
        return output_text

    parts: list[str] = []
    for item in data.get("output") or []:
        if not isinstance(item, dict):
            continue
        for block in item.get("content") or []:
            text = block.get("text") if isinstance(block, dict) else None
            if isinstance(text, str) and text:
                parts.append(text)
    return "".join(parts)


class OpenAIAdapter(LLMAdapter):
    """OpenAI Responses API adapter."""

    id = "openai"
    display_name = "OpenAI"

    async def send(self, args: SendArgs) -> SendResult:
        """Non-streaming response generation."""
        try:
            response = await self._post_json(
                OPENAI_RESPONSES_URL,
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
            text=extract_output_text(data),
            usage=data.get("usage"),
            request_id=extract_request_id(response.headers),
            status=response.status_code,
        )

    def _build_headers(self, api_key: str) -> dict[str, str]:
        """Build request headers."""
        return {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

    def _build_request_body(self, args: SendArgs) -> dict:
        """Build request body from SendArgs."""
        body: dict = {
            "model": args.model,
            "input": build_input_text(args.messages),
        }

        if args.system and args.system.strip():
            body["instructions"] = args.system

        if args.max_output_tokens is not None and args.max_output_tokens > 0:
            body["max_output_tokens"] = args.max_output_tokens

        if args.temperature is not None:
            body["temperature"] = args.temperature

        if args.top_p is not None:
            body["top_p"] = args.top_p

        return body

    def normalize_error(self, exc: BaseException, model: str | None = None) -> LLMError:
        """Classify OpenAI errors.

        - No response (timeout, connect failure) -> Network (retryable)
        - 401 or 403 -> Auth (403 also covers unsupported regions)
        - 404 + model_not_found / "model ... not found" -> NotFoundModel, else NotFoundEndpoint
        - 429 -> RateLimit (retryable unless insufficient_quota)
        - 400 + model_not_found -> NotFoundModel
        - 400 + context_length_exceeded / length phrasing -> ContextTooLarge, else InvalidRequest
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

        code = error.get("code")
        error_type = error.get("type")
        provider_code = code if isinstance(code, str) else (
            error_type if isinstance(error_type, str) else None
        )
        raw_message = error.get("message")
        msg = raw_message.lower() if isinstance(raw_message, str) else ""

        kind = LLMErrorKind.UNKNOWN
        is_retryable = False

        if status in (401, 403):
            kind = LLMErrorKind.AUTH
        elif status == 404:
            # Best effort: relies on OpenAI's code/wording for missing models
            if provider_code == "model_not_found" or ("model" in msg and "not found" in msg):
                kind = LLMErrorKind.NOT_FOUND_MODEL
            else:
                kind = LLMErrorKind.NOT_FOUND_ENDPOINT
        elif status == 429:
            kind = LLMErrorKind.RATE_LIMIT
            is_retryable = not (
                provider_code == "insufficient_quota"
                or "check your plan and billing details" in msg
            )
        elif status == 400:
            if provider_code == "model_not_found":
                kind = LLMErrorKind.NOT_FOUND_MODEL
            elif (
                provider_code == "context_length_exceeded"
                or ("context" in msg and "length" in msg)
                or "too many tokens" in msg
                or "maximum context" in msg
            ):
                kind = LLMErrorKind.CONTEXT_TOO_LARGE
            else:
                kind = LLMErrorKind.INVALID_REQUEST
        elif status in (500, 503):
            is_retryable = True

        return LLMError(
            kind,
            "OpenAI request failed.",
            provider=self.id,
            status=status,
            provider_code=provider_code,
            retry_after_sec=parse_retry_after_sec(response.headers),
            request_id=extract_request_id(response.headers),
            is_retryable=is_retryable,
        )
