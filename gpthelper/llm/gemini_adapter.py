"""Gemini adapter (generateContent).

- Endpoint: POST https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent
- Headers: x-goog-api-key: <key>, Content-Type: application/json

Auth:
- Key goes in the header, NEVER in a query param

Message conversion:
- System text -> systemInstruction.parts[0].text
- "assistant" role -> "model" role
- Each message's content -> parts: [{"text": "..."}]

Request body:
{
  "contents": [
    {"role": "user", "parts": [{"text": "..."}]},
    {"role": "model", "parts": [{"text": "..."}]}
  ],
  "systemInstruction": {"parts": [{"text": "<system>"}]},
  "generationConfig": {"maxOutputTokens": 1024, "temperature": 0.7, "topP": 0.9}
}

The API rejects null generationConfig values, so unset keys are dropped and an
empty generationConfig is omitted entirely.

Response:
- text = concatenate candidates[0].content.parts[].text
- usage = usageMetadata
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

GEMINI_HOST = "https://generativelanguage.googleapis.com"


def gemini_url(model: str) -> str:
    """generateContent URL for a model id, with or without the models/ prefix."""
    name = model if model.startswith("models/") else f"models/{model}"
    return f"{GEMINI_HOST}/v1beta/{name}:generateContent"


def build_contents(messages: list[ChatMessage]) -> list[dict]:
    """Convert messages to Gemini contents ("assistant" becomes "model")."""
    return [
        {
            "role": "model" if m.role == "assistant" else "user",
            "parts": [{"text": m.content}],
        }
        for m in messages
    ]


def extract_text(data: dict) -> str:
    """Concatenate text parts of the first candidate."""
    candidates = data.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        return ""
    first = candidates[0] if isinstance(candidates[0], dict) else {}
    content = first.get("content") or {}
    parts = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list):
        return ""
    texts = [part.get("text") for part in parts if isinstance(part, dict)]
    return "".join(text for text in texts if isinstance(text, str))


class GeminiAdapter(LLMAdapter):
    """Google Gemini API adapter."""

    id = "gemini"
    display_name = "Gemini"

    async def send(self, args: SendArgs) -> SendResult:
        """Non-streaming content generation."""
        try:
            response = await self._post_json(
                gemini_url(args.model),
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
            usage=data.get("usageMetadata"),
            request_id=extract_request_id(response.headers),
            status=response.status_code,
        )

    def _build_headers(self, api_key: str) -> dict[str, str]:
        """Build request headers.

        Note: API key goes in header, NEVER in query param.
        """
        return {
            "x-goog-api-key": api_key,
            "Content-Type": "application/json",
        }

    def _build_request_body(self, args: SendArgs) -> dict:
        """Build request body from SendArgs."""
        body: dict = {"contents": build_contents(args.messages)}

        if args.system and args.system.strip():
            body["systemInstruction"] = {"parts": [{"text": args.system}]}

        generation_config = {
            "maxOutputTokens": (
                args.max_output_tokens
                if args.max_output_tokens is not None and args.max_output_tokens > 0
                else None
            ),
            "temperature": args.temperature,
            "topP": args.top_p,
        }
        generation_config = {k: v for k, v in generation_config.items() if v is not None}
        if generation_config:
            body["generationConfig"] = generation_config

        return body

    def normalize_error(self, exc: BaseException, model: str | None = None) -> LLMError:
        """Classify Gemini errors.

        Gemini error bodies carry a gRPC-style status string
        ({"error": {"code": 400, "status": "INVALID_ARGUMENT", "message": "..."}}),
        used as provider_code.

        - No response -> Network (retryable)
        - 401 or 403 -> Auth
        - 404 or NOT_FOUND -> NotFoundModel
        - 429 or RESOURCE_EXHAUSTED -> RateLimit (retryable)
        - 400 or INVALID_ARGUMENT + size phrasing -> ContextTooLarge, else InvalidRequest
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

        google_status = error.get("status")
        provider_code = google_status if isinstance(google_status, str) else None
        raw_message = error.get("message")
        msg = raw_message.lower() if isinstance(raw_message, str) else ""

        kind = LLMErrorKind.UNKNOWN
        is_retryable = False

        if status in (401, 403):
            kind = LLMErrorKind.AUTH
        elif status == 404 or provider_code == "NOT_FOUND":
            kind = LLMErrorKind.NOT_FOUND_MODEL
        elif status == 429 or provider_code == "RESOURCE_EXHAUSTED":
            kind = LLMErrorKind.RATE_LIMIT
            is_retryable = True
        elif status == 400 or provider_code == "INVALID_ARGUMENT":
            if (
                "too large" in msg
                or "too long" in msg
                or ("maximum" in msg and "token" in msg)
                or ("exceeds" in msg and "token" in msg)
            ):
                kind = LLMErrorKind.CONTEXT_TOO_LARGE
            else:
                kind = LLMErrorKind.INVALID_REQUEST
        elif status in (500, 503):
            is_retryable = True

        return LLMError(
            kind,
            "Gemini request failed.",
            provider=self.id,
            status=status,
            provider_code=provider_code,
            retry_after_sec=parse_retry_after_sec(response.headers),
            request_id=extract_request_id(response.headers),
            is_retryable=is_retryable,
        )
