"""
Google Gemini call client.

Issues one generate-content request with optional Google Search grounding
through the google-genai SDK (Google AI Studio, not Vertex AI) and maps
provider failures into the fixed CallError taxonomy.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from vantage.llm.base import (
    AuthError,
    CallError,
    CallErrorKind,
    CallResponse,
    classify_error_message,
    is_daily_quota,
    make_call_error,
)
from vantage.logging import get_logger
from vantage.types import TokenUsage, WebSource

logger = get_logger(__name__)

EMPTY_RESPONSE_TEXT = "Analysis failed to generate text."


def classify_exception(exc: BaseException) -> CallError:
    """Map an SDK or transport exception to the CallError taxonomy.

    Structured status codes are used when present; message substrings are
    the fallback.
    """
    if isinstance(exc, CallError):
        return exc

    message = str(exc) or exc.__class__.__name__

    if isinstance(exc, genai_errors.APIError):
        kind = _kind_from_status(exc.code, exc.status, message)
    elif isinstance(exc, (httpx.TransportError, asyncio.TimeoutError, ConnectionError)):
        kind = CallErrorKind.TRANSIENT_NETWORK
    else:
        kind = classify_error_message(message)

    return make_call_error(kind, message)


def _kind_from_status(code: int | None, status: str | None, message: str) -> CallErrorKind:
    status = (status or "").upper()
    if code in (401, 403) or status in ("UNAUTHENTICATED", "PERMISSION_DENIED"):
        return CallErrorKind.AUTH
    if code == 429 or status == "RESOURCE_EXHAUSTED":
        if is_daily_quota(message):
            return CallErrorKind.QUOTA_EXCEEDED
        return CallErrorKind.RATE_LIMITED
    if code is not None and code >= 500:
        return CallErrorKind.TRANSIENT_NETWORK
    if status in ("UNAVAILABLE", "DEADLINE_EXCEEDED", "INTERNAL"):
        return CallErrorKind.TRANSIENT_NETWORK
    return classify_error_message(message)


def extract_sources(response: Any) -> list[WebSource]:
    """Collect web citations from grounding metadata, unique by URI."""
    sources: list[WebSource] = []
    seen: set[str] = set()

    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return sources

    grounding_metadata = getattr(candidates[0], "grounding_metadata", None)
    chunks = getattr(grounding_metadata, "grounding_chunks", None) if grounding_metadata else None
    for chunk in chunks or []:
        web = getattr(chunk, "web", None)
        if not web:
            continue
        uri = getattr(web, "uri", None)
        title = getattr(web, "title", None)
        if not uri or not title or uri in seen:
            continue
        seen.add(uri)
        sources.append(WebSource(uri=uri, title=title))

    return sources


def extract_usage(response: Any) -> TokenUsage:
    """Read token counts from usage metadata (zeros when absent)."""
    meta = getattr(response, "usage_metadata", None)
    if not meta:
        return TokenUsage()
    return TokenUsage(
        prompt_tokens=getattr(meta, "prompt_token_count", None) or 0,
        completion_tokens=getattr(meta, "candidates_token_count", None) or 0,
        total_tokens=getattr(meta, "total_token_count", None) or 0,
    )


def extract_text(response: Any) -> str:
    """Concatenate text parts of the first candidate."""
    content = ""
    candidates = getattr(response, "candidates", None) or []
    if candidates and candidates[0].content:
        for part in candidates[0].content.parts or []:
            if getattr(part, "text", None):
                content += part.text
    return content


class GeminiCallClient:
    """CallClient backed by google-genai.

    The SDK client is created lazily so a missing key surfaces as an
    AuthError on the first call rather than at construction.
    """

    def __init__(self, api_key: str | None = None) -> None:
        self._api_key = api_key
        self._client: genai.Client | None = None
        self._provider = "google"

    @property
    def provider(self) -> str:
        return self._provider

    def _get_client(self) -> genai.Client:
        if not self._api_key or self._api_key == "missing-key":
            raise AuthError("API key missing. Please check your GEMINI_API_KEY configuration.")
        if self._client is None:
            self._client = genai.Client(api_key=self._api_key)
        return self._client

    async def invoke(
        self,
        model_id: str,
        prompt: str,
        enable_web_search: bool = True,
    ) -> CallResponse:
        """Send one grounded generation request.

        Args:
            model_id: Gemini model identifier.
            prompt: Full prompt text.
            enable_web_search: Attach the Google Search grounding tool.

        Returns:
            Normalized response.

        Raises:
            CallError: Classified failure.
        """
        client = self._get_client()
        start_time = time.monotonic()

        config = types.GenerateContentConfig(
            tools=[types.Tool(google_search=types.GoogleSearch())] if enable_web_search else None,
        )

        try:
            response = await client.aio.models.generate_content(
                model=model_id,
                contents=prompt,
                config=config,
            )
        except Exception as e:
            error = classify_exception(e)
            logger.warning(
                "Gemini call failed",
                model=model_id,
                kind=error.kind.value,
                error=str(e)[:300],
            )
            raise error from e

        latency_ms = int((time.monotonic() - start_time) * 1000)
        text = extract_text(response) or EMPTY_RESPONSE_TEXT
        usage = extract_usage(response)
        sources = extract_sources(response)

        logger.debug(
            "Gemini call complete",
            model=model_id,
            latency_ms=latency_ms,
            total_tokens=usage.total_tokens,
            sources=len(sources),
        )

        return CallResponse(text=text, usage=usage, sources=sources, model=model_id)
