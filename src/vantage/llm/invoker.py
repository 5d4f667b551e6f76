"""
Retrying invoker.

Wraps a CallClient with bounded exponential-backoff retries for rate limits
and transient network failures, and substitutes a fallback model when the
primary model's quota is exhausted. A rate limit that outlasts every retry
is treated as quota exhaustion.
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Awaitable, Callable

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from vantage.llm.base import (
    RETRYABLE_ERRORS,
    AuthError,
    CallClient,
    CallError,
    CallErrorKind,
    CallResponse,
    QuotaExceededError,
    RateLimitedError,
    mentions_quota,
)
from vantage.logging import get_logger

logger = get_logger(__name__)

Sleeper = Callable[[float], Awaitable[None]]

FALLBACK_MARKER_PREFIX = "[model-fallback:"


def fallback_marker(primary: str, fallback: str) -> str:
    """Marker line prefixed to text produced by the fallback model."""
    return f"{FALLBACK_MARKER_PREFIX} {primary} -> {fallback} due to quota limits]"


class FatalKind(str, Enum):
    """User-facing classification of an exhausted call."""

    AUTH = "auth"
    QUOTA_EXCEEDED = "quota_exceeded"
    QUOTA_EXCEEDED_BOTH_MODELS = "quota_exceeded_both_models"
    RATE_LIMITED = "rate_limited"
    TRANSIENT_NETWORK = "transient_network"
    UNKNOWN = "unknown"


_FATAL_MESSAGES: dict[FatalKind, str] = {
    FatalKind.AUTH: "Authentication with the model provider failed. Please check your credentials.",
    FatalKind.QUOTA_EXCEEDED: "Gemini quota exceeded. Please try again tomorrow.",
    FatalKind.QUOTA_EXCEEDED_BOTH_MODELS: (
        "Gemini quota exceeded on both models. Please try again tomorrow."
    ),
}


class FatalCallError(Exception):
    """A call that could not be completed after retries and fallback.

    Attributes:
        kind: User-facing classification.
        engine_id: Engine the call was made for.
        cause: The last underlying CallError.
    """

    def __init__(self, kind: FatalKind, engine_id: str, cause: CallError) -> None:
        message = _FATAL_MESSAGES.get(kind, cause.message)
        super().__init__(message)
        self.kind = kind
        self.engine_id = engine_id
        self.cause = cause
        self.message = message


_KIND_TO_FATAL: dict[CallErrorKind, FatalKind] = {
    CallErrorKind.AUTH: FatalKind.AUTH,
    CallErrorKind.QUOTA_EXCEEDED: FatalKind.QUOTA_EXCEEDED,
    CallErrorKind.RATE_LIMITED: FatalKind.RATE_LIMITED,
    CallErrorKind.TRANSIENT_NETWORK: FatalKind.TRANSIENT_NETWORK,
    CallErrorKind.UNKNOWN: FatalKind.UNKNOWN,
}


class RetryingInvoker:
    """Retry-and-fallback wrapper around a CallClient.

    At most one underlying call is in flight per ``run``; attempts are made
    strictly one after another.
    """

    def __init__(
        self,
        client: CallClient,
        max_retries: int = 3,
        base_delay_seconds: float = 2.0,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        """Initialize the invoker.

        Args:
            client: Underlying call client.
            max_retries: Additional attempts after the first on retryable errors.
            base_delay_seconds: Backoff base; the n-th retry waits base * 2**n.
            sleep: Awaitable sleep, injectable for tests.
        """
        self.client = client
        self.max_retries = max_retries
        self.base_delay_seconds = base_delay_seconds
        self._sleep = sleep
        self.attempts = 0

    def _log_retry(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        wait = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.warning(
            "Retrying after retryable failure",
            attempt=retry_state.attempt_number,
            max_attempts=self.max_retries + 1,
            wait_seconds=wait,
            error=str(exc)[:200] if exc else None,
        )

    async def _call_with_backoff(
        self,
        model_id: str,
        prompt: str,
        enable_web_search: bool,
    ) -> CallResponse:
        """One full attempt against a model, including its retry loop."""
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(RETRYABLE_ERRORS),
            wait=wait_exponential(multiplier=self.base_delay_seconds, exp_base=2),
            stop=stop_after_attempt(self.max_retries + 1),
            sleep=self._sleep,
            before_sleep=self._log_retry,
            reraise=True,
        )

        async for attempt in retrying:
            with attempt:
                self.attempts += 1
                return await self.client.invoke(model_id, prompt, enable_web_search)

        raise AssertionError("unreachable: tenacity reraises on exhaustion")

    async def run(
        self,
        engine_id: str,
        model_id: str,
        prompt: str,
        fallback_model_id: str | None = None,
        enable_web_search: bool = True,
    ) -> CallResponse:
        """Run one engine call with retry and quota fallback.

        Args:
            engine_id: Engine the call is for (logging and error context).
            model_id: Primary model.
            prompt: Full prompt text.
            fallback_model_id: Model to substitute on quota exhaustion or on a
                rate limit that outlasts every retry.
            enable_web_search: Attach web-search grounding.

        Returns:
            The response; text is prefixed with a fallback marker when the
            fallback model produced it.

        Raises:
            FatalCallError: When every attempt is exhausted.
        """
        logger.info("Running engine", engine=engine_id, model=model_id)
        can_fall_back = bool(fallback_model_id) and fallback_model_id != model_id

        try:
            return await self._call_with_backoff(model_id, prompt, enable_web_search)
        except AuthError as e:
            raise FatalCallError(FatalKind.AUTH, engine_id, e) from e
        except QuotaExceededError as e:
            if not can_fall_back:
                raise FatalCallError(FatalKind.QUOTA_EXCEEDED, engine_id, e) from e
            primary_error = e
        except RateLimitedError as e:
            if not can_fall_back:
                kind = FatalKind.QUOTA_EXCEEDED if mentions_quota(e.message) else FatalKind.RATE_LIMITED
                raise FatalCallError(kind, engine_id, e) from e
            primary_error = e
        except CallError as e:
            raise FatalCallError(_KIND_TO_FATAL[e.kind], engine_id, e) from e

        logger.warning(
            "Primary model quota exceeded, switching to fallback",
            engine=engine_id,
            model=model_id,
            fallback=fallback_model_id,
            error=primary_error.message[:200],
        )

        try:
            response = await self._call_with_backoff(
                fallback_model_id, prompt, enable_web_search
            )
        except AuthError as e:
            raise FatalCallError(FatalKind.AUTH, engine_id, e) from e
        except CallError as e:
            logger.error(
                "Fallback model also failed",
                engine=engine_id,
                fallback=fallback_model_id,
                error=e.message[:200],
            )
            raise FatalCallError(FatalKind.QUOTA_EXCEEDED_BOTH_MODELS, engine_id, e) from e

        response.text = f"{fallback_marker(model_id, fallback_model_id)}\n\n{response.text}"
        return response
