"""
Remote model call package.

- base: CallClient protocol, CallResponse and the CallError taxonomy
- gemini_client: google-genai implementation with search grounding
- invoker: retry-with-backoff and quota fallback wrapper
"""

from vantage.llm.base import (
    AuthError,
    CallClient,
    CallError,
    CallErrorKind,
    CallResponse,
    QuotaExceededError,
    RateLimitedError,
    TransientNetworkError,
    UnknownCallError,
)
from vantage.llm.invoker import FatalCallError, FatalKind, RetryingInvoker

__all__ = [
    "AuthError",
    "CallClient",
    "CallError",
    "CallErrorKind",
    "CallResponse",
    "FatalCallError",
    "FatalKind",
    "QuotaExceededError",
    "RateLimitedError",
    "RetryingInvoker",
    "TransientNetworkError",
    "UnknownCallError",
]
