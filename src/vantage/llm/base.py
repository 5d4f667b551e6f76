"""
Base types for remote model calls.

This module defines:
- CallResponse: normalized text, token usage and cited sources
- CallError hierarchy: the fixed failure taxonomy every client maps into
- classify_error_message: last-resort substring classification
- CallClient: Protocol for augmented-generation clients
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol, runtime_checkable

from vantage.types import TokenUsage, WebSource


@dataclass
class CallResponse:
    """Normalized result of one augmented-generation call."""

    text: str
    usage: TokenUsage = field(default_factory=TokenUsage)
    sources: list[WebSource] = field(default_factory=list)
    model: str = ""


class CallErrorKind(str, Enum):
    """Failure taxonomy for remote calls."""

    AUTH = "auth"
    QUOTA_EXCEEDED = "quota_exceeded"
    RATE_LIMITED = "rate_limited"
    TRANSIENT_NETWORK = "transient_network"
    UNKNOWN = "unknown"


class CallError(Exception):
    """Base exception for remote call failures."""

    kind: CallErrorKind = CallErrorKind.UNKNOWN

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class AuthError(CallError):
    """Credentials missing or rejected. Never retried."""

    kind = CallErrorKind.AUTH


class QuotaExceededError(CallError):
    """Daily or project quota exhausted for this model."""

    kind = CallErrorKind.QUOTA_EXCEEDED


class RateLimitedError(CallError):
    """Requests-per-minute ceiling hit; retry after backoff."""

    kind = CallErrorKind.RATE_LIMITED


class TransientNetworkError(CallError):
    """Connection, timeout or 5xx failure; retry after backoff."""

    kind = CallErrorKind.TRANSIENT_NETWORK


class UnknownCallError(CallError):
    """Anything that doesn't fit the taxonomy."""

    kind = CallErrorKind.UNKNOWN


RETRYABLE_ERRORS: tuple[type[CallError], ...] = (RateLimitedError, TransientNetworkError)

_DAILY_QUOTA_MARKERS = ("perday", "per day", "daily")
_QUOTA_MARKERS = ("quota",)
_RATE_LIMIT_MARKERS = ("429", "resource_exhausted", "rate limit", "too many requests")
_AUTH_MARKERS = ("401", "403", "api key", "permission_denied", "unauthenticated")
_TRANSIENT_MARKERS = (
    "500",
    "502",
    "503",
    "504",
    "unavailable",
    "deadline",
    "timeout",
    "timed out",
    "connection",
)

_ERROR_CLASSES: dict[CallErrorKind, type[CallError]] = {
    CallErrorKind.AUTH: AuthError,
    CallErrorKind.QUOTA_EXCEEDED: QuotaExceededError,
    CallErrorKind.RATE_LIMITED: RateLimitedError,
    CallErrorKind.TRANSIENT_NETWORK: TransientNetworkError,
    CallErrorKind.UNKNOWN: UnknownCallError,
}


def mentions_quota(message: str) -> bool:
    """True when an error message talks about quota at all."""
    lowered = message.lower()
    return any(marker in lowered for marker in _QUOTA_MARKERS)


def is_daily_quota(message: str) -> bool:
    """True when a quota error names a per-day limit, which backoff cannot clear."""
    lowered = message.lower()
    return mentions_quota(lowered) and any(marker in lowered for marker in _DAILY_QUOTA_MARKERS)


def classify_error_message(message: str) -> CallErrorKind:
    """Classify a provider error message by case-insensitive substrings.

    Gemini words its per-minute 429s as "You exceeded your current quota",
    so 429 markers classify as RateLimited even with quota wording. Only a
    per-day limit, or quota wording without any 429 marker, is QuotaExceeded.
    """
    lowered = message.lower()
    if is_daily_quota(lowered):
        return CallErrorKind.QUOTA_EXCEEDED
    if any(marker in lowered for marker in _RATE_LIMIT_MARKERS):
        return CallErrorKind.RATE_LIMITED
    if mentions_quota(lowered):
        return CallErrorKind.QUOTA_EXCEEDED
    if any(marker in lowered for marker in _AUTH_MARKERS):
        return CallErrorKind.AUTH
    if any(marker in lowered for marker in _TRANSIENT_MARKERS):
        return CallErrorKind.TRANSIENT_NETWORK
    return CallErrorKind.UNKNOWN


def make_call_error(kind: CallErrorKind, message: str) -> CallError:
    """Instantiate the exception class for a taxonomy member."""
    return _ERROR_CLASSES[kind](message)


@runtime_checkable
class CallClient(Protocol):
    """Protocol for clients issuing one augmented-generation request."""

    @property
    def provider(self) -> str:
        """Name of this provider (e.g., 'google')."""
        ...

    async def invoke(
        self,
        model_id: str,
        prompt: str,
        enable_web_search: bool = True,
    ) -> CallResponse:
        """Issue one request.

        Raises:
            CallError: One of the taxonomy subclasses.
        """
        ...
