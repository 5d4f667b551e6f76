"""
Core types for the Vantage research pipeline.

This module defines the data model shared by the workflow, storage and CLI:
- Enums for engine identifiers and engine run status
- Frozen dataclasses for per-call results (TokenUsage, WebSource)
- EngineRun: one engine slot in a session, with guarded transitions
- AnalysisSession: the persisted unit
- OwnerScope, UserPreferences, UserProfile: persistence partitioning
- Helper functions for ID generation and timestamps
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from uuid6 import uuid7

from vantage.exceptions import InvalidTransitionError

DEMO_USER_ID = "demo-mode-user"


def generate_id(prefix: str = "") -> str:
    """Generate a time-ordered unique ID using UUID7.

    Args:
        prefix: Optional prefix for the ID (e.g., "ses", "run").

    Returns:
        A unique ID string, optionally prefixed.
    """
    uid = str(uuid7())
    return f"{prefix}_{uid}" if prefix else uid


def utc_now() -> datetime:
    """Get current UTC time with timezone info."""
    return datetime.now(timezone.utc)


def now_ms() -> int:
    """Current time in epoch milliseconds."""
    return int(time.time() * 1000)


class EngineId(str, Enum):
    """Closed set of stage identifiers."""

    PLANNER = "planner"
    LIBRARIAN = "librarian"
    BUSINESS = "business"
    QUANT = "quant"
    FORENSIC = "forensic"
    VALUATION = "valuation"
    TECHNICAL = "technical"
    UPDATER = "updater"
    SYNTHESIZER = "synthesizer"
    LINKEDIN = "linkedin"
    CUSTOM = "custom"
    COMPREHENSIVE = "comprehensive"


class EngineStatus(str, Enum):
    """Lifecycle of one engine slot."""

    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class TokenUsage:
    """Token counts reported for one remote call."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> TokenUsage | None:
        if not data:
            return None
        return cls(
            prompt_tokens=int(data.get("prompt_tokens") or 0),
            completion_tokens=int(data.get("completion_tokens") or 0),
            total_tokens=int(data.get("total_tokens") or 0),
        )


@dataclass(frozen=True)
class WebSource:
    """Grounding citation returned alongside generated text."""

    uri: str
    title: str

    def to_dict(self) -> dict[str, str]:
        return {"uri": self.uri, "title": self.title}


@dataclass(frozen=True)
class EngineRun:
    """State of one engine slot within a session.

    Transitions are Idle -> Loading -> Success | Error. Starting a new cycle
    (``start``) is allowed from any state and overwrites the previous
    terminal state. Outside Idle/Loading exactly one of ``result`` and
    ``error`` is set.
    """

    id: EngineId
    name: str
    role: str
    status: EngineStatus = EngineStatus.IDLE
    result: str | None = None
    error: str | None = None
    usage: TokenUsage | None = None
    sources: tuple[WebSource, ...] = ()

    def start(self) -> EngineRun:
        """Begin a new invocation cycle on this slot."""
        return replace(
            self,
            status=EngineStatus.LOADING,
            result=None,
            error=None,
            usage=None,
            sources=(),
        )

    def succeed(
        self,
        result: str,
        usage: TokenUsage | None = None,
        sources: tuple[WebSource, ...] | list[WebSource] = (),
    ) -> EngineRun:
        """Complete the current cycle successfully."""
        if self.status is not EngineStatus.LOADING:
            raise InvalidTransitionError(
                "Engine can only succeed while loading",
                {"engine": self.id.value, "status": self.status.value},
            )
        return replace(
            self,
            status=EngineStatus.SUCCESS,
            result=result,
            error=None,
            usage=usage,
            sources=tuple(sources),
        )

    def fail(self, message: str) -> EngineRun:
        """Complete the current cycle with an error."""
        if self.status is not EngineStatus.LOADING:
            raise InvalidTransitionError(
                "Engine can only fail while loading",
                {"engine": self.id.value, "status": self.status.value},
            )
        return replace(
            self,
            status=EngineStatus.ERROR,
            result=None,
            error=message,
            usage=None,
            sources=(),
        )

    @property
    def total_tokens(self) -> int:
        return self.usage.total_tokens if self.usage else 0

    def to_dict(self) -> dict[str, Any]:
        """Serialize with every optional field present (None when unset)."""
        return {
            "id": self.id.value,
            "name": self.name,
            "role": self.role,
            "status": self.status.value,
            "result": self.result,
            "error": self.error,
            "usage": self.usage.to_dict() if self.usage else None,
            "sources": [s.to_dict() for s in self.sources],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EngineRun:
        return cls(
            id=EngineId(data["id"]),
            name=data.get("name") or "",
            role=data.get("role") or "",
            status=EngineStatus(data.get("status") or EngineStatus.IDLE.value),
            result=data.get("result"),
            error=data.get("error"),
            usage=TokenUsage.from_dict(data.get("usage")),
            sources=tuple(
                WebSource(uri=s["uri"], title=s.get("title") or "")
                for s in data.get("sources") or []
                if s.get("uri")
            ),
        )


EngineMap = dict[EngineId, EngineRun]


@dataclass
class AnalysisSession:
    """A persisted analysis run.

    ``id`` is assigned by the store on first save and preserved on re-saves.
    ``timestamp`` is the save time in epoch milliseconds.
    """

    id: str
    subject_label: str
    timestamp: int
    engines: EngineMap
    total_tokens: int = 0
    verdict: str | None = None
    summary: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "subject_label": self.subject_label,
            "timestamp": self.timestamp,
            "engines": {eid.value: run.to_dict() for eid, run in self.engines.items()},
            "total_tokens": self.total_tokens,
            "verdict": self.verdict,
            "summary": self.summary,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AnalysisSession:
        engines: EngineMap = {}
        for key, raw in (data.get("engines") or {}).items():
            try:
                engine_id = EngineId(key)
            except ValueError:
                # Engine removed from the catalog since this session was saved
                continue
            engines[engine_id] = EngineRun.from_dict({**raw, "id": key})

        return cls(
            id=str(data["id"]),
            subject_label=data.get("subject_label") or "",
            timestamp=int(data.get("timestamp") or 0),
            engines=engines,
            total_tokens=int(data.get("total_tokens") or 0),
            verdict=data.get("verdict"),
            summary=data.get("summary"),
        )


@dataclass(frozen=True)
class OwnerScope:
    """Persistence partition: a durable user identity or the local device."""

    owner_id: str | None = None

    @classmethod
    def local(cls) -> OwnerScope:
        return cls(owner_id=None)

    @classmethod
    def for_user(cls, owner_id: str | None) -> OwnerScope:
        """Scope for a signed-in user; guests and demo users map to local."""
        if not owner_id or owner_id == DEMO_USER_ID:
            return cls.local()
        return cls(owner_id=owner_id)

    @property
    def is_durable(self) -> bool:
        return self.owner_id is not None and self.owner_id != DEMO_USER_ID

    def __str__(self) -> str:
        return f"user:{self.owner_id}" if self.is_durable else "local"


@dataclass
class UserPreferences:
    """Per-user defaults."""

    default_incremental_mode: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {"default_incremental_mode": self.default_incremental_mode}


@dataclass
class UserProfile:
    """Durable user record created on first sign-in."""

    uid: str
    email: str | None = None
    display_name: str | None = None
    photo_url: str | None = None
    preferences: UserPreferences = field(default_factory=UserPreferences)
    created_at: int = field(default_factory=now_ms)
    last_login: int = field(default_factory=now_ms)

    def to_dict(self) -> dict[str, Any]:
        return {
            "uid": self.uid,
            "email": self.email,
            "display_name": self.display_name,
            "photo_url": self.photo_url,
            "preferences": self.preferences.to_dict(),
            "created_at": self.created_at,
            "last_login": self.last_login,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UserProfile:
        prefs = data.get("preferences") or {}
        return cls(
            uid=data["uid"],
            email=data.get("email"),
            display_name=data.get("display_name"),
            photo_url=data.get("photo_url"),
            preferences=UserPreferences(
                default_incremental_mode=bool(prefs.get("default_incremental_mode", True))
            ),
            created_at=int(data.get("created_at") or 0),
            last_login=int(data.get("last_login") or 0),
        )
