"""
Session persistence.

SessionStore routes each owner scope to one of two backends:
- DurableSessionBackend: per-user documents in the SQLite document store
- LocalSessionBackend: a single JSON blob holding a capped, newest-first list

The store never raises to its caller: ``save`` returns None, ``list``
returns an empty list and ``delete`` returns False on failure.
"""

from __future__ import annotations

import builtins
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Protocol

import orjson

from vantage.logging import get_logger
from vantage.metadata import extract_metadata
from vantage.storage.blobs import LocalBlobStore
from vantage.storage.documents import SQLiteDocumentStore
from vantage.types import (
    AnalysisSession,
    EngineId,
    EngineMap,
    OwnerScope,
    generate_id,
    now_ms,
)

logger = get_logger(__name__)

LOCAL_SESSIONS_KEY = "vantage_sessions"
DEFAULT_LOCAL_LIMIT = 20


def _to_json_native(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    if isinstance(value, Path):
        return str(value)
    raise TypeError(f"Type is not JSON serializable: {type(value).__name__}")


def sanitize_document(data: dict[str, Any]) -> dict[str, Any]:
    """Normalize a document to plain JSON values.

    Enums become their values, tuples become lists and dataclasses become
    dicts. Absent optional fields are expected to already be explicit None
    (``to_dict`` emits every key).
    """
    return orjson.loads(orjson.dumps(data, default=_to_json_native))


class SessionBackend(Protocol):
    """Storage for the sessions of one owner scope."""

    async def write(self, owner: OwnerScope, session: AnalysisSession) -> None: ...

    async def read_all(self, owner: OwnerScope) -> builtins.list[AnalysisSession]: ...

    async def remove(self, owner: OwnerScope, session_id: str) -> None: ...


class DurableSessionBackend:
    """Sessions as documents under the owner's id."""

    def __init__(self, documents: SQLiteDocumentStore) -> None:
        self.documents = documents

    async def write(self, owner: OwnerScope, session: AnalysisSession) -> None:
        await self.documents.set_session(
            owner.owner_id, session.id, sanitize_document(session.to_dict()), merge=True
        )

    async def read_all(self, owner: OwnerScope) -> builtins.list[AnalysisSession]:
        docs = await self.documents.query_sessions(owner.owner_id, descending=True)
        return [AnalysisSession.from_dict(doc) for doc in docs]

    async def remove(self, owner: OwnerScope, session_id: str) -> None:
        await self.documents.delete_session(owner.owner_id, session_id)


class LocalSessionBackend:
    """Newest-first session list in one local blob, capped at ``limit`` entries."""

    def __init__(
        self,
        blobs: LocalBlobStore,
        limit: int = DEFAULT_LOCAL_LIMIT,
        key: str = LOCAL_SESSIONS_KEY,
    ) -> None:
        self.blobs = blobs
        self.limit = limit
        self.key = key

    def _load(self) -> builtins.list[AnalysisSession]:
        raw = self.blobs.get(self.key)
        if not raw:
            return []
        try:
            entries = orjson.loads(raw)
        except orjson.JSONDecodeError:
            logger.warning("Local session list is corrupt, starting empty", key=self.key)
            return []
        if not isinstance(entries, list):
            return []

        sessions = []
        for entry in entries:
            if not isinstance(entry, dict):
                logger.warning("Skipping malformed local session entry", type=type(entry).__name__)
                continue
            try:
                sessions.append(AnalysisSession.from_dict(entry))
            except (AttributeError, KeyError, TypeError, ValueError):
                logger.warning("Skipping malformed local session entry", id=entry.get("id"))
        return sessions

    def _dump(self, sessions: builtins.list[AnalysisSession]) -> None:
        payload = [sanitize_document(s.to_dict()) for s in sessions]
        self.blobs.set(self.key, orjson.dumps(payload).decode("utf-8"))

    async def write(self, owner: OwnerScope, session: AnalysisSession) -> None:
        sessions = self._load()
        for index, existing in enumerate(sessions):
            if existing.id == session.id:
                sessions[index] = session
                break
        else:
            sessions.insert(0, session)

        sessions.sort(key=lambda s: s.timestamp, reverse=True)
        evicted = sessions[self.limit :]
        if evicted:
            logger.info("Evicting oldest local sessions", count=len(evicted), limit=self.limit)
        self._dump(sessions[: self.limit])

    async def read_all(self, owner: OwnerScope) -> builtins.list[AnalysisSession]:
        sessions = self._load()
        sessions.sort(key=lambda s: s.timestamp, reverse=True)
        return sessions

    async def remove(self, owner: OwnerScope, session_id: str) -> None:
        sessions = self._load()
        self._dump([s for s in sessions if s.id != session_id])


class SessionStore:
    """Save, list and delete sessions for durable or local owners."""

    def __init__(
        self,
        durable: SessionBackend | None,
        local: SessionBackend,
        clock: Callable[[], int] = now_ms,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            durable: Backend for signed-in owners. None disables durable
                persistence (saves for durable owners then fail softly).
            local: Backend for the local device scope.
            clock: Epoch-millisecond clock.
            id_factory: New session id generator.
        """
        self.durable = durable
        self.local = local
        self._clock = clock
        self._id_factory = id_factory or (lambda: generate_id("ses"))

    def _backend(self, owner: OwnerScope) -> SessionBackend:
        if owner.is_durable:
            if self.durable is None:
                raise RuntimeError("Durable session backend is not configured")
            return self.durable
        return self.local

    async def save(
        self,
        owner: OwnerScope,
        subject_label: str,
        engines: EngineMap,
        existing_id: str | None = None,
    ) -> AnalysisSession | None:
        """Persist a session.

        Args:
            owner: Persistence scope.
            subject_label: Normalized subject label.
            engines: Complete engine map.
            existing_id: Keep this id (re-save) instead of assigning a new one.

        Returns:
            The saved session, or None when the write failed.
        """
        synthesizer = engines.get(EngineId.SYNTHESIZER)
        metadata = extract_metadata(synthesizer.result if synthesizer else None)
        session = AnalysisSession(
            id=existing_id or self._id_factory(),
            subject_label=subject_label,
            timestamp=self._clock(),
            engines=dict(engines),
            total_tokens=sum(run.total_tokens for run in engines.values()),
            verdict=metadata.verdict,
            summary=metadata.summary,
        )

        try:
            await self._backend(owner).write(owner, session)
        except Exception as e:
            logger.error(
                "Failed to save session",
                owner=str(owner),
                session_id=session.id,
                error=str(e),
            )
            return None

        logger.info(
            "Session saved",
            owner=str(owner),
            session_id=session.id,
            subject=subject_label,
            verdict=session.verdict,
            total_tokens=session.total_tokens,
        )
        return session

    async def list(self, owner: OwnerScope) -> builtins.list[AnalysisSession]:
        """Sessions for the owner, newest first. Empty on failure."""
        try:
            sessions = await self._backend(owner).read_all(owner)
        except Exception as e:
            logger.error("Failed to list sessions", owner=str(owner), error=str(e))
            return []
        return sorted(sessions, key=lambda s: s.timestamp, reverse=True)

    async def get(self, owner: OwnerScope, session_id: str) -> AnalysisSession | None:
        """One session by id, or None when missing or unreadable."""
        for session in await self.list(owner):
            if session.id == session_id:
                return session
        return None

    async def delete(self, owner: OwnerScope, session_id: str) -> bool:
        """Hard delete. Returns False on failure."""
        try:
            await self._backend(owner).remove(owner, session_id)
        except Exception as e:
            logger.error(
                "Failed to delete session",
                owner=str(owner),
                session_id=session_id,
                error=str(e),
            )
            return False

        logger.info("Session deleted", owner=str(owner), session_id=session_id)
        return True
