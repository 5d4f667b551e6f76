"""
Caller-side session history.

The in-memory list shown to the user. Saves are reconciled by identity
(id or subject label) instead of appended, and deletes are optimistic:
the entry disappears immediately and is restored to its exact position if
the store reports failure.
"""

from __future__ import annotations

from vantage.logging import get_logger
from vantage.storage.sessions import SessionStore
from vantage.types import AnalysisSession, OwnerScope

logger = get_logger(__name__)


class SessionHistory:
    """Newest-first list of sessions for one owner scope."""

    def __init__(self, sessions: list[AnalysisSession] | None = None) -> None:
        self._sessions: list[AnalysisSession] = list(sessions or [])

    def __len__(self) -> int:
        return len(self._sessions)

    def __iter__(self):
        return iter(self._sessions)

    @property
    def sessions(self) -> list[AnalysisSession]:
        return list(self._sessions)

    def find(self, session_id: str) -> AnalysisSession | None:
        return next((s for s in self._sessions if s.id == session_id), None)

    def replace_all(self, sessions: list[AnalysisSession]) -> None:
        self._sessions = list(sessions)

    def reconcile_saved(self, session: AnalysisSession) -> None:
        """Drop entries with the same id or subject label, then prepend."""
        self._sessions = [
            s
            for s in self._sessions
            if s.id != session.id and s.subject_label != session.subject_label
        ]
        self._sessions.insert(0, session)

    async def delete_optimistic(
        self,
        store: SessionStore,
        owner: OwnerScope,
        session_id: str,
    ) -> bool:
        """Remove locally, delete in the store, restore exactly on failure."""
        snapshot = list(self._sessions)
        self._sessions = [s for s in self._sessions if s.id != session_id]

        deleted = await store.delete(owner, session_id)
        if not deleted:
            self._sessions = snapshot
            logger.warning("Delete failed, history restored", session_id=session_id)
        return deleted
