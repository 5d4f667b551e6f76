"""
Durable document store.

Per-user document collections on SQLite (aiosqlite), addressed by
(owner_id, session_id), with an ordered query by timestamp and a user
record supporting dotted-path field updates. Documents are stored as JSON
(orjson). Writes reject any value that is not a plain JSON value, so
callers must sanitize before writing.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import aiosqlite
import orjson

from vantage.exceptions import DocumentStoreError
from vantage.logging import get_logger

logger = get_logger(__name__)

_JSON_SCALARS = (str, int, float, bool)


def validate_document(value: Any, path: str = "") -> None:
    """Reject anything that isn't a JSON object/array/scalar/null.

    Raises:
        DocumentStoreError: With the offending field path.
    """
    if value is None or isinstance(value, _JSON_SCALARS):
        return
    if isinstance(value, list):
        for index, item in enumerate(value):
            validate_document(item, f"{path}[{index}]")
        return
    if isinstance(value, dict):
        for key, item in value.items():
            if not isinstance(key, str):
                raise DocumentStoreError(
                    "Document keys must be strings", {"field": path, "key": repr(key)}
                )
            validate_document(item, f"{path}.{key}" if path else key)
        return
    raise DocumentStoreError(
        "Unsupported field value", {"field": path, "type": type(value).__name__}
    )


class SQLiteDocumentStore:
    """Document-style store for sessions and user profiles."""

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)
        self._db: aiosqlite.Connection | None = None

    async def init(self) -> None:
        """Open the database and create tables."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(self.db_path)
        self._db.row_factory = aiosqlite.Row

        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS sessions (
                owner_id TEXT NOT NULL,
                session_id TEXT NOT NULL,
                ts INTEGER NOT NULL,
                body TEXT NOT NULL,
                PRIMARY KEY (owner_id, session_id)
            )
        """)
        await self._db.execute(
            "CREATE INDEX IF NOT EXISTS idx_sessions_owner_ts ON sessions(owner_id, ts)"
        )
        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS users (
                owner_id TEXT PRIMARY KEY,
                body TEXT NOT NULL
            )
        """)
        await self._db.commit()

        logger.info("Document store initialized", db_path=str(self.db_path))

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    def _conn(self) -> aiosqlite.Connection:
        if not self._db:
            raise RuntimeError("SQLiteDocumentStore not initialized. Call init() first.")
        return self._db

    async def set_session(
        self,
        owner_id: str,
        session_id: str,
        document: dict[str, Any],
        merge: bool = True,
    ) -> None:
        """Write a session document.

        Args:
            owner_id: Owning user.
            session_id: Document ID.
            document: Plain JSON document; must contain an integer ``timestamp``.
            merge: Merge top-level fields into an existing document.

        Raises:
            DocumentStoreError: Invalid document or database failure.
        """
        validate_document(document)
        db = self._conn()

        if merge:
            existing = await self.get_session(owner_id, session_id)
            if existing:
                document = {**existing, **document}

        try:
            await db.execute(
                """
                INSERT INTO sessions (owner_id, session_id, ts, body) VALUES (?, ?, ?, ?)
                ON CONFLICT(owner_id, session_id) DO UPDATE SET ts = excluded.ts, body = excluded.body
                """,
                (
                    owner_id,
                    session_id,
                    int(document.get("timestamp") or 0),
                    orjson.dumps(document).decode("utf-8"),
                ),
            )
            await db.commit()
        except aiosqlite.Error as e:
            raise DocumentStoreError(
                "Failed to write session", {"owner_id": owner_id, "session_id": session_id}
            ) from e

    async def get_session(self, owner_id: str, session_id: str) -> dict[str, Any] | None:
        async with self._conn().execute(
            "SELECT body FROM sessions WHERE owner_id = ? AND session_id = ?",
            (owner_id, session_id),
        ) as cursor:
            row = await cursor.fetchone()
        return orjson.loads(row["body"]) if row else None

    async def query_sessions(self, owner_id: str, descending: bool = True) -> list[dict[str, Any]]:
        """All session documents for an owner ordered by timestamp."""
        order = "DESC" if descending else "ASC"
        async with self._conn().execute(
            f"SELECT body FROM sessions WHERE owner_id = ? ORDER BY ts {order}",
            (owner_id,),
        ) as cursor:
            rows = await cursor.fetchall()
        return [orjson.loads(row["body"]) for row in rows]

    async def delete_session(self, owner_id: str, session_id: str) -> None:
        try:
            db = self._conn()
            await db.execute(
                "DELETE FROM sessions WHERE owner_id = ? AND session_id = ?",
                (owner_id, session_id),
            )
            await db.commit()
        except aiosqlite.Error as e:
            raise DocumentStoreError(
                "Failed to delete session", {"owner_id": owner_id, "session_id": session_id}
            ) from e

    async def get_user(self, owner_id: str) -> dict[str, Any] | None:
        async with self._conn().execute(
            "SELECT body FROM users WHERE owner_id = ?", (owner_id,)
        ) as cursor:
            row = await cursor.fetchone()
        return orjson.loads(row["body"]) if row else None

    async def set_user(self, owner_id: str, document: dict[str, Any]) -> None:
        validate_document(document)
        db = self._conn()
        await db.execute(
            """
            INSERT INTO users (owner_id, body) VALUES (?, ?)
            ON CONFLICT(owner_id) DO UPDATE SET body = excluded.body
            """,
            (owner_id, orjson.dumps(document).decode("utf-8")),
        )
        await db.commit()

    async def update_user(self, owner_id: str, updates: dict[str, Any]) -> None:
        """Apply dotted-path field updates (``"preferences.x": value``).

        Raises:
            DocumentStoreError: The user document does not exist or a value
                is invalid.
        """
        validate_document(updates)
        document = await self.get_user(owner_id)
        if document is None:
            raise DocumentStoreError("User document does not exist", {"owner_id": owner_id})

        for dotted_key, value in updates.items():
            target = document
            *parents, leaf = dotted_key.split(".")
            for part in parents:
                child = target.get(part)
                if not isinstance(child, dict):
                    child = {}
                    target[part] = child
                target = child
            target[leaf] = value

        await self.set_user(owner_id, document)
