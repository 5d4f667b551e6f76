"""
Tests for the document store, blob store, session store and user directory.
"""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock

import orjson
import pytest

from vantage.engines import initial_engine_map
from vantage.exceptions import DocumentStoreError
from vantage.storage import (
    LocalBlobStore,
    LocalSessionBackend,
    SessionStore,
    SQLiteDocumentStore,
    UserDirectory,
    sanitize_document,
)
from vantage.storage.sessions import LOCAL_SESSIONS_KEY
from vantage.types import (
    DEMO_USER_ID,
    EngineId,
    EngineMap,
    EngineStatus,
    OwnerScope,
    TokenUsage,
    WebSource,
)

OWNER = OwnerScope.for_user("uid-1")
LOCAL = OwnerScope.local()


def finished_engines(report: str = "FINAL DECISION: BUY\nThe \"One-Line\" Thesis: Cheap.") -> EngineMap:
    engines = initial_engine_map()
    engines[EngineId.SYNTHESIZER] = (
        engines[EngineId.SYNTHESIZER]
        .start()
        .succeed(report, TokenUsage(10, 20, 30), [WebSource("https://a.example", "A")])
    )
    engines[EngineId.FORENSIC] = engines[EngineId.FORENSIC].start().fail("boom")
    return engines


class Clock:
    """Monotonic fake millisecond clock."""

    def __init__(self, start: int = 1_000) -> None:
        self.now = start

    def __call__(self) -> int:
        self.now += 1_000
        return self.now


class TestDocumentStore:
    """SQLite document store."""

    @pytest.mark.asyncio
    async def test_set_get_query_delete(self, document_store: SQLiteDocumentStore) -> None:
        await document_store.set_session("u", "a", {"id": "a", "timestamp": 1})
        await document_store.set_session("u", "b", {"id": "b", "timestamp": 3})
        await document_store.set_session("u", "c", {"id": "c", "timestamp": 2})
        await document_store.set_session("other", "z", {"id": "z", "timestamp": 9})

        assert await document_store.get_session("u", "b") == {"id": "b", "timestamp": 3}
        docs = await document_store.query_sessions("u")
        assert [d["id"] for d in docs] == ["b", "c", "a"]

        await document_store.delete_session("u", "b")
        assert await document_store.get_session("u", "b") is None

    @pytest.mark.asyncio
    async def test_merge_keeps_existing_fields(self, document_store: SQLiteDocumentStore) -> None:
        await document_store.set_session("u", "a", {"id": "a", "timestamp": 1, "note": "x"})
        await document_store.set_session("u", "a", {"id": "a", "timestamp": 2})

        assert await document_store.get_session("u", "a") == {"id": "a", "timestamp": 2, "note": "x"}

    @pytest.mark.asyncio
    async def test_rejects_non_json_values(self, document_store: SQLiteDocumentStore) -> None:
        with pytest.raises(DocumentStoreError) as exc_info:
            await document_store.set_session(
                "u", "a", {"id": "a", "timestamp": 1, "usage": TokenUsage()}
            )
        assert exc_info.value.context["field"] == "usage"

        with pytest.raises(DocumentStoreError):
            await document_store.set_session("u", "a", {"sources": (1, 2)})

    @pytest.mark.asyncio
    async def test_user_dotted_update(self, document_store: SQLiteDocumentStore) -> None:
        await document_store.set_user("u", {"uid": "u", "preferences": {"a": 1, "b": 2}})
        await document_store.update_user("u", {"preferences.a": 5, "last_login": 9})

        assert await document_store.get_user("u") == {
            "uid": "u",
            "preferences": {"a": 5, "b": 2},
            "last_login": 9,
        }

    @pytest.mark.asyncio
    async def test_update_missing_user_fails(self, document_store: SQLiteDocumentStore) -> None:
        with pytest.raises(DocumentStoreError):
            await document_store.update_user("nobody", {"preferences.a": 1})

    @pytest.mark.asyncio
    async def test_requires_init(self, temp_dir: Path) -> None:
        store = SQLiteDocumentStore(temp_dir / "x.db")
        with pytest.raises(RuntimeError):
            await store.get_user("u")


class TestSanitize:
    def test_session_dict_is_plain_json(self) -> None:
        engines = finished_engines()
        doc = sanitize_document({"engines": {k.value: v.to_dict() for k, v in engines.items()}})

        synth = doc["engines"]["synthesizer"]
        assert synth["status"] == "success"
        assert synth["error"] is None
        assert synth["sources"] == [{"uri": "https://a.example", "title": "A"}]

    def test_enums_and_tuples(self) -> None:
        assert sanitize_document({"s": EngineStatus.ERROR, "t": (1, 2)}) == {"s": "error", "t": [1, 2]}


class TestSessionStoreSave:
    """save() across both backends."""

    @pytest.mark.asyncio
    async def test_save_assigns_id_and_metadata(self, session_store: SessionStore) -> None:
        session = await session_store.save(OWNER, "TCS", finished_engines())

        assert session is not None
        assert session.id.startswith("ses_")
        assert session.verdict == "BUY"
        assert session.summary == "Cheap."
        assert session.total_tokens == 30

    @pytest.mark.asyncio
    async def test_existing_id_is_kept(self, session_store: SessionStore) -> None:
        first = await session_store.save(OWNER, "TCS", finished_engines())
        second = await session_store.save(OWNER, "TCS", finished_engines(), existing_id=first.id)

        assert second.id == first.id
        assert [s.id for s in await session_store.list(OWNER)] == [first.id]

    @pytest.mark.asyncio
    async def test_durable_round_trip(self, session_store: SessionStore) -> None:
        saved = await session_store.save(OWNER, "TCS", finished_engines())

        [loaded] = await session_store.list(OWNER)

        assert loaded.id == saved.id
        assert loaded.engines[EngineId.SYNTHESIZER] == saved.engines[EngineId.SYNTHESIZER]
        assert loaded.engines[EngineId.FORENSIC].error == "boom"
        assert await session_store.list(LOCAL) == []

    @pytest.mark.asyncio
    async def test_save_failure_returns_none(self) -> None:
        backend = AsyncMock()
        backend.write.side_effect = DocumentStoreError("disk full")
        store = SessionStore(durable=backend, local=backend)

        assert await store.save(OWNER, "TCS", finished_engines()) is None

    @pytest.mark.asyncio
    async def test_durable_owner_without_backend(self, local_store: SessionStore) -> None:
        assert await local_store.save(OWNER, "TCS", finished_engines()) is None
        assert await local_store.list(OWNER) == []
        assert await local_store.delete(OWNER, "x") is False

    @pytest.mark.asyncio
    async def test_demo_user_uses_local_backend(self, session_store: SessionStore) -> None:
        demo = OwnerScope.for_user(DEMO_USER_ID)
        saved = await session_store.save(demo, "TCS", finished_engines())

        assert [s.id for s in await session_store.list(LOCAL)] == [saved.id]
        assert await session_store.list(OWNER) == []


class TestLocalBackend:
    """Capped, newest-first local list."""

    @pytest.mark.asyncio
    async def test_cap_evicts_oldest(self, temp_dir: Path) -> None:
        store = SessionStore(
            durable=None,
            local=LocalSessionBackend(LocalBlobStore(temp_dir / "local"), limit=3),
            clock=Clock(),
        )
        saved = [await store.save(LOCAL, f"S{i}", finished_engines()) for i in range(5)]

        listed = await store.list(LOCAL)

        assert [s.subject_label for s in listed] == ["S4", "S3", "S2"]
        assert saved[0].id not in {s.id for s in listed}

    @pytest.mark.asyncio
    async def test_upsert_in_place(self, temp_dir: Path) -> None:
        store = SessionStore(
            durable=None,
            local=LocalSessionBackend(LocalBlobStore(temp_dir / "local")),
            clock=Clock(),
        )
        first = await store.save(LOCAL, "A", finished_engines())
        await store.save(LOCAL, "B", finished_engines())
        await store.save(LOCAL, "A2", finished_engines(), existing_id=first.id)

        listed = await store.list(LOCAL)

        assert [s.subject_label for s in listed] == ["A2", "B"]

    @pytest.mark.asyncio
    async def test_delete(self, local_store: SessionStore) -> None:
        saved = await local_store.save(LOCAL, "A", finished_engines())

        assert await local_store.delete(LOCAL, saved.id) is True
        assert await local_store.list(LOCAL) == []

    @pytest.mark.asyncio
    async def test_corrupt_blob_reads_empty(self, temp_dir: Path) -> None:
        blobs = LocalBlobStore(temp_dir / "local")
        blobs.set(LOCAL_SESSIONS_KEY, "{not json")
        store = SessionStore(durable=None, local=LocalSessionBackend(blobs))

        assert await store.list(LOCAL) == []

    @pytest.mark.asyncio
    async def test_malformed_entries_are_skipped(self, temp_dir: Path) -> None:
        blobs = LocalBlobStore(temp_dir / "local")
        bad_source = {
            "id": "ses_bad",
            "timestamp": 1,
            "engines": {"synthesizer": {"status": "success", "result": "x", "sources": ["nope"]}},
        }
        blobs.set(LOCAL_SESSIONS_KEY, orjson.dumps([1, "text", bad_source]).decode("utf-8"))
        store = SessionStore(durable=None, local=LocalSessionBackend(blobs))

        saved = await store.save(LOCAL, "RELIANCE", initial_engine_map())

        assert saved is not None
        assert [s.id for s in await store.list(LOCAL)] == [saved.id]

    @pytest.mark.asyncio
    async def test_blob_is_plain_json(self, temp_dir: Path) -> None:
        blobs = LocalBlobStore(temp_dir / "local")
        store = SessionStore(durable=None, local=LocalSessionBackend(blobs))
        saved = await store.save(LOCAL, "A", finished_engines())

        payload = orjson.loads(blobs.get(LOCAL_SESSIONS_KEY))

        assert payload[0]["id"] == saved.id
        assert payload[0]["engines"]["synthesizer"]["usage"]["total_tokens"] == 30

    @pytest.mark.asyncio
    async def test_list_failure_returns_empty(self) -> None:
        backend = AsyncMock()
        backend.read_all.side_effect = OSError("unreadable")
        store = SessionStore(durable=None, local=backend)

        assert await store.list(LOCAL) == []


class TestBlobStore:
    def test_get_missing(self, temp_dir: Path) -> None:
        assert LocalBlobStore(temp_dir).get("nothing") is None

    def test_set_overwrites(self, temp_dir: Path) -> None:
        blobs = LocalBlobStore(temp_dir / "b")
        blobs.set("k", "1")
        blobs.set("k", "2")

        assert blobs.get("k") == "2"
        blobs.remove("k")
        assert blobs.get("k") is None


class TestUserDirectory:
    """Profiles and preferences."""

    @pytest.mark.asyncio
    async def test_sign_in_creates_then_touches(self, document_store: SQLiteDocumentStore) -> None:
        clock = Clock()
        users = UserDirectory(document_store, clock=clock)

        created = await users.sign_in(OWNER, email="a@example.com")
        touched = await users.sign_in(OWNER)

        assert created.created_at == created.last_login
        assert touched.created_at == created.created_at
        assert touched.last_login > created.last_login
        assert touched.email == "a@example.com"

    @pytest.mark.asyncio
    async def test_update_preferences(self, document_store: SQLiteDocumentStore) -> None:
        users = UserDirectory(document_store)
        await users.sign_in(OWNER)

        assert (await users.preferences(OWNER)).default_incremental_mode is True
        assert await users.update_preferences(OWNER, default_incremental_mode=False) is True
        assert (await users.preferences(OWNER)).default_incremental_mode is False

    @pytest.mark.asyncio
    async def test_local_scope_is_noop(self, document_store: SQLiteDocumentStore) -> None:
        users = UserDirectory(document_store)

        assert await users.sign_in(LOCAL) is None
        assert await users.get(LOCAL) is None
        assert await users.update_preferences(LOCAL, default_incremental_mode=False) is False
        assert (await users.preferences(LOCAL)).default_incremental_mode is True

    @pytest.mark.asyncio
    async def test_update_before_sign_in_fails_softly(
        self, document_store: SQLiteDocumentStore
    ) -> None:
        users = UserDirectory(document_store)
        assert await users.update_preferences(OWNER, default_incremental_mode=False) is False
