"""
Tests for the research desk host controller.
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from conftest import FakeCallClient
from vantage.config import Settings
from vantage.desk import ResearchDesk, open_desk
from vantage.exceptions import VantageError, WorkflowBusyError
from vantage.llm.base import QuotaExceededError, UnknownCallError
from vantage.llm.invoker import RetryingInvoker
from vantage.storage import SessionStore, SQLiteDocumentStore, UserDirectory
from vantage.types import EngineId, EngineStatus, OwnerScope
from vantage.workflow.orchestrator import AnalysisRequest, PipelineOrchestrator
from vantage.workflow.stages import WorkflowConfig
from vantage.workflow.update import UpdateMode, UpdateWorkflow

REPORT = "FINAL DECISION: BUY\nThe \"One-Line\" Thesis: Good.\n"


def make_desk(
    client: FakeCallClient,
    store: SessionStore,
    owner: OwnerScope | None = None,
    users: UserDirectory | None = None,
    **kwargs: object,
) -> ResearchDesk:
    sleep = AsyncMock(return_value=None)
    invoker = RetryingInvoker(client, sleep=sleep)
    config = WorkflowConfig(model_id="m", fallback_model_id="m")
    return ResearchDesk(
        orchestrator=PipelineOrchestrator(invoker, config, store, sleep=sleep),
        updater=UpdateWorkflow(invoker, store, config, sleep=sleep),
        session_store=store,
        users=users,
        owner=owner,
        **kwargs,
    )


class TestAnalyze:
    """Runs reconciled into the desk's state."""

    @pytest.mark.asyncio
    async def test_comparison_adds_one_history_entry(self, local_store: SessionStore) -> None:
        desk = make_desk(FakeCallClient(["A", "B", REPORT]), local_store)
        await desk.load_history()
        before = len(desk.history)

        session = await desk.analyze(AnalysisRequest("HDFCBANK vs ICICIBANK"))

        assert session is not None
        assert session.subject_label == "HDFCBANK vs ICICIBANK"
        assert len(desk.history) == before + 1
        assert desk.current_session_id == session.id
        assert desk.engines[EngineId.SYNTHESIZER].result == REPORT
        assert desk.global_error is None

    @pytest.mark.asyncio
    async def test_repeat_subject_replaces_entry(self, local_store: SessionStore) -> None:
        desk = make_desk(FakeCallClient(), local_store)

        await desk.analyze(AnalysisRequest("TCS"))
        second = await desk.analyze(AnalysisRequest("tcs"))

        assert [s.id for s in desk.history] == [second.id]

    @pytest.mark.asyncio
    async def test_listener_sees_transitions(self, local_store: SessionStore) -> None:
        seen: list[tuple[EngineId, EngineStatus]] = []
        desk = make_desk(
            FakeCallClient(["T1"]),
            local_store,
            on_engine_update=lambda eid, run: seen.append((eid, run.status)),
        )

        await desk.analyze(AnalysisRequest("TCS"))

        assert seen[:2] == [
            (EngineId.COMPREHENSIVE, EngineStatus.LOADING),
            (EngineId.COMPREHENSIVE, EngineStatus.SUCCESS),
        ]

    @pytest.mark.asyncio
    async def test_fatal_error_becomes_global_message(self, local_store: SessionStore) -> None:
        desk = make_desk(FakeCallClient([QuotaExceededError("quota exceeded")]), local_store)

        session = await desk.analyze(AnalysisRequest("TCS"))

        assert session is None
        assert desk.global_error == "Gemini quota exceeded. Please try again tomorrow."
        assert desk.engines[EngineId.COMPREHENSIVE].status is EngineStatus.ERROR
        assert desk.is_running is False
        assert len(desk.history) == 0

    @pytest.mark.asyncio
    async def test_rejects_concurrent_run(self, local_store: SessionStore) -> None:
        desk = make_desk(FakeCallClient(), local_store)
        desk.is_running = True

        with pytest.raises(WorkflowBusyError) as exc_info:
            await desk.analyze(AnalysisRequest("TCS"))

        assert isinstance(exc_info.value, VantageError)


class TestSessions:
    """Load, delete, update and post."""

    @pytest.mark.asyncio
    async def test_load_session_fills_missing_engines(self, local_store: SessionStore) -> None:
        desk = make_desk(FakeCallClient(["T1"]), local_store)
        saved = await desk.analyze(AnalysisRequest("TCS"))
        saved.engines.pop(EngineId.LINKEDIN)
        desk.engines = {}

        loaded = desk.load_session(saved.id)

        assert loaded is saved
        assert desk.engines[EngineId.LINKEDIN].status is EngineStatus.IDLE
        assert desk.engines[EngineId.SYNTHESIZER].result == "T1"
        assert desk.load_session("missing") is None

    @pytest.mark.asyncio
    async def test_delete_current_session_resets_board(self, local_store: SessionStore) -> None:
        desk = make_desk(FakeCallClient(["T1"]), local_store)
        saved = await desk.analyze(AnalysisRequest("TCS"))

        assert await desk.delete_session(saved.id) is True
        assert desk.current_session_id is None
        assert all(run.status is EngineStatus.IDLE for run in desk.engines.values())
        assert await local_store.list(OwnerScope.local()) == []

    @pytest.mark.asyncio
    async def test_update_requires_sign_in(self, local_store: SessionStore) -> None:
        client = FakeCallClient([REPORT])
        desk = make_desk(client, local_store)
        saved = await desk.analyze(AnalysisRequest("TCS"))

        assert await desk.update(saved.id) is None
        assert desk.global_error == "Please sign in to update reports."
        assert len(client.calls) == 1

    @pytest.mark.asyncio
    async def test_update_uses_preferred_mode(
        self, session_store: SessionStore, document_store: SQLiteDocumentStore
    ) -> None:
        owner = OwnerScope.for_user("uid-1")
        users = UserDirectory(document_store)
        await users.sign_in(owner)
        client = FakeCallClient([REPORT, "No significant changes.", REPORT])
        desk = make_desk(client, session_store, owner=owner, users=users)
        saved = await desk.analyze(AnalysisRequest("TCS"))

        assert await desk.set_default_update_mode(UpdateMode.FULL_SCAN) is True
        updated = await desk.update()

        assert updated is not None
        assert updated.id == saved.id
        assert "BROAD SCOPE" in client.calls[1][1]
        assert [s.id for s in desk.history] == [saved.id]

    @pytest.mark.asyncio
    async def test_update_unknown_session(self, local_store: SessionStore) -> None:
        desk = make_desk(FakeCallClient(), local_store)

        assert await desk.update("nope") is None
        assert desk.global_error == "No saved session to update."

    @pytest.mark.asyncio
    async def test_generate_post(self, local_store: SessionStore) -> None:
        desk = make_desk(FakeCallClient([REPORT, "Post!"]), local_store)
        await desk.analyze(AnalysisRequest("TCS"))

        assert await desk.generate_post() == "Post!"
        assert desk.engines[EngineId.LINKEDIN].status is EngineStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_generate_post_failure(self, local_store: SessionStore) -> None:
        desk = make_desk(FakeCallClient([REPORT, UnknownCallError("nope")]), local_store)
        await desk.analyze(AnalysisRequest("TCS"))

        assert await desk.generate_post() is None
        assert desk.engines[EngineId.LINKEDIN].error == "nope"


class TestOpenDesk:
    """Wiring from settings."""

    @pytest.mark.asyncio
    async def test_history_persists_between_desks(
        self, mock_settings: Settings, no_sleep: AsyncMock
    ) -> None:
        async with open_desk(mock_settings, client=FakeCallClient(["T1"]), sleep=no_sleep) as desk:
            saved = await desk.analyze(AnalysisRequest("TCS"))

        async with open_desk(mock_settings, client=FakeCallClient(), sleep=no_sleep) as desk:
            assert [s.id for s in desk.history] == [saved.id]
            assert desk.owner == OwnerScope.local()

    @pytest.mark.asyncio
    async def test_signed_in_user_gets_profile(
        self, mock_settings: Settings, no_sleep: AsyncMock
    ) -> None:
        async with open_desk(
            mock_settings, user_id="uid-9", client=FakeCallClient(), sleep=no_sleep
        ) as desk:
            profile = await desk.users.get(desk.owner)

        assert profile is not None
        assert profile.uid == "uid-9"

