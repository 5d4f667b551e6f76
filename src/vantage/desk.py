"""
Research desk: the host-layer controller.

Owns the single mutable copy of the engine map (applying the deltas the
workflows emit), the session history for the current owner, the id of the
session on screen and the one global error message shown for a fatal
failure. The CLI drives everything through this class.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator

from vantage.config import Settings
from vantage.engines import initial_engine_map, merge_with_catalog
from vantage.exceptions import StageFatalError, UpdateUnavailableError, WorkflowBusyError
from vantage.history import SessionHistory
from vantage.llm.base import CallClient
from vantage.llm.gemini_client import GeminiCallClient
from vantage.llm.invoker import RetryingInvoker, Sleeper
from vantage.logging import get_logger
from vantage.storage import (
    DurableSessionBackend,
    LocalBlobStore,
    LocalSessionBackend,
    SessionStore,
    SQLiteDocumentStore,
    UserDirectory,
)
from vantage.types import AnalysisSession, EngineId, EngineMap, EngineRun, OwnerScope
from vantage.workflow.orchestrator import AnalysisRequest, PipelineOrchestrator
from vantage.workflow.stages import WorkflowConfig
from vantage.workflow.state import EngineListener
from vantage.workflow.update import UpdateMode, UpdateWorkflow

logger = get_logger(__name__)


class ResearchDesk:
    """One user's research workspace."""

    def __init__(
        self,
        orchestrator: PipelineOrchestrator,
        updater: UpdateWorkflow,
        session_store: SessionStore,
        users: UserDirectory | None = None,
        owner: OwnerScope | None = None,
        on_engine_update: EngineListener | None = None,
    ) -> None:
        self.orchestrator = orchestrator
        self.updater = updater
        self.session_store = session_store
        self.users = users
        self.owner = owner or OwnerScope.local()
        self.on_engine_update = on_engine_update

        self.engines: EngineMap = initial_engine_map()
        self.history = SessionHistory()
        self.current_session_id: str | None = None
        self.current_subject: str | None = None
        self.global_error: str | None = None
        self.is_running = False

    def _apply(self, engine_id: EngineId, run: EngineRun) -> None:
        self.engines[engine_id] = run
        if self.on_engine_update:
            self.on_engine_update(engine_id, run)

    def _begin(self) -> None:
        if self.is_running:
            raise WorkflowBusyError("A workflow is already running")
        self.is_running = True
        self.global_error = None

    async def load_history(self) -> list[AnalysisSession]:
        self.history.replace_all(await self.session_store.list(self.owner))
        return self.history.sessions

    def load_session(self, session_id: str) -> AnalysisSession | None:
        """Show a stored session; engines missing from it start Idle."""
        session = self.history.find(session_id)
        if session is None:
            return None
        self.engines = merge_with_catalog(session.engines)
        self.current_session_id = session.id
        self.current_subject = session.subject_label
        self.global_error = None
        return session

    async def analyze(self, request: AnalysisRequest) -> AnalysisSession | None:
        """Run a research workflow and reconcile the saved session into history.

        Returns:
            The saved session; None when the workflow aborted (see
            ``global_error``) or persistence failed.
        """
        self._begin()
        self.engines = initial_engine_map()
        self.current_session_id = None
        self.current_subject = request.subject
        try:
            result = await self.orchestrator.run(request, self.owner, listener=self._apply)
        except StageFatalError as e:
            self.global_error = e.message
            return None
        finally:
            self.is_running = False

        self.engines = dict(result.engines)
        self.current_subject = result.subject_label
        if result.session is not None:
            self.history.reconcile_saved(result.session)
            self.current_session_id = result.session.id
        return result.session

    async def default_update_mode(self) -> UpdateMode:
        if self.users is None:
            return UpdateMode.INCREMENTAL
        preferences = await self.users.preferences(self.owner)
        return UpdateMode.INCREMENTAL if preferences.default_incremental_mode else UpdateMode.FULL_SCAN

    async def set_default_update_mode(self, mode: UpdateMode) -> bool:
        if self.users is None:
            return False
        return await self.users.update_preferences(
            self.owner, default_incremental_mode=mode is UpdateMode.INCREMENTAL
        )

    async def update(
        self,
        session_id: str | None = None,
        mode: UpdateMode | None = None,
    ) -> AnalysisSession | None:
        """Refresh a saved session with the Sentinel and re-synthesize."""
        session_id = session_id or self.current_session_id
        previous = self.history.find(session_id) if session_id else None
        if previous is None:
            self.global_error = "No saved session to update."
            return None

        self._begin()
        mode = mode or await self.default_update_mode()
        try:
            result = await self.updater.update(
                previous, self.owner, mode=mode, listener=self._apply
            )
        except (UpdateUnavailableError, StageFatalError) as e:
            self.global_error = e.message
            return None
        finally:
            self.is_running = False

        self.engines = dict(result.engines)
        self.current_session_id = previous.id
        self.current_subject = result.subject_label
        if result.session is not None:
            self.history.reconcile_saved(result.session)
        return result.session

    async def delete_session(self, session_id: str) -> bool:
        deleted = await self.history.delete_optimistic(self.session_store, self.owner, session_id)
        if deleted and self.current_session_id == session_id:
            self.engines = initial_engine_map()
            self.current_session_id = None
            self.current_subject = None
        return deleted

    async def generate_post(self) -> str | None:
        """Social post for the report on screen; None when it failed."""
        if not self.current_subject:
            return None
        self.engines = await self.orchestrator.generate_social_post(
            self.engines, self.current_subject, listener=self._apply
        )
        return self.engines[EngineId.LINKEDIN].result


def build_session_store(
    settings: Settings,
    documents: SQLiteDocumentStore | None,
) -> SessionStore:
    return SessionStore(
        durable=DurableSessionBackend(documents) if documents else None,
        local=LocalSessionBackend(
            LocalBlobStore(settings.local_store_path), limit=settings.LOCAL_HISTORY_LIMIT
        ),
    )


@asynccontextmanager
async def open_desk(
    settings: Settings,
    user_id: str | None = None,
    client: CallClient | None = None,
    on_engine_update: EngineListener | None = None,
    sleep: Sleeper = asyncio.sleep,
) -> AsyncIterator[ResearchDesk]:
    """Wire stores, client and workflows from settings; close stores on exit.

    Args:
        settings: Application settings.
        user_id: Signed-in user; None or the demo id uses the local store.
        client: Call client override (defaults to Gemini).
        on_engine_update: Receives every engine transition.
        sleep: Awaitable sleep for backoff and pacing.
    """
    settings.ensure_directories()
    owner = OwnerScope.for_user(user_id)

    documents = SQLiteDocumentStore(settings.database_path)
    await documents.init()
    try:
        invoker = RetryingInvoker(
            client or GeminiCallClient(settings.gemini_api_key),
            max_retries=settings.RETRY_MAX_ATTEMPTS,
            base_delay_seconds=settings.RETRY_BASE_DELAY_SECONDS,
            sleep=sleep,
        )
        config = WorkflowConfig.from_settings(settings)
        session_store = build_session_store(settings, documents)
        users = UserDirectory(documents)
        await users.sign_in(owner)

        desk = ResearchDesk(
            orchestrator=PipelineOrchestrator(invoker, config, session_store, sleep=sleep),
            updater=UpdateWorkflow(invoker, session_store, config, sleep=sleep),
            session_store=session_store,
            users=users,
            owner=owner,
            on_engine_update=on_engine_update,
        )
        await desk.load_history()
        yield desk
    finally:
        await documents.close()
