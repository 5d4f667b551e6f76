"""
Update workflow.

Re-runs the Sentinel engine against a previously synthesized report to
surface material developments since the report date, then re-synthesizes
with the previous report plus the sentinel's findings and re-saves into the
same session id.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from enum import Enum

from vantage.engines import get_engine, merge_with_catalog
from vantage.exceptions import StageFatalError, UpdateUnavailableError
from vantage.llm.invoker import RetryingInvoker, Sleeper
from vantage.logging import get_logger, log_context
from vantage.prompts import build_engine_prompt, format_report_date
from vantage.storage.sessions import SessionStore
from vantage.types import AnalysisSession, EngineId, OwnerScope, generate_id
from vantage.workflow.stages import StageRunner, WorkflowConfig
from vantage.workflow.state import (
    EngineBoard,
    EngineListener,
    WorkflowResult,
    WorkflowState,
    WorkflowVariant,
)

logger = get_logger(__name__)


class UpdateMode(str, Enum):
    INCREMENTAL = "incremental"
    FULL_SCAN = "full_scan"

    @property
    def label(self) -> str:
        return "Incremental" if self is UpdateMode.INCREMENTAL else "Full Scan"


def scope_instruction(mode: UpdateMode, cutoff: str) -> str:
    if mode is UpdateMode.INCREMENTAL:
        return (
            "STRICT CONSTRAINT: You are in 'Incremental Mode'. Search for and report ONLY "
            f"on events, news, and filings released AFTER {cutoff}. Do NOT re-analyze old data."
        )
    return (
        "BROAD SCOPE: Re-evaluate the company's status. While searching for news since "
        f"{cutoff}, you may also verify if the core thesis still holds against broader "
        "market changes found in recent search results."
    )


class UpdateWorkflow:
    """Two-stage Sentinel -> Synthesizer refresh of a saved session."""

    def __init__(
        self,
        invoker: RetryingInvoker,
        session_store: SessionStore,
        config: WorkflowConfig | None = None,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self.config = config or WorkflowConfig()
        self.stages = StageRunner(invoker, self.config, sleep)
        self.session_store = session_store
        self.state = WorkflowState.NOT_STARTED

    async def update(
        self,
        previous: AnalysisSession,
        owner: OwnerScope,
        mode: UpdateMode = UpdateMode.INCREMENTAL,
        model_id: str | None = None,
        listener: EngineListener | None = None,
    ) -> WorkflowResult:
        """Refresh a saved session.

        Raises:
            UpdateUnavailableError: No durable identity, or no previous
                synthesized report. No call is issued.
            StageFatalError: Sentinel or synthesizer failed. Nothing is saved.
        """
        if not owner.is_durable:
            raise UpdateUnavailableError(
                "Please sign in to update reports.", {"session_id": previous.id}
            )

        synthesizer = previous.engines.get(EngineId.SYNTHESIZER)
        previous_report = synthesizer.result if synthesizer else None
        if not previous_report:
            raise UpdateUnavailableError(
                "No previous synthesized report to update.", {"session_id": previous.id}
            )

        model_id = model_id or self.config.model_id
        cutoff = format_report_date(
            datetime.fromtimestamp(previous.timestamp / 1000, tz=timezone.utc),
            timezone=self.config.timezone,
        )
        today = format_report_date(timezone=self.config.timezone)
        board = EngineBoard(merge_with_catalog(previous.engines), listener=listener)
        subject = previous.subject_label

        self.state = WorkflowState.RUNNING
        with log_context(run_id=generate_id("run"), phase=WorkflowVariant.UPDATE.value):
            logger.info("Update started", session_id=previous.id, mode=mode.value, cutoff=cutoff)
            try:
                sentinel = await self.stages.run_fatal(
                    board,
                    EngineId.UPDATER,
                    build_engine_prompt(
                        get_engine(EngineId.UPDATER),
                        subject,
                        context=(
                            f"LAST ANALYSIS DATE: {cutoff}\n"
                            f"PREVIOUS SUMMARY:\n{previous_report}\n\n"
                            f"INSTRUCTION: {scope_instruction(mode, cutoff)}"
                        ),
                        today=today,
                    ),
                    model_id,
                )
                await self.stages.run_fatal(
                    board,
                    EngineId.SYNTHESIZER,
                    build_engine_prompt(
                        get_engine(EngineId.SYNTHESIZER),
                        subject,
                        context=(
                            f"--- PREVIOUS REPORT ({cutoff}) ---\n{previous_report}\n\n"
                            f"--- UPDATER ENGINE FINDINGS (Mode: {mode.label}) ---\n"
                            f"{sentinel.text}"
                        ),
                        today=today,
                    ),
                    model_id,
                )
            except StageFatalError as e:
                self.state = WorkflowState.ABORTED
                logger.error("Update aborted", stage=e.stage, error=e.message)
                raise

            engines = board.snapshot()
            session = await self.session_store.save(
                owner, subject, engines, existing_id=previous.id
            )
            self.state = WorkflowState.COMPLETED
            logger.info("Update completed", session_id=previous.id, saved=session is not None)

        return WorkflowResult(
            variant=WorkflowVariant.UPDATE,
            subject_label=subject,
            engines=engines,
            state=self.state,
            session=session,
        )
