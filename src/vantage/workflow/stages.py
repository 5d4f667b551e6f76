"""
Stage execution shared by the pipeline and update workflows.

A stage is one engine call written into one slot of the EngineBoard.
Fatal stages convert an exhausted call into StageFatalError; isolated
stages leave the error on the slot and let the caller continue.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from vantage.config import Settings
from vantage.exceptions import StageFatalError
from vantage.llm.base import CallResponse
from vantage.llm.invoker import FatalCallError, RetryingInvoker, Sleeper
from vantage.logging import get_logger
from vantage.types import EngineId
from vantage.workflow.state import EngineBoard

logger = get_logger(__name__)


@dataclass
class WorkflowConfig:
    """Tuning for workflow runs."""

    model_id: str = "gemini-2.5-flash"
    fallback_model_id: str | None = "gemini-2.5-flash"
    inter_call_delay_seconds: float = 15.0
    specialist_quorum: int = 3
    timezone: str = "Asia/Kolkata"
    enable_web_search: bool = True

    @classmethod
    def from_settings(cls, settings: Settings) -> WorkflowConfig:
        return cls(
            model_id=settings.MODEL_PRIMARY,
            fallback_model_id=settings.MODEL_FALLBACK,
            inter_call_delay_seconds=settings.INTER_CALL_DELAY_SECONDS,
            specialist_quorum=settings.SPECIALIST_QUORUM,
            timezone=settings.REPORT_TIMEZONE,
        )


class StageRunner:
    """Runs engine calls into board slots."""

    def __init__(
        self,
        invoker: RetryingInvoker,
        config: WorkflowConfig,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self.invoker = invoker
        self.config = config
        self._sleep = sleep

    async def call(self, slot: EngineId, prompt: str, model_id: str) -> CallResponse:
        """Issue the call for a slot without touching the board.

        Raises:
            FatalCallError: When retries and fallback are exhausted.
        """
        return await self.invoker.run(
            slot.value,
            model_id,
            prompt,
            fallback_model_id=self.config.fallback_model_id,
            enable_web_search=self.config.enable_web_search,
        )

    async def run_fatal(
        self,
        board: EngineBoard,
        slot: EngineId,
        prompt: str,
        model_id: str,
        result_text: str | None = None,
    ) -> CallResponse:
        """Run a stage whose failure aborts the workflow.

        Args:
            board: Engine board to record transitions on.
            slot: Engine slot for the stage.
            prompt: Full prompt.
            model_id: Model for this run.
            result_text: Text to store instead of the response text.

        Raises:
            StageFatalError: The slot is marked Error first.
        """
        board.start(slot)
        try:
            response = await self.call(slot, prompt, model_id)
        except FatalCallError as e:
            board.fail(slot, e.message)
            logger.error("Stage failed, aborting workflow", engine=slot.value, error=e.message)
            raise StageFatalError(e.message, stage=slot.value) from e

        if result_text is None:
            board.succeed(slot, response)
        else:
            board.succeed_with_text(slot, result_text, response)
        logger.info("Stage complete", engine=slot.value, tokens=response.usage.total_tokens)
        return response

    async def run_isolated(
        self,
        board: EngineBoard,
        slot: EngineId,
        prompt: str,
        model_id: str,
    ) -> CallResponse | None:
        """Run a stage whose failure is recorded on its slot only.

        Returns:
            The response, or None when the stage failed.
        """
        board.start(slot)
        try:
            response = await self.call(slot, prompt, model_id)
        except FatalCallError as e:
            board.fail(slot, e.message)
            logger.warning("Stage failed, continuing", engine=slot.value, error=e.message)
            return None

        board.succeed(slot, response)
        logger.info("Stage complete", engine=slot.value, tokens=response.usage.total_tokens)
        return response

    async def pause(self) -> None:
        """Courtesy delay between sequential calls (provider RPM ceiling)."""
        if self.config.inter_call_delay_seconds > 0:
            await self._sleep(self.config.inter_call_delay_seconds)
