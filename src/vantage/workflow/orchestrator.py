"""
Pipeline orchestrator.

Drives the fixed-topology research workflows:

- COMPARISON: single-shot analysis of A, then B, then a head-to-head
  comparison over both results. Any failure aborts.
- QUICK: one comprehensive single-shot call, mirrored into the synthesizer
  slot.
- DEEP: planner -> librarian -> six specialists run one-by-one with a
  courtesy delay -> quorum gate -> synthesizer.

The variant is chosen from the request shape. Each run works on its own
EngineBoard; transitions are emitted to the caller's listener and the final
map is handed to the SessionStore.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from vantage.engines import COMPARISON_PROMPT, SPECIALIST_IDS, get_engine
from vantage.exceptions import QuorumNotMetError, StageFatalError
from vantage.llm.invoker import RetryingInvoker, Sleeper
from vantage.logging import get_logger, log_context
from vantage.prompts import (
    build_engine_prompt,
    format_report_date,
    normalize_subject_label,
    parse_comparison,
)
from vantage.storage.sessions import SessionStore
from vantage.types import EngineId, EngineMap, OwnerScope, generate_id
from vantage.workflow.stages import StageRunner, WorkflowConfig
from vantage.workflow.state import (
    EngineBoard,
    EngineListener,
    WorkflowResult,
    WorkflowState,
    WorkflowVariant,
)

logger = get_logger(__name__)

REPORT_BLOCK_HEADER = "--- REPORT FROM {name} ---"
FAILED_SPECIALIST_PLACEHOLDER = "[Analysis Failed: {name}: {error}]"


@dataclass
class AnalysisRequest:
    """What the caller asked for."""

    subject: str
    hypothesis: str | None = None
    deep: bool = False
    model_id: str | None = None
    existing_session_id: str | None = None


def select_variant(request: AnalysisRequest) -> WorkflowVariant:
    """Comparison only on the fast path; otherwise quick or deep by mode."""
    if not request.deep and parse_comparison(request.subject):
        return WorkflowVariant.COMPARISON
    return WorkflowVariant.DEEP if request.deep else WorkflowVariant.QUICK


class PipelineOrchestrator:
    """Runs one workflow at a time and persists the result."""

    def __init__(
        self,
        invoker: RetryingInvoker,
        config: WorkflowConfig | None = None,
        session_store: SessionStore | None = None,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            invoker: Retrying invoker for every engine call.
            config: Workflow tuning (models, delay, quorum).
            session_store: Store to persist completed runs. None skips saving.
            sleep: Awaitable sleep for inter-call delays, injectable for tests.
        """
        self.config = config or WorkflowConfig()
        self.stages = StageRunner(invoker, self.config, sleep)
        self.session_store = session_store
        self.state = WorkflowState.NOT_STARTED

    async def run(
        self,
        request: AnalysisRequest,
        owner: OwnerScope | None = None,
        listener: EngineListener | None = None,
    ) -> WorkflowResult:
        """Run the workflow selected by the request.

        Args:
            request: Subject, mode, optional hypothesis and model override.
            owner: Persistence scope. Defaults to the local device.
            listener: Receives every engine transition.

        Returns:
            WorkflowResult; ``session`` is None when persistence failed.

        Raises:
            StageFatalError: A fatal stage failed or quorum was not met.
                Nothing is persisted.
        """
        owner = owner or OwnerScope.local()
        variant = select_variant(request)
        model_id = request.model_id or self.config.model_id
        board = EngineBoard(listener=listener)
        run_id = generate_id("run")

        self.state = WorkflowState.RUNNING
        with log_context(run_id=run_id, phase=variant.value):
            logger.info(
                "Workflow started",
                subject=request.subject,
                model=model_id,
                owner=str(owner),
            )
            try:
                if variant is WorkflowVariant.COMPARISON:
                    first, second = parse_comparison(request.subject)  # type: ignore[misc]
                    await self._run_comparison(board, first, second, model_id)
                    subject_label = f"{first} vs {second}"
                elif variant is WorkflowVariant.QUICK:
                    subject_label = normalize_subject_label(request.subject)
                    await self._run_quick(board, subject_label, request.hypothesis, model_id)
                else:
                    subject_label = normalize_subject_label(request.subject)
                    await self._run_deep(board, subject_label, request.hypothesis, model_id)
            except StageFatalError as e:
                self.state = WorkflowState.ABORTED
                logger.error("Workflow aborted", stage=e.stage, error=e.message)
                raise

            engines = board.snapshot()
            session = None
            if self.session_store is not None:
                session = await self.session_store.save(
                    owner,
                    subject_label,
                    engines,
                    existing_id=request.existing_session_id,
                )

            self.state = WorkflowState.COMPLETED
            logger.info("Workflow completed", subject=subject_label, saved=session is not None)

        return WorkflowResult(
            variant=variant,
            subject_label=subject_label,
            engines=engines,
            state=self.state,
            session=session,
        )

    async def _run_quick(
        self,
        board: EngineBoard,
        subject: str,
        hypothesis: str | None,
        model_id: str,
    ) -> None:
        today = format_report_date(timezone=self.config.timezone)
        prompt = build_engine_prompt(
            get_engine(EngineId.COMPREHENSIVE),
            subject,
            hypothesis=hypothesis,
            today=today,
        )
        response = await self.stages.run_fatal(board, EngineId.COMPREHENSIVE, prompt, model_id)

        # Mirrored so downstream consumers always read the synthesizer slot
        board.start(EngineId.SYNTHESIZER)
        board.succeed(EngineId.SYNTHESIZER, response)

    async def _run_comparison(
        self,
        board: EngineBoard,
        first: str,
        second: str,
        model_id: str,
    ) -> None:
        today = format_report_date(timezone=self.config.timezone)
        comprehensive = get_engine(EngineId.COMPREHENSIVE)

        first_response = await self.stages.run_fatal(
            board,
            EngineId.PLANNER,
            build_engine_prompt(comprehensive, first, today=today),
            model_id,
            result_text=f"Analysis of {first} complete",
        )
        await self.stages.pause()

        second_response = await self.stages.run_fatal(
            board,
            EngineId.LIBRARIAN,
            build_engine_prompt(comprehensive, second, today=today),
            model_id,
            result_text=f"Analysis of {second} complete",
        )
        await self.stages.pause()

        comparison_prompt = (
            f"{COMPARISON_PROMPT}\n\n"
            f"--- STOCK A: {first} ---\n{first_response.text}\n\n"
            f"--- STOCK B: {second} ---\n{second_response.text}"
        )
        comparison = await self.stages.run_fatal(
            board, EngineId.SYNTHESIZER, comparison_prompt, model_id
        )

        board.start(EngineId.COMPREHENSIVE)
        board.succeed_with_text(
            EngineId.COMPREHENSIVE,
            f"{first} vs {second} Head-to-Head",
            comparison,
        )

    async def _run_deep(
        self,
        board: EngineBoard,
        subject: str,
        hypothesis: str | None,
        model_id: str,
    ) -> None:
        today = format_report_date(timezone=self.config.timezone)

        planner = await self.stages.run_fatal(
            board,
            EngineId.PLANNER,
            build_engine_prompt(get_engine(EngineId.PLANNER), subject, today=today),
            model_id,
        )
        await self.stages.pause()

        librarian = await self.stages.run_fatal(
            board,
            EngineId.LIBRARIAN,
            build_engine_prompt(
                get_engine(EngineId.LIBRARIAN),
                subject,
                context=f"PLANNER STRATEGY:\n{planner.text}",
                today=today,
            ),
            model_id,
        )
        await self.stages.pause()

        shared_context = (
            f"PLANNER STRATEGY:\n{planner.text}\n\n"
            f"LIBRARIAN DATA DOSSIER:\n{librarian.text}"
        )

        reports: list[tuple[EngineId, str]] = []
        placeholders: list[str] = []
        for engine_id in SPECIALIST_IDS:
            engine = get_engine(engine_id)
            with log_context(engine=engine_id.value):
                response = await self.stages.run_isolated(
                    board,
                    engine_id,
                    build_engine_prompt(
                        engine,
                        subject,
                        hypothesis=hypothesis if engine_id is EngineId.CUSTOM else None,
                        context=shared_context,
                        today=today,
                    ),
                    model_id,
                )
            if response is None:
                placeholders.append(
                    FAILED_SPECIALIST_PLACEHOLDER.format(
                        name=engine.name, error=board[engine_id].error
                    )
                )
            else:
                reports.append((engine_id, response.text))
            await self.stages.pause()

        logger.info(
            "Specialists finished",
            succeeded=len(reports),
            failed=len(placeholders),
            quorum=self.config.specialist_quorum,
        )
        if len(reports) < self.config.specialist_quorum:
            raise QuorumNotMetError(len(reports), self.config.specialist_quorum)

        await self.stages.run_fatal(
            board,
            EngineId.SYNTHESIZER,
            build_engine_prompt(
                get_engine(EngineId.SYNTHESIZER),
                subject,
                context=build_synthesis_context(shared_context, reports, placeholders),
                today=today,
            ),
            model_id,
        )

    async def generate_social_post(
        self,
        engines: EngineMap,
        subject_label: str,
        model_id: str | None = None,
        listener: EngineListener | None = None,
    ) -> EngineMap:
        """Run the social-post engine over the synthesized report.

        Failure is recorded on the linkedin slot only.

        Returns:
            The updated engine map (unchanged when there is no report).
        """
        board = EngineBoard(engines, listener=listener)
        report = board[EngineId.SYNTHESIZER].result
        if not report:
            logger.warning("No synthesized report to turn into a post", subject=subject_label)
            return board.snapshot()

        prompt = build_engine_prompt(
            get_engine(EngineId.LINKEDIN),
            subject_label,
            context=report,
            today=format_report_date(timezone=self.config.timezone),
        )
        with log_context(engine=EngineId.LINKEDIN.value):
            await self.stages.run_isolated(
                board, EngineId.LINKEDIN, prompt, model_id or self.config.model_id
            )
        return board.snapshot()


def build_synthesis_context(
    shared_context: str,
    reports: list[tuple[EngineId, str]],
    placeholders: list[str],
) -> str:
    """Planner/librarian context, one tagged block per successful specialist,
    then placeholders for the ones that failed."""
    blocks = [
        f"{REPORT_BLOCK_HEADER.format(name=get_engine(engine_id).name)}\n{text}\n"
        for engine_id, text in reports
    ]
    context = f"{shared_context}\n\n" + "\n".join(blocks)
    if placeholders:
        context += "\n--- UNAVAILABLE SPECIALISTS ---\n" + "\n".join(placeholders)
    return context
