"""
Workflow state.

EngineBoard holds the engine map for one workflow run. Every transition
produces a new EngineRun value which is stored and emitted to an optional
listener, so the host layer can apply the same delta to its own copy.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable

from vantage.engines import initial_engine_map
from vantage.llm.base import CallResponse
from vantage.types import AnalysisSession, EngineId, EngineMap, EngineRun, EngineStatus

EngineListener = Callable[[EngineId, EngineRun], None]


class WorkflowState(str, Enum):
    """Lifecycle of one workflow run."""

    NOT_STARTED = "not_started"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"


class WorkflowVariant(str, Enum):
    """Closed set of workflow shapes."""

    COMPARISON = "comparison"
    QUICK = "quick"
    DEEP = "deep"
    UPDATE = "update"


class EngineBoard:
    """Engine map for a single workflow run, with one writer at a time."""

    def __init__(
        self,
        engines: EngineMap | None = None,
        listener: EngineListener | None = None,
    ) -> None:
        self._engines: EngineMap = dict(engines) if engines else initial_engine_map()
        self._listener = listener

    def __getitem__(self, engine_id: EngineId) -> EngineRun:
        return self._engines[engine_id]

    def _set(self, run: EngineRun) -> EngineRun:
        self._engines[run.id] = run
        if self._listener:
            self._listener(run.id, run)
        return run

    def start(self, engine_id: EngineId) -> EngineRun:
        return self._set(self._engines[engine_id].start())

    def succeed(self, engine_id: EngineId, response: CallResponse) -> EngineRun:
        return self._set(
            self._engines[engine_id].succeed(response.text, response.usage, response.sources)
        )

    def succeed_with_text(
        self,
        engine_id: EngineId,
        text: str,
        response: CallResponse | None = None,
    ) -> EngineRun:
        """Succeed with custom text, carrying usage/sources from a response."""
        return self._set(
            self._engines[engine_id].succeed(
                text,
                response.usage if response else None,
                response.sources if response else (),
            )
        )

    def fail(self, engine_id: EngineId, message: str) -> EngineRun:
        return self._set(self._engines[engine_id].fail(message))

    def fail_if_loading(self, engine_id: EngineId, message: str) -> None:
        if self._engines[engine_id].status is EngineStatus.LOADING:
            self.fail(engine_id, message)

    def snapshot(self) -> EngineMap:
        """Copy of the current map (runs are immutable values)."""
        return dict(self._engines)


@dataclass
class WorkflowResult:
    """Outcome of a completed workflow."""

    variant: WorkflowVariant
    subject_label: str
    engines: EngineMap
    state: WorkflowState = WorkflowState.COMPLETED
    session: AnalysisSession | None = None

    @property
    def report(self) -> str | None:
        return self.engines[EngineId.SYNTHESIZER].result

    @property
    def total_tokens(self) -> int:
        return sum(run.total_tokens for run in self.engines.values())
