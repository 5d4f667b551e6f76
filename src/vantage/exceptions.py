"""
Exception hierarchy for the Vantage research pipeline.

All exceptions inherit from VantageError, which carries optional structured
context for logging. Remote-call failures live in ``vantage.llm.base`` and
``vantage.llm.invoker``; the classes here cover workflow, desk and
storage failures.
"""

from __future__ import annotations

from typing import Any


class VantageError(Exception):
    """Base exception for all Vantage errors.

    Attributes:
        message: Human-readable error message.
        context: Optional structured context for logging/debugging.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx_str})"
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context!r})"


class InvalidTransitionError(VantageError):
    """Raised when an engine run is moved outside Idle -> Loading -> Success|Error."""


class StageFatalError(VantageError):
    """Raised when a stage failure aborts the whole workflow.

    Planner, librarian, synthesizer, sentinel and comparison stages are
    fatal. Nothing is persisted after this error.
    """

    def __init__(
        self,
        message: str,
        stage: str,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, {"stage": stage, **(context or {})})
        self.stage = stage


class QuorumNotMetError(StageFatalError):
    """Raised when too few specialists succeeded to run synthesis."""

    def __init__(self, succeeded: int, required: int) -> None:
        super().__init__(
            f"Only {succeeded} specialist analyses succeeded; "
            f"at least {required} are required to synthesize a report.",
            stage="synthesizer",
            context={"succeeded": succeeded, "required": required},
        )
        self.succeeded = succeeded
        self.required = required


class UpdateUnavailableError(VantageError):
    """Raised when an update cannot start (no prior report, or no durable identity)."""


class DocumentStoreError(VantageError):
    """Raised by the durable document store when a write is rejected or fails."""


class WorkflowBusyError(VantageError):
    """Raised when a workflow is started while another runs on the same desk."""
