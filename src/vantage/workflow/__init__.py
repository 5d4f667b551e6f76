"""
Workflow package.

- state: EngineBoard, WorkflowState, WorkflowVariant, WorkflowResult
- stages: StageRunner and WorkflowConfig shared by every workflow
- orchestrator: comparison, quick and deep research workflows
- update: Sentinel-driven refresh of a saved session
"""

from vantage.workflow.orchestrator import AnalysisRequest, PipelineOrchestrator, select_variant
from vantage.workflow.stages import StageRunner, WorkflowConfig
from vantage.workflow.state import (
    EngineBoard,
    WorkflowResult,
    WorkflowState,
    WorkflowVariant,
)
from vantage.workflow.update import UpdateMode, UpdateWorkflow

__all__ = [
    "AnalysisRequest",
    "EngineBoard",
    "PipelineOrchestrator",
    "StageRunner",
    "UpdateMode",
    "UpdateWorkflow",
    "WorkflowConfig",
    "WorkflowResult",
    "WorkflowState",
    "WorkflowVariant",
    "select_variant",
]
