"""
Data models package.

Pydantic models for workflow graphs and their runs.
"""

from flowgraph.src.data_models.workflow_spec import (
    NodeType,
    Position,
    NodeSpec,
    EdgeSpec,
    WorkflowSchedule,
    WorkflowSpec,
)

from flowgraph.src.data_models.execution_models import (
    ExecutionStatus,
    RunStatus,
    NodeRun,
    WorkflowRun,
    RunResult,
    aggregate_status,
)

__all__ = [
    # graph
    "NodeType",
    "Position",
    "NodeSpec",
    "EdgeSpec",
    "WorkflowSchedule",
    "WorkflowSpec",
    # runs
    "ExecutionStatus",
    "RunStatus",
    "NodeRun",
    "WorkflowRun",
    "RunResult",
    "aggregate_status",
]
