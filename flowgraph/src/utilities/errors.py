"""
Error taxonomy for the workflow execution engine.

Only GraphError and the not-found errors ever escape a run. TaskError,
PersistenceError and EvaluationError are captured as data (NodeRun.error,
RunResult.persistence_errors, routing on the decision alone) by the engine
itself.
"""

from typing import List, Optional


class FlowGraphError(Exception):
    """Base class for every error raised by flowgraph."""


class GraphError(FlowGraphError):
    """Malformed graph: dangling edge, unknown dependency, duplicate id or cycle."""

    def __init__(self, message: str, issues: Optional[List[str]] = None):
        super().__init__(message)
        self.issues = issues or [message]


class TaskError(FlowGraphError):
    """Raised by a task executor when a node cannot produce output."""

    def __init__(self, message: str, node_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.node_id = node_id


class PersistenceError(FlowGraphError):
    """A write to (or read from) the external data store failed."""

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        detail = f"{operation} failed" if cause is None else f"{operation} failed: {cause}"
        super().__init__(detail)
        self.operation = operation
        self.cause = cause


class EvaluationError(FlowGraphError):
    """A branch condition could not be evaluated against a node output."""


class WorkflowNotFoundError(FlowGraphError):
    def __init__(self, workflow_id: str):
        super().__init__(f"Workflow with ID {workflow_id} not found")
        self.workflow_id = workflow_id


class RunNotFoundError(FlowGraphError):
    def __init__(self, run_id: str):
        super().__init__(f"Workflow run with ID {run_id} not found")
        self.run_id = run_id


class NodeTimeoutError(TaskError):
    """A node's executor did not finish within its timeout."""

    def __init__(self, node_id: str, timeout: float):
        super().__init__(f"Node '{node_id}' timed out after {timeout}s", node_id=node_id)
        self.timeout = timeout
