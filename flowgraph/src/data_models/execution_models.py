"""
Pydantic models for run bookkeeping.

NodeRun is the per-node record kept in the RunLedger; WorkflowRun is the
persisted run row; RunResult is what a caller gets back once traversal ends.
All of them serialize with the camelCase keys the workflow UI reads
(``nodeId``, ``startTime``, ``nodeRuns`` ...).
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ExecutionStatus(str, Enum):
    """Status of a single NodeRun."""
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not ExecutionStatus.RUNNING


class RunStatus(str, Enum):
    """Aggregate status of a whole run."""
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class NodeRun(_CamelModel):
    """One execution attempt of one node within one run."""
    node_id: str
    start_time: datetime = Field(default_factory=utcnow)
    end_time: Optional[datetime] = None
    status: ExecutionStatus = ExecutionStatus.RUNNING
    output: Any = None
    error: Optional[str] = None

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.end_time is None:
            return None
        return (self.end_time - self.start_time).total_seconds()


class WorkflowRun(_CamelModel):
    """The persisted ``workflow_runs`` record."""
    id: str
    workflow_id: str
    version: str = "1.0.0"
    start_time: datetime = Field(default_factory=utcnow)
    end_time: Optional[datetime] = None
    status: RunStatus = RunStatus.RUNNING
    node_runs: List[NodeRun] = Field(default_factory=list)


def aggregate_status(node_runs: List[NodeRun], cancelled: bool = False) -> RunStatus:
    """
    Derive the terminal run status from NodeRuns.

    failed iff at least one NodeRun failed; a caller-cancelled run reports
    cancelled regardless.
    """
    if cancelled or any(run.status == ExecutionStatus.CANCELLED for run in node_runs):
        return RunStatus.CANCELLED
    if any(run.status == ExecutionStatus.FAILED for run in node_runs):
        return RunStatus.FAILED
    return RunStatus.SUCCESS


class RunResult(_CamelModel):
    """Outcome of one run, derived once from the sealed ledger."""
    run_id: str
    workflow_id: Optional[str] = None
    status: RunStatus
    node_runs: List[NodeRun] = Field(default_factory=list)
    skipped_nodes: List[str] = Field(default_factory=list)
    durable: bool = True
    persistence_errors: List[str] = Field(default_factory=list)

    @classmethod
    def from_ledger(
        cls,
        run_id: str,
        node_runs: List[NodeRun],
        all_node_ids: List[str],
        workflow_id: Optional[str] = None,
        persistence_errors: Optional[List[str]] = None,
        cancelled: bool = False,
    ) -> "RunResult":
        """Pure function of a frozen ledger snapshot: same input, same result."""
        recorded = {run.node_id for run in node_runs}
        errors = list(persistence_errors or [])
        return cls(
            run_id=run_id,
            workflow_id=workflow_id,
            status=aggregate_status(node_runs, cancelled=cancelled),
            node_runs=[run.model_copy(deep=True) for run in node_runs],
            skipped_nodes=[node_id for node_id in all_node_ids if node_id not in recorded],
            durable=not errors,
            persistence_errors=errors,
        )

    def node_run(self, node_id: str) -> Optional[NodeRun]:
        for run in self.node_runs:
            if run.node_id == node_id:
                return run
        return None

    def summary(self) -> Dict[str, Any]:
        counts: Dict[str, int] = {}
        for run in self.node_runs:
            counts[run.status.value] = counts.get(run.status.value, 0) + 1
        return {
            "status": self.status.value,
            "node_runs": len(self.node_runs),
            **counts,
            "skipped": len(self.skipped_nodes),
            "durable": self.durable,
        }
