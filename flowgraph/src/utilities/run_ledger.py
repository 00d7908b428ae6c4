"""
RunLedger: the per-run, node-keyed collection of NodeRuns.

The ledger is the engine's only mutable run state. One ledger belongs to one
executor invocation. Every transition goes through an asyncio.Lock so the
at-most-once-NodeRun-per-node invariant holds while several workers fan in on
the same node. After each transition a snapshot is written to the store (when
one is attached) so observers can follow in-flight state; a failed write is
logged and remembered but never interrupts traversal.
"""

import asyncio
from typing import Any, Dict, List, Optional, Protocol

from ..data_models.execution_models import (
    ExecutionStatus,
    NodeRun,
    RunStatus,
    aggregate_status,
    utcnow,
)
from .errors import PersistenceError
from .io_logger import get_component_logger

logger = get_component_logger("RUN_LEDGER")


class RunSnapshotWriter(Protocol):
    async def update_run(self, run_id: str, status=None, end_time=None, node_runs=None) -> None: ...


class RunLedger:
    """Keyed NodeRun store for a single run."""

    def __init__(self, run_id: str, store: Optional[RunSnapshotWriter] = None):
        self.run_id = run_id
        self.store = store
        self._runs: Dict[str, NodeRun] = {}
        self._lock = asyncio.Lock()
        self._persist_lock = asyncio.Lock()
        self._sealed = False
        self.persistence_errors: List[str] = []

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._runs)

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._runs

    def has_run(self, node_id: str) -> bool:
        return node_id in self._runs

    def get(self, node_id: str) -> Optional[NodeRun]:
        return self._runs.get(node_id)

    def status_of(self, node_id: str) -> Optional[ExecutionStatus]:
        run = self._runs.get(node_id)
        return run.status if run else None

    def node_runs(self) -> List[NodeRun]:
        """NodeRuns in creation order (deep copies)."""
        return [run.model_copy(deep=True) for run in self._runs.values()]

    def snapshot(self) -> List[Dict[str, Any]]:
        """JSON-ready camelCase view, as persisted in ``workflow_runs.node_runs``."""
        return [run.to_json_dict() for run in self._runs.values()]

    def aggregate_status(self, cancelled: bool = False) -> RunStatus:
        return aggregate_status(list(self._runs.values()), cancelled=cancelled)

    @property
    def sealed(self) -> bool:
        return self._sealed

    @property
    def durable(self) -> bool:
        return not self.persistence_errors

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def claim(self, node_id: str) -> Optional[NodeRun]:
        """
        Atomically create the running NodeRun for ``node_id``.

        Returns None when the node already has a NodeRun in this run, whatever
        its status. The caller that gets a NodeRun back is the only one allowed
        to execute the node.
        """
        async with self._lock:
            self._ensure_open()
            if node_id in self._runs:
                return None
            run = NodeRun(node_id=node_id, start_time=utcnow(), status=ExecutionStatus.RUNNING)
            self._runs[node_id] = run
        logger.debug(f"Claimed {node_id}", run_id=self.run_id)
        await self._persist()
        return run

    async def complete(self, node_id: str, output: Any) -> NodeRun:
        return await self._finish(node_id, ExecutionStatus.SUCCESS, output=output)

    async def fail(self, node_id: str, error: str) -> NodeRun:
        return await self._finish(node_id, ExecutionStatus.FAILED, error=error)

    async def cancel_open(self, reason: str = "Run cancelled") -> List[str]:
        """Mark every running NodeRun cancelled; terminal NodeRuns are left alone."""
        async with self._lock:
            self._ensure_open()
            cancelled = []
            for run in self._runs.values():
                if run.status == ExecutionStatus.RUNNING:
                    run.status = ExecutionStatus.CANCELLED
                    run.end_time = utcnow()
                    run.error = reason
                    cancelled.append(run.node_id)
        if cancelled:
            logger.warning(f"Cancelled in-flight nodes: {cancelled}", run_id=self.run_id)
            await self._persist()
        return cancelled

    def seal(self) -> None:
        """Freeze the ledger; later transitions raise RuntimeError."""
        self._sealed = True

    async def _finish(
        self,
        node_id: str,
        status: ExecutionStatus,
        output: Any = None,
        error: Optional[str] = None,
    ) -> NodeRun:
        async with self._lock:
            self._ensure_open()
            run = self._runs.get(node_id)
            if run is None:
                raise KeyError(f"No NodeRun claimed for node '{node_id}'")
            if run.status != ExecutionStatus.RUNNING:
                # running -> terminal happens exactly once
                return run
            run.status = status
            run.end_time = utcnow()
            run.output = output
            run.error = error
        await self._persist()
        return run

    def _ensure_open(self):
        if self._sealed:
            raise RuntimeError(f"Ledger for run {self.run_id} is sealed")

    async def _persist(self) -> None:
        if self.store is None:
            return
        # Writes are serialized and always carry the latest state.
        async with self._persist_lock:
            snapshot = self.snapshot()
            try:
                await self.store.update_run(self.run_id, node_runs=snapshot)
            except PersistenceError as e:
                self.persistence_errors.append(str(e))
                logger.error(
                    "Failed to persist ledger snapshot; continuing with in-memory ledger",
                    data={"error": str(e), "node_runs": len(snapshot)},
                    run_id=self.run_id,
                )
