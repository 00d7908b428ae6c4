"""
WorkflowRunner: ties a WorkflowStore to the DAG executor.

The runner owns the run lifecycle around a traversal: it loads the stored
workflow and run records, refuses malformed graphs before anything executes,
streams ledger snapshots to the store while nodes run, and writes the final
run and workflow status once the ledger is sealed.
"""

import asyncio
from typing import Dict, Optional, Set

from .data_models.execution_models import RunResult, RunStatus, WorkflowRun, utcnow
from .data_models.workflow_spec import WorkflowSpec
from .storage import WorkflowStore
from .utilities.constants import EngineConfig, get_engine_config
from .utilities.dag_executor import DAGExecutor, create_dag_executor_from_spec
from .utilities.errors import GraphError, PersistenceError, RunNotFoundError, WorkflowNotFoundError
from .utilities.io_logger import runner_logger as logger
from .utilities.registries import TaskContext, TaskExecutorRegistry, get_default_registry
from .utilities.run_ledger import RunLedger


class WorkflowRunner:
    def __init__(
        self,
        store: Optional[WorkflowStore] = None,
        registry: Optional[TaskExecutorRegistry] = None,
        config: Optional[EngineConfig] = None,
    ):
        self.store = store
        self.registry = registry or get_default_registry()
        self.config = config or get_engine_config()
        self._executors: Dict[str, DAGExecutor] = {}
        self._tasks: Dict[str, asyncio.Task] = {}
        self._pending_cancels: Set[str] = set()

    def _require_store(self) -> WorkflowStore:
        if self.store is None:
            raise RuntimeError("This operation needs a WorkflowStore")
        return self.store

    # ------------------------------------------------------------------
    # Starting runs
    # ------------------------------------------------------------------

    async def create_run(self, workflow_id: str) -> WorkflowRun:
        """Create a ``running`` run record and mark the workflow running."""
        store = self._require_store()
        spec = await store.get_workflow(workflow_id)
        if spec is None:
            raise WorkflowNotFoundError(workflow_id)
        run = await store.create_run(workflow_id, version=spec.version)
        await store.update_workflow(workflow_id, status="running", last_run_at=run.start_time)
        return run

    async def start_run(self, workflow_id: str) -> RunResult:
        """Create a run for ``workflow_id`` and execute it to completion."""
        run = await self.create_run(workflow_id)
        return await self.execute(workflow_id, run.id)

    async def submit_run(self, workflow_id: str) -> WorkflowRun:
        """Create a run and execute it in the background; returns the fresh run record."""
        run = await self.create_run(workflow_id)
        task = asyncio.create_task(self.execute(workflow_id, run.id), name=f"run_{run.id}")
        self._tasks[run.id] = task
        task.add_done_callback(lambda t, run_id=run.id: self._on_background_done(run_id, t))
        return run

    def _on_background_done(self, run_id: str, task: asyncio.Task):
        self._tasks.pop(run_id, None)
        self._pending_cancels.discard(run_id)
        if task.cancelled():
            logger.warning(f"Background run {run_id} was cancelled before finishing", run_id=run_id)
        elif task.exception() is not None:
            error = task.exception()
            logger.error(f"Background run failed: {error}", data={"exception": type(error).__name__}, run_id=run_id)

    async def wait_for_run(self, run_id: str) -> Optional[RunResult]:
        """Await a background run started with ``submit_run``; None if it is not in flight."""
        task = self._tasks.get(run_id)
        if task is None:
            return None
        return await task

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute(self, workflow_id: str, run_id: str) -> RunResult:
        """
        Execute a stored workflow under an existing run record.

        Raises WorkflowNotFoundError / RunNotFoundError when a record is
        missing, and GraphError when the graph is malformed; in the latter case
        the run is marked failed with no NodeRuns and the workflow failed.
        """
        store = self._require_store()
        spec = await store.get_workflow(workflow_id)
        if spec is None:
            raise WorkflowNotFoundError(workflow_id)
        run = await store.get_run(run_id)
        if run is None:
            raise RunNotFoundError(run_id)

        logger.info(f"Starting execution of workflow {workflow_id}, run {run_id}", run_id=run_id)
        try:
            executor = create_dag_executor_from_spec(spec, registry=self.registry, config=self.config)
        except GraphError as e:
            logger.error(f"Refusing to run malformed workflow: {e}", data={"issues": e.issues}, run_id=run_id)
            await self._mark_rejected(workflow_id, run_id)
            raise

        ledger = RunLedger(run_id, store=store)
        context = TaskContext(run_id=run_id, workflow_id=workflow_id, store=store)
        result = await self._traverse(executor, run_id, ledger, context)
        await self._finalize(workflow_id, result, ledger)
        return result

    async def execute_graph(self, spec: WorkflowSpec, run_id: str) -> RunResult:
        """Execute an in-memory graph without touching the store."""
        executor = create_dag_executor_from_spec(spec, registry=self.registry, config=self.config)
        context = TaskContext(run_id=run_id, workflow_id=spec.id, store=self.store)
        return await self._traverse(executor, run_id, RunLedger(run_id), context)

    async def _traverse(self, executor: DAGExecutor, run_id: str, ledger: RunLedger, context: TaskContext) -> RunResult:
        self._executors[run_id] = executor
        if run_id in self._pending_cancels:
            executor.cancel()
        try:
            return await executor.execute_dag(run_id, ledger=ledger, context=context)
        finally:
            self._executors.pop(run_id, None)
            self._pending_cancels.discard(run_id)

    def cancel(self, run_id: str) -> bool:
        """Request cancellation of an in-flight run. Returns False if the run is not in flight."""
        executor = self._executors.get(run_id)
        if executor is not None:
            logger.warning(f"Cancelling run {run_id}", run_id=run_id)
            executor.cancel()
            return True
        if run_id in self._tasks:
            # scheduled but traversal not started yet
            self._pending_cancels.add(run_id)
            return True
        return False

    def is_active(self, run_id: str) -> bool:
        return run_id in self._executors or run_id in self._tasks

    # ------------------------------------------------------------------
    # Final writes
    # ------------------------------------------------------------------

    async def _finalize(self, workflow_id: str, result: RunResult, ledger: RunLedger):
        store = self._require_store()
        try:
            await store.update_run(
                result.run_id,
                status=result.status.value,
                end_time=utcnow(),
                node_runs=ledger.snapshot(),
            )
            workflow_status = "active" if result.status == RunStatus.SUCCESS else "failed"
            await store.update_workflow(workflow_id, status=workflow_status)
        except PersistenceError as e:
            result.persistence_errors.append(str(e))
            result.durable = False
            logger.error("Final run write failed", data={"error": str(e)}, run_id=result.run_id)
        logger.info(f"Workflow execution completed with status: {result.status.value}", run_id=result.run_id)

    async def _mark_rejected(self, workflow_id: str, run_id: str):
        store = self._require_store()
        try:
            await store.update_run(run_id, status=RunStatus.FAILED.value, end_time=utcnow(), node_runs=[])
            await store.update_workflow(workflow_id, status="failed")
        except PersistenceError as e:
            logger.error("Could not record rejected run", data={"error": str(e)}, run_id=run_id)
