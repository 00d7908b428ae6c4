"""
DAG Execution Engine
====================

Walks a WorkflowSpec with a bounded pool of asyncio workers fed by a ready
queue of node ids. A node is visited whenever one of its predecessors
succeeds (or it is an entry node); a visit

1. returns at once if the ledger already holds a NodeRun for the node,
2. returns without a record unless every declared dependency succeeded,
3. claims the node in the ledger (at most one claim per node per run),
4. assembles input from the dependency outputs and runs the task executor,
5. records success or failure, and on success only enqueues the targets of
   the outgoing edges the BranchEvaluator lets through.

A failed node therefore never enqueues anything; its descendants are simply
never claimed. Traversal ends when the queue drains, and the run status is
aggregated once from the sealed ledger.
"""

import asyncio
from typing import Any, Dict, List, Optional

from ..data_models.execution_models import ExecutionStatus, RunResult
from ..data_models.workflow_spec import NodeSpec, WorkflowSpec
from .branch_evaluator import BranchEvaluator
from .constants import EngineConfig, get_engine_config
from .errors import NodeTimeoutError, TaskError
from .io_logger import get_component_logger
from .registries import TaskContext, TaskExecutorRegistry, get_default_registry
from .run_ledger import RunLedger

logger = get_component_logger("DAG_EXECUTOR", grouped=True)


def assemble_input(node: NodeSpec, ledger: RunLedger) -> Dict[str, Any]:
    """
    Merge the outputs of ``node``'s dependencies into one input dict.

    A dependency output carrying a ``data`` payload contributes the payload's
    fields (a non-mapping payload lands under ``data``); any other output is
    placed under the dependency's node id. Later dependencies win on key
    collisions.
    """
    input_data: Dict[str, Any] = {}
    for dep_id in node.dependencies:
        run = ledger.get(dep_id)
        if run is None or not run.output:
            continue
        output = run.output
        payload = output.get("data") if isinstance(output, dict) else None
        if payload:
            if isinstance(payload, dict):
                input_data.update(payload)
            else:
                input_data["data"] = payload
        else:
            input_data[dep_id] = output
    return input_data


class DAGExecutor:
    """
    Executes one workflow graph per ``execute_dag`` call.

    Build once with ``build_execution_graph``; each execution gets its own
    ledger, so an executor may be reused for consecutive runs but not for
    concurrent ones.
    """

    def __init__(
        self,
        registry: Optional[TaskExecutorRegistry] = None,
        evaluator: Optional[BranchEvaluator] = None,
        config: Optional[EngineConfig] = None,
    ):
        self.config = config or get_engine_config()
        self.registry = registry or get_default_registry()
        self.evaluator = evaluator or BranchEvaluator(self.config.condition_policy)
        self.workflow_spec: Optional[WorkflowSpec] = None
        self.nodes: Dict[str, NodeSpec] = {}
        self.execution_order: List[List[str]] = []
        self.run_id: Optional[str] = None
        self._queue: Optional[asyncio.Queue] = None
        self._cancel_event: Optional[asyncio.Event] = None
        self._cancel_requested = False

    def build_execution_graph(self, workflow_spec: WorkflowSpec) -> Dict[str, NodeSpec]:
        """
        Load and check a graph. Raises GraphError before anything executes when
        an edge or dependency points at a missing node, ids repeat, or the graph
        has a cycle.
        """
        with logger.group("Building DAG"):
            logger.info(f"Building DAG with {len(workflow_spec.nodes)} nodes and {len(workflow_spec.edges)} edges")
            self.execution_order = workflow_spec.ensure_executable()
            for issue in workflow_spec.validate_structure():
                logger.warning(issue)
            self.workflow_spec = workflow_spec
            self.nodes = workflow_spec.node_map()
            logger.success(f"DAG built with {len(self.execution_order)} dependency layers")
            logger.execution_plan("Dependency layers", self.execution_order, parallelism=self.config.max_parallel_nodes)
        return self.nodes

    def cancel(self) -> None:
        """Stop the in-flight run: no new visits, running nodes become cancelled."""
        self._cancel_requested = True
        if self._cancel_event is not None:
            self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_requested

    async def execute_dag(
        self,
        run_id: str,
        ledger: Optional[RunLedger] = None,
        context: Optional[TaskContext] = None,
    ) -> RunResult:
        """
        Run the built graph to completion and return the aggregated result.

        Per-node failures are captured in the ledger; this only raises for
        programming errors (e.g. the graph was never built).
        """
        if self.workflow_spec is None:
            raise RuntimeError("build_execution_graph() must be called before execute_dag()")

        spec = self.workflow_spec
        self.run_id = run_id
        ledger = ledger or RunLedger(run_id)
        context = context or TaskContext(run_id=run_id, workflow_id=spec.id)
        self._queue = asyncio.Queue()
        self._cancel_event = asyncio.Event()
        if self._cancel_requested:
            self._cancel_event.set()

        with logger.group(f"Run {run_id}", run_id=run_id):
            entry_ids = [node.id for node in spec.entry_nodes()]
            logger.info(f"Entry nodes: {entry_ids}")
            for node_id in entry_ids:
                self._queue.put_nowait(node_id)

            worker_count = max(1, min(self.config.max_parallel_nodes, len(self.nodes) or 1))
            workers = [
                asyncio.create_task(self._worker(ledger, context), name=f"dag_worker_{i}")
                for i in range(worker_count)
            ]
            drained = asyncio.create_task(self._queue.join(), name="dag_drain")
            cancelled = asyncio.create_task(self._cancel_event.wait(), name="dag_cancel")

            try:
                done, _ = await asyncio.wait(
                    {drained, cancelled, *workers}, return_when=asyncio.FIRST_COMPLETED
                )
            finally:
                for task in (drained, cancelled, *workers):
                    task.cancel()
                await asyncio.gather(drained, cancelled, *workers, return_exceptions=True)

            for worker in workers:
                if worker in done and not worker.cancelled() and worker.exception() is not None:
                    raise worker.exception()

            if self._cancel_requested:
                await ledger.cancel_open("Run cancelled by caller")

            ledger.seal()
            result = RunResult.from_ledger(
                run_id=run_id,
                node_runs=ledger.node_runs(),
                all_node_ids=list(self.nodes),
                workflow_id=spec.id,
                persistence_errors=ledger.persistence_errors,
                cancelled=self._cancel_requested,
            )
            self._log_result(result)
        self._cancel_requested = False
        return result

    async def _worker(self, ledger: RunLedger, context: TaskContext):
        while True:
            node_id = await self._queue.get()
            try:
                if not self._cancel_event.is_set():
                    await self._visit(node_id, ledger, context)
            finally:
                self._queue.task_done()

    async def _visit(self, node_id: str, ledger: RunLedger, context: TaskContext):
        node = self.nodes[node_id]

        if ledger.has_run(node_id):
            logger.debug(f"{node_id} already processed, skipping")
            return

        for dep_id in node.dependencies:
            if ledger.status_of(dep_id) != ExecutionStatus.SUCCESS:
                logger.debug(f"Dependency {dep_id} not yet successful, deferring {node_id}")
                return

        if await ledger.claim(node_id) is None:
            return

        input_data = assemble_input(node, ledger)
        logger.info(f"🚀 Executing {node_id} ({node.name or node.type.value})")
        try:
            output = await self._run_executor(node, input_data, context)
        except NodeTimeoutError as e:
            await ledger.fail(node_id, e.message)
            logger.error(f"  ⏱️ {node_id} → TIMED OUT after {e.timeout}s")
            return
        except TaskError as e:
            await ledger.fail(node_id, e.message)
            logger.error(f"  ❌ {node_id} → FAILED: {e.message}")
            return
        except Exception as e:
            message = str(e) or type(e).__name__
            await ledger.fail(node_id, message)
            logger.error(f"  ❌ {node_id} → FAILED: {message}", data={"exception": type(e).__name__})
            return

        await ledger.complete(node_id, output)
        logger.success(f"  ✅ {node_id} → SUCCESS")

        for edge in self.workflow_spec.successors(node_id):
            if self.evaluator.should_follow(edge, output, node):
                self._queue.put_nowait(edge.target)
            else:
                logger.info(f"  ⏭️  Not following {edge.id} ({node_id} → {edge.target}): {edge.condition}")

    def _timeout_for(self, node: NodeSpec) -> Optional[float]:
        return node.timeout_seconds or self.config.default_node_timeout

    async def _run_executor(self, node: NodeSpec, input_data: Dict[str, Any], context: TaskContext) -> Any:
        call = self.registry.execute(node, input_data, context)
        timeout = self._timeout_for(node)
        if not timeout:
            return await call
        try:
            return await asyncio.wait_for(call, timeout=timeout)
        except asyncio.TimeoutError as e:
            raise NodeTimeoutError(node.id, timeout) from e

    def _log_result(self, result: RunResult):
        if result.skipped_nodes:
            logger.info(f"Never reached: {result.skipped_nodes}")
        if not result.durable:
            logger.warning(
                "Run finished but some ledger writes failed; result may not be fully persisted",
                data={"errors": len(result.persistence_errors)},
            )
        logger.run_report(self.workflow_spec.name, result.summary(), run_id=result.run_id)

    def get_execution_summary(self) -> Dict[str, Any]:
        """Summary of the loaded graph's execution plan."""
        return {
            "total_nodes": len(self.nodes),
            "total_layers": len(self.execution_order),
            "max_parallelism": max((len(batch) for batch in self.execution_order), default=0),
            "workers": self.config.max_parallel_nodes,
            "execution_order": self.execution_order,
            "entry_nodes": [node.id for node in self.workflow_spec.entry_nodes()] if self.workflow_spec else [],
            "dependencies": {node_id: list(node.dependencies) for node_id, node in self.nodes.items()},
        }


def create_dag_executor_from_spec(
    spec: WorkflowSpec,
    registry: Optional[TaskExecutorRegistry] = None,
    config: Optional[EngineConfig] = None,
) -> DAGExecutor:
    """Build a DAGExecutor for ``spec``; raises GraphError for malformed graphs."""
    executor = DAGExecutor(registry=registry, config=config)
    executor.build_execution_graph(spec)
    return executor
