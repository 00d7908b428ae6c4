from .src.data_models.workflow_spec import NodeType, NodeSpec, EdgeSpec, WorkflowSpec
from .src.data_models.execution_models import (
    ExecutionStatus,
    RunStatus,
    NodeRun,
    WorkflowRun,
    RunResult,
)
from .src.utilities.dag_executor import DAGExecutor, create_dag_executor_from_spec
from .src.utilities.run_ledger import RunLedger
from .src.utilities.branch_evaluator import BranchEvaluator
from .src.utilities.registries import TaskContext, TaskExecutorRegistry, get_default_registry
from .src.utilities.decorators import register_task_executor
from .src.utilities.constants import ConditionPolicy, EngineConfig, get_engine_config
from .src.utilities.errors import (
    FlowGraphError,
    GraphError,
    TaskError,
    PersistenceError,
    EvaluationError,
    WorkflowNotFoundError,
    RunNotFoundError,
    NodeTimeoutError,
)
from .src.storage import WorkflowStore
from .src.workflow_runner import WorkflowRunner

__all__ = [
    ###graph###
    "NodeType",
    "NodeSpec",
    "EdgeSpec",
    "WorkflowSpec",
    ###runs###
    "ExecutionStatus",
    "RunStatus",
    "NodeRun",
    "WorkflowRun",
    "RunResult",
    ###engine###
    "DAGExecutor",
    "create_dag_executor_from_spec",
    "RunLedger",
    "BranchEvaluator",
    "TaskContext",
    "TaskExecutorRegistry",
    "get_default_registry",
    "register_task_executor",
    ###configuration###
    "ConditionPolicy",
    "EngineConfig",
    "get_engine_config",
    ###errors###
    "FlowGraphError",
    "GraphError",
    "TaskError",
    "PersistenceError",
    "EvaluationError",
    "WorkflowNotFoundError",
    "RunNotFoundError",
    "NodeTimeoutError",
    ###storage###
    "WorkflowStore",
    "WorkflowRunner",
]


__version__ = "0.1.0"
