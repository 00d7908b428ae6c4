"""
Task executor registry.

Executors are looked up by the node's declared task kind, never by its display
name. Resolution order for a node:

1. ``(node.type, node.kind)``
2. ``node.kind``
3. the per-type default kind (trigger -> data_extraction, decision -> decision)
4. the pass-through executor, which echoes its input

An executor is ``fn(node, input_data, context) -> output`` (sync or async) and
signals failure by raising, preferably TaskError.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Tuple, Union

from ..data_models.workflow_spec import NodeSpec, NodeType
from .asyncio_utils import call_maybe_async
from .io_logger import get_component_logger

logger = get_component_logger("TASK_REGISTRY")

TaskExecutor = Callable[..., Any]
RegistryKey = Union[str, Tuple[str, str]]

PASS_THROUGH = "pass_through"

DEFAULT_KIND_BY_TYPE: Dict[NodeType, str] = {
    NodeType.TRIGGER: "data_extraction",
    NodeType.DECISION: "decision",
}


@dataclass
class TaskContext:
    """What an executor may know about the run it is part of."""
    run_id: str
    workflow_id: Optional[str] = None
    store: Any = None
    extras: Dict[str, Any] = field(default_factory=dict)


def pass_through_executor(node: NodeSpec, input_data: Dict[str, Any], context: TaskContext) -> Dict[str, Any]:
    return {"processed": True, "data": input_data}


# A global registry mapping task kinds (or (node type, kind) pairs) to executors.
TASK_EXECUTOR_REGISTRY: Dict[RegistryKey, TaskExecutor] = {}


class TaskExecutorRegistry:
    """Resolves and invokes the executor for a node."""

    def __init__(self, executors: Optional[Dict[RegistryKey, TaskExecutor]] = None, fallback: TaskExecutor = pass_through_executor):
        # None means "share the global registry" so decorator registrations are visible.
        self.executors = TASK_EXECUTOR_REGISTRY if executors is None else executors
        self.fallback = fallback

    def register(self, kind: str, fn: TaskExecutor, node_type: Optional[Union[NodeType, str]] = None) -> TaskExecutor:
        key: RegistryKey = kind if node_type is None else (NodeType(node_type).value, kind)
        if key in self.executors and self.executors[key] is not fn:
            logger.warning(f"Replacing executor for {key}")
        self.executors[key] = fn
        return fn

    def resolve(self, node: NodeSpec) -> Tuple[str, TaskExecutor]:
        """Return ``(resolved_key, executor)`` for ``node``."""
        kind = node.kind or DEFAULT_KIND_BY_TYPE.get(node.type)
        if kind:
            typed_key = (node.type.value, kind)
            if typed_key in self.executors:
                return f"{typed_key[0]}:{kind}", self.executors[typed_key]
            if kind in self.executors:
                return kind, self.executors[kind]
            if node.kind:
                logger.warning(f"No executor registered for kind '{node.kind}' on node {node.id}; passing input through")
        return PASS_THROUGH, self.fallback

    async def execute(self, node: NodeSpec, input_data: Dict[str, Any], context: TaskContext) -> Any:
        key, executor = self.resolve(node)
        logger.debug(f"Dispatching {node.id} to {key}")
        return await call_maybe_async(executor, node, input_data, context)


def get_default_registry() -> TaskExecutorRegistry:
    """Registry over the global table with the built-in task executors loaded."""
    from .. import tasks  # noqa: F401  registers the built-in executors
    return TaskExecutorRegistry()
