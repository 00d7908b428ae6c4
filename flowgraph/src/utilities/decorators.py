from typing import Callable, Optional

from .registries import TASK_EXECUTOR_REGISTRY, TaskExecutorRegistry


########register task executor decorator########
def register_task_executor(kind: str, node_type: Optional[str] = None, registry: Optional[TaskExecutorRegistry] = None):
    """
    Decorator that registers a task executor for a task kind.

    With ``node_type`` the executor only matches nodes of that type, taking
    precedence over a kind-only registration. Without ``registry`` the global
    TASK_EXECUTOR_REGISTRY is used.
    """

    def decorator(executor_fn: Callable):
        target = registry or TaskExecutorRegistry(TASK_EXECUTOR_REGISTRY)
        target.register(kind, executor_fn, node_type=node_type)
        return executor_fn

    return decorator
