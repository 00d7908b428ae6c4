from typing import Any, Dict

from ..data_models.workflow_spec import NodeSpec
from ..utilities.branch_evaluator import parse_condition
from ..utilities.decorators import register_task_executor
from ..utilities.errors import EvaluationError, TaskError
from ..utilities.registries import TaskContext
from .data_tasks import timestamp

# Metric value used when the input carries none.
DEFAULT_METRIC = 0.5


@register_task_executor("decision")
def execute_decision(node: NodeSpec, input_data: Dict[str, Any], context: TaskContext):
    """
    Evaluate ``config.condition`` (e.g. ``quality > 0.8``) against the input.

    The output echoes the condition so outgoing edges labelled with it or its
    complement can be routed on ``decision`` alone.
    """
    condition_text = node.config.get("condition")
    if not condition_text:
        raise TaskError("Decision condition not provided", node_id=node.id)
    condition = parse_condition(condition_text)
    if condition is None:
        raise TaskError(f"Unsupported decision condition: {condition_text}", node_id=node.id)

    field = node.config.get("field", condition.field)
    value = input_data.get(field)
    if value is None:
        value = DEFAULT_METRIC
    try:
        decision = condition.evaluate(value)
    except EvaluationError as e:
        raise TaskError(str(e), node_id=node.id) from e

    return {
        "decision": decision,
        "condition": condition_text,
        field: value,
        "timestamp": timestamp(),
        "data": input_data.get("data"),
    }
