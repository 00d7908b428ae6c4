from typing import Any, Dict

from ..data_models.workflow_spec import NodeSpec
from ..utilities.decorators import register_task_executor
from ..utilities.io_logger import get_component_logger
from ..utilities.registries import TaskContext
from .data_tasks import records_from, timestamp

logger = get_component_logger("TASKS")


@register_task_executor("error_handling")
def execute_error_handling(node: NodeSpec, input_data: Dict[str, Any], context: TaskContext):
    action = node.config.get("action", "log")
    invalid_records = input_data.get("invalidRecords") or []
    if action == "log":
        logger.warning(
            f"Error handling: {len(invalid_records)} invalid records detected",
            data={"invalidRecords": invalid_records},
            run_id=context.run_id,
        )
    return {
        "action": action,
        "notify": bool(node.config.get("notify", False)),
        "retry": bool(node.config.get("retry", False)),
        "invalidRecordCount": len(invalid_records),
        "timestamp": timestamp(),
        "data": input_data.get("data"),
    }


@register_task_executor("notification")
def execute_notification(node: NodeSpec, input_data: Dict[str, Any], context: TaskContext):
    """Render the notification; delivery is recorded, not performed."""
    channel = node.config.get("channel", "email")
    recipients = node.config.get("recipients") or []
    template = node.config.get("template", "default")
    content = {
        "subject": f"Workflow Execution: {template}",
        "body": f"Workflow executed successfully with {len(records_from(input_data))} records processed.",
    }
    logger.info(f"📣 Notification via {channel} to {len(recipients)} recipient(s)", run_id=context.run_id)
    return {
        "channel": channel,
        "recipients": recipients,
        "template": template,
        "content": content,
        "sent": True,
        "timestamp": timestamp(),
    }
