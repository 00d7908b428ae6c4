"""Built-in task executors; importing this package registers them."""

from . import data_tasks, decision_tasks, notification_tasks  # noqa: F401
