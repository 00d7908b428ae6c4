"""
Console logger for the workflow engine.

Produces compact, symbol-tagged lines that stay readable when several nodes
log at once, with an optional JSON mode for machine parsing. Grouped mode
indents everything logged inside ``with logger.group(...)`` and prints the
elapsed time when the group closes.
"""

import json
import sys
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional

from .constants import use_structured_logs


_RESET = "\033[0m"
_TEXT = "\033[38;5;252m"
_DIM = "\033[38;5;240m"
_ACCENT = "\033[38;5;45m"
_KEY = "\033[38;5;110m"


class LogLevel(Enum):
    """Log levels with their marker, label and color."""
    DEBUG = ("·", "DEBUG", "\033[38;5;240m")
    INFO = ("●", "INFO", "\033[38;5;45m")
    SUCCESS = ("✔", "SUCCESS", "\033[38;5;35m")
    WARNING = ("▲", "WARN", "\033[38;5;214m")
    ERROR = ("✖", "ERROR", "\033[38;5;196m")


@dataclass
class LogContext:
    """One level of grouped logging."""
    title: str
    run_id: Optional[str] = None
    indent_level: int = 0
    parent: Optional["LogContext"] = None
    start_time: float = field(default_factory=lambda: datetime.now().timestamp())


class IOLogger:
    """
    Component logger with grouped/hierarchical output.

    Every message may carry a flat ``data`` dict which is rendered as a small
    tree under the message (or embedded in the JSON record in structured mode).
    """

    def __init__(self, component: str = "system", structured: Optional[bool] = None, stream=None):
        self.component = component.upper()
        self.structured = use_structured_logs() if structured is None else structured
        self._stream = stream
        self._contexts = threading.local()
        self._use_grouping = False

    def enable_grouping(self) -> "IOLogger":
        self._use_grouping = True
        return self

    @property
    def stream(self):
        return self._stream or sys.stdout

    @property
    def current_context(self) -> Optional[LogContext]:
        if not hasattr(self._contexts, "stack"):
            self._contexts.stack = []
        return self._contexts.stack[-1] if self._contexts.stack else None

    @contextmanager
    def group(self, title: str, run_id: Optional[str] = None) -> Iterator[LogContext]:
        """
        Open a grouped logging context.

        Usage:
            with logger.group("Run abc"):
                logger.info("visiting extract")
        """
        parent = self.current_context
        context = LogContext(
            title=title,
            run_id=run_id or (parent.run_id if parent else None),
            indent_level=(parent.indent_level + 1) if parent else 0,
            parent=parent,
        )
        if not hasattr(self._contexts, "stack"):
            self._contexts.stack = []
        self._contexts.stack.append(context)

        if self._use_grouping and not self.structured:
            self._emit(self._group_header(context))
        try:
            yield context
        finally:
            if self._use_grouping and not self.structured:
                self._emit(self._group_footer(context))
            self._contexts.stack.pop()

    def _emit(self, line: str):
        print(line, file=self.stream)

    def _indent(self) -> str:
        context = self.current_context if self._use_grouping else None
        return "  " * context.indent_level if context else ""

    def _group_header(self, context: LogContext) -> str:
        indent = "  " * context.indent_level
        header = f"{indent}{_DIM}┌─{_RESET} {_ACCENT}[{context.title}]{_RESET}"
        if context.run_id:
            header += f" {_DIM}run:{_ACCENT}{context.run_id[:8]}{_RESET}"
        return header

    def _group_footer(self, context: LogContext) -> str:
        indent = "  " * context.indent_level
        duration = datetime.now().timestamp() - context.start_time
        return f"{indent}{_DIM}└─ done in {_ACCENT}{duration:.3f}s{_RESET}"

    def _format_message(
        self,
        level: LogLevel,
        message: str,
        data: Optional[Dict[str, Any]] = None,
        run_id: Optional[str] = None,
    ) -> str:
        context = self.current_context
        run_id = run_id or (context.run_id if context else None)

        if self.structured:
            return json.dumps({
                "timestamp": datetime.now().isoformat(),
                "level": level.value[1],
                "component": self.component,
                "message": message,
                "run_id": run_id,
                "data": data or {},
            }, default=str)

        marker, label, color = level.value
        indent = self._indent()
        if self._use_grouping and context:
            line = f"{indent}{_DIM}│{_RESET} {color}{marker}{_RESET} {_TEXT}{message}{_RESET}"
        else:
            timestamp = datetime.now().strftime("%H:%M:%S.%f")[:-3]
            source = self.component if not run_id else f"{self.component}▸run:{run_id[:8]}"
            line = (
                f"{_DIM}{timestamp}{_RESET} {color}{marker} {label:7}{_RESET} "
                f"{_DIM}[{_RESET}{_KEY}{source}{_RESET}{_DIM}]{_RESET} {_TEXT}{message}{_RESET}"
            )

        if data:
            items = list(data.items())
            for i, (key, value) in enumerate(items):
                branch = "└─" if i == len(items) - 1 else "├─"
                if isinstance(value, (list, tuple, set)) and len(value) > 5:
                    value = f"[{len(value)} items]"
                line += f"\n{indent}{_DIM}│   {branch}{_RESET} {_KEY}{key}:{_RESET} {_TEXT}{value}{_RESET}"
        return line

    def debug(self, message: str, data: Optional[Dict[str, Any]] = None, run_id: Optional[str] = None):
        self._emit(self._format_message(LogLevel.DEBUG, message, data, run_id))

    def info(self, message: str, data: Optional[Dict[str, Any]] = None, run_id: Optional[str] = None):
        self._emit(self._format_message(LogLevel.INFO, message, data, run_id))

    def success(self, message: str, data: Optional[Dict[str, Any]] = None, run_id: Optional[str] = None):
        self._emit(self._format_message(LogLevel.SUCCESS, message, data, run_id))

    def warning(self, message: str, data: Optional[Dict[str, Any]] = None, run_id: Optional[str] = None):
        self._emit(self._format_message(LogLevel.WARNING, message, data, run_id))

    def error(self, message: str, data: Optional[Dict[str, Any]] = None, run_id: Optional[str] = None):
        self._emit(self._format_message(LogLevel.ERROR, message, data, run_id))

    def execution_plan(self, title: str, batches: List[List[str]], parallelism: int = 1):
        """Log the dependency layers of a graph, one line per layer."""
        if self.structured:
            self.info(title, data={"batches": batches, "parallelism": parallelism})
            return
        indent = self._indent()
        self._emit(
            f"{indent}{_DIM}│{_RESET} {_TEXT}{title}: {_ACCENT}{len(batches)} layers{_RESET}, "
            f"workers: {_ACCENT}{parallelism}{_RESET}"
        )
        for i, batch in enumerate(batches):
            branch = "└─" if i == len(batches) - 1 else "├─"
            self._emit(f"{indent}{_DIM}│   {branch}{_RESET} layer {i}: {_ACCENT}{batch}{_RESET}")

    def run_report(self, title: str, report: Dict[str, Any], run_id: Optional[str] = None):
        """Log an end-of-run summary block."""
        if self.structured:
            self.info(title, data=report, run_id=run_id)
            return
        rule = "─" * (len(title) + 12)
        lines = [f"{_DIM}{rule}{_RESET}", f"{_ACCENT}  RUN REPORT  {_RESET}{_TEXT}{title}{_RESET}", f"{_DIM}{rule}{_RESET}"]
        for key, value in report.items():
            lines.append(f"{_DIM}▸{_RESET} {_KEY}{key.upper().replace('_', ' ')}:{_RESET} {_TEXT}{value}{_RESET}")
        self._emit("\n".join(lines))


def get_component_logger(component: str, grouped: bool = False) -> IOLogger:
    """Get a logger for a specific component."""
    logger = IOLogger(component)
    if grouped:
        logger.enable_grouping()
    return logger


runner_logger = get_component_logger("RUNNER")
server_logger = get_component_logger("SERVER")
