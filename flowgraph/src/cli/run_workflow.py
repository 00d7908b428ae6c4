#!/usr/bin/env python3
"""
Command-line runner for workflow graph files.

Loads a WorkflowSpec from JSON, executes it in memory and prints the run
report (or the RunResult JSON with ``--json``). Exit status is 0 on success,
1 when the run failed or was cancelled, 2 when the graph is malformed.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import List, Optional
from uuid import uuid4

from pydantic import ValidationError

from ..data_models.execution_models import RunResult, RunStatus
from ..data_models.workflow_spec import WorkflowSpec
from ..utilities.constants import ConditionPolicy, get_engine_config
from ..utilities.errors import GraphError
from ..workflow_runner import WorkflowRunner


def load_workflow(path: Path) -> WorkflowSpec:
    """Read a workflow file in the editor's JSON format."""
    return WorkflowSpec.model_validate_json(path.read_text())


def format_run_result(result: RunResult) -> str:
    """Format a run result for terminal display."""
    lines = [f"Run {result.run_id}: {result.status.value.upper()}"]
    for run in result.node_runs:
        duration = f"{run.duration_seconds:.3f}s" if run.duration_seconds is not None else "-"
        line = f"  {run.node_id:<25} {run.status.value:<10} {duration:>9}"
        if run.error:
            line += f"  {run.error}"
        lines.append(line)
    if result.skipped_nodes:
        lines.append(f"  not reached: {', '.join(result.skipped_nodes)}")
    return "\n".join(lines)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Execute a workflow graph file",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("workflow", type=Path, help="Path to a workflow JSON file")
    parser.add_argument("--run-id", default=None, help="Run id (defaults to a new UUID)")
    parser.add_argument("--max-parallel", type=int, default=None, help="Maximum nodes executing at once")
    parser.add_argument(
        "--policy",
        choices=[policy.value for policy in ConditionPolicy],
        default=None,
        help="How to treat edge conditions that cannot be interpreted",
    )
    parser.add_argument("--timeout", type=float, default=None, help="Default per-node timeout in seconds")
    parser.add_argument("--json", action="store_true", help="Print the RunResult as JSON")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI function."""
    args = build_parser().parse_args(argv)

    try:
        spec = load_workflow(args.workflow)
    except OSError as e:
        print(f"❌ Cannot read {args.workflow}: {e}", file=sys.stderr)
        return 2
    except ValidationError as e:
        print(f"❌ Invalid workflow file {args.workflow}:\n{e}", file=sys.stderr)
        return 2

    config = get_engine_config(
        max_parallel_nodes=args.max_parallel,
        condition_policy=ConditionPolicy(args.policy) if args.policy else None,
        default_node_timeout=args.timeout,
    )
    runner = WorkflowRunner(config=config)
    run_id = args.run_id or str(uuid4())

    try:
        result = asyncio.run(runner.execute_graph(spec, run_id))
    except GraphError as e:
        print(f"❌ Malformed workflow graph: {e}", file=sys.stderr)
        for issue in e.issues:
            print(f"  - {issue}", file=sys.stderr)
        return 2

    if args.json:
        print(json.dumps(result.to_json_dict(), indent=2))
    else:
        print(format_run_result(result))
    return 0 if result.status == RunStatus.SUCCESS else 1


if __name__ == "__main__":
    sys.exit(main())
