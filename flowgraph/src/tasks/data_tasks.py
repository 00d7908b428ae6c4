import json
import random
from datetime import datetime, timezone
from typing import Any, Dict, List

from jsonschema import Draft7Validator
from jsonschema.exceptions import SchemaError

from ..data_models.workflow_spec import NodeSpec
from ..utilities.decorators import register_task_executor
from ..utilities.errors import TaskError
from ..utilities.io_logger import get_component_logger
from ..utilities.registries import TaskContext

logger = get_component_logger("TASKS")

##############################################
# Data executors
##############################################
"""
Executors take ``(node, input_data, context)`` and return the node output.
Records flow between nodes under the ``data`` key; failures are reported by
raising TaskError, which the engine stores on the NodeRun.
"""

SAMPLE_SOURCES: Dict[str, List[Dict[str, Any]]] = {
    "api": [
        {"id": "1", "name": "product1", "value": 100, "category": "electronics"},
        {"id": "2", "name": "product2", "value": 200, "category": "clothing"},
        {"id": "3", "name": "product3", "value": 300, "category": "home"},
    ],
    "database": [
        {"id": "4", "name": "product4", "value": 400, "category": "electronics"},
        {"id": "5", "name": "product5", "value": 500, "category": "food"},
    ],
    "file": [
        {"id": "6", "name": "product6", "value": 600, "category": "toys"},
    ],
}


def timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def records_from(input_data: Dict[str, Any]) -> List[Any]:
    data = input_data.get("data") or []
    return data if isinstance(data, list) else [data]


@register_task_executor("data_extraction")
def execute_data_extraction(node: NodeSpec, input_data: Dict[str, Any], context: TaskContext):
    """Emit sample records for ``config.source`` with a quality score in [0.7, 1.0)."""
    source = node.config.get("source", "api")
    data = [dict(record) for record in SAMPLE_SOURCES.get(source, SAMPLE_SOURCES["api"])]
    # A pinned quality keeps decision branches reproducible.
    quality = node.config.get("quality")
    if quality is None:
        quality = 0.7 + random.random() * 0.3
    logger.info(f"Extracted {len(data)} records from {source}", run_id=context.run_id)
    return {
        "data": data,
        "quality": quality,
        "source": source,
        "timestamp": timestamp(),
        "recordCount": len(data),
    }


@register_task_executor("data_validation")
def execute_data_validation(node: NodeSpec, input_data: Dict[str, Any], context: TaskContext):
    schema = node.config.get("schema")
    if not schema:
        raise TaskError("Validation schema not provided", node_id=node.id)
    try:
        Draft7Validator.check_schema(schema)
    except SchemaError as e:
        raise TaskError(f"Invalid validation schema: {e.message}", node_id=node.id) from e

    validator = Draft7Validator(schema)
    data = records_from(input_data)
    valid_records, invalid_records = [], []
    for record in data:
        errors = [error.message for error in validator.iter_errors(record)]
        if errors:
            invalid_records.append({"record": record, "errors": errors})
        else:
            valid_records.append(record)

    total = len(data)
    validation_rate = len(valid_records) / total if total else 0
    logger.info(f"Validated {total} records, {len(invalid_records)} invalid", run_id=context.run_id)
    return {
        "data": valid_records,
        "invalidRecords": invalid_records,
        "metrics": {
            "totalRecords": total,
            "validCount": len(valid_records),
            "invalidCount": len(invalid_records),
            "validationRate": validation_rate,
        },
        "quality": validation_rate,
        "timestamp": timestamp(),
    }


def _apply_transform(record: Dict[str, Any], transform: Dict[str, Any]) -> None:
    field, operation = transform.get("field"), transform.get("operation")
    if not field or not operation or field not in record:
        return
    value = record[field]
    is_number = isinstance(value, (int, float)) and not isinstance(value, bool)
    if operation == "uppercase" and isinstance(value, str):
        record[field] = value.upper()
    elif operation == "lowercase" and isinstance(value, str):
        record[field] = value.lower()
    elif operation == "multiply" and is_number:
        record[field] = value * (transform.get("factor") or 1)
    elif operation == "round" and is_number:
        record[field] = round(value)
    elif operation == "format" and transform.get("format"):
        record[field] = transform["format"].replace("{value}", str(value), 1)


@register_task_executor("data_transformation")
def execute_data_transformation(node: NodeSpec, input_data: Dict[str, Any], context: TaskContext):
    transformations = node.config.get("transformations") or []
    if not transformations:
        raise TaskError("No transformations specified", node_id=node.id)

    data = records_from(input_data)
    transformed = []
    for record in data:
        new_record = dict(record) if isinstance(record, dict) else record
        if isinstance(new_record, dict):
            for transform in transformations:
                _apply_transform(new_record, transform)
        transformed.append(new_record)

    before_size = len(json.dumps(data, default=str))
    after_size = len(json.dumps(transformed, default=str))
    return {
        "data": transformed,
        "metrics": {
            "recordCount": len(transformed),
            "transformationCount": len(transformations),
            "beforeSize": before_size,
            "afterSize": after_size,
            "sizeChange": after_size - before_size,
        },
        "quality": input_data.get("quality") or 0.9,
        "timestamp": timestamp(),
    }


@register_task_executor("data_loading")
async def execute_data_loading(node: NodeSpec, input_data: Dict[str, Any], context: TaskContext):
    destination = node.config.get("destination")
    table = node.config.get("table")
    mode = node.config.get("mode", "append")
    if not destination or not table:
        raise TaskError("Loading destination or table not provided", node_id=node.id)

    data = records_from(input_data)
    inserted = 0
    if destination == "database" and table == "processed_data":
        if context.store is None:
            raise TaskError("No data store configured for database loading", node_id=node.id)
        records = [item for item in data if isinstance(item, dict)]
        inserted = await context.store.insert_processed_records(
            records, run_id=context.run_id, quality=input_data.get("quality") or 0.9
        )
        logger.info(f"Loaded {inserted} records into {table}", run_id=context.run_id)

    return {
        "destination": destination,
        "table": table,
        "mode": mode,
        "metrics": {
            "recordCount": len(data),
            "insertedCount": inserted,
            "bytesProcessed": len(json.dumps(data, default=str)),
        },
        "timestamp": timestamp(),
        "data": input_data.get("data"),
    }
