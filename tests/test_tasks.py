"""
Tests for the built-in task executors.
"""

import pytest

from flowgraph.src.data_models.workflow_spec import NodeSpec
from flowgraph.src.tasks.data_tasks import (
    SAMPLE_SOURCES,
    execute_data_extraction,
    execute_data_loading,
    execute_data_transformation,
    execute_data_validation,
)
from flowgraph.src.tasks.decision_tasks import execute_decision
from flowgraph.src.tasks.notification_tasks import execute_error_handling, execute_notification
from flowgraph.src.utilities.errors import TaskError
from flowgraph.src.utilities.registries import TaskContext


RECORDS = [
    {"id": "1", "name": "product1", "value": 100, "category": "electronics"},
    {"id": "2", "name": "product2", "value": 200.6, "category": "clothing"},
    {"id": "3", "name": "product3", "category": "home"},
]


def node(kind, **config):
    return NodeSpec(id=kind, name=kind, kind=kind, config=config)


@pytest.fixture
def context():
    return TaskContext(run_id="run-tasks", workflow_id="wf-tasks")


class FakeStore:
    def __init__(self):
        self.inserted = []

    async def insert_processed_records(self, records, run_id, quality=None):
        self.inserted.append((records, run_id, quality))
        return len(records)


class TestExtraction:
    @pytest.mark.parametrize("source", ["api", "database", "file"])
    def test_sources(self, source, context):
        output = execute_data_extraction(node("data_extraction", source=source), {}, context)

        assert output["data"] == SAMPLE_SOURCES[source]
        assert output["recordCount"] == len(SAMPLE_SOURCES[source])
        assert output["source"] == source
        assert 0.7 <= output["quality"] <= 1.0

    def test_unknown_source_falls_back_to_api(self, context):
        output = execute_data_extraction(node("data_extraction", source="ftp"), {}, context)
        assert output["data"] == SAMPLE_SOURCES["api"]

    def test_pinned_quality(self, context):
        output = execute_data_extraction(node("data_extraction", quality=0.75), {}, context)
        assert output["quality"] == 0.75

    def test_records_are_copies(self, context):
        output = execute_data_extraction(node("data_extraction"), {}, context)
        output["data"][0]["name"] = "mutated"
        assert SAMPLE_SOURCES["api"][0]["name"] == "product1"


class TestValidation:
    SCHEMA = {"type": "object", "required": ["id", "name", "value"], "properties": {"value": {"type": "number"}}}

    def test_splits_valid_and_invalid(self, context):
        output = execute_data_validation(node("data_validation", schema=self.SCHEMA), {"data": RECORDS}, context)

        assert [record["id"] for record in output["data"]] == ["1", "2"]
        assert len(output["invalidRecords"]) == 1
        assert output["invalidRecords"][0]["record"]["id"] == "3"
        assert "'value' is a required property" in output["invalidRecords"][0]["errors"][0]
        assert output["metrics"] == {"totalRecords": 3, "validCount": 2, "invalidCount": 1, "validationRate": 2 / 3}
        assert output["quality"] == 2 / 3

    def test_empty_input_has_zero_rate(self, context):
        output = execute_data_validation(node("data_validation", schema=self.SCHEMA), {}, context)
        assert output["metrics"]["validationRate"] == 0

    def test_missing_schema(self, context):
        with pytest.raises(TaskError, match="Validation schema not provided"):
            execute_data_validation(node("data_validation"), {"data": RECORDS}, context)

    def test_broken_schema(self, context):
        with pytest.raises(TaskError, match="Invalid validation schema"):
            execute_data_validation(node("data_validation", schema={"type": "not-a-type"}), {"data": RECORDS}, context)


class TestTransformation:
    def test_operations(self, context):
        transformations = [
            {"field": "name", "operation": "uppercase"},
            {"field": "category", "operation": "format", "format": "cat:{value}"},
            {"field": "value", "operation": "multiply", "factor": 2},
            {"field": "value", "operation": "round"},
            {"field": "missing", "operation": "lowercase"},
        ]
        output = execute_data_transformation(
            node("data_transformation", transformations=transformations), {"data": RECORDS[:2]}, context
        )

        assert output["data"] == [
            {"id": "1", "name": "PRODUCT1", "value": 200, "category": "cat:electronics"},
            {"id": "2", "name": "PRODUCT2", "value": 401, "category": "cat:clothing"},
        ]
        assert RECORDS[0]["name"] == "product1"
        assert output["metrics"]["recordCount"] == 2
        assert output["metrics"]["transformationCount"] == 5
        assert output["metrics"]["sizeChange"] == output["metrics"]["afterSize"] - output["metrics"]["beforeSize"]

    def test_type_guards(self, context):
        transformations = [{"field": "value", "operation": "uppercase"}, {"field": "name", "operation": "round"}]
        output = execute_data_transformation(
            node("data_transformation", transformations=transformations), {"data": [RECORDS[0]]}, context
        )
        assert output["data"] == [RECORDS[0]]

    def test_quality_is_carried_or_defaulted(self, context):
        config = {"transformations": [{"field": "name", "operation": "lowercase"}]}
        assert execute_data_transformation(node("data_transformation", **config), {"quality": 0.7}, context)["quality"] == 0.7
        assert execute_data_transformation(node("data_transformation", **config), {}, context)["quality"] == 0.9

    def test_requires_transformations(self, context):
        with pytest.raises(TaskError, match="No transformations specified"):
            execute_data_transformation(node("data_transformation"), {"data": RECORDS}, context)


class TestDecision:
    @pytest.mark.parametrize("quality,expected", [(0.95, True), (0.8, False), (0.3, False)])
    def test_quality_threshold(self, quality, expected, context):
        output = execute_decision(node("decision", condition="quality > 0.8"), {"quality": quality, "data": [1]}, context)

        assert output["decision"] is expected
        assert output["condition"] == "quality > 0.8"
        assert output["quality"] == quality
        assert output["data"] == [1]

    def test_missing_metric_defaults_to_half(self, context):
        output = execute_decision(node("decision", condition="quality <= 0.8"), {}, context)
        assert output["quality"] == 0.5
        assert output["decision"] is True

    def test_other_fields(self, context):
        output = execute_decision(node("decision", condition="recordCount >= 3"), {"recordCount": 2}, context)
        assert output["decision"] is False
        assert output["recordCount"] == 2

    def test_missing_condition(self, context):
        with pytest.raises(TaskError, match="Decision condition not provided"):
            execute_decision(node("decision"), {"quality": 0.9}, context)

    def test_unsupported_condition(self, context):
        with pytest.raises(TaskError, match="Unsupported decision condition"):
            execute_decision(node("decision", condition="looks fine"), {}, context)

    def test_non_numeric_metric(self, context):
        with pytest.raises(TaskError):
            execute_decision(node("decision", condition="quality > 0.8"), {"quality": "great"}, context)


class TestLoading:
    @pytest.mark.asyncio
    async def test_inserts_into_processed_data(self):
        store = FakeStore()
        context = TaskContext(run_id="run-load", store=store)
        output = await execute_data_loading(
            node("data_loading", destination="database", table="processed_data"),
            {"data": RECORDS[:2], "quality": 0.85},
            context,
        )

        records, run_id, quality = store.inserted[0]
        assert records == RECORDS[:2]
        assert run_id == "run-load"
        assert quality == 0.85
        assert output["metrics"]["recordCount"] == 2
        assert output["metrics"]["insertedCount"] == 2
        assert output["mode"] == "append"

    @pytest.mark.asyncio
    async def test_other_destinations_are_not_written(self, context):
        output = await execute_data_loading(
            node("data_loading", destination="warehouse", table="sales", mode="replace"), {"data": RECORDS}, context
        )
        assert output["metrics"]["insertedCount"] == 0
        assert output["mode"] == "replace"
        assert output["data"] == RECORDS

    @pytest.mark.asyncio
    async def test_requires_destination_and_table(self, context):
        with pytest.raises(TaskError, match="Loading destination or table not provided"):
            await execute_data_loading(node("data_loading", destination="database"), {}, context)

    @pytest.mark.asyncio
    async def test_database_load_needs_a_store(self, context):
        with pytest.raises(TaskError, match="No data store configured"):
            await execute_data_loading(
                node("data_loading", destination="database", table="processed_data"), {"data": RECORDS}, context
            )


class TestErrorHandlingAndNotification:
    def test_error_handling_counts_invalid_records(self, context):
        output = execute_error_handling(
            node("error_handling", notify=True), {"invalidRecords": [{"record": {}}], "data": []}, context
        )
        assert output["action"] == "log"
        assert output["notify"] is True
        assert output["retry"] is False
        assert output["invalidRecordCount"] == 1

    def test_notification_content(self, context):
        output = execute_notification(
            node("notification", channel="slack", recipients=["ops"], template="daily"), {"data": RECORDS}, context
        )
        assert output["sent"] is True
        assert output["channel"] == "slack"
        assert output["content"] == {
            "subject": "Workflow Execution: daily",
            "body": "Workflow executed successfully with 3 records processed.",
        }
