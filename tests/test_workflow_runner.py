"""
Tests for WorkflowRunner: the stored-run lifecycle around a traversal.
"""

import asyncio

import pytest

from flowgraph.src.data_models.execution_models import ExecutionStatus, RunStatus
from flowgraph.src.utilities.constants import EngineConfig
from flowgraph.src.utilities.errors import GraphError, RunNotFoundError, WorkflowNotFoundError
from flowgraph.src.workflow_runner import WorkflowRunner

from fixtures.workflow_fixtures import etl_workflow_spec, make_edge, make_node, make_spec, open_store

pytestmark = pytest.mark.storage


class TestExecute:
    @pytest.mark.asyncio
    async def test_successful_run_is_persisted(self, db_path, linear_chain_spec, executors, engine_config):
        async with open_store(db_path) as store:
            await store.save_workflow(linear_chain_spec)
            runner = WorkflowRunner(store, registry=executors.registry(), config=engine_config)

            result = await runner.start_run(linear_chain_spec.id)
            run = await store.get_run(result.run_id)
            workflow = await store.get_workflow(linear_chain_spec.id)

        assert result.status == RunStatus.SUCCESS
        assert result.durable
        assert run.status == RunStatus.SUCCESS
        assert run.end_time is not None
        assert [node_run.node_id for node_run in run.node_runs] == ["A", "B", "C"]
        assert all(node_run.status == ExecutionStatus.SUCCESS for node_run in run.node_runs)
        assert workflow.status == "active"
        assert workflow.last_run_at is not None

    @pytest.mark.asyncio
    async def test_failed_node_marks_workflow_failed(self, db_path, executors, engine_config):
        spec = make_spec([make_node("A"), make_node("B", ["A"], kind="fail")], [make_edge("A", "B")])
        async with open_store(db_path) as store:
            await store.save_workflow(spec)
            runner = WorkflowRunner(store, registry=executors.registry(), config=engine_config)

            result = await runner.start_run(spec.id)
            run = await store.get_run(result.run_id)
            workflow = await store.get_workflow(spec.id)

        assert result.status == RunStatus.FAILED
        assert run.status == RunStatus.FAILED
        assert run.node_runs[1].error == "B exploded"
        assert workflow.status == "failed"

    @pytest.mark.asyncio
    async def test_malformed_graph_fails_run_without_node_runs(self, db_path, executors, engine_config):
        spec = make_spec([make_node("A")], [make_edge("A", "ghost")])
        async with open_store(db_path) as store:
            await store.save_workflow(spec)
            runner = WorkflowRunner(store, registry=executors.registry(), config=engine_config)
            run = await runner.create_run(spec.id)

            with pytest.raises(GraphError):
                await runner.execute(spec.id, run.id)

            stored = await store.get_run(run.id)
            workflow = await store.get_workflow(spec.id)

        assert stored.status == RunStatus.FAILED
        assert stored.node_runs == []
        assert stored.end_time is not None
        assert workflow.status == "failed"
        assert executors.calls == []

    @pytest.mark.asyncio
    async def test_missing_records(self, db_path, linear_chain_spec, executors, engine_config):
        async with open_store(db_path) as store:
            runner = WorkflowRunner(store, registry=executors.registry(), config=engine_config)
            with pytest.raises(WorkflowNotFoundError, match="Workflow with ID nope not found"):
                await runner.execute("nope", "run-x")

            await store.save_workflow(linear_chain_spec)
            with pytest.raises(RunNotFoundError):
                await runner.execute(linear_chain_spec.id, "run-x")

    @pytest.mark.asyncio
    async def test_builtin_pipeline_loads_processed_data(self, db_path):
        spec = etl_workflow_spec()
        async with open_store(db_path) as store:
            await store.save_workflow(spec)
            runner = WorkflowRunner(store, config=EngineConfig(max_parallel_nodes=2, default_node_timeout=None))

            result = await runner.start_run(spec.id)
            loaded = await store.count_processed_records(result.run_id)

        assert result.status == RunStatus.SUCCESS
        assert result.node_run("validate").output["metrics"]["invalidCount"] == 1
        assert [record["name"] for record in result.node_run("transform").output["data"]] == ["PRODUCT2", "PRODUCT3"]
        assert loaded == 2
        assert result.node_run("notify").output["content"]["body"] == (
            "Workflow executed successfully with 2 records processed."
        )


class TestInMemory:
    @pytest.mark.asyncio
    async def test_execute_graph_without_store(self, diamond_spec, executors, engine_config):
        runner = WorkflowRunner(registry=executors.registry(), config=engine_config)
        result = await runner.execute_graph(diamond_spec, "run-memory")

        assert result.status == RunStatus.SUCCESS
        assert result.workflow_id == diamond_spec.id
        assert len(result.node_runs) == 4


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_in_flight_run(self, db_path, executors, engine_config):
        spec = make_spec([make_node("A"), make_node("B", ["A"], kind="slow", delay=5)], [make_edge("A", "B")])
        async with open_store(db_path) as store:
            await store.save_workflow(spec)
            runner = WorkflowRunner(store, registry=executors.registry(), config=engine_config)

            run = await runner.submit_run(spec.id)
            assert runner.is_active(run.id)
            for _ in range(200):
                if "B" in executors.calls:
                    break
                await asyncio.sleep(0.01)
            assert runner.cancel(run.id)
            result = await asyncio.wait_for(runner.wait_for_run(run.id), timeout=2)
            stored = await store.get_run(run.id)

        assert result.status == RunStatus.CANCELLED
        assert stored.status == RunStatus.CANCELLED
        assert stored.node_runs[1].status == ExecutionStatus.CANCELLED
        assert not runner.is_active(run.id)

    @pytest.mark.asyncio
    async def test_cancel_before_traversal_starts(self, db_path, linear_chain_spec, executors, engine_config):
        async with open_store(db_path) as store:
            await store.save_workflow(linear_chain_spec)
            runner = WorkflowRunner(store, registry=executors.registry(), config=engine_config)

            run = await runner.submit_run(linear_chain_spec.id)
            assert runner.cancel(run.id)
            result = await runner.wait_for_run(run.id)

        assert result.status == RunStatus.CANCELLED
        assert executors.calls == []

    @pytest.mark.asyncio
    async def test_cancel_of_rejected_background_run_is_forgotten(self, db_path, executors, engine_config):
        spec = make_spec([make_node("A")], [make_edge("A", "ghost")])
        async with open_store(db_path) as store:
            await store.save_workflow(spec)
            runner = WorkflowRunner(store, registry=executors.registry(), config=engine_config)

            run = await runner.submit_run(spec.id)
            assert runner.cancel(run.id)
            with pytest.raises(GraphError):
                await runner.wait_for_run(run.id)
            await asyncio.sleep(0)

            assert not runner.is_active(run.id)
            assert runner.cancel(run.id) is False
            assert runner._pending_cancels == set()

    def test_cancel_unknown_run(self, executors, engine_config):
        runner = WorkflowRunner(registry=executors.registry(), config=engine_config)
        assert runner.cancel("not-running") is False
