import pytest

from flowgraph.src.data_models.workflow_spec import NodeSpec
from flowgraph.src.utilities.decorators import register_task_executor
from flowgraph.src.utilities.registries import (
    PASS_THROUGH,
    TASK_EXECUTOR_REGISTRY,
    TaskContext,
    TaskExecutorRegistry,
    get_default_registry,
)


def kind_executor(node, input_data, context):
    return "kind"


def typed_executor(node, input_data, context):
    return "typed"


@pytest.fixture
def registry():
    return TaskExecutorRegistry(executors={})


class TestResolution:
    def test_typed_registration_wins(self, registry):
        registry.register("score", kind_executor)
        registry.register("score", typed_executor, node_type="decision")

        key, fn = registry.resolve(NodeSpec(id="d", type="decision", kind="score"))
        assert (key, fn) == ("decision:score", typed_executor)

        key, fn = registry.resolve(NodeSpec(id="t", type="task", kind="score"))
        assert (key, fn) == ("score", kind_executor)

    def test_default_kind_by_node_type(self, registry):
        registry.register("data_extraction", kind_executor)
        key, _ = registry.resolve(NodeSpec(id="trigger", type="trigger"))
        assert key == "data_extraction"

    def test_display_name_is_not_used_for_dispatch(self, registry):
        registry.register("data_validation", kind_executor)
        key, _ = registry.resolve(NodeSpec(id="n", name="Data Validation", type="task"))
        assert key == PASS_THROUGH

    @pytest.mark.asyncio
    async def test_pass_through_output(self, registry):
        node = NodeSpec(id="n", kind="unknown")
        output = await registry.execute(node, {"a": 1}, TaskContext(run_id="r"))
        assert output == {"processed": True, "data": {"a": 1}}

    @pytest.mark.asyncio
    async def test_sync_and_async_executors(self, registry):
        async def async_executor(node, input_data, context):
            return {"run": context.run_id}

        registry.register("sync", kind_executor)
        registry.register("async", async_executor)
        context = TaskContext(run_id="run-9")

        assert await registry.execute(NodeSpec(id="a", kind="sync"), {}, context) == "kind"
        assert await registry.execute(NodeSpec(id="b", kind="async"), {}, context) == {"run": "run-9"}


class TestDecorator:
    def test_registers_into_given_registry(self, registry):
        @register_task_executor("custom_kind", registry=registry)
        def custom(node, input_data, context):
            return "custom"

        assert registry.resolve(NodeSpec(id="n", kind="custom_kind")) == ("custom_kind", custom)
        assert "custom_kind" not in TASK_EXECUTOR_REGISTRY

    def test_global_registry_holds_builtins(self):
        registry = get_default_registry()
        for kind in (
            "data_extraction",
            "data_validation",
            "data_transformation",
            "decision",
            "data_loading",
            "error_handling",
            "notification",
        ):
            assert registry.resolve(NodeSpec(id="n", kind=kind))[0] == kind
