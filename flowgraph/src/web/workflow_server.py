"""
FastAPI server exposing workflow execution.

``POST /run-workflow`` runs an existing run record synchronously and returns
the RunResult, matching what the workflow editor calls. The ``/api`` routes
manage stored workflows and runs.
"""

from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..data_models.workflow_spec import WorkflowSpec
from ..storage import WorkflowStore
from ..utilities.errors import (
    GraphError,
    PersistenceError,
    RunNotFoundError,
    WorkflowNotFoundError,
)
from ..utilities.io_logger import server_logger as logger
from ..workflow_runner import WorkflowRunner


class RunWorkflowRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    workflow_id: Optional[str] = None
    run_id: Optional[str] = None


class StartRunRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    wait: bool = Field(default=False, description="Execute before responding instead of in the background")
    create_only: bool = Field(default=False, description="Only create the run record; execute it later via /run-workflow")


class SaveWorkflowResponse(BaseModel):
    id: str
    issues: List[str] = Field(default_factory=list)


def _graph_error_detail(error: GraphError) -> Dict[str, Any]:
    return {"error": str(error), "issues": error.issues}


def create_app(store: Optional[WorkflowStore] = None, runner: Optional[WorkflowRunner] = None) -> FastAPI:
    """Build the app around ``store`` (defaults to FLOWGRAPH_DATABASE_URL)."""
    store = store or (runner.store if runner else None) or WorkflowStore()
    runner = runner or WorkflowRunner(store)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await store.init_models()
        logger.success(f"Workflow server ready on {store.connection_string}")
        yield
        await store.dispose()

    app = FastAPI(
        title="FlowGraph Workflow Server",
        description="Execute node/edge workflow graphs and inspect their runs",
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
    )
    app.state.store = store
    app.state.runner = runner

    @app.post("/run-workflow")
    async def run_workflow(request: RunWorkflowRequest):
        if not request.workflow_id or not request.run_id:
            raise HTTPException(status_code=400, detail="Missing required parameters: workflowId and runId")
        try:
            result = await runner.execute(request.workflow_id, request.run_id)
        except (WorkflowNotFoundError, RunNotFoundError) as e:
            raise HTTPException(status_code=404, detail=str(e))
        except GraphError as e:
            raise HTTPException(status_code=422, detail=_graph_error_detail(e))
        except PersistenceError as e:
            logger.error(f"Error executing workflow: {e}", run_id=request.run_id)
            raise HTTPException(status_code=500, detail=str(e))
        return result.to_json_dict()

    @app.post("/api/workflows", response_model=SaveWorkflowResponse)
    async def save_workflow(spec: WorkflowSpec):
        try:
            workflow_id = await store.save_workflow(spec)
        except PersistenceError as e:
            raise HTTPException(status_code=500, detail=str(e))
        return SaveWorkflowResponse(id=workflow_id, issues=spec.validate_structure())

    @app.get("/api/workflows/{workflow_id}")
    async def get_workflow(workflow_id: str):
        spec = await store.get_workflow(workflow_id)
        if spec is None:
            raise HTTPException(status_code=404, detail=f"Workflow {workflow_id} not found")
        return spec.model_dump(mode="json", by_alias=True)

    @app.post("/api/workflows/{workflow_id}/runs")
    async def start_run(workflow_id: str, request: Optional[StartRunRequest] = None):
        request = request or StartRunRequest()
        try:
            if request.create_only:
                return (await runner.create_run(workflow_id)).to_json_dict()
            if request.wait:
                return (await runner.start_run(workflow_id)).to_json_dict()
            return (await runner.submit_run(workflow_id)).to_json_dict()
        except WorkflowNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))
        except GraphError as e:
            raise HTTPException(status_code=422, detail=_graph_error_detail(e))
        except PersistenceError as e:
            raise HTTPException(status_code=500, detail=str(e))

    @app.get("/api/workflows/{workflow_id}/runs")
    async def list_runs(workflow_id: str):
        if await store.get_workflow(workflow_id) is None:
            raise HTTPException(status_code=404, detail=f"Workflow {workflow_id} not found")
        return [run.to_json_dict() for run in await store.list_runs(workflow_id)]

    @app.get("/api/runs/{run_id}")
    async def get_run(run_id: str):
        run = await store.get_run(run_id)
        if run is None:
            raise HTTPException(status_code=404, detail=f"Run {run_id} not found")
        return {**run.to_json_dict(), "active": runner.is_active(run_id)}

    @app.post("/api/runs/{run_id}/cancel")
    async def cancel_run(run_id: str):
        if runner.cancel(run_id):
            return {"runId": run_id, "cancelled": True}
        if await store.get_run(run_id) is None:
            raise HTTPException(status_code=404, detail=f"Run {run_id} not found")
        raise HTTPException(status_code=409, detail=f"Run {run_id} is not in progress")

    return app


app = create_app()
