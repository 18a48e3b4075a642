"""Node execution and run history routes."""
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from weaveflow.api.dependencies import get_engine, get_owner_id
from weaveflow.engine import WorkflowEngine
from weaveflow.executors import ErrorCategory, NodeRunResult, NotRunnableError
from weaveflow.graph import NodeNotFoundError
from weaveflow.observability import get_logger
from weaveflow.storage import LedgerError, WorkflowRunRecord

logger = get_logger(__name__)
router = APIRouter()


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RunNodeResponse(_CamelModel):
    """Response model for a node run."""

    node_id: str = Field(..., description="Node id")
    node_type: str = Field(..., description="Node type tag")
    status: str = Field(..., description="success or failed")
    outputs: dict[str, Any] = Field(default_factory=dict, description="Data fields written by the run")
    error: str | None = Field(default=None, description="User-facing error message")
    error_category: str | None = Field(default=None, description="Error category")
    duration_ms: float = Field(..., description="Execution time in milliseconds")
    attempts: int = Field(..., description="Remote call attempts")
    run_id: str | None = Field(default=None, description="Ledger run id (null if not recorded)")


class RunNodesRequest(_CamelModel):
    """Request model for triggering several nodes."""

    node_ids: list[str] | None = Field(
        default=None,
        description="Nodes to run (every active node if omitted)",
    )


class RunNodesResponse(_CamelModel):
    """Response model for a multi-node run."""

    scope: str = Field(..., description="partial or full")
    status: str = Field(..., description="success, failed or partial")
    duration_ms: float = Field(..., description="Total duration in milliseconds")
    run_id: str | None = Field(default=None, description="Ledger run id")
    results: list[RunNodeResponse] = Field(default_factory=list, description="Per-node results")


class DeleteRunsResponse(_CamelModel):
    """Response model for purging run history."""

    success: bool = Field(..., description="Whether the purge succeeded")
    deleted_count: int = Field(..., description="Number of runs deleted")
    message: str = Field(..., description="Human-readable summary")


def _require_owner(owner_id: str | None) -> str:
    if not owner_id:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return owner_id


def _to_response(result: NodeRunResult) -> RunNodeResponse:
    return RunNodeResponse(
        node_id=result.node_id,
        node_type=result.node_type,
        status=result.status.value,
        outputs={to_camel(name): value for name, value in result.outputs.items()},
        error=result.error,
        error_category=result.error_category.value if result.error_category else None,
        duration_ms=result.duration_ms,
        attempts=result.attempts,
        run_id=result.run_id,
    )


@router.post("/v1/nodes/{node_id}/run", response_model=RunNodeResponse)
async def run_node(
    node_id: str,
    engine: WorkflowEngine = Depends(get_engine),
    owner_id: str | None = Depends(get_owner_id),
) -> RunNodeResponse:
    """
    Run one active node.

    Raises:
        HTTPException: 401 without owner, 404 unknown node, 409 passive node,
            400 invalid input, 502 remote failure
    """
    owner_id = _require_owner(owner_id)
    try:
        result = await engine.run_node(node_id, owner_id=owner_id)
    except NodeNotFoundError:
        raise HTTPException(status_code=404, detail="Node not found")
    except NotRunnableError as e:
        raise HTTPException(status_code=409, detail=str(e))

    response = _to_response(result)
    if not result.ok:
        status_code = 400 if result.error_category == ErrorCategory.VALIDATION else 502
        raise HTTPException(
            status_code=status_code,
            detail=response.model_dump(mode="json", by_alias=True),
        )
    return response


@router.post("/v1/runs", response_model=RunNodesResponse)
async def run_nodes(
    request: RunNodesRequest,
    engine: WorkflowEngine = Depends(get_engine),
    owner_id: str | None = Depends(get_owner_id),
) -> RunNodesResponse:
    """Trigger a selection of nodes (or every active node) concurrently."""
    owner_id = _require_owner(owner_id)
    try:
        run = await engine.run_nodes(request.node_ids, owner_id=owner_id)
    except NodeNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except NotRunnableError as e:
        raise HTTPException(status_code=409, detail=str(e))

    return RunNodesResponse(
        scope=run.scope.value,
        status=run.status.value,
        duration_ms=run.duration_ms,
        run_id=run.run_id,
        results=[_to_response(result) for result in run.results],
    )


@router.get("/v1/runs", response_model=list[WorkflowRunRecord])
def list_runs(
    limit: int | None = Query(default=None, ge=1, description="Maximum number of runs"),
    engine: WorkflowEngine = Depends(get_engine),
    owner_id: str | None = Depends(get_owner_id),
) -> list[WorkflowRunRecord]:
    """Recent runs of the owner, newest first (empty without an owner)."""
    return engine.list_runs(owner_id, limit)


@router.delete("/v1/runs", response_model=DeleteRunsResponse)
def delete_runs(
    engine: WorkflowEngine = Depends(get_engine),
    owner_id: str | None = Depends(get_owner_id),
) -> DeleteRunsResponse:
    """Purge every run of the owner."""
    owner_id = _require_owner(owner_id)
    try:
        count = engine.delete_runs(owner_id)
    except LedgerError as e:
        logger.error(f"Failed to delete runs: {e}", extra={"owner_id": owner_id})
        raise HTTPException(status_code=500, detail="Failed to delete workflow runs")

    return DeleteRunsResponse(
        success=True,
        deleted_count=count,
        message=f"Successfully deleted {count} workflow run(s)",
    )
