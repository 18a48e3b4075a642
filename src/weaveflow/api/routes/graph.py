"""Graph editing routes."""
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from weaveflow.api.dependencies import get_engine
from weaveflow.engine import WorkflowEngine
from weaveflow.graph import (
    Connection,
    ConnectionRejectedError,
    GraphError,
    GraphIntegrityError,
    GraphSnapshot,
    Node,
    NodeType,
    Position,
)
from weaveflow.observability import get_logger

logger = get_logger(__name__)
router = APIRouter()


class CreateNodeRequest(BaseModel):
    """Request model for adding a node."""

    type: NodeType = Field(..., description="Node type tag")
    id: str | None = Field(default=None, description="Node id (generated if omitted)")
    position: Position | None = Field(default=None, description="Canvas position")
    data: dict[str, Any] | None = Field(
        default=None,
        description="Initial data overriding the type defaults",
    )


class CreateEdgeRequest(BaseModel):
    """Request model for connecting two nodes."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    source: str = Field(..., description="Producer node id")
    target: str = Field(..., description="Consumer node id")
    source_handle: str | None = Field(default=None, description="Producer output handle")
    target_handle: str | None = Field(default=None, description="Consumer input handle")


def _node_json(node: Node) -> dict[str, Any]:
    return node.model_dump(mode="json", by_alias=True)


def _persist(engine: WorkflowEngine) -> None:
    try:
        engine.save()
    except Exception as e:
        # The in-memory graph stays authoritative
        logger.error(f"Failed to persist graph: {e}", exc_info=True)


@router.get("/v1/graph")
def get_graph(engine: WorkflowEngine = Depends(get_engine)) -> dict[str, Any]:
    """Return the whole graph (nodes plus ordered edges)."""
    return engine.snapshot().model_dump(mode="json", by_alias=True)


@router.put("/v1/graph")
def replace_graph(
    snapshot: GraphSnapshot,
    engine: WorkflowEngine = Depends(get_engine),
) -> dict[str, Any]:
    """
    Replace the whole graph.

    Raises:
        HTTPException: 422 if the graph has duplicate ids, dangling edges or a cycle
    """
    try:
        engine.load_snapshot(snapshot)
    except GraphIntegrityError as e:
        raise HTTPException(status_code=422, detail=str(e))
    _persist(engine)
    return engine.snapshot().model_dump(mode="json", by_alias=True)


@router.post("/v1/nodes", status_code=201)
def add_node(
    request: CreateNodeRequest,
    engine: WorkflowEngine = Depends(get_engine),
) -> dict[str, Any]:
    """Add a node with its type defaults."""
    try:
        node = engine.add_node(
            request.type,
            node_id=request.id,
            position=request.position,
            data=request.data,
        )
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except GraphError as e:
        raise HTTPException(status_code=409, detail=str(e))

    logger.info("Node added via API", extra={"node_id": node.id, "node_type": node.type})
    _persist(engine)
    return _node_json(node)


@router.patch("/v1/nodes/{node_id}")
def update_node(
    node_id: str,
    partial_data: dict[str, Any],
    engine: WorkflowEngine = Depends(get_engine),
) -> dict[str, Any]:
    """Shallow-merge fields into a node's data."""
    try:
        node = engine.update_node_data(node_id, partial_data)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    if node is None:
        raise HTTPException(status_code=404, detail="Node not found")
    _persist(engine)
    return _node_json(node)


@router.delete("/v1/nodes/{node_id}")
def delete_node(node_id: str, engine: WorkflowEngine = Depends(get_engine)) -> dict[str, Any]:
    """Delete a node and its incident edges."""
    if not engine.delete_node(node_id):
        raise HTTPException(status_code=404, detail="Node not found")
    _persist(engine)
    return {"deleted": True, "nodeId": node_id}


@router.post("/v1/edges", status_code=201)
def connect(
    request: CreateEdgeRequest,
    engine: WorkflowEngine = Depends(get_engine),
) -> dict[str, Any]:
    """
    Connect two nodes.

    Raises:
        HTTPException: 409 with the rejection reason (self_loop, missing_node, cycle)
    """
    connection = Connection(**request.model_dump())
    try:
        edge = engine.connect(connection, strict=True)
    except ConnectionRejectedError as e:
        raise HTTPException(
            status_code=409,
            detail={"reason": e.reason.value, "message": str(e)},
        )
    _persist(engine)
    return edge.model_dump(mode="json", by_alias=True)


@router.delete("/v1/edges/{edge_id}")
def disconnect(edge_id: str, engine: WorkflowEngine = Depends(get_engine)) -> dict[str, Any]:
    """Remove one edge."""
    if not engine.disconnect(edge_id):
        raise HTTPException(status_code=404, detail="Edge not found")
    _persist(engine)
    return {"deleted": True, "edgeId": edge_id}
