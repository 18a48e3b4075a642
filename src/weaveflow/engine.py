"""
Workflow Engine - the facade used by the API and the CLI.

Owns one GraphStore and wires the resolver, executor registry, run ledger
and optional graph persistence around it.
"""
import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional

import redis

from weaveflow.capabilities.base import LLMCapability, MediaCapability
from weaveflow.capabilities.gemini import GeminiClient
from weaveflow.capabilities.media import MediaServiceClient
from weaveflow.config import Settings, get_settings
from weaveflow.executors import (
    ExecutorRegistry,
    NodeRunner,
    NodeRunResult,
    NotRunnableError,
    RetryPolicy,
    build_registry,
)
from weaveflow.graph import (
    Connection,
    Edge,
    GraphPersistence,
    GraphSnapshot,
    GraphStore,
    MemoryBackend,
    Node,
    NodeType,
    Position,
    RedisBackend,
    ValueResolver,
    build_node,
)
from weaveflow.observability import get_logger
from weaveflow.storage import (
    InMemoryRunStore,
    NodeRunStatus,
    RedisRunStore,
    RunLedger,
    RunScope,
    RunStatus,
    WorkflowRunRecord,
)
from weaveflow.storage.ledger import aggregate_status

logger = get_logger(__name__)


@dataclass
class WorkflowRunResult:
    """Outcome of triggering several nodes at once."""

    scope: RunScope
    status: RunStatus
    results: list[NodeRunResult] = field(default_factory=list)
    duration_ms: float = 0.0
    run_id: str | None = None


class WorkflowEngine:
    """Graph editing, value resolution, node execution and run history."""

    def __init__(
        self,
        store: GraphStore | None = None,
        registry: ExecutorRegistry | None = None,
        ledger: RunLedger | None = None,
        persistence: GraphPersistence | None = None,
    ):
        self.store = store or GraphStore()
        self.registry = registry or build_registry()
        self.ledger = ledger
        self.persistence = persistence
        self.resolver = ValueResolver(self.store)
        self.runner = NodeRunner(self.store, self.registry, ledger=ledger, resolver=self.resolver)

    # ------------------------------------------------------------------
    # Graph editing
    # ------------------------------------------------------------------

    def add_node(
        self,
        node_type: NodeType | str,
        node_id: str | None = None,
        position: Position | dict[str, float] | None = None,
        data: dict[str, Any] | None = None,
    ) -> Node:
        return self.store.add_node(build_node(node_type, node_id=node_id, position=position, data=data))

    def delete_node(self, node_id: str) -> bool:
        return self.store.delete_node(node_id)

    def update_node_data(self, node_id: str, partial_data: Mapping[str, Any]) -> Optional[Node]:
        return self.store.update_node_data(node_id, partial_data)

    def connect(
        self,
        connection: Connection | Mapping[str, Any],
        strict: bool = False,
    ) -> Optional[Edge]:
        """
        Add an edge and refresh the target's resolved inputs.

        Returns:
            The edge, or None when the connection was rejected
        """
        edge = self.store.connect(connection, strict=strict)
        if edge is not None:
            self.runner.refresh_inputs(edge.target)
        return edge

    def disconnect(self, edge_id: str) -> bool:
        return self.store.remove_edge(edge_id)

    def get_node(self, node_id: str) -> Optional[Node]:
        return self.store.get_node(node_id)

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve_inputs(self, node_id: str) -> dict[str, Any]:
        return self.resolver.resolve_inputs(node_id)

    def refresh_inputs(self, node_id: str) -> dict[str, Any]:
        return self.runner.refresh_inputs(node_id)

    def refresh_all(self) -> int:
        return self.runner.refresh_all()

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def run_node(self, node_id: str, owner_id: str | None = None) -> NodeRunResult:
        """Run one active node and record a single-scope ledger entry."""
        return await self.runner.run(node_id, owner_id=owner_id)

    async def run_nodes(
        self,
        node_ids: Iterable[str] | None = None,
        owner_id: str | None = None,
    ) -> WorkflowRunResult:
        """
        Trigger several active nodes concurrently.

        With ``node_ids`` omitted every active node is triggered (scope
        ``full``), otherwise scope is ``partial``. Runs are independent: a
        node reads whatever its producers currently hold.

        Raises:
            NodeNotFoundError: If a node id is unknown
            NotRunnableError: If an explicitly selected node is passive
        """
        if node_ids is None:
            scope = RunScope.FULL
            node_ids = [
                node_id for node_id in self.store.topological_order()
                if self.registry.get(self.store.require_node(node_id).type).runnable
            ]
        else:
            scope = RunScope.PARTIAL
            node_ids = list(dict.fromkeys(node_ids))
            for node_id in node_ids:
                node = self.store.require_node(node_id)
                if not self.registry.get(node.type).runnable:
                    raise NotRunnableError(node.node_type)

        pending = None
        if self.ledger is not None and node_ids:
            pending = self.ledger.start(
                owner_id, scope, [self.runner.pending_record(node_id) for node_id in node_ids]
            )

        started = time.perf_counter()
        results = await asyncio.gather(
            *(self.runner.run(node_id, owner_id=owner_id, record=False) for node_id in node_ids)
        )
        duration_ms = round((time.perf_counter() - started) * 1000, 3)

        statuses = [result.status for result in results]
        status = aggregate_status(statuses) if statuses else RunStatus.SUCCESS
        run = WorkflowRunResult(
            scope=scope,
            status=status,
            results=list(results),
            duration_ms=duration_ms,
        )
        if pending is not None:
            run.run_id = self.ledger.finish(
                pending,
                [result.to_ledger_record() for result in results],
                duration_ms=duration_ms,
            )

        logger.info(
            "Workflow run finished",
            extra={
                "scope": scope.value,
                "status": status.value,
                "node_count": len(results),
                "failed_count": sum(1 for s in statuses if s == NodeRunStatus.FAILED),
            },
        )
        return run

    # ------------------------------------------------------------------
    # Run history
    # ------------------------------------------------------------------

    def list_runs(self, owner_id: str | None, limit: int | None = None) -> list[WorkflowRunRecord]:
        if self.ledger is None:
            return []
        return self.ledger.list_runs(owner_id, limit)

    def delete_runs(self, owner_id: str) -> int:
        if self.ledger is None:
            return 0
        return self.ledger.delete_all_runs(owner_id)

    # ------------------------------------------------------------------
    # Snapshots and persistence
    # ------------------------------------------------------------------

    def snapshot(self) -> GraphSnapshot:
        return self.store.snapshot()

    def load_snapshot(self, snapshot: GraphSnapshot | Mapping[str, Any]) -> None:
        if not isinstance(snapshot, GraphSnapshot):
            snapshot = GraphSnapshot.model_validate(snapshot)
        self.store.load_snapshot(snapshot)

    def save(self) -> bool:
        """Persist the graph; False when no persistence is configured."""
        if self.persistence is None:
            return False
        self.persistence.save(self.store)
        return True

    def restore(self) -> bool:
        """Load the persisted graph; False when there is none."""
        if self.persistence is None:
            return False
        return self.persistence.load(self.store)


def create_engine(
    settings: Settings | None = None,
    llm: LLMCapability | None = None,
    media: MediaCapability | None = None,
) -> WorkflowEngine:
    """
    Build an engine from settings.

    Redis backs both the run ledger and graph persistence when
    ``redis_url`` is set; otherwise both stay in memory.
    """
    settings = settings or get_settings()

    if settings.redis_url:
        client = redis.from_url(settings.redis_url, decode_responses=True)
        run_store = RedisRunStore(client)
        backend = RedisBackend(client)
    else:
        run_store = InMemoryRunStore()
        backend = MemoryBackend()

    registry = build_registry(
        llm=llm or GeminiClient(),
        media=media or MediaServiceClient(),
        policy=RetryPolicy.from_settings(settings),
    )
    ledger = RunLedger(
        run_store,
        enabled=settings.ledger_enabled,
        input_char_limit=settings.ledger_input_char_limit,
        output_char_limit=settings.ledger_output_char_limit,
        list_limit=settings.ledger_list_limit,
    )
    persistence = GraphPersistence(backend, key=settings.graph_state_key)

    logger.info(
        "Workflow engine created",
        extra={"env": settings.env, "redis": bool(settings.redis_url)},
    )
    return WorkflowEngine(registry=registry, ledger=ledger, persistence=persistence)
