"""
Node Runner - drives one node run through its lifecycle.

Idle -> Running -> Success | Failed, re-entrant. Failures are localized to
the node's ``error`` field and the returned NodeRunResult.
"""
import time
from dataclasses import dataclass, field
from typing import Any

from weaveflow.executors.base import ExecutionOutcome, ExecutorError, NotRunnableError
from weaveflow.executors.errors import ErrorCategory, describe_error
from weaveflow.executors.registry import ExecutorRegistry
from weaveflow.graph.models import Node
from weaveflow.graph.resolver import ValueResolver
from weaveflow.graph.store import GraphStore
from weaveflow.observability import get_logger, with_trace_context
from weaveflow.storage.ledger import NodeRunRecord, NodeRunStatus, RunLedger, RunScope

logger = get_logger(__name__)


@dataclass
class NodeRunResult:
    """What a caller gets back from triggering a node run."""

    node_id: str
    node_type: str
    status: NodeRunStatus
    outputs: dict[str, Any] = field(default_factory=dict)
    error: str | None = None
    error_category: ErrorCategory | None = None
    duration_ms: float = 0.0
    attempts: int = 0
    run_id: str | None = None
    # Truncated summaries, kept for the ledger
    ledger_inputs: dict[str, Any] = field(default_factory=dict)
    ledger_outputs: dict[str, Any] | None = None

    @property
    def ok(self) -> bool:
        return self.status == NodeRunStatus.SUCCESS

    def to_ledger_record(self) -> NodeRunRecord:
        return NodeRunRecord(
            node_id=self.node_id,
            node_type=self.node_type,
            status=self.status,
            duration_ms=self.duration_ms,
            inputs=self.ledger_inputs,
            outputs=self.ledger_outputs,
            error=self.error,
        )


class NodeRunner:
    """Refreshes resolved inputs and executes nodes through the registry."""

    def __init__(
        self,
        store: GraphStore,
        registry: ExecutorRegistry,
        ledger: RunLedger | None = None,
        resolver: ValueResolver | None = None,
    ):
        self.store = store
        self.registry = registry
        self.ledger = ledger
        self.resolver = resolver or ValueResolver(store)

    def refresh_inputs(self, node_id: str) -> dict[str, Any]:
        """
        Write resolved input values into a node's data.

        Returns:
            The resolved values of the node's connected input handles

        Raises:
            NodeNotFoundError: If the node does not exist
        """
        node = self.store.require_node(node_id)
        inputs = self.resolver.resolve_inputs(node_id)
        executor = self.registry.get(node.type)
        updates = {
            name: value
            for name, value in executor.input_updates(inputs).items()
            if getattr(node.data, name) != value
        }
        if updates:
            self.store.update_node_data(node_id, updates)
        return inputs

    def refresh_all(self) -> int:
        """Refresh every node in dependency order; returns how many changed."""
        changed = 0
        for node_id in self.store.topological_order():
            before = self.store.require_node(node_id).data
            self.refresh_inputs(node_id)
            if self.store.require_node(node_id).data != before:
                changed += 1
        return changed

    async def run(
        self,
        node_id: str,
        owner_id: str | None = None,
        record: bool = True,
    ) -> NodeRunResult:
        """
        Run one active node.

        Args:
            node_id: Node to run
            owner_id: Opaque owner for the ledger entry
            record: Open a single-scope ledger entry when the run starts and
                complete it when the run ends

        Returns:
            NodeRunResult describing success or failure

        Raises:
            NodeNotFoundError: If the node does not exist
            NotRunnableError: If the node is passive
        """
        node = self.store.require_node(node_id)
        executor = self.registry.get(node.type)
        if not executor.runnable:
            raise NotRunnableError(node.node_type)

        node_type = node.node_type.value
        extra = with_trace_context(logger, node_id=node_id, node_type=node_type, owner_id=owner_id)

        inputs = self.refresh_inputs(node_id)
        node = self.store.update_node_data(node_id, {"is_running": True, "error": None})
        ledger_inputs = executor.ledger_inputs(node.data)
        logger.info("Node run started", extra=extra)

        pending = None
        if record and self.ledger is not None:
            pending = self.ledger.start(
                owner_id, RunScope.SINGLE, [self.pending_record(node_id, ledger_inputs)]
            )

        started = time.perf_counter()
        try:
            outcome = await executor.run(node, inputs)
        except ExecutorError as e:
            result = self._failed(node, e, e.attempts, started)
        except Exception as e:
            logger.exception("Unexpected executor failure", extra=extra)
            result = self._failed(node, e, 1, started)
        else:
            result = self._succeeded(node, outcome, executor.ledger_outputs(outcome), started)

        result.ledger_inputs = self._summarize_inputs(ledger_inputs)
        if result.ok:
            logger.info(
                "Node run succeeded",
                extra={**extra, "duration_ms": result.duration_ms, "attempts": result.attempts},
            )
        else:
            logger.warning(
                f"Node run failed: {result.error}",
                extra={**extra, "error_category": result.error_category.value},
            )

        if pending is not None:
            result.run_id = self.ledger.finish(
                pending, [result.to_ledger_record()], duration_ms=result.duration_ms
            )
        return result

    def pending_record(self, node_id: str, inputs: dict[str, Any] | None = None) -> NodeRunRecord:
        """Ledger entry of a node run that has started but not finished."""
        node = self.store.require_node(node_id)
        return NodeRunRecord(
            node_id=node_id,
            node_type=node.node_type.value,
            status=NodeRunStatus.RUNNING,
            inputs=self._summarize_inputs(inputs or {}),
        )

    def _succeeded(
        self,
        node: Node,
        outcome: ExecutionOutcome,
        outputs: dict[str, Any],
        started: float,
    ) -> NodeRunResult:
        self.store.update_node_data(node.id, {**outcome.updates, "is_running": False})
        return NodeRunResult(
            node_id=node.id,
            node_type=node.node_type.value,
            status=NodeRunStatus.SUCCESS,
            outputs=dict(outcome.updates),
            duration_ms=_elapsed_ms(started),
            attempts=outcome.attempts,
            ledger_outputs=self.ledger.summarize_outputs(outputs) if self.ledger else outputs,
        )

    def _failed(self, node: Node, error: Exception, attempts: int, started: float) -> NodeRunResult:
        category, message = describe_error(error)
        # Previous outputs are kept; only the error is set
        self.store.update_node_data(node.id, {"is_running": False, "error": message})
        return NodeRunResult(
            node_id=node.id,
            node_type=node.node_type.value,
            status=NodeRunStatus.FAILED,
            error=message,
            error_category=category,
            duration_ms=_elapsed_ms(started),
            attempts=attempts,
        )

    def _summarize_inputs(self, inputs: dict[str, Any]) -> dict[str, Any]:
        if self.ledger is None:
            return inputs
        return self.ledger.summarize_inputs(inputs)


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 3)
