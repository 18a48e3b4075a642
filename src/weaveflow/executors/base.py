"""Base executor contract and executor exceptions."""
from abc import ABC
from dataclasses import dataclass, field
from typing import Any, ClassVar, Mapping

from weaveflow.graph.models import Node, NodeData, NodeType


class ExecutorError(Exception):
    """Base exception for node execution errors."""

    def __init__(self, message: str, attempts: int = 1):
        self.attempts = attempts
        super().__init__(message)


class NodeInputError(ExecutorError):
    """Raised when a run request is missing a required input or has an invalid one."""

    def __init__(self, message: str):
        super().__init__(message, attempts=0)


class RemoteExecutionError(ExecutorError):
    """Raised when the external capability call failed (after any retries)."""

    def __init__(self, cause: Exception, attempts: int = 1):
        self.cause = cause
        super().__init__(str(cause), attempts=attempts)


class NotRunnableError(ExecutorError):
    """Raised when a run is triggered on a passive node."""

    def __init__(self, node_type: NodeType):
        self.node_type = node_type
        super().__init__(f"Node type '{node_type.value}' has no run action", attempts=0)


class UnknownNodeTypeError(ExecutorError):
    """Raised when no executor is registered for a node type."""

    def __init__(self, node_type: str):
        super().__init__(f"No executor registered for node type: {node_type}", attempts=0)


@dataclass
class ExecutionOutcome:
    """
    What a successful run produced.

    ``updates`` are data fields written back to the node.
    """
    updates: dict[str, Any] = field(default_factory=dict)
    attempts: int = 1


class NodeExecutor(ABC):
    """
    Per-node-type behaviour.

    Every executor declares which data field each connected input handle
    overrides (``input_fields``). Active executors also implement ``run``.
    """

    node_type: ClassVar[NodeType]
    runnable: ClassVar[bool] = True
    # input handle id -> data field overwritten by the resolved value
    input_fields: ClassVar[Mapping[str, str]] = {}

    def input_updates(self, inputs: Mapping[str, Any]) -> dict[str, Any]:
        """
        Data updates implied by resolved inputs.

        Handles resolving to None (or an empty list) leave the field alone,
        so directly authored values survive until a producer yields one.
        """
        updates = {}
        for handle_id, value in inputs.items():
            field_name = self.input_fields.get(handle_id)
            if field_name is None or value is None or value == []:
                continue
            updates[field_name] = value
        return updates

    async def run(self, node: Node, inputs: Mapping[str, Any]) -> ExecutionOutcome:
        """
        Execute the node.

        Args:
            node: Node whose data already carries the resolved input overrides
            inputs: Resolved values of the node's connected input handles

        Returns:
            ExecutionOutcome with the data fields to write
        """
        raise NotRunnableError(self.node_type)

    def ledger_inputs(self, data: NodeData) -> dict[str, Any]:
        """Inputs recorded in the run ledger (before truncation)."""
        return {}

    def ledger_outputs(self, outcome: ExecutionOutcome) -> dict[str, Any]:
        """Outputs recorded in the run ledger (before truncation)."""
        return dict(outcome.updates)
