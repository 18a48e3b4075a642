"""
Connection Validator - admission rules for proposed edges.

A connection is rejected when it is a self-loop, references a node that
does not exist, or would close a directed cycle. Handle kind mismatches are
logged and allowed.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

from weaveflow.observability import get_logger

from .handles import handle_kind
from .models import Connection, DataKind, Node

logger = get_logger(__name__)

_WHITE, _GREY, _BLACK = 0, 1, 2


class Rejection(str, Enum):
    """Why a connection was refused."""
    SELF_LOOP = "self_loop"
    MISSING_NODE = "missing_node"
    CYCLE = "cycle"


@dataclass
class ValidationResult:
    """Outcome of validating one connection."""
    accepted: bool
    reason: Optional[Rejection] = None
    source_kind: Optional[DataKind] = None
    target_kind: Optional[DataKind] = None

    @property
    def type_mismatch(self) -> bool:
        return (
            self.source_kind is not None
            and self.target_kind is not None
            and self.source_kind != self.target_kind
        )


def _adjacency(edges: Iterable[Connection]) -> Dict[str, List[str]]:
    adjacency: Dict[str, List[str]] = {}
    for edge in edges:
        adjacency.setdefault(edge.source, []).append(edge.target)
    return adjacency


def _walk(
    adjacency: Mapping[str, Sequence[str]],
    start: str,
    color: Dict[str, int],
) -> Optional[List[str]]:
    """
    Depth-first walk from ``start`` with grey/black colouring.

    Grey nodes are on the current path; meeting one again is a back-edge.
    Returns the cycle as a node path, or None.
    """
    color[start] = _GREY
    stack: List[Tuple[str, Iterator[str]]] = [(start, iter(adjacency.get(start, ())))]

    while stack:
        node, neighbors = stack[-1]
        for neighbor in neighbors:
            state = color.get(neighbor, _WHITE)
            if state == _GREY:
                path = [name for name, _ in stack]
                return path[path.index(neighbor):] + [neighbor]
            if state == _WHITE:
                color[neighbor] = _GREY
                stack.append((neighbor, iter(adjacency.get(neighbor, ()))))
                break
        else:
            color[node] = _BLACK
            stack.pop()

    return None


def creates_cycle(edges: Iterable[Connection], candidate: Connection) -> bool:
    """Check whether adding ``candidate`` to ``edges`` closes a directed cycle."""
    adjacency = _adjacency(edges)
    adjacency.setdefault(candidate.source, []).append(candidate.target)
    return _walk(adjacency, candidate.source, {}) is not None


def find_cycle(node_ids: Iterable[str], edges: Iterable[Connection]) -> Optional[List[str]]:
    """Find any directed cycle in a whole graph (used for bulk loads)."""
    adjacency = _adjacency(edges)
    color: Dict[str, int] = {}
    starts = list(node_ids) + list(adjacency)
    for node_id in starts:
        if color.get(node_id, _WHITE) == _WHITE:
            cycle = _walk(adjacency, node_id, color)
            if cycle is not None:
                return cycle
    return None


class ConnectionValidator:
    """
    Decides whether a proposed edge may be admitted.

    Type checking is lenient: a kind mismatch between the two handles is
    logged and the connection is still accepted. Unknown handle kinds are
    always accepted.
    """

    def validate(
        self,
        connection: Connection,
        nodes: Mapping[str, Node],
        edges: Sequence[Connection],
    ) -> ValidationResult:
        """
        Validate a connection against the current graph.

        Args:
            connection: Proposed edge
            nodes: Current nodes by id
            edges: Current edges in insertion order

        Returns:
            ValidationResult with accepted flag and rejection reason
        """
        if connection.source == connection.target:
            logger.warning(
                "Connection rejected: self-loop",
                extra={"node_id": connection.source},
            )
            return ValidationResult(accepted=False, reason=Rejection.SELF_LOOP)

        source = nodes.get(connection.source)
        target = nodes.get(connection.target)
        if source is None or target is None:
            logger.warning(
                "Connection rejected: node not found",
                extra={"source": connection.source, "target": connection.target},
            )
            return ValidationResult(accepted=False, reason=Rejection.MISSING_NODE)

        if creates_cycle(edges, connection):
            logger.warning(
                "Connection rejected: would create a cycle",
                extra={"source": connection.source, "target": connection.target},
            )
            return ValidationResult(accepted=False, reason=Rejection.CYCLE)

        result = ValidationResult(
            accepted=True,
            source_kind=handle_kind(source.type, connection.source_handle, True),
            target_kind=handle_kind(target.type, connection.target_handle, False),
        )
        if result.type_mismatch:
            logger.warning(
                f"Type mismatch {result.source_kind.value} -> "
                f"{result.target_kind.value}, allowing connection",
                extra={"source": connection.source, "target": connection.target},
            )
        return result


__all__ = [
    "ConnectionValidator",
    "Rejection",
    "ValidationResult",
    "creates_cycle",
    "find_cycle",
]
