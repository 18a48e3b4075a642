"""
Graph Store - authoritative in-memory nodes and edges.

All structural mutations go through this class. Edge admission is delegated
to the ConnectionValidator so the edge set always stays a DAG.
"""

from __future__ import annotations

import threading
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from weaveflow.observability import get_logger

from .models import (
    NODE_DATA_CLASSES,
    Connection,
    Edge,
    GraphSnapshot,
    Node,
    data_field_name,
)
from .validator import ConnectionValidator, Rejection, find_cycle

logger = get_logger(__name__)

NodeObserver = Callable[[str, List[str]], None]


class GraphError(Exception):
    """Base exception for graph errors."""

    pass


class NodeNotFoundError(GraphError):
    """Raised when a node id is not in the store."""

    def __init__(self, node_id: str) -> None:
        self.node_id = node_id
        super().__init__(f"Node not found: {node_id}")


class GraphIntegrityError(GraphError):
    """Raised when a bulk-loaded graph is cyclic or references missing nodes."""

    pass


class ConnectionRejectedError(GraphError):
    """Raised by ``connect(strict=True)`` when the validator refuses an edge."""

    def __init__(self, reason: Rejection, connection: Connection) -> None:
        self.reason = reason
        self.connection = connection
        super().__init__(
            f"Connection {connection.source} -> {connection.target} rejected: {reason.value}"
        )


class GraphStore:
    """
    In-memory node/edge store.

    Nodes keep insertion order; edges keep insertion order, which is the
    order multi-producer inputs are concatenated in.
    """

    def __init__(self, validator: Optional[ConnectionValidator] = None):
        self._nodes: Dict[str, Node] = {}
        self._edges: List[Edge] = []
        self._validator = validator or ConnectionValidator()
        self._observers: List[NodeObserver] = []
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def nodes(self) -> List[Node]:
        with self._lock:
            return list(self._nodes.values())

    @property
    def edges(self) -> List[Edge]:
        with self._lock:
            return list(self._edges)

    def get_node(self, node_id: str) -> Optional[Node]:
        return self._nodes.get(node_id)

    def require_node(self, node_id: str) -> Node:
        node = self._nodes.get(node_id)
        if node is None:
            raise NodeNotFoundError(node_id)
        return node

    def incoming_edges(self, node_id: str, handle_id: Optional[str] = None) -> List[Edge]:
        """Edges targeting ``node_id`` (optionally one handle), in insertion order."""
        with self._lock:
            return [
                edge for edge in self._edges
                if edge.target == node_id
                and (handle_id is None or edge.target_handle == handle_id)
            ]

    def topological_order(self) -> List[str]:
        """
        Node ids in dependency order.

        Uses Kahn's algorithm; ties keep node insertion order.
        """
        with self._lock:
            rank = {node_id: i for i, node_id in enumerate(self._nodes)}
            in_degree = {node_id: 0 for node_id in self._nodes}
            downstream: Dict[str, List[str]] = {node_id: [] for node_id in self._nodes}
            for edge in self._edges:
                if edge.source in in_degree and edge.target in in_degree:
                    in_degree[edge.target] += 1
                    downstream[edge.source].append(edge.target)

        queue = [node_id for node_id, degree in in_degree.items() if degree == 0]
        order = []
        while queue:
            queue.sort(key=rank.__getitem__)
            node_id = queue.pop(0)
            order.append(node_id)
            for target in downstream[node_id]:
                in_degree[target] -= 1
                if in_degree[target] == 0:
                    queue.append(target)

        if len(order) != len(in_degree):
            remaining = set(in_degree) - set(order)
            raise GraphIntegrityError(f"Graph has cycles involving: {sorted(remaining)}")
        return order

    def snapshot(self) -> GraphSnapshot:
        with self._lock:
            return GraphSnapshot(
                nodes=[node.model_copy(deep=True) for node in self._nodes.values()],
                edges=[edge.model_copy() for edge in self._edges],
            )

    # ------------------------------------------------------------------
    # Node mutations
    # ------------------------------------------------------------------

    def add_node(self, node: Node) -> Node:
        """Append a node. Its id must not already be in use."""
        with self._lock:
            if node.id in self._nodes:
                raise GraphError(f"Duplicate node id: {node.id}")
            self._nodes[node.id] = node
        logger.debug("Node added", extra={"node_id": node.id, "node_type": node.type})
        return node

    def delete_node(self, node_id: str) -> bool:
        """
        Remove a node and every edge touching it.

        Deleting an absent id is a no-op.

        Returns:
            True if a node was removed
        """
        with self._lock:
            if self._nodes.pop(node_id, None) is None:
                return False
            self._edges = [
                edge for edge in self._edges
                if edge.source != node_id and edge.target != node_id
            ]
        logger.debug("Node deleted", extra={"node_id": node_id})
        return True

    def update_node_data(
        self,
        node_id: str,
        partial_data: Mapping[str, Any],
    ) -> Optional[Node]:
        """
        Shallow-merge ``partial_data`` into a node's data.

        Keys may be wire (camelCase) or Python field names. The merged data
        is validated against the node's variant; on a validation error the
        node is left unchanged.

        Returns:
            The updated node, or None if the node does not exist
        """
        with self._lock:
            node = self._nodes.get(node_id)
            if node is None:
                return None

            data_class = NODE_DATA_CLASSES[node.node_type]
            merged = node.data.model_dump()
            changed = []
            for key, value in partial_data.items():
                try:
                    name = data_field_name(data_class, key)
                except KeyError:
                    name = key  # rejected below by extra="forbid"
                merged[name] = value
                changed.append(name)

            node.data = data_class.model_validate(merged)

        self._notify(node_id, changed)
        return node

    # ------------------------------------------------------------------
    # Edge mutations
    # ------------------------------------------------------------------

    def connect(
        self,
        connection: Connection | Mapping[str, Any],
        strict: bool = False,
    ) -> Optional[Edge]:
        """
        Admit a new edge if the validator accepts it.

        Args:
            connection: Proposed edge
            strict: Raise ConnectionRejectedError instead of returning None

        Returns:
            The admitted (or already existing identical) edge, or None when rejected
        """
        if not isinstance(connection, Connection):
            connection = Connection.model_validate(connection)

        with self._lock:
            result = self._validator.validate(connection, self._nodes, self._edges)
            if not result.accepted:
                if strict:
                    raise ConnectionRejectedError(result.reason, connection)
                return None

            for edge in self._edges:
                if edge.same_link(connection):
                    return edge

            edge = Edge.from_connection(connection)
            self._edges.append(edge)

        logger.debug(
            "Edge added",
            extra={"edge_id": edge.id, "edge_count": len(self._edges)},
        )
        return edge

    def remove_edge(self, edge_id: str) -> bool:
        return self.remove_edges_matching(lambda edge: edge.id == edge_id) > 0

    def remove_edges_matching(self, predicate: Callable[[Edge], bool]) -> int:
        """Remove every edge for which ``predicate`` is true; returns the count."""
        with self._lock:
            kept = [edge for edge in self._edges if not predicate(edge)]
            removed = len(self._edges) - len(kept)
            self._edges = kept
        return removed

    # ------------------------------------------------------------------
    # Bulk replacement (undo/redo, persistence load)
    # ------------------------------------------------------------------

    def set_nodes(self, nodes: Iterable[Node]) -> None:
        """Replace all nodes. Edges touching a removed node are dropped."""
        nodes = list(nodes)
        by_id: Dict[str, Node] = {}
        for node in nodes:
            if node.id in by_id:
                raise GraphIntegrityError(f"Duplicate node id: {node.id}")
            by_id[node.id] = node
        with self._lock:
            self._nodes = by_id
            kept = [
                edge for edge in self._edges
                if edge.source in by_id and edge.target in by_id
            ]
            dropped = len(self._edges) - len(kept)
            self._edges = kept
        if dropped:
            logger.info("Dropped edges of removed nodes", extra={"edge_count": dropped})

    def set_edges(self, edges: Iterable[Edge]) -> None:
        """
        Replace all edges.

        Raises:
            GraphIntegrityError: dangling edges, self-loops or a cycle
        """
        edges = list(edges)
        with self._lock:
            self._check_edges(self._nodes, edges)
            cycle = find_cycle(self._nodes, edges)
            if cycle is not None:
                raise GraphIntegrityError(f"Edge set contains a cycle: {' -> '.join(cycle)}")
            self._edges = edges

    def load_snapshot(self, snapshot: GraphSnapshot) -> None:
        """
        Replace the whole graph from a snapshot.

        Raises:
            GraphIntegrityError: duplicate ids, dangling edges or a cycle
        """
        node_ids = [node.id for node in snapshot.nodes]
        if len(set(node_ids)) != len(node_ids):
            raise GraphIntegrityError("Snapshot contains duplicate node ids")

        self._check_edges(set(node_ids), snapshot.edges)

        cycle = find_cycle(node_ids, snapshot.edges)
        if cycle is not None:
            raise GraphIntegrityError(f"Snapshot contains a cycle: {' -> '.join(cycle)}")

        with self._lock:
            self._nodes = {node.id: node for node in snapshot.nodes}
            self._edges = list(snapshot.edges)

        logger.info(
            "Graph loaded",
            extra={"node_count": len(node_ids), "edge_count": len(snapshot.edges)},
        )

    @staticmethod
    def _check_edges(known: Iterable[str], edges: Iterable[Edge]) -> None:
        known = set(known)
        for edge in edges:
            if edge.source not in known or edge.target not in known:
                raise GraphIntegrityError(f"Edge {edge.id} references a missing node")
            if edge.source == edge.target:
                raise GraphIntegrityError(f"Edge {edge.id} is a self-loop")

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def subscribe(self, observer: NodeObserver) -> Callable[[], None]:
        """
        Register a callback run after every node data update.

        Returns:
            A function that unregisters the observer
        """
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def _notify(self, node_id: str, changed: List[str]) -> None:
        for observer in list(self._observers):
            try:
                observer(node_id, changed)
            except Exception:
                logger.error(
                    "Graph observer failed",
                    extra={"node_id": node_id},
                    exc_info=True,
                )


__all__ = [
    "ConnectionRejectedError",
    "GraphError",
    "GraphIntegrityError",
    "GraphStore",
    "NodeNotFoundError",
]
