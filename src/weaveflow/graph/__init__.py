"""
Workflow graph - nodes, edges, validation and value resolution.

This package provides:
- models: Node / Edge / per-type data variants
- handles: handle-kind lookup per node type
- ConnectionValidator: DAG and handle admission rules
- GraphStore: authoritative in-memory graph
- ValueResolver: pull-based input resolution
- GraphPersistence: snapshot save/load through a key-value backend
"""

from .handles import OUTPUT_HANDLE, handle_kind
from .models import (
    Connection,
    DataKind,
    Edge,
    GraphSnapshot,
    Node,
    NodeType,
    Position,
    build_node,
)
from .persistence import GraphPersistence, MemoryBackend, RedisBackend
from .resolver import ValueResolver, is_media_reference
from .store import (
    ConnectionRejectedError,
    GraphError,
    GraphIntegrityError,
    GraphStore,
    NodeNotFoundError,
)
from .validator import ConnectionValidator, Rejection, ValidationResult

__all__ = [
    # Models
    "Connection",
    "DataKind",
    "Edge",
    "GraphSnapshot",
    "Node",
    "NodeType",
    "Position",
    "build_node",
    # Handles
    "OUTPUT_HANDLE",
    "handle_kind",
    # Validation
    "ConnectionValidator",
    "Rejection",
    "ValidationResult",
    # Store
    "ConnectionRejectedError",
    "GraphError",
    "GraphIntegrityError",
    "GraphStore",
    "NodeNotFoundError",
    # Resolution
    "ValueResolver",
    "is_media_reference",
    # Persistence
    "GraphPersistence",
    "MemoryBackend",
    "RedisBackend",
]
