"""
Value Resolver - pull-based propagation of values along edges.

Nothing is cached: every call recomputes from the current store state, so
callers re-resolve after upstream mutations.
"""

from __future__ import annotations

from typing import Any, Dict, Iterator, List, Optional, Tuple

from .handles import INPUT_HANDLES, OUTPUT_HANDLE, handle_kind, is_list_handle
from .models import DataKind, Edge, Node, NodeType
from .store import GraphStore, NodeNotFoundError

MEDIA_URI_PREFIXES = ("data:", "http://", "https://")
TEXT_SEPARATOR = "\n\n"


def is_media_reference(value: Any) -> bool:
    """True for strings that look like a usable image/video reference."""
    return isinstance(value, str) and value.startswith(MEDIA_URI_PREFIXES)


class ValueResolver:
    """Computes effective input values from upstream node state."""

    def __init__(self, store: GraphStore):
        self._store = store

    def connected_producers(self, node_id: str, handle_id: Optional[str] = None) -> List[Node]:
        """
        Nodes feeding ``node_id`` (optionally through one input handle).

        Returned in edge-insertion order; edges whose source no longer
        exists are skipped.
        """
        return [node for _, node in self._producer_edges(node_id, handle_id)]

    def resolve_value(self, node_id: str, output_handle: Optional[str] = None) -> Optional[str]:
        """
        Current output value exposed by a node.

        Passive nodes expose their content field. Active nodes expose their
        result only through the ``output`` handle.

        Returns:
            The value, or None when the node is absent or has no value yet
        """
        node = self._store.get_node(node_id)
        if node is None:
            return None

        data = node.data
        node_type = node.node_type
        if node_type == NodeType.TEXT:
            value = data.text
        elif node_type == NodeType.UPLOAD_IMAGE:
            value = data.image_url
        elif node_type == NodeType.UPLOAD_VIDEO:
            value = data.video_url
        elif output_handle != OUTPUT_HANDLE:
            value = None
        elif node_type == NodeType.LLM:
            value = data.output
        else:
            value = data.output_url

        return value or None

    def resolve_text(self, node_id: str, handle_id: str) -> Optional[str]:
        """Non-blank producer values joined by a blank line, or None."""
        values = [
            value for value in self._producer_values(node_id, handle_id)
            if value is not None and value.strip() != ""
        ]
        return TEXT_SEPARATOR.join(values) if values else None

    def resolve_references(self, node_id: str, handle_id: str) -> List[str]:
        """Producer values that are data/http(s) URIs; anything else is dropped."""
        return [
            value for value in self._producer_values(node_id, handle_id)
            if is_media_reference(value)
        ]

    def resolve_input(self, node_id: str, handle_id: str) -> Any:
        """
        Effective value for one input handle, aggregated by the handle's kind.

        - text handles: concatenation (str or None)
        - list media handles (LLM ``images``): list of references
        - scalar media handles: first usable reference (str or None)
        """
        node = self._store.get_node(node_id)
        if node is None:
            raise NodeNotFoundError(node_id)

        kind = handle_kind(node.type, handle_id, is_output=False)
        if kind in (DataKind.IMAGE, DataKind.VIDEO):
            references = self.resolve_references(node_id, handle_id)
            if is_list_handle(node.type, handle_id):
                return references
            return references[0] if references else None
        return self.resolve_text(node_id, handle_id)

    def resolve_inputs(self, node_id: str) -> Dict[str, Any]:
        """Resolved values for every *connected* input handle of a node."""
        node = self._store.get_node(node_id)
        if node is None:
            raise NodeNotFoundError(node_id)

        connected = {edge.target_handle for edge in self._store.incoming_edges(node_id)}
        return {
            handle_id: self.resolve_input(node_id, handle_id)
            for handle_id in INPUT_HANDLES[node.node_type]
            if handle_id in connected
        }

    def _producer_edges(
        self,
        node_id: str,
        handle_id: Optional[str],
    ) -> Iterator[Tuple[Edge, Node]]:
        for edge in self._store.incoming_edges(node_id, handle_id):
            source = self._store.get_node(edge.source)
            if source is not None:
                yield edge, source

    def _producer_values(self, node_id: str, handle_id: str) -> Iterator[Optional[str]]:
        for edge, source in self._producer_edges(node_id, handle_id):
            # Every node type has a single output; an omitted handle means it
            yield self.resolve_value(source.id, edge.source_handle or OUTPUT_HANDLE)


__all__ = [
    "MEDIA_URI_PREFIXES",
    "ValueResolver",
    "is_media_reference",
]
