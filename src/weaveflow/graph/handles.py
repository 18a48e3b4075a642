"""
Handle table - named input/output ports per node type.

Handles are not stored; they are derived from the node type. Every type
exposes exactly one output handle (``"output"``).
"""

from __future__ import annotations

from typing import Dict, Mapping, Optional

from .models import DataKind, NodeType

OUTPUT_HANDLE = "output"

INPUT_HANDLES: Dict[NodeType, Mapping[str, DataKind]] = {
    NodeType.TEXT: {"input": DataKind.TEXT},
    NodeType.UPLOAD_IMAGE: {"input": DataKind.IMAGE},
    NodeType.UPLOAD_VIDEO: {"input": DataKind.VIDEO},
    NodeType.LLM: {
        "system_prompt": DataKind.TEXT,
        "user_message": DataKind.TEXT,
        "images": DataKind.IMAGE,
    },
    NodeType.CROP_IMAGE: {
        "image_url": DataKind.IMAGE,
        "x_percent": DataKind.TEXT,
        "y_percent": DataKind.TEXT,
        "width_percent": DataKind.TEXT,
        "height_percent": DataKind.TEXT,
    },
    NodeType.EXTRACT_FRAME: {
        "video_url": DataKind.VIDEO,
        "timestamp": DataKind.TEXT,
    },
}

OUTPUT_KINDS: Dict[NodeType, DataKind] = {
    NodeType.TEXT: DataKind.TEXT,
    NodeType.UPLOAD_IMAGE: DataKind.IMAGE,
    NodeType.UPLOAD_VIDEO: DataKind.VIDEO,
    NodeType.LLM: DataKind.TEXT,
    NodeType.CROP_IMAGE: DataKind.IMAGE,
    NodeType.EXTRACT_FRAME: DataKind.IMAGE,
}

# Input handles that collect every producer instead of a single value
LIST_HANDLES = {(NodeType.LLM, "images")}


def handle_kind(
    node_type: NodeType | str,
    handle_id: Optional[str],
    is_output: bool,
) -> Optional[DataKind]:
    """
    Look up the data kind of a handle.

    Args:
        node_type: Node type owning the handle
        handle_id: Handle name; ``None`` never resolves
        is_output: True for the source side of an edge

    Returns:
        The handle's DataKind, or None when the handle is unknown
    """
    if not handle_id:
        return None
    try:
        node_type = NodeType(node_type)
    except ValueError:
        return None

    if is_output:
        return OUTPUT_KINDS[node_type] if handle_id == OUTPUT_HANDLE else None
    return INPUT_HANDLES[node_type].get(handle_id)


def is_list_handle(node_type: NodeType | str, handle_id: str) -> bool:
    return (NodeType(node_type), handle_id) in LIST_HANDLES


__all__ = [
    "INPUT_HANDLES",
    "OUTPUT_HANDLE",
    "OUTPUT_KINDS",
    "handle_kind",
    "is_list_handle",
]
