"""
Graph Models - nodes, edges and per-type node data.

Node ``data`` is a closed tagged union keyed by the node ``type``. The wire
format uses the camelCase field names of the canvas JSON (``userMessage``,
``isRunning``...); Python code uses snake_case attributes. Both are accepted
on input.
"""

from __future__ import annotations

import random
import string
import time
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

from weaveflow.config import get_settings


class NodeType(str, Enum):
    """Node type tags as they appear in the graph JSON."""
    TEXT = "text"
    UPLOAD_IMAGE = "uploadImage"
    UPLOAD_VIDEO = "uploadVideo"
    LLM = "llm"
    CROP_IMAGE = "cropImage"
    EXTRACT_FRAME = "extractFrame"


class DataKind(str, Enum):
    """Semantic kind carried by a handle."""
    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"


class Position(BaseModel):
    """Node position in the canvas."""
    x: float = 0
    y: float = 0


# ---------------------------------------------------------------------------
# Node data variants
# ---------------------------------------------------------------------------


class NodeData(BaseModel):
    """Fields shared by every data variant."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )

    is_running: bool = False
    error: Optional[str] = None


class TextData(NodeData):
    text: str = ""


class UploadImageData(NodeData):
    image_url: Optional[str] = None
    file_name: Optional[str] = None


class UploadVideoData(NodeData):
    video_url: Optional[str] = None
    file_name: Optional[str] = None


def _default_llm_model() -> str:
    return get_settings().default_llm_model


class LLMData(NodeData):
    model: str = Field(default_factory=_default_llm_model)
    system_prompt: str = ""
    user_message: str = ""
    images: List[str] = Field(default_factory=list)
    output: Optional[str] = None


class CropImageData(NodeData):
    image_url: Optional[str] = None
    x_percent: float = Field(0, ge=0, le=100)
    y_percent: float = Field(0, ge=0, le=100)
    width_percent: float = Field(100, ge=0, le=100)
    height_percent: float = Field(100, ge=0, le=100)
    output_url: Optional[str] = None


class ExtractFrameData(NodeData):
    video_url: Optional[str] = None
    # Seconds ("12.5") or a percentage of the duration ("50%")
    timestamp: str = "0"
    output_url: Optional[str] = None


# ---------------------------------------------------------------------------
# Nodes
# ---------------------------------------------------------------------------


class _NodeBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., description="Unique node id")
    position: Position = Field(default_factory=Position)

    @property
    def node_type(self) -> NodeType:
        return NodeType(self.type)  # type: ignore[attr-defined]


class TextNode(_NodeBase):
    type: Literal["text"] = "text"
    data: TextData = Field(default_factory=TextData)


class UploadImageNode(_NodeBase):
    type: Literal["uploadImage"] = "uploadImage"
    data: UploadImageData = Field(default_factory=UploadImageData)


class UploadVideoNode(_NodeBase):
    type: Literal["uploadVideo"] = "uploadVideo"
    data: UploadVideoData = Field(default_factory=UploadVideoData)


class LLMNode(_NodeBase):
    type: Literal["llm"] = "llm"
    data: LLMData = Field(default_factory=LLMData)


class CropImageNode(_NodeBase):
    type: Literal["cropImage"] = "cropImage"
    data: CropImageData = Field(default_factory=CropImageData)


class ExtractFrameNode(_NodeBase):
    type: Literal["extractFrame"] = "extractFrame"
    data: ExtractFrameData = Field(default_factory=ExtractFrameData)


Node = Annotated[
    Union[
        TextNode,
        UploadImageNode,
        UploadVideoNode,
        LLMNode,
        CropImageNode,
        ExtractFrameNode,
    ],
    Field(discriminator="type"),
]

NODE_CLASSES: Dict[NodeType, Type[_NodeBase]] = {
    NodeType.TEXT: TextNode,
    NodeType.UPLOAD_IMAGE: UploadImageNode,
    NodeType.UPLOAD_VIDEO: UploadVideoNode,
    NodeType.LLM: LLMNode,
    NodeType.CROP_IMAGE: CropImageNode,
    NodeType.EXTRACT_FRAME: ExtractFrameNode,
}

NODE_DATA_CLASSES: Dict[NodeType, Type[NodeData]] = {
    NodeType.TEXT: TextData,
    NodeType.UPLOAD_IMAGE: UploadImageData,
    NodeType.UPLOAD_VIDEO: UploadVideoData,
    NodeType.LLM: LLMData,
    NodeType.CROP_IMAGE: CropImageData,
    NodeType.EXTRACT_FRAME: ExtractFrameData,
}

node_adapter: TypeAdapter[Node] = TypeAdapter(Node)


def generate_node_id(node_type: NodeType | str) -> str:
    """Generate ``<type>-<epoch ms>-<9 base36 chars>``."""
    alphabet = string.digits + string.ascii_lowercase
    suffix = "".join(random.choices(alphabet, k=9))
    return f"{NodeType(node_type).value}-{int(time.time() * 1000)}-{suffix}"


def build_node(
    node_type: NodeType | str,
    node_id: Optional[str] = None,
    position: Position | Dict[str, float] | None = None,
    data: Optional[Dict[str, Any]] = None,
) -> Node:
    """Create a node with the default data of its type, overlaid with ``data``."""
    node_type = NodeType(node_type)
    node_class = NODE_CLASSES[node_type]
    return node_class(
        id=node_id or generate_node_id(node_type),
        position=Position.model_validate(position or {}),
        data=NODE_DATA_CLASSES[node_type].model_validate(data or {}),
    )


def data_field_name(data_class: Type[NodeData], key: str) -> str:
    """Map a wire (camelCase) or Python field name to the Python field name."""
    if key in data_class.model_fields:
        return key
    for name, info in data_class.model_fields.items():
        if info.alias == key:
            return name
    raise KeyError(key)


# ---------------------------------------------------------------------------
# Edges
# ---------------------------------------------------------------------------


class Connection(BaseModel):
    """A proposed edge, before validation."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    source: str
    target: str
    source_handle: Optional[str] = None
    target_handle: Optional[str] = None


class Edge(Connection):
    """Target's named input handle consumes source's named output handle."""

    id: str

    @classmethod
    def from_connection(cls, connection: Connection) -> "Edge":
        edge_id = (
            f"reactflow__edge-{connection.source}{connection.source_handle or ''}"
            f"-{connection.target}{connection.target_handle or ''}"
        )
        return cls(id=edge_id, **connection.model_dump())

    def same_link(self, other: Connection) -> bool:
        return (
            self.source == other.source
            and self.target == other.target
            and self.source_handle == other.source_handle
            and self.target_handle == other.target_handle
        )


class GraphSnapshot(BaseModel):
    """Serializable form of the whole graph (ordered edge list)."""

    nodes: List[Node] = Field(default_factory=list)
    edges: List[Edge] = Field(default_factory=list)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


__all__ = [
    "Connection",
    "CropImageData",
    "DataKind",
    "Edge",
    "ExtractFrameData",
    "GraphSnapshot",
    "LLMData",
    "Node",
    "NodeData",
    "NodeType",
    "NODE_CLASSES",
    "NODE_DATA_CLASSES",
    "Position",
    "TextData",
    "UploadImageData",
    "UploadVideoData",
    "build_node",
    "data_field_name",
    "generate_node_id",
    "node_adapter",
]
