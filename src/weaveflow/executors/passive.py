"""Passive node types: content holders that relay a connected input."""
from weaveflow.executors.base import NodeExecutor
from weaveflow.graph.models import NodeType


class TextExecutor(NodeExecutor):
    node_type = NodeType.TEXT
    runnable = False
    input_fields = {"input": "text"}


class UploadImageExecutor(NodeExecutor):
    node_type = NodeType.UPLOAD_IMAGE
    runnable = False
    input_fields = {"input": "image_url"}


class UploadVideoExecutor(NodeExecutor):
    node_type = NodeType.UPLOAD_VIDEO
    runnable = False
    input_fields = {"input": "video_url"}
