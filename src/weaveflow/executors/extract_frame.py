"""Extract frame node executor."""
from typing import Any, Mapping

from weaveflow.capabilities.base import MediaCapability, RemoteCallError
from weaveflow.executors.base import (
    ExecutionOutcome,
    ExecutorError,
    NodeExecutor,
    NodeInputError,
    RemoteExecutionError,
)
from weaveflow.graph.models import ExtractFrameData, Node, NodeType


class ExtractFrameExecutor(NodeExecutor):
    node_type = NodeType.EXTRACT_FRAME
    input_fields = {"video_url": "video_url", "timestamp": "timestamp"}

    def __init__(self, media: MediaCapability | None):
        self.media = media

    async def run(self, node: Node, inputs: Mapping[str, Any]) -> ExecutionOutcome:
        data: ExtractFrameData = node.data
        if not data.video_url:
            raise NodeInputError("Please connect a video input")
        if self.media is None:
            raise ExecutorError("Media capability is not configured")

        # Timestamp is passed through as-is ("12.5" or "50%")
        timestamp = data.timestamp.strip() or "0"
        try:
            output_url = await self.media.extract_frame(data.video_url, timestamp)
            if not output_url:
                raise RemoteCallError("Media service returned no frame")
        except Exception as e:
            raise RemoteExecutionError(e) from e

        return ExecutionOutcome(updates={"output_url": output_url})

    def ledger_inputs(self, data: ExtractFrameData) -> dict[str, Any]:
        return {"videoUrl": data.video_url, "timestamp": data.timestamp}

    def ledger_outputs(self, outcome: ExecutionOutcome) -> dict[str, Any]:
        return {"outputUrl": outcome.updates.get("output_url")}
