"""Crop image node executor."""
from typing import Any, Mapping

from weaveflow.capabilities.base import MediaCapability
from weaveflow.executors.base import (
    ExecutionOutcome,
    ExecutorError,
    NodeExecutor,
    NodeInputError,
    RemoteExecutionError,
)
from weaveflow.graph.models import CropImageData, Node, NodeType

PERCENT_FIELDS = ("x_percent", "y_percent", "width_percent", "height_percent")


def parse_percent(name: str, value: Any) -> float:
    """Parse a connected percentage value and check it lies in [0, 100]."""
    try:
        percent = float(str(value).strip().rstrip("%"))
    except ValueError:
        raise NodeInputError(f"Invalid {name}: {value!r} is not a number")
    if not 0 <= percent <= 100:
        raise NodeInputError(f"Invalid {name}: {percent} must be between 0 and 100")
    return percent


class CropImageExecutor(NodeExecutor):
    """Crops an image by percentages through the media capability (single attempt)."""

    node_type = NodeType.CROP_IMAGE
    input_fields = {"image_url": "image_url"}

    def __init__(self, media: MediaCapability | None):
        self.media = media

    def crop_box(self, data: CropImageData, inputs: Mapping[str, Any]) -> dict[str, float]:
        box = {}
        for name in PERCENT_FIELDS:
            value = inputs.get(name)
            box[name] = parse_percent(name, value) if value is not None else getattr(data, name)
        return box

    async def run(self, node: Node, inputs: Mapping[str, Any]) -> ExecutionOutcome:
        data: CropImageData = node.data
        if not data.image_url:
            raise NodeInputError("Please connect an image input")
        box = self.crop_box(data, inputs)
        if self.media is None:
            raise ExecutorError("Media capability is not configured")

        try:
            output_url = await self.media.crop(data.image_url, **box)
        except Exception as e:
            raise RemoteExecutionError(e) from e

        updates: dict[str, Any] = {"output_url": output_url or data.image_url}
        updates.update(box)
        return ExecutionOutcome(updates=updates)

    def ledger_inputs(self, data: CropImageData) -> dict[str, Any]:
        return {
            "imageUrl": data.image_url,
            "xPercent": data.x_percent,
            "yPercent": data.y_percent,
            "widthPercent": data.width_percent,
            "heightPercent": data.height_percent,
        }

    def ledger_outputs(self, outcome: ExecutionOutcome) -> dict[str, Any]:
        return {"outputUrl": outcome.updates.get("output_url")}
