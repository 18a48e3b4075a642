"""LLM node executor."""
import asyncio
from typing import Any, Awaitable, Callable, Mapping

from weaveflow.capabilities.base import LLMCapability
from weaveflow.capabilities.gemini import is_raw_base64_image
from weaveflow.executors.base import (
    ExecutionOutcome,
    ExecutorError,
    NodeExecutor,
    NodeInputError,
    RemoteExecutionError,
)
from weaveflow.executors.retry import Retrier, RetryPolicy
from weaveflow.graph.models import LLMData, Node, NodeType
from weaveflow.graph.resolver import is_media_reference
from weaveflow.observability import get_logger

logger = get_logger(__name__)

MISSING_MESSAGE_ERROR = "Please provide a user message or connect a text node"


def usable_images(images: list[str], node_id: str | None = None) -> list[str]:
    """Keep data URIs, http(s) URLs and plausible raw base64; drop the rest."""
    kept = []
    for index, image in enumerate(images):
        if is_media_reference(image) or (isinstance(image, str) and is_raw_base64_image(image)):
            kept.append(image)
        else:
            preview = str(image)[:50]
            logger.warning(
                f"Dropping invalid image input at index {index}: {preview!r}",
                extra={"node_id": node_id} if node_id else {},
            )
    return kept


class LLMExecutor(NodeExecutor):
    """
    Calls the LLM capability with the node's prompt and images.

    Remote failures are retried per the RetryPolicy; the attempt count
    ends up on the outcome (or on the raised RemoteExecutionError).
    """

    node_type = NodeType.LLM
    input_fields = {
        "system_prompt": "system_prompt",
        "user_message": "user_message",
        "images": "images",
    }

    def __init__(
        self,
        llm: LLMCapability | None,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.llm = llm
        self.policy = policy or RetryPolicy.from_settings()
        self._sleep = sleep

    async def run(self, node: Node, inputs: Mapping[str, Any]) -> ExecutionOutcome:
        data: LLMData = node.data
        if not data.user_message or not data.user_message.strip():
            raise NodeInputError(MISSING_MESSAGE_ERROR)
        if self.llm is None:
            raise ExecutorError("LLM capability is not configured")

        images = usable_images(data.images, node.id)
        system_prompt = data.system_prompt or None
        retrier = Retrier(self.policy, sleep=self._sleep)

        async def generate() -> str:
            return await self.llm.generate(data.model, system_prompt, data.user_message, images)

        try:
            text = await retrier.call(generate, extra={"node_id": node.id, "model": data.model})
        except Exception as e:
            raise RemoteExecutionError(e, attempts=retrier.attempts) from e

        return ExecutionOutcome(updates={"output": text}, attempts=retrier.attempts)

    def ledger_inputs(self, data: LLMData) -> dict[str, Any]:
        return {
            "model": data.model,
            "systemPrompt": data.system_prompt or None,
            "userMessage": data.user_message,
            "imagesCount": len(data.images),
        }
