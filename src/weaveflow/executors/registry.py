"""Executor registry keyed by node type."""
import asyncio
from typing import Awaitable, Callable

from weaveflow.capabilities.base import LLMCapability, MediaCapability
from weaveflow.executors.base import NodeExecutor, UnknownNodeTypeError
from weaveflow.executors.crop import CropImageExecutor
from weaveflow.executors.extract_frame import ExtractFrameExecutor
from weaveflow.executors.llm import LLMExecutor
from weaveflow.executors.passive import TextExecutor, UploadImageExecutor, UploadVideoExecutor
from weaveflow.executors.retry import RetryPolicy
from weaveflow.graph.models import NodeType
from weaveflow.observability import get_logger

logger = get_logger(__name__)


class ExecutorRegistry:
    """Registry for node executors."""

    def __init__(self):
        self._executors: dict[NodeType, NodeExecutor] = {}

    def register(self, executor: NodeExecutor) -> None:
        """
        Register an executor, replacing any previous one for its node type.

        Args:
            executor: Executor instance to register
        """
        self._executors[executor.node_type] = executor
        logger.debug(f"Executor registered: {executor.node_type.value}")

    def get(self, node_type: NodeType | str) -> NodeExecutor:
        """
        Get the executor for a node type.

        Raises:
            UnknownNodeTypeError: If nothing is registered for the type
        """
        try:
            executor = self._executors.get(NodeType(node_type))
        except ValueError:
            executor = None
        if executor is None:
            raise UnknownNodeTypeError(str(node_type))
        return executor

    def list_node_types(self) -> list[str]:
        return [node_type.value for node_type in self._executors]


def build_registry(
    llm: LLMCapability | None = None,
    media: MediaCapability | None = None,
    policy: RetryPolicy | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> ExecutorRegistry:
    """Registry with one executor per node type."""
    registry = ExecutorRegistry()
    registry.register(TextExecutor())
    registry.register(UploadImageExecutor())
    registry.register(UploadVideoExecutor())
    registry.register(LLMExecutor(llm, policy=policy, sleep=sleep))
    registry.register(CropImageExecutor(media))
    registry.register(ExtractFrameExecutor(media))
    return registry
