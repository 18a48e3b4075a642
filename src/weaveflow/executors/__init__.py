"""
Node executors - per-type run behaviour.

This package provides:
- NodeExecutor: executor contract (input relays + run)
- ExecutorRegistry / build_registry: dispatch by node type
- Retrier / RetryPolicy: bounded retry for remote calls
- describe_error: user-facing error translation
- NodeRunner: run lifecycle, node state and ledger recording
"""
from weaveflow.capabilities.base import RemoteCallError, RemoteTimeoutError
from weaveflow.executors.base import (
    ExecutionOutcome,
    ExecutorError,
    NodeExecutor,
    NodeInputError,
    NotRunnableError,
    RemoteExecutionError,
    UnknownNodeTypeError,
)
from weaveflow.executors.errors import ErrorCategory, describe_error
from weaveflow.executors.registry import ExecutorRegistry, build_registry
from weaveflow.executors.retry import Retrier, RetryPolicy, is_retryable
from weaveflow.executors.runner import NodeRunner, NodeRunResult

__all__ = [
    "ErrorCategory",
    "ExecutionOutcome",
    "ExecutorError",
    "ExecutorRegistry",
    "NodeExecutor",
    "NodeInputError",
    "NodeRunResult",
    "NodeRunner",
    "NotRunnableError",
    "RemoteCallError",
    "RemoteExecutionError",
    "RemoteTimeoutError",
    "Retrier",
    "RetryPolicy",
    "UnknownNodeTypeError",
    "build_registry",
    "describe_error",
    "is_retryable",
]
