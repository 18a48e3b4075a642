"""Storage package - run ledger and its stores."""
from weaveflow.storage.ledger import (
    LedgerError,
    NodeRunRecord,
    NodeRunStatus,
    RunLedger,
    RunScope,
    RunStatus,
    RunStore,
    WorkflowRunRecord,
)
from weaveflow.storage.memory_store import InMemoryRunStore
from weaveflow.storage.redis_store import RedisRunStore

__all__ = [
    "InMemoryRunStore",
    "LedgerError",
    "NodeRunRecord",
    "NodeRunStatus",
    "RedisRunStore",
    "RunLedger",
    "RunScope",
    "RunStatus",
    "RunStore",
    "WorkflowRunRecord",
]
