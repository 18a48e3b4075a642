"""Run ledger - records of node and workflow executions."""
import re
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Protocol

from pydantic import BaseModel, Field

from weaveflow.config import get_settings
from weaveflow.observability import get_logger

logger = get_logger(__name__)

TRUNCATION_SUFFIX = "... (truncated)"

_DATA_URI = re.compile(r"^data:([^;,]*)[;,]")


class RunStatus(str, Enum):
    """Overall workflow run status."""

    SUCCESS = "success"
    FAILED = "failed"
    PARTIAL = "partial"
    RUNNING = "running"


class NodeRunStatus(str, Enum):
    """Single node run status."""

    SUCCESS = "success"
    FAILED = "failed"
    RUNNING = "running"


class RunScope(str, Enum):
    """What triggered the run."""

    SINGLE = "single"
    PARTIAL = "partial"
    FULL = "full"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_id() -> str:
    return str(uuid.uuid4())


class NodeRunRecord(BaseModel):
    """One node execution nested under a workflow run."""

    id: str = Field(default_factory=_new_id, description="Node run ID")
    node_id: str = Field(..., description="Graph node ID")
    node_type: str = Field(..., description="Node type tag")
    status: NodeRunStatus = Field(..., description="Node run status")
    duration_ms: float | None = Field(default=None, description="Execution time in milliseconds")
    inputs: dict[str, Any] = Field(default_factory=dict, description="Truncated input summary")
    outputs: dict[str, Any] | None = Field(default=None, description="Truncated output summary")
    error: str | None = Field(default=None, description="Error message if failed")
    created_at: str = Field(default_factory=_now, description="ISO timestamp")


class WorkflowRunRecord(BaseModel):
    """One triggered execution scope with its node runs."""

    id: str = Field(default_factory=_new_id, description="Workflow run ID")
    owner_id: str = Field(..., description="Opaque owner identifier")
    status: RunStatus = Field(..., description="Overall status")
    scope: RunScope = Field(..., description="Execution scope")
    duration_ms: float | None = Field(default=None, description="Total duration in milliseconds")
    node_ids: list[str] = Field(default_factory=list, description="Nodes involved in the run")
    created_at: str = Field(default_factory=_now, description="ISO timestamp")
    node_runs: list[NodeRunRecord] = Field(default_factory=list, description="Nested node runs")


class LedgerError(Exception):
    """Raised by run stores when the backing storage fails."""

    pass


class RunStore(Protocol):
    """Persistence contract for the run ledger."""

    def create_workflow_run(self, record: WorkflowRunRecord) -> str: ...

    def update_workflow_run(self, record: WorkflowRunRecord) -> None: ...

    def list_runs(self, owner_id: str, limit: int) -> list[WorkflowRunRecord]: ...

    def delete_all_runs(self, owner_id: str) -> int: ...


def truncate_text(value: str, limit: int) -> str:
    """Cap ``value`` at ``limit`` characters, marking the cut."""
    if len(value) <= limit:
        return value
    return value[:limit] + TRUNCATION_SUFFIX


def summarize_value(value: Any, limit: int) -> Any:
    """
    Storage-hygiene filter for ledger payloads.

    data: URIs become a short description; long strings are truncated;
    lists and dicts are filtered recursively.
    """
    if isinstance(value, str):
        match = _DATA_URI.match(value)
        if match:
            mime_type = match.group(1) or "unknown"
            return f"[data URI {mime_type}, {len(value)} chars]"
        return truncate_text(value, limit)
    if isinstance(value, list):
        return [summarize_value(item, limit) for item in value]
    if isinstance(value, dict):
        return {key: summarize_value(item, limit) for key, item in value.items()}
    return value


def aggregate_status(statuses: list[NodeRunStatus]) -> RunStatus:
    if any(status == NodeRunStatus.RUNNING for status in statuses):
        return RunStatus.RUNNING
    if statuses and all(status == NodeRunStatus.SUCCESS for status in statuses):
        return RunStatus.SUCCESS
    if all(status == NodeRunStatus.FAILED for status in statuses):
        return RunStatus.FAILED
    return RunStatus.PARTIAL


class RunLedger:
    """
    Best-effort front for a RunStore.

    Writes never raise: a store failure is logged and reported as a
    missing run id. Reads return an empty list on failure.
    """

    def __init__(
        self,
        store: RunStore | None,
        enabled: bool | None = None,
        input_char_limit: int | None = None,
        output_char_limit: int | None = None,
        list_limit: int | None = None,
    ):
        settings = get_settings()
        self.store = store
        self.enabled = settings.ledger_enabled if enabled is None else enabled
        self.input_char_limit = input_char_limit or settings.ledger_input_char_limit
        self.output_char_limit = output_char_limit or settings.ledger_output_char_limit
        self.list_limit = list_limit or settings.ledger_list_limit

    @property
    def active(self) -> bool:
        return self.enabled and self.store is not None

    def summarize_inputs(self, inputs: dict[str, Any]) -> dict[str, Any]:
        return summarize_value(inputs, self.input_char_limit)

    def summarize_outputs(self, outputs: dict[str, Any] | None) -> dict[str, Any] | None:
        if outputs is None:
            return None
        return summarize_value(outputs, self.output_char_limit)

    def record(
        self,
        owner_id: str | None,
        scope: RunScope,
        node_runs: list[NodeRunRecord],
        duration_ms: float | None = None,
    ) -> str | None:
        """
        Persist a finished workflow run with its node runs.

        Returns:
            The stored run id, or None when skipped or when the store failed
        """
        if not self.active or not owner_id:
            return None

        record = WorkflowRunRecord(
            owner_id=owner_id,
            status=aggregate_status([run.status for run in node_runs]),
            scope=scope,
            duration_ms=duration_ms,
            node_ids=[run.node_id for run in node_runs],
            node_runs=node_runs,
        )
        if not self._create(record):
            return None
        return record.id

    def start(
        self,
        owner_id: str | None,
        scope: RunScope,
        node_runs: list[NodeRunRecord],
    ) -> WorkflowRunRecord | None:
        """
        Create a ``running`` entry before any node executes.

        Returns:
            The stored record, to be passed to ``finish``; None when skipped
            or when the store failed
        """
        if not self.active or not owner_id:
            return None

        record = WorkflowRunRecord(
            owner_id=owner_id,
            status=RunStatus.RUNNING,
            scope=scope,
            node_ids=[run.node_id for run in node_runs],
            node_runs=node_runs,
        )
        if not self._create(record):
            return None
        return record

    def finish(
        self,
        run: WorkflowRunRecord,
        node_runs: list[NodeRunRecord],
        duration_ms: float | None = None,
    ) -> str | None:
        """
        Replace a started entry's node runs with their final state.

        Node runs keep the id and timestamp they were started with.

        Returns:
            The run id, or None when the store failed
        """
        started = {node_run.node_id: node_run for node_run in run.node_runs}
        final = []
        for node_run in node_runs:
            pending = started.get(node_run.node_id)
            if pending is not None:
                node_run = node_run.model_copy(
                    update={"id": pending.id, "created_at": pending.created_at}
                )
            final.append(node_run)

        record = run.model_copy(
            update={
                "status": aggregate_status([node_run.status for node_run in final]),
                "duration_ms": duration_ms,
                "node_ids": [node_run.node_id for node_run in final],
                "node_runs": final,
            }
        )
        try:
            self.store.update_workflow_run(record)
        except Exception as e:
            logger.error(
                f"Failed to update workflow run: {e}",
                extra={"run_id": run.id, "owner_id": run.owner_id},
                exc_info=True,
            )
            return None

        logger.info(
            "Workflow run recorded",
            extra={"run_id": record.id, "owner_id": record.owner_id, "status": record.status.value},
        )
        return record.id

    def _create(self, record: WorkflowRunRecord) -> bool:
        try:
            self.store.create_workflow_run(record)
        except Exception as e:
            logger.error(
                f"Failed to record workflow run: {e}",
                extra={"owner_id": record.owner_id, "scope": record.scope.value},
                exc_info=True,
            )
            return False

        if record.status != RunStatus.RUNNING:
            logger.info(
                "Workflow run recorded",
                extra={"run_id": record.id, "owner_id": record.owner_id, "status": record.status.value},
            )
        return True

    def list_runs(self, owner_id: str | None, limit: int | None = None) -> list[WorkflowRunRecord]:
        """
        Most recent runs for an owner, newest first, node runs newest first.

        Raises:
            ValueError: If ``limit`` is below 1
        """
        if limit is None:
            limit = self.list_limit
        elif limit < 1:
            raise ValueError(f"limit must be at least 1, got {limit}")
        if self.store is None or not owner_id:
            return []
        try:
            runs = self.store.list_runs(owner_id, limit)
        except Exception as e:
            logger.error(
                f"Failed to list workflow runs: {e}",
                extra={"owner_id": owner_id},
                exc_info=True,
            )
            return []

        runs = sorted(runs, key=lambda run: run.created_at, reverse=True)
        for run in runs:
            run.node_runs.sort(key=lambda node_run: node_run.created_at, reverse=True)
        return runs[:limit]

    def delete_all_runs(self, owner_id: str) -> int:
        """
        Purge every run of an owner.

        Raises:
            LedgerError: If the store fails
        """
        if self.store is None:
            return 0
        try:
            count = self.store.delete_all_runs(owner_id)
        except LedgerError:
            raise
        except Exception as e:
            raise LedgerError(f"Failed to delete workflow runs: {e}") from e
        logger.info("Workflow runs deleted", extra={"owner_id": owner_id, "deleted_count": count})
        return count
