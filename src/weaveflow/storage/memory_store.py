"""In-memory run store."""
import threading

from weaveflow.storage.ledger import WorkflowRunRecord


class InMemoryRunStore:
    """Process-local run store; newest run first per owner."""

    def __init__(self):
        self._runs: dict[str, list[WorkflowRunRecord]] = {}
        self._lock = threading.Lock()

    def create_workflow_run(self, record: WorkflowRunRecord) -> str:
        with self._lock:
            self._runs.setdefault(record.owner_id, []).insert(0, record.model_copy(deep=True))
        return record.id

    def update_workflow_run(self, record: WorkflowRunRecord) -> None:
        with self._lock:
            runs = self._runs.get(record.owner_id, [])
            for i, run in enumerate(runs):
                if run.id == record.id:
                    runs[i] = record.model_copy(deep=True)
                    return

    def list_runs(self, owner_id: str, limit: int) -> list[WorkflowRunRecord]:
        with self._lock:
            runs = self._runs.get(owner_id, [])[:limit]
            return [run.model_copy(deep=True) for run in runs]

    def delete_all_runs(self, owner_id: str) -> int:
        with self._lock:
            return len(self._runs.pop(owner_id, []))
