"""Redis-backed run store."""
import redis

from weaveflow.config import get_settings
from weaveflow.observability import get_logger
from weaveflow.storage.ledger import LedgerError, WorkflowRunRecord

logger = get_logger(__name__)


class RedisRunStore:
    """
    Redis-backed store for workflow runs.

    Each run is stored as JSON under ``run:<id>``; each owner has a
    newest-first list of run ids under ``runs:<owner>``.
    """

    def __init__(self, redis_client: redis.Redis | None = None):
        """
        Initialize run store.

        Args:
            redis_client: Optional Redis client (will create one if not provided)
        """
        if redis_client is None:
            settings = get_settings()
            self.redis_client = redis.from_url(
                settings.redis_url,
                decode_responses=True,
            )
        else:
            self.redis_client = redis_client

        self._run_prefix = "run:"
        self._owner_prefix = "runs:"

    def _run_key(self, run_id: str) -> str:
        """Get Redis key for a run."""
        return f"{self._run_prefix}{run_id}"

    def _owner_key(self, owner_id: str) -> str:
        """Get Redis key for an owner's run list."""
        return f"{self._owner_prefix}{owner_id}"

    def create_workflow_run(self, record: WorkflowRunRecord) -> str:
        try:
            self.redis_client.set(self._run_key(record.id), record.model_dump_json())
            self.redis_client.lpush(self._owner_key(record.owner_id), record.id)
        except redis.RedisError as e:
            raise LedgerError(f"Failed to store run {record.id}: {e}") from e

        logger.debug("Run stored", extra={"run_id": record.id, "owner_id": record.owner_id})
        return record.id

    def update_workflow_run(self, record: WorkflowRunRecord) -> None:
        """Overwrite a stored run; a run purged in the meantime stays deleted."""
        try:
            self.redis_client.set(self._run_key(record.id), record.model_dump_json(), xx=True)
        except redis.RedisError as e:
            raise LedgerError(f"Failed to update run {record.id}: {e}") from e

    def list_runs(self, owner_id: str, limit: int) -> list[WorkflowRunRecord]:
        try:
            run_ids = self.redis_client.lrange(self._owner_key(owner_id), 0, limit - 1)
            runs = []
            for run_id in run_ids:
                payload = self.redis_client.get(self._run_key(run_id))
                if payload is None:
                    logger.warning("Run listed but missing", extra={"run_id": run_id})
                    continue
                runs.append(WorkflowRunRecord.model_validate_json(payload))
        except redis.RedisError as e:
            raise LedgerError(f"Failed to list runs: {e}") from e
        return runs

    def delete_all_runs(self, owner_id: str) -> int:
        owner_key = self._owner_key(owner_id)
        try:
            run_ids = self.redis_client.lrange(owner_key, 0, -1)
            if run_ids:
                self.redis_client.delete(*[self._run_key(run_id) for run_id in run_ids])
            self.redis_client.delete(owner_key)
        except redis.RedisError as e:
            raise LedgerError(f"Failed to delete runs: {e}") from e
        return len(run_ids)
