"""Graph persistence through an injected key-value backend."""
from typing import Protocol

import redis
from pydantic import ValidationError

from weaveflow.config import get_settings
from weaveflow.observability import get_logger

from .models import GraphSnapshot
from .store import GraphIntegrityError, GraphStore

logger = get_logger(__name__)

# Inline payloads are dropped before persisting to keep stored state small
LARGE_URL_FIELDS = ("image_url", "video_url", "output_url")


class KeyValueBackend(Protocol):
    """Minimal storage contract used by GraphPersistence."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> object: ...

    def delete(self, key: str) -> object: ...


class MemoryBackend:
    """Process-local backend."""

    def __init__(self):
        self._data: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class RedisBackend:
    """Redis-backed key-value storage."""

    def __init__(self, redis_client: redis.Redis | None = None):
        """
        Initialize backend.

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

    def get(self, key: str) -> str | None:
        return self.redis_client.get(key)

    def set(self, key: str, value: str) -> None:
        self.redis_client.set(key, value)

    def delete(self, key: str) -> None:
        self.redis_client.delete(key)


def persist_filter(snapshot: GraphSnapshot) -> GraphSnapshot:
    """
    Return a copy of ``snapshot`` without inline ``data:`` media payloads.

    Remote URLs are kept; only embedded base64 images/videos are cleared.
    """
    filtered = snapshot.model_copy(deep=True)
    for node in filtered.nodes:
        for field in LARGE_URL_FIELDS:
            value = getattr(node.data, field, None)
            if isinstance(value, str) and value.startswith("data:"):
                setattr(node.data, field, None)
    return filtered


class GraphPersistence:
    """Saves and restores a GraphStore under one storage key."""

    def __init__(self, backend: KeyValueBackend, key: str | None = None):
        self._backend = backend
        self._key = key or get_settings().graph_state_key

    def save(self, store: GraphStore) -> None:
        """Persist the filtered snapshot of ``store``."""
        payload = persist_filter(store.snapshot()).to_json()
        self._backend.set(self._key, payload)
        logger.info("Graph state saved", extra={"key": self._key, "bytes": len(payload)})

    def load(self, store: GraphStore) -> bool:
        """
        Restore ``store`` from the backend.

        Returns:
            False when nothing has been saved yet

        Raises:
            GraphIntegrityError: If the stored graph is malformed or cyclic
        """
        payload = self._backend.get(self._key)
        if payload is None:
            return False

        try:
            snapshot = GraphSnapshot.model_validate_json(payload)
        except ValidationError as e:
            raise GraphIntegrityError(f"Stored graph is malformed: {e}") from e

        store.load_snapshot(snapshot)
        return True

    def clear(self) -> None:
        self._backend.delete(self._key)


__all__ = [
    "GraphPersistence",
    "KeyValueBackend",
    "MemoryBackend",
    "RedisBackend",
    "persist_filter",
]
