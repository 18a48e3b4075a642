"""Shared FastAPI dependencies."""
from fastapi import Header

from weaveflow.capabilities.base import HeaderIdentityProvider, IdentityProvider
from weaveflow.engine import WorkflowEngine, create_engine
from weaveflow.observability import get_logger

logger = get_logger(__name__)

_engine: WorkflowEngine | None = None
_identity: IdentityProvider = HeaderIdentityProvider()


def get_engine() -> WorkflowEngine:
    """Get or create the process-wide engine, restoring any persisted graph."""
    global _engine
    if _engine is None:
        engine = create_engine()
        if engine.restore():
            logger.info("Persisted graph restored")
        _engine = engine
    return _engine


def set_engine(engine: WorkflowEngine | None) -> None:
    """Replace the process-wide engine (None resets it)."""
    global _engine
    _engine = engine


def get_owner_id(x_owner_id: str | None = Header(default=None)) -> str | None:
    """Opaque owner id from the ``X-Owner-Id`` header."""
    return _identity.resolve_owner(x_owner_id)
