"""External capabilities (LLM, media processing, identity)."""
from weaveflow.capabilities.base import (
    HeaderIdentityProvider,
    IdentityProvider,
    LLMCapability,
    MediaCapability,
    RemoteCallError,
    RemoteTimeoutError,
)
from weaveflow.capabilities.gemini import GeminiClient
from weaveflow.capabilities.media import MediaServiceClient

__all__ = [
    "GeminiClient",
    "HeaderIdentityProvider",
    "IdentityProvider",
    "LLMCapability",
    "MediaCapability",
    "MediaServiceClient",
    "RemoteCallError",
    "RemoteTimeoutError",
]
