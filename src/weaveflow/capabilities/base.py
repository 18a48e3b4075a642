"""Capability contracts consumed by the engine."""
from typing import Protocol, runtime_checkable


class RemoteCallError(Exception):
    """
    Raised by capability clients when a remote call fails.

    The message carries the upstream signal (HTTP status, reason, provider
    message) so retry classification and user-facing translation can
    inspect it.
    """

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class RemoteTimeoutError(RemoteCallError):
    """Raised when a remote call exceeds its timeout."""

    pass


@runtime_checkable
class LLMCapability(Protocol):
    """Text generation with optional image inputs."""

    async def generate(
        self,
        model: str,
        system_prompt: str | None,
        user_message: str,
        images: list[str],
    ) -> str: ...


@runtime_checkable
class MediaCapability(Protocol):
    """Pixel-level media processing."""

    async def crop(
        self,
        image_url: str,
        x_percent: float,
        y_percent: float,
        width_percent: float,
        height_percent: float,
    ) -> str: ...

    async def extract_frame(self, video_url: str, timestamp: str) -> str: ...


@runtime_checkable
class IdentityProvider(Protocol):
    """Resolves an opaque owner id from a request credential."""

    def resolve_owner(self, credential: str | None) -> str | None: ...


class HeaderIdentityProvider:
    """Treats the credential (e.g. an ``X-Owner-Id`` header) as the owner id."""

    def resolve_owner(self, credential: str | None) -> str | None:
        if credential is None:
            return None
        owner_id = credential.strip()
        return owner_id or None
