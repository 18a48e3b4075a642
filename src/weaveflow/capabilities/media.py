"""HTTP client for the media processing service (crop / frame extraction)."""
from typing import Any

import httpx

from weaveflow.config import get_settings
from weaveflow.observability import get_logger

from .base import RemoteCallError, RemoteTimeoutError

logger = get_logger(__name__)


class MediaServiceClient:
    """
    Talks to a media service exposing ``POST /crop`` and ``POST /extract-frame``.

    Both endpoints answer ``{"outputUrl": "..."}``.
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout_s: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        settings = get_settings()
        self._base_url = (base_url or settings.media_service_url or "").rstrip("/")
        self._timeout = timeout_s or settings.media_timeout_s
        self._transport = transport

    async def crop(
        self,
        image_url: str,
        x_percent: float,
        y_percent: float,
        width_percent: float,
        height_percent: float,
    ) -> str:
        return await self._post(
            "/crop",
            {
                "imageUrl": image_url,
                "xPercent": x_percent,
                "yPercent": y_percent,
                "widthPercent": width_percent,
                "heightPercent": height_percent,
            },
        )

    async def extract_frame(self, video_url: str, timestamp: str) -> str:
        return await self._post(
            "/extract-frame",
            {"videoUrl": video_url, "timestamp": timestamp},
        )

    async def _post(self, path: str, payload: dict[str, Any]) -> str:
        if not self._base_url:
            raise RemoteCallError(
                "Media processing service not configured. "
                "Set WEAVEFLOW_MEDIA_SERVICE_URL in the environment."
            )

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(f"{self._base_url}{path}", json=payload)
        except httpx.TimeoutException as e:
            raise RemoteTimeoutError(f"Request timeout: {e}") from e
        except httpx.HTTPError as e:
            raise RemoteCallError(f"Network error: {e}") from e

        if response.status_code >= 400:
            try:
                detail = response.json().get("error", response.text)
            except ValueError:
                detail = response.text
            raise RemoteCallError(
                f"{response.status_code} {response.reason_phrase}: {detail}",
                status_code=response.status_code,
            )

        output_url = response.json().get("outputUrl") or ""
        logger.debug("Media service call completed", extra={"path": path})
        return output_url
