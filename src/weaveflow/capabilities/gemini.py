"""Gemini REST client - the LLM capability."""
import base64
import binascii
import re
from typing import Any

import httpx

from weaveflow.config import get_settings
from weaveflow.observability import get_logger

from .base import RemoteCallError, RemoteTimeoutError

logger = get_logger(__name__)

SUPPORTED_MIME_TYPES = ("image/jpeg", "image/jpg", "image/png", "image/webp", "image/gif")
DEFAULT_MIME_TYPE = "image/jpeg"

_DATA_URL = re.compile(r"data:([^;]+);base64,(.+)", re.DOTALL)
_BASE64_TAIL = re.compile(r"base64,(.+)", re.DOTALL)
_BASE64 = re.compile(r"^[A-Za-z0-9+/=]+$")
MIN_RAW_BASE64_LENGTH = 100


def is_raw_base64_image(value: str) -> bool:
    """Bare base64 is accepted only when long enough to plausibly be an image."""
    return len(value) >= MIN_RAW_BASE64_LENGTH and bool(_BASE64.match(value))


class GeminiClient:
    """
    Calls ``models/{model}:generateContent``.

    The system prompt is prepended to the user message separated by a blank
    line; images are sent as inline data parts.
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        api_version: str | None = None,
        timeout_s: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize client.

        Args:
            api_key: Gemini API key (settings if not provided)
            base_url: API base URL (settings if not provided)
            api_version: API version segment (settings if not provided)
            timeout_s: Read timeout in seconds (settings if not provided)
            transport: Optional httpx transport (tests)
        """
        settings = get_settings()
        if api_key is None and settings.gemini_api_key is not None:
            api_key = settings.gemini_api_key.get_secret_value()
        self._api_key = api_key
        self._base_url = (base_url or settings.gemini_base_url).rstrip("/")
        self._api_version = api_version or settings.gemini_api_version
        self._timeout = httpx.Timeout(
            connect=5.0,
            read=timeout_s or settings.llm_timeout_s,
            write=10.0,
            pool=5.0,
        )
        self._transport = transport

    async def generate(
        self,
        model: str,
        system_prompt: str | None,
        user_message: str,
        images: list[str],
    ) -> str:
        """
        Generate text for one user turn.

        Raises:
            RemoteCallError: On HTTP errors, network errors or an empty answer
            RemoteTimeoutError: When the request times out
        """
        if not self._api_key:
            raise RemoteCallError(
                "Google Gemini API key not configured. "
                "Set WEAVEFLOW_GEMINI_API_KEY in the environment."
            )

        text = f"{system_prompt}\n\n{user_message}" if system_prompt else user_message

        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            parts: list[dict[str, Any]] = [{"text": text}]
            for image in images:
                part = await self._image_part(client, image)
                if part is not None:
                    parts.append(part)

            url = f"{self._base_url}/{self._api_version}/models/{model}:generateContent"
            try:
                response = await client.post(
                    url,
                    json={"contents": [{"role": "user", "parts": parts}]},
                    headers={"x-goog-api-key": self._api_key},
                )
            except httpx.TimeoutException as e:
                raise RemoteTimeoutError(f"Request timeout: {e}") from e
            except httpx.HTTPError as e:
                raise RemoteCallError(f"Network error: {e}") from e

        if response.status_code >= 400:
            raise RemoteCallError(
                f"{response.status_code} {response.reason_phrase}: {self._error_message(response)}",
                status_code=response.status_code,
            )

        return self._parse_text(response.json())

    async def _image_part(self, client: httpx.AsyncClient, image: str) -> dict[str, Any] | None:
        """Build an inline-data part, or None when the image must be skipped."""
        mime_type = DEFAULT_MIME_TYPE

        if image.startswith("data:"):
            match = _DATA_URL.match(image)
            if match:
                mime_type, data = match.group(1) or DEFAULT_MIME_TYPE, match.group(2)
            else:
                tail = _BASE64_TAIL.search(image)
                if not tail:
                    logger.warning("Skipping malformed data URL", extra={"preview": image[:100]})
                    return None
                data = tail.group(1)
        elif image.startswith(("http://", "https://")):
            fetched = await self._fetch_image(client, image)
            if fetched is None:
                return None
            mime_type, data = fetched
        elif is_raw_base64_image(image):
            data = image
        else:
            logger.warning("Skipping invalid image data", extra={"preview": image[:50]})
            return None

        if not data.strip():
            logger.warning("Skipping image with empty payload")
            return None

        mime_type = mime_type.lower()
        if mime_type not in SUPPORTED_MIME_TYPES:
            logger.warning(f"Unsupported image MIME type {mime_type}, defaulting to {DEFAULT_MIME_TYPE}")
            mime_type = DEFAULT_MIME_TYPE

        try:
            base64.b64decode(data, validate=True)
        except (binascii.Error, ValueError):
            logger.warning("Skipping image with invalid base64 payload")
            return None

        return {"inline_data": {"mime_type": mime_type, "data": data}}

    async def _fetch_image(self, client: httpx.AsyncClient, url: str) -> tuple[str, str] | None:
        try:
            response = await client.get(url)
        except httpx.HTTPError as e:
            logger.warning(f"Failed to fetch image: {e}", extra={"url": url})
            return None

        if response.status_code >= 400:
            logger.warning(
                f"Failed to fetch image: {response.status_code} {response.reason_phrase}",
                extra={"url": url},
            )
            return None
        if not response.content:
            logger.warning("Empty image response", extra={"url": url})
            return None

        content_type = response.headers.get("content-type", DEFAULT_MIME_TYPE)
        mime_type = content_type.split(";")[0].strip() or DEFAULT_MIME_TYPE
        return mime_type, base64.b64encode(response.content).decode("ascii")

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text[:500]
        error = body.get("error") if isinstance(body, dict) else None
        if isinstance(error, dict):
            return " ".join(
                str(part) for part in (error.get("status"), error.get("message")) if part
            )
        return response.text[:500]

    @staticmethod
    def _parse_text(body: dict[str, Any]) -> str:
        candidates = body.get("candidates") or []
        if not candidates:
            block_reason = (body.get("promptFeedback") or {}).get("blockReason")
            raise RemoteCallError(
                f"Empty response from model (blocked: {block_reason})"
                if block_reason
                else "Empty response from model"
            )

        content = candidates[0].get("content") or {}
        text = "".join(part.get("text", "") for part in content.get("parts") or [])
        if not text:
            raise RemoteCallError("Empty response from model")
        return text
