"""Bounded retry with exponential backoff for remote calls."""
import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

import httpx

from weaveflow.capabilities.base import RemoteTimeoutError
from weaveflow.config import Settings, get_settings
from weaveflow.observability import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

RETRYABLE_MARKERS = (
    "503",
    "service unavailable",
    "overloaded",
    "rate limit",
    "429",
    "too many requests",
    "quota",
    "timeout",
)


def is_retryable(error: BaseException) -> bool:
    """Rate-limit, quota, overload and timeout errors are worth retrying."""
    if isinstance(error, (RemoteTimeoutError, httpx.TimeoutException, asyncio.TimeoutError)):
        return True
    message = str(error).lower()
    return any(marker in message for marker in RETRYABLE_MARKERS)


@dataclass(frozen=True)
class RetryPolicy:
    """Retry count beyond the first attempt and the delay before each retry."""
    max_retries: int = 3
    delays_s: tuple[float, ...] = (1.0, 2.0, 4.0)

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "RetryPolicy":
        settings = settings or get_settings()
        return cls(
            max_retries=settings.llm_max_retries,
            delays_s=tuple(settings.llm_retry_delays_s),
        )

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def delay_before_retry(self, retry_number: int) -> float:
        """Delay before retry ``retry_number`` (1-based); the last delay repeats."""
        index = min(retry_number - 1, len(self.delays_s) - 1)
        return self.delays_s[index]


class Retrier:
    """
    Runs an async operation under a RetryPolicy.

    ``attempts`` holds the number of attempts made by the last ``call``.
    Non-retryable errors propagate immediately; when attempts run out the
    last error propagates.
    """

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.policy = policy or RetryPolicy()
        self._sleep = sleep
        self.attempts = 0

    async def call(
        self,
        operation: Callable[[], Awaitable[T]],
        extra: dict | None = None,
    ) -> T:
        extra = extra or {}
        self.attempts = 0
        max_attempts = self.policy.max_attempts

        while True:
            if self.attempts > 0:
                delay = self.policy.delay_before_retry(self.attempts)
                logger.info(
                    f"Retrying request (attempt {self.attempts + 1}/{max_attempts}) after {delay}s",
                    extra=extra,
                )
                await self._sleep(delay)

            self.attempts += 1
            try:
                return await operation()
            except Exception as e:
                if not is_retryable(e):
                    logger.warning(
                        f"Request failed with non-retryable error: {e}",
                        extra=extra,
                    )
                    raise
                if self.attempts >= max_attempts:
                    logger.error(
                        f"Max attempts ({max_attempts}) reached, giving up: {e}",
                        extra=extra,
                    )
                    raise
                logger.warning(
                    f"Retryable error on attempt {self.attempts}/{max_attempts}: {e}",
                    extra=extra,
                )
