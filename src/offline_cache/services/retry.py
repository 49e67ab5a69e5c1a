"""Bounded retry with exponential backoff for server errors.

Only ServerError (5xx) is retried. Connectivity, authorization and validation
failures fail fast: the first is handled by pausing, the others are final.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from offline_cache.config import Settings, settings
from offline_cache.errors import ServerError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Retry configuration for reads and commits.

    The delay before retry n (1-based) is ``min(base_delay * 2 ** (n - 1), max_delay)``.

    Attributes:
        attempts: Total attempts including the first one
        base_delay: Delay before the first retry, in seconds
        max_delay: Upper bound for any single delay, in seconds
    """

    attempts: int = settings.retry_attempts
    base_delay: float = settings.retry_base_delay
    max_delay: float = settings.retry_max_delay

    def __post_init__(self) -> None:
        if self.attempts < 1:
            raise ValueError("attempts must be at least 1")

    @classmethod
    def from_settings(cls, config: Settings) -> "RetryPolicy":
        return cls(
            attempts=config.retry_attempts,
            base_delay=config.retry_base_delay,
            max_delay=config.retry_max_delay,
        )

    @classmethod
    def disabled(cls) -> "RetryPolicy":
        """Single attempt, no retry."""
        return cls(attempts=1, base_delay=0.0, max_delay=0.0)

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.attempts),
            wait=wait_exponential(multiplier=self.base_delay, min=0, max=self.max_delay),
            retry=retry_if_exception_type(ServerError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

    async def call(self, fn: Callable[[], Awaitable[T]]) -> T:
        """Run ``fn`` retrying on ServerError.

        Raises:
            ServerError: When every attempt failed with a server error
            Exception: Any other exception raised by ``fn``, unchanged
        """
        return await self._retrying()(fn)
