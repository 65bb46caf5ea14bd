"""Bounded exponential-backoff retry for idempotent store operations."""

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from mnemos.domain.constants import STORE_RETRY_ATTEMPTS, STORE_RETRY_BASE_DELAY
from mnemos.domain.errors import TransientStoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Failures worth retrying. JSONDecodeError is a ValueError, listed explicitly.
TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    TransientStoreError,
    ConnectionError,
    TimeoutError,
    OSError,
    json.JSONDecodeError,
)


class RetryPolicy:
    def __init__(
        self,
        attempts: int = STORE_RETRY_ATTEMPTS,
        base_delay: float = STORE_RETRY_BASE_DELAY,
    ):
        if attempts < 1:
            raise ValueError("attempts must be >= 1")
        self.attempts = attempts
        self.base_delay = base_delay

    def delay_for(self, attempt: int) -> float:
        """Delay after the given 0-indexed failed attempt: base, 2*base, 4*base..."""
        return self.base_delay * (2**attempt)

    async def call(self, operation: Callable[[], Awaitable[T]], description: str = "store call") -> T:
        """
        Run `operation`, retrying transient failures.

        Raises:
            TransientStoreError: every attempt failed. The last failure is chained.
        """
        last_error: BaseException | None = None
        for attempt in range(self.attempts):
            try:
                return await operation()
            except TRANSIENT_ERRORS as e:
                last_error = e
                if attempt < self.attempts - 1:
                    wait_time = self.delay_for(attempt)
                    logger.warning(
                        f"{description} failed on attempt {attempt + 1}/{self.attempts}: {e}. "
                        f"Retrying in {wait_time:.2f}s..."
                    )
                    await asyncio.sleep(wait_time)

        logger.error(f"{description} failed after {self.attempts} attempts")
        raise TransientStoreError(
            f"{description} failed after {self.attempts} attempts: {last_error}"
        ) from last_error
