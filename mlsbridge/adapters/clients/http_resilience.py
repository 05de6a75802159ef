# mlsbridge/adapters/clients/http_resilience.py
from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable, TypeVar

from ...domain.errors import MLSError, Result
from .error_classifier import ErrorClassifier, ErrorContext

log = logging.getLogger(__name__)

T = TypeVar("T")

MAX_JITTER_S = 1.0


class RetryingRequestExecutor:
    """
    Single choke point for provider calls.

    Attempts run one at a time (asyncio.Lock waiters are served FIFO); the
    lock is released during backoff so other callers are not held up by a
    sleeping retry.
    """

    def __init__(
        self,
        classifier: ErrorClassifier,
        *,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Callable[[], float] = random.random,
    ) -> None:
        self.classifier = classifier
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._sleep = sleep
        self._rng = rng
        self._lock = asyncio.Lock()
        self.in_flight = 0
        self.waiting = 0

    def backoff_delay(self, attempt: int, retry_after: float | None = None) -> float:
        backoff = min(self.base_delay * (2 ** (attempt - 1)) + self._rng() * MAX_JITTER_S, self.max_delay)
        return max(retry_after or 0.0, backoff)

    async def _attempt(self, request_fn: Callable[[], Awaitable[T]]) -> T:
        self.waiting += 1
        try:
            await self._lock.acquire()
        finally:
            self.waiting -= 1
        self.in_flight += 1
        try:
            return await request_fn()
        finally:
            self.in_flight -= 1
            self._lock.release()

    async def execute(
        self,
        name: str,
        endpoint: str | None,
        request_fn: Callable[[], Awaitable[T]],
        *,
        max_retries: int | None = None,
    ) -> Result[T]:
        budget = self.max_retries if max_retries is None else max_retries
        attempt = 0
        last_error: MLSError | None = None

        while True:
            attempt += 1
            try:
                value = await self._attempt(request_fn)
            except Exception as e:
                last_error = self.classifier.handle(e, ErrorContext(operation=name, endpoint=endpoint, attempt=attempt))
            else:
                if attempt > 1:
                    log.info("MLS %s succeeded on attempt %s", name, attempt)
                return Result.success(value)

            if not last_error.retryable or attempt > budget:
                return Result.failure(last_error)

            delay = self.backoff_delay(attempt, last_error.retry_after)
            log.info("Retrying MLS %s in %.1fs (attempt %s/%s)", name, delay, attempt + 1, budget + 1)
            await self._sleep(delay)
