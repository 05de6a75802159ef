# mlsbridge/adapters/clients/rate_limiter.py
from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from ...domain.errors import RATE_LIMIT_EXCEEDED, MLSError, MLSErrorType

MINUTE_S = 60.0
HOUR_S = 3600.0


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    remaining: int
    reset_time: float  # epoch seconds

    @property
    def reset_at(self) -> datetime:
        return datetime.fromtimestamp(self.reset_time, tz=timezone.utc)

    def retry_after(self, now: float) -> float:
        return max(0.0, self.reset_time - now)


class RateLimiter:
    """
    Sliding-window admission control.

    Timestamps older than one hour are purged on every check. A check is
    denied once the trailing 60 seconds already hold `requests_per_minute`
    requests (or the trailing hour holds `requests_per_hour`); allowed checks
    record the request.
    """

    def __init__(
        self,
        requests_per_minute: int,
        *,
        requests_per_hour: int | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if requests_per_minute < 1:
            raise ValueError("requests_per_minute must be >= 1")
        self.requests_per_minute = requests_per_minute
        self.requests_per_hour = requests_per_hour
        self._clock = clock
        self._requests: deque[float] = deque()

    def _purge(self, now: float) -> None:
        while self._requests and self._requests[0] <= now - HOUR_S:
            self._requests.popleft()

    def _recent(self, now: float) -> list[float]:
        return [t for t in self._requests if t > now - MINUTE_S]

    def _evaluate(self, now: float) -> RateLimitDecision:
        recent = self._recent(now)
        if len(recent) >= self.requests_per_minute:
            return RateLimitDecision(allowed=False, remaining=0, reset_time=recent[0] + MINUTE_S)
        if self.requests_per_hour is not None and len(self._requests) >= self.requests_per_hour:
            return RateLimitDecision(allowed=False, remaining=0, reset_time=self._requests[0] + HOUR_S)
        return RateLimitDecision(
            allowed=True,
            remaining=self.requests_per_minute - len(recent),
            reset_time=(recent[0] if recent else now) + MINUTE_S,
        )

    def check_limit(self) -> RateLimitDecision:
        now = self._clock()
        self._purge(now)
        decision = self._evaluate(now)
        if not decision.allowed:
            return decision
        self._requests.append(now)
        return RateLimitDecision(
            allowed=True,
            remaining=decision.remaining - 1,
            reset_time=decision.reset_time,
        )

    def status(self) -> RateLimitDecision:
        """Current headroom without consuming a request."""
        now = self._clock()
        self._purge(now)
        return self._evaluate(now)

    def reset(self) -> None:
        self._requests.clear()


def rate_limit_error(decision: RateLimitDecision, now: float) -> MLSError:
    return MLSError(
        type=MLSErrorType.rate_limit,
        code=RATE_LIMIT_EXCEEDED,
        message=f"Rate limit exceeded. Try again after {decision.reset_at.isoformat()}",
        retryable=True,
        retry_after=round(decision.retry_after(now), 3),
    )
