# mlsbridge/adapters/clients/error_classifier.py
from __future__ import annotations

import asyncio
import json
import logging
import time
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Sequence, TypeVar

import httpx
from pydantic import ValidationError

from ...domain.errors import CacheError, MLSError, MLSErrorType, MLSIntegrationError, Result

log = logging.getLogger(__name__)

T = TypeVar("T")

SERVICE_UNAVAILABLE_STATUSES = range(500, 600)


@dataclass(frozen=True)
class ErrorContext:
    operation: str
    endpoint: str | None = None
    request_id: str | None = None
    attempt: int | None = None


def _retry_after_header(resp: httpx.Response, default: float) -> float:
    raw = resp.headers.get("retry-after")
    if raw is None:
        return default
    try:
        return max(0.0, float(raw))
    except ValueError:
        return default


def _response_message(resp: httpx.Response) -> str | None:
    try:
        body = resp.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    if isinstance(body, dict):
        msg = body.get("message") or body.get("error_description") or body.get("error")
        if isinstance(msg, dict):
            msg = msg.get("message")
        return str(msg) if msg else None
    return None


class ErrorClassifier:
    """
    Central, deterministic mapping from raw failures to MLSError.

    Also counts errors per type per minute and logs an alert once a type
    crosses `alert_threshold` within the same minute.
    """

    def __init__(self, *, alert_threshold: int = 10, clock: Callable[[], float] = time.time) -> None:
        self.alert_threshold = alert_threshold
        self._clock = clock
        self._counts: dict[str, int] = defaultdict(int)

    def classify(self, raw: BaseException, context: ErrorContext | None = None) -> MLSError:
        ctx = context or ErrorContext(operation="unknown")
        base = {"endpoint": ctx.endpoint, "request_id": ctx.request_id}

        if isinstance(raw, MLSIntegrationError):
            return raw.error

        if isinstance(raw, (httpx.TimeoutException, asyncio.TimeoutError, TimeoutError)):
            return MLSError(
                type=MLSErrorType.timeout,
                code="REQUEST_TIMEOUT",
                message=f"{ctx.operation} timed out",
                retryable=True,
                retry_after=5,
                **base,
            )

        if isinstance(raw, httpx.HTTPStatusError):
            return self._classify_status(raw.response, ctx, base)

        if isinstance(raw, httpx.TransportError):
            return MLSError(
                type=MLSErrorType.network,
                code="NETWORK_UNREACHABLE",
                message=f"Unable to reach MLS service: {raw}",
                retryable=True,
                **base,
            )

        if isinstance(raw, ValidationError):
            return MLSError(
                type=MLSErrorType.data_format,
                code="VALIDATION_FAILED",
                message="Data validation failed",
                retryable=False,
                details=raw.errors(include_url=False, include_context=False),
                **base,
            )

        if isinstance(raw, json.JSONDecodeError):
            return MLSError(
                type=MLSErrorType.data_format,
                code="MALFORMED_RESPONSE",
                message=f"Provider returned malformed JSON: {raw.msg}",
                retryable=False,
                **base,
            )

        if isinstance(raw, CacheError):
            return MLSError(
                type=MLSErrorType.cache,
                code="CACHE_OPERATION_FAILED",
                message=f"Cache operation failed: {raw}",
                retryable=True,
                **base,
            )

        status = getattr(raw, "status_code", None)
        return MLSError(
            type=MLSErrorType.api,
            code="UNKNOWN_ERROR",
            message=str(raw) or type(raw).__name__,
            retryable=isinstance(status, int) and status >= 500,
            **base,
        )

    def _classify_status(self, resp: httpx.Response, ctx: ErrorContext, base: dict[str, Any]) -> MLSError:
        status = resp.status_code
        detail = _response_message(resp)

        if status == 401:
            return MLSError(
                type=MLSErrorType.authentication,
                code="AUTH_FAILED",
                message=detail or "Authentication failed - check credentials",
                retryable=False,
                **base,
            )
        if status == 403:
            return MLSError(
                type=MLSErrorType.quota_exceeded,
                code="ACCESS_DENIED",
                message=detail or "Access denied or quota exceeded",
                retryable=False,
                **base,
            )
        if status == 429:
            return MLSError(
                type=MLSErrorType.rate_limit,
                code="RATE_LIMITED",
                message="Rate limit exceeded",
                retryable=True,
                retry_after=_retry_after_header(resp, 60),
                **base,
            )
        if status in SERVICE_UNAVAILABLE_STATUSES:
            return MLSError(
                type=MLSErrorType.service_unavailable,
                code=f"HTTP_{status}",
                message=detail or "MLS service temporarily unavailable",
                retryable=True,
                retry_after=30,
                **base,
            )
        if status == 400:
            return MLSError(
                type=MLSErrorType.validation,
                code="BAD_REQUEST",
                message=detail or "Invalid request parameters",
                retryable=False,
                **base,
            )
        return MLSError(
            type=MLSErrorType.api,
            code=f"HTTP_{status}",
            message=detail or f"HTTP {status}",
            retryable=status >= 500,
            **base,
        )

    def handle(self, raw: BaseException, context: ErrorContext | None = None) -> MLSError:
        """classify + log + error-rate tracking"""
        err = self.classify(raw, context)
        self.record(err, context)
        return err

    def record(self, err: MLSError, context: ErrorContext | None = None) -> None:
        op = context.operation if context else "unknown"
        attempt = context.attempt if context else None
        if err.retryable:
            log.warning("MLS %s failed (%s/%s, attempt=%s): %s", op, err.type.value, err.code, attempt, err.message)
        else:
            log.error("MLS %s failed (%s/%s): %s", op, err.type.value, err.code, err.message)

        key = f"{err.type.value}:{int(self._clock() // 60)}"
        self._counts[key] += 1
        if self._counts[key] == self.alert_threshold:
            log.error("High error rate: %s errors of type %s in the last minute", self._counts[key], err.type.value)
        self._prune()

    def _prune(self) -> None:
        current = int(self._clock() // 60)
        for key in [k for k in self._counts if int(k.rsplit(":", 1)[1]) < current - 5]:
            del self._counts[key]

    def error_stats(self) -> dict[str, int]:
        out: dict[str, int] = defaultdict(int)
        for key, n in self._counts.items():
            out[key.rsplit(":", 1)[0]] += n
        return dict(out)


async def with_fallback(
    primary: Callable[[], Awaitable[Result[T]]],
    strategies: Sequence[Callable[[], Awaitable[Result[T]]]],
    *,
    name: str,
    when: Callable[[MLSError], bool] = lambda err: True,
) -> Result[T]:
    """
    Run `primary`; on a failure accepted by `when`, try each strategy in
    order. First success wins, otherwise the primary error is returned.
    """
    result = await primary()
    if result.ok or not when(result.error):
        return result

    for i, strategy in enumerate(strategies):
        fallback = await strategy()
        if fallback.ok:
            log.warning("%s: primary failed (%s), served by fallback #%s", name, result.error.code, i + 1)
            return fallback

    return result
