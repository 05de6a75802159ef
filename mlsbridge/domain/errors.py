# mlsbridge/domain/errors.py
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Generic, TypeVar

T = TypeVar("T")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MLSErrorType(str, Enum):
    authentication = "AUTHENTICATION_ERROR"
    rate_limit = "RATE_LIMIT_ERROR"
    network = "NETWORK_ERROR"
    api = "API_ERROR"
    validation = "VALIDATION_ERROR"
    timeout = "TIMEOUT_ERROR"
    quota_exceeded = "QUOTA_EXCEEDED"
    service_unavailable = "SERVICE_UNAVAILABLE"
    data_format = "DATA_FORMAT_ERROR"
    cache = "CACHE_ERROR"


# error codes shared across layers
PROPERTY_NOT_FOUND = "PROPERTY_NOT_FOUND"
GEOCODING_FAILED = "GEOCODING_FAILED"
INVALID_SEARCH_CRITERIA = "INVALID_SEARCH_CRITERIA"
RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"


@dataclass(frozen=True)
class MLSError:
    type: MLSErrorType
    code: str
    message: str
    retryable: bool
    retry_after: float | None = None
    endpoint: str | None = None
    request_id: str | None = None
    details: Any = None
    timestamp: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict[str, Any]:
        out = asdict(self)
        out["type"] = self.type.value
        out["timestamp"] = self.timestamp.isoformat()
        return out


class MLSIntegrationError(Exception):
    """Raise-able carrier for an already classified MLSError."""

    def __init__(self, error: MLSError) -> None:
        super().__init__(f"{error.code}: {error.message}")
        self.error = error


class CacheError(Exception):
    pass


@dataclass(frozen=True)
class Result(Generic[T]):
    value: T | None = None
    error: MLSError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T | None = None) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: MLSError) -> "Result[T]":
        return cls(error=error)

    def unwrap(self) -> T:
        if self.error is not None:
            raise MLSIntegrationError(self.error)
        return self.value  # type: ignore[return-value]
