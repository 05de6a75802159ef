import json

import httpx
import pytest
from conftest import FakeClock
from pydantic import BaseModel, ValidationError

from mlsbridge.adapters.clients.error_classifier import ErrorClassifier, ErrorContext, with_fallback
from mlsbridge.domain.errors import CacheError, MLSError, MLSErrorType, MLSIntegrationError, Result


def _status_error(status: int, headers: dict[str, str] | None = None) -> httpx.HTTPStatusError:
    req = httpx.Request("GET", "https://mls.test/odata/Property")
    resp = httpx.Response(status, headers=headers, request=req)
    return httpx.HTTPStatusError(f"HTTP {status}", request=req, response=resp)


@pytest.fixture
def classifier() -> ErrorClassifier:
    return ErrorClassifier(clock=FakeClock())


def test_http_429_is_retryable_with_header_retry_after(classifier):
    err = classifier.classify(_status_error(429, {"Retry-After": "12"}))
    assert err.type == MLSErrorType.rate_limit
    assert err.retryable is True
    assert err.retry_after == 12


def test_http_429_defaults_retry_after_to_60(classifier):
    assert classifier.classify(_status_error(429)).retry_after == 60


def test_http_401_is_not_retryable(classifier):
    err = classifier.classify(_status_error(401))
    assert err.type == MLSErrorType.authentication
    assert err.retryable is False


@pytest.mark.parametrize("status", [500, 502, 503, 504])
def test_http_5xx_is_retryable_service_unavailable(classifier, status):
    err = classifier.classify(_status_error(status))
    assert err.type == MLSErrorType.service_unavailable
    assert err.retryable is True
    assert err.retry_after == 30
    assert err.code == f"HTTP_{status}"


def test_other_statuses(classifier):
    assert classifier.classify(_status_error(403)).type == MLSErrorType.quota_exceeded
    assert classifier.classify(_status_error(400)).type == MLSErrorType.validation
    not_found = classifier.classify(_status_error(404))
    assert not_found.type == MLSErrorType.api
    assert not_found.code == "HTTP_404"
    assert not_found.retryable is False


def test_transport_failures(classifier):
    req = httpx.Request("GET", "https://mls.test")
    timeout = classifier.classify(httpx.ReadTimeout("slow", request=req))
    assert timeout.type == MLSErrorType.timeout
    assert timeout.retryable is True
    assert timeout.retry_after == 5

    net = classifier.classify(httpx.ConnectError("refused", request=req))
    assert net.type == MLSErrorType.network
    assert net.retryable is True


def test_schema_and_decode_failures_are_data_format(classifier):
    class M(BaseModel):
        x: int

    with pytest.raises(ValidationError) as exc:
        M.model_validate({"x": "nope"})
    assert classifier.classify(exc.value).type == MLSErrorType.data_format

    decode = classifier.classify(json.JSONDecodeError("bad", "{", 0))
    assert decode.code == "MALFORMED_RESPONSE"
    assert decode.retryable is False


def test_passthrough_and_fallback_codes(classifier):
    original = MLSError(type=MLSErrorType.api, code="PROPERTY_NOT_FOUND", message="x", retryable=False)
    assert classifier.classify(MLSIntegrationError(original)) is original

    assert classifier.classify(CacheError("disk full")).type == MLSErrorType.cache
    generic = classifier.classify(RuntimeError("weird"))
    assert generic.code == "UNKNOWN_ERROR"
    assert generic.retryable is False


def test_context_endpoint_is_carried(classifier):
    err = classifier.classify(_status_error(500), ErrorContext(operation="search", endpoint="/Property"))
    assert err.endpoint == "/Property"


def test_error_stats_count_by_type(classifier):
    for _ in range(3):
        classifier.handle(_status_error(500))
    classifier.handle(_status_error(401))
    stats = classifier.error_stats()
    assert stats[MLSErrorType.service_unavailable.value] == 3
    assert stats[MLSErrorType.authentication.value] == 1


async def test_with_fallback_serves_first_successful_strategy():
    err = MLSError(type=MLSErrorType.network, code="NETWORK_UNREACHABLE", message="down", retryable=True)

    async def primary():
        return Result.failure(err)

    async def empty():
        return Result.failure(MLSError(type=MLSErrorType.cache, code="CACHE_MISS", message="", retryable=False))

    async def stale():
        return Result.success("stale")

    r = await with_fallback(primary, [empty, stale], name="t")
    assert r.ok and r.value == "stale"

    r = await with_fallback(primary, [empty], name="t")
    assert r.error is err

    r = await with_fallback(primary, [stale], name="t", when=lambda e: e.type != MLSErrorType.network)
    assert r.error is err
