# mlsbridge/adapters/clients/mls_client.py
from __future__ import annotations

import asyncio
import hashlib
import logging
import time
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Mapping, Sequence

import httpx
from pydantic import ValidationError

from ...config import MLSConfig
from ...domain.errors import (
    GEOCODING_FAILED,
    INVALID_SEARCH_CRITERIA,
    PROPERTY_NOT_FOUND,
    MLSError,
    MLSErrorType,
    MLSIntegrationError,
    Result,
)
from ...domain.geo import (
    TIMEFRAME_DAYS,
    bounding_box,
    market_statistics,
    nearest_comparables,
    neighborhood_trends,
    price_estimate,
    trend_box,
)
from ...domain.normalize import PropertyNormalizer
from ...domain.policies import CachePolicy
from ...domain.types import (
    Coordinates,
    IntegrationStatus,
    MarketAnalysis,
    NeighborhoodTrends,
    Property,
    PropertyType,
    RateLimitStatus,
    SearchCriteria,
    SearchResult,
    StandardStatus,
    SubjectFeatures,
    TrendTimeframe,
)
from ..cache import ResponseCache, property_cache_key, store_property
from .auth import ApiKeyAuth, Authenticator, AuthManager
from .error_classifier import ErrorClassifier, ErrorContext, with_fallback
from .geocoding import FixedGeocoder, Geocoder, GeocodingError
from .http_resilience import RetryingRequestExecutor
from .query_builders import QueryBuilder, build_query_builder
from .rate_limiter import RateLimiter, rate_limit_error

log = logging.getLogger(__name__)

DEFAULT_RADIUS_MILES = 0.5
DEFAULT_MAX_COMPS = 10
TREND_SEARCH_LIMIT = 100
COLUMBUS_CENTER = (39.9612, -82.9988)

_DOWN_TYPES = {MLSErrorType.network, MLSErrorType.timeout, MLSErrorType.service_unavailable}


def _request_id() -> str:
    return f"req_{uuid.uuid4().hex[:12]}"


def search_cache_key(criteria: SearchCriteria) -> str:
    digest = hashlib.sha1(criteria.model_dump_json(exclude_none=True).encode("utf-8")).hexdigest()
    return f"search:{digest}"


def _criteria_error(e: ValidationError) -> MLSError:
    first = e.errors(include_url=False, include_context=False)
    message = first[0]["msg"] if first else "Invalid search criteria"
    return MLSError(
        type=MLSErrorType.validation,
        code=INVALID_SEARCH_CRITERIA,
        message=message,
        retryable=False,
        details=first,
    )


def _not_found(listing_id: str, message: str | None = None) -> MLSError:
    return MLSError(
        type=MLSErrorType.api,
        code=PROPERTY_NOT_FOUND,
        message=message or f"Property {listing_id} not found",
        retryable=False,
        details={"listing_id": listing_id},
    )


def _default_auth(
    config: MLSConfig,
    executor: RetryingRequestExecutor,
    transport: httpx.AsyncBaseTransport | None,
    clock: Callable[[], float],
    rate_limiter: RateLimiter | None = None,
) -> Authenticator:
    c = config.credentials
    if config.provider == "RAPIDAPI":
        return ApiKeyAuth(c.client_secret or c.client_id, c.api_host)
    return AuthManager(
        c, executor, timeout_s=config.timeout_s, transport=transport, clock=clock, rate_limiter=rate_limiter
    )


class MLSClient:
    """
    Authenticated search / detail / market-analysis calls against one provider.

    Every public operation returns a Result; provider failures never escape as
    exceptions. Collaborators are injectable so tests can swap any of them.
    """

    def __init__(
        self,
        config: MLSConfig,
        *,
        cache: ResponseCache | None = None,
        rate_limiter: RateLimiter | None = None,
        classifier: ErrorClassifier | None = None,
        executor: RetryingRequestExecutor | None = None,
        auth: Authenticator | None = None,
        query_builder: QueryBuilder | None = None,
        normalizer: PropertyNormalizer | None = None,
        geocoder: Geocoder | None = None,
        policy: CachePolicy | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.config = config
        self._clock = clock
        self._transport = transport
        self._timeout = httpx.Timeout(config.timeout_s)

        rl = config.rate_limiting
        self.cache = cache or ResponseCache(clock=clock)
        self.rate_limiter = rate_limiter or RateLimiter(
            rl.requests_per_minute, requests_per_hour=rl.requests_per_hour, clock=clock
        )
        self.classifier = classifier or ErrorClassifier(clock=clock)
        self.executor = executor or RetryingRequestExecutor(
            self.classifier,
            max_retries=config.max_retries,
            base_delay=config.backoff_base_s,
            max_delay=config.backoff_cap_s,
            sleep=sleep,
        )
        self.auth = auth or _default_auth(config, self.executor, transport, clock, self.rate_limiter)
        self.query_builder = query_builder or build_query_builder(config.provider)
        self.normalizer = normalizer or PropertyNormalizer()
        self.geocoder = geocoder or FixedGeocoder(*COLUMBUS_CENTER)
        self.policy = policy or CachePolicy(active_ttl=config.caching.property_cache_ttl)
        self.last_sync: datetime | None = None

    # ----- plumbing -----

    def now(self) -> datetime:
        return datetime.fromtimestamp(self._clock(), tz=timezone.utc)

    def _url(self, path: str) -> str:
        return self.config.credentials.api_url.rstrip("/") + path

    def _check_rate_limit(self, operation: str) -> MLSError | None:
        decision = self.rate_limiter.check_limit()
        if decision.allowed:
            return None
        err = rate_limit_error(decision, self._clock())
        self.classifier.record(err, ErrorContext(operation=operation))
        return err

    async def _request(
        self,
        name: str,
        path: str,
        params: Mapping[str, Any] | None = None,
        *,
        max_retries: int | None = None,
        reauth: bool = True,
    ) -> Result[Any]:
        ready = await self.auth.ensure_valid_token()
        if not ready.ok:
            return ready

        url = self._url(path)

        async def _call() -> Any:
            headers = {"accept": "application/json", **self.auth.auth_headers()}
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.get(url, params=dict(params or {}), headers=headers)
            resp.raise_for_status()
            if not resp.content:
                return None
            return resp.json()

        result = await self.executor.execute(name, path, _call, max_retries=max_retries)
        if not result.ok and result.error.type == MLSErrorType.authentication and reauth:
            log.info("MLS token rejected on %s; re-authenticating once", name)
            self.auth.invalidate()
            return await self._request(name, path, params, max_retries=max_retries, reauth=False)
        return result

    async def _stale(self, key: str) -> Result[Any]:
        data = self.cache.get_stale(key)
        if data is None:
            return Result.failure(
                MLSError(type=MLSErrorType.cache, code="CACHE_MISS", message=f"No cached value for {key}", retryable=False)
            )
        log.warning("Serving stale cache entry %s", key)
        return Result.success(data)

    # ----- public API -----

    async def initialize(self) -> Result[None]:
        ready = await self.auth.ensure_valid_token()
        if not ready.ok:
            return ready

        status = await self.get_status()
        if not status.is_connected:
            return Result.failure(
                MLSError(
                    type=MLSErrorType.network,
                    code="CONNECTION_FAILED",
                    message="Failed to establish MLS connection: " + ("; ".join(status.errors) or status.api_status),
                    retryable=True,
                )
            )
        log.info("MLS client initialized (%s, %s)", self.config.provider, self.config.environment)
        return Result.success()

    async def search_properties(
        self,
        criteria: SearchCriteria | Mapping[str, Any] | None = None,
        *,
        use_cache: bool = True,
    ) -> Result[SearchResult]:
        try:
            c = criteria if isinstance(criteria, SearchCriteria) else SearchCriteria.model_validate(dict(criteria or {}))
        except ValidationError as e:
            return Result.failure(_criteria_error(e))

        if not use_cache:
            return await self._fetch_search(c, cache_result=False)

        key = search_cache_key(c)
        cached = self.cache.get(key)
        if cached is not None:
            return Result.success(cached)

        return await with_fallback(
            lambda: self._fetch_search(c, cache_result=True),
            [lambda: self._stale(key)],
            name="search_properties",
        )

    async def _fetch_search(self, c: SearchCriteria, *, cache_result: bool) -> Result[SearchResult]:
        limited = self._check_rate_limit("search_properties")
        if limited:
            return Result.failure(limited)

        qb = self.query_builder
        raw = await self._request("search_properties", qb.search_path, qb.build_search_params(c))
        if not raw.ok:
            return raw

        try:
            rows, declared_total = qb.parse_search_response(raw.value)
        except MLSIntegrationError as e:
            self.classifier.record(e.error, ErrorContext(operation="search_properties", endpoint=qb.search_path))
            return Result.failure(e.error)

        properties = [p for p in (self.normalizer.normalize(r) for r in rows) if p is not None]
        if len(properties) < len(rows):
            log.warning("search_properties dropped %s of %s malformed records", len(rows) - len(properties), len(rows))

        consumed = c.offset + len(rows)
        total = declared_total if declared_total is not None else consumed
        has_more = bool(rows) and consumed < total

        result = SearchResult(
            properties=properties,
            total_count=max(total, 0),
            has_more=has_more,
            next_offset=consumed if has_more else None,
            request_id=_request_id(),
        )
        if cache_result:
            self.cache.set(search_cache_key(c), result, self.config.caching.search_cache_ttl)
        return Result.success(result)

    async def get_property(self, listing_id: str, *, use_cache: bool = True) -> Result[Property]:
        if not listing_id or not str(listing_id).strip():
            return Result.failure(
                MLSError(type=MLSErrorType.validation, code="INVALID_LISTING_ID", message="listing_id is required", retryable=False)
            )
        listing_id = str(listing_id).strip()

        if not use_cache:
            return await self.fetch_property(listing_id)

        key = property_cache_key(listing_id)
        cached = self.cache.get(key)
        if cached is not None:
            return Result.success(cached)

        async def _fetch_and_store() -> Result[Property]:
            r = await self.fetch_property(listing_id)
            if r.ok:
                store_property(self.cache, r.value, self.policy)
            return r

        return await with_fallback(
            _fetch_and_store,
            [lambda: self._stale(key)],
            name="get_property",
            when=lambda err: err.code != PROPERTY_NOT_FOUND,
        )

    async def fetch_property(self, listing_id: str) -> Result[Property]:
        """Provider fetch + normalize; no cache read or write."""
        limited = self._check_rate_limit("get_property")
        if limited:
            return Result.failure(limited)

        qb = self.query_builder
        path, params = qb.property_request(listing_id)
        raw = await self._request("get_property", path, params)
        if not raw.ok:
            if raw.error.code == "HTTP_404":
                return Result.failure(_not_found(listing_id))
            return raw

        record = qb.parse_property_response(raw.value)
        if record is None:
            return Result.failure(_not_found(listing_id))

        prop = self.normalizer.normalize(record)
        if prop is None:
            return Result.failure(_not_found(listing_id, f"Property {listing_id} could not be normalized"))
        return Result.success(prop)

    async def _geocode(self, address: str) -> Result[Coordinates]:
        try:
            return Result.success(await self.geocoder.geocode(address))
        except (GeocodingError, httpx.HTTPError, ValueError) as e:
            classified = self.classifier.handle(e, ErrorContext(operation="geocode"))
            return Result.failure(
                MLSError(
                    type=MLSErrorType.validation if isinstance(e, GeocodingError) else classified.type,
                    code=GEOCODING_FAILED,
                    message=f"Could not geocode {address!r}: {e}",
                    retryable=False if isinstance(e, GeocodingError) else classified.retryable,
                    retry_after=classified.retry_after,
                )
            )

    async def get_market_analysis(
        self,
        address: str,
        *,
        radius: float = DEFAULT_RADIUS_MILES,
        max_comps: int = DEFAULT_MAX_COMPS,
        property_types: Sequence[PropertyType] | None = None,
        subject: SubjectFeatures | None = None,
    ) -> Result[MarketAnalysis]:
        """Comparables near a geocoded address; `subject` drives per-comparable price adjustments."""
        if radius <= 0 or not 1 <= max_comps <= 500:
            return Result.failure(
                MLSError(
                    type=MLSErrorType.validation,
                    code="INVALID_ANALYSIS_OPTIONS",
                    message="radius must be > 0 and max_comps between 1 and 500",
                    retryable=False,
                )
            )

        located = await self._geocode(address)
        if not located.ok:
            return Result.failure(located.error)
        center = located.value

        criteria = SearchCriteria(
            bounding_box=bounding_box(center, radius),
            property_type=list(property_types) if property_types else None,
            limit=min(max_comps * 2, 1000),
        )
        found = await self.search_properties(criteria)
        if not found.ok:
            return Result.failure(found.error)

        comps = nearest_comparables(center, found.value.properties, max_comps, subject)
        stats = market_statistics(comps, now=self.now())
        return Result.success(
            MarketAnalysis(
                subject_address=address,
                subject_coordinates=center,
                comparables=comps,
                statistics=stats,
                price_estimate=price_estimate(comps, stats),
            )
        )

    async def get_neighborhood_trends(
        self,
        address: str,
        timeframe: TrendTimeframe = TrendTimeframe.six_months,
    ) -> Result[NeighborhoodTrends]:
        """Closed sales modified within the timeframe, in a small box around the address."""
        located = await self._geocode(address)
        if not located.ok:
            return Result.failure(located.error)

        criteria = SearchCriteria(
            bounding_box=trend_box(located.value),
            standard_status=[StandardStatus.closed],
            modified_since=self.now() - timedelta(days=TIMEFRAME_DAYS[timeframe]),
            limit=TREND_SEARCH_LIMIT,
        )
        found = await self.search_properties(criteria)
        if not found.ok:
            return Result.failure(found.error)
        return Result.success(neighborhood_trends(found.value.properties, timeframe))

    async def get_status(self) -> IntegrationStatus:
        errors: list[str] = []
        api_status = "down"

        ready = await self.auth.ensure_valid_token()
        if not ready.ok:
            errors.append(ready.error.message)
        else:
            qb = self.query_builder
            limited = self._check_rate_limit("status_probe")
            if limited is not None:
                probe: Result[Any] = Result.failure(limited)
            else:
                probe = await self._request("status_probe", qb.status_path, qb.status_params, max_retries=0)
            if probe.ok:
                api_status = "healthy"
            else:
                errors.append(probe.error.message)
                api_status = "down" if probe.error.type in _DOWN_TYPES else "degraded"

        rl = self.rate_limiter.status()
        auth_status = self.auth.auth_status
        return IntegrationStatus(
            is_connected=auth_status == "valid" and api_status != "down",
            api_status=api_status,
            auth_status=auth_status,
            rate_limit=RateLimitStatus(remaining=rl.remaining, reset_time=rl.reset_at),
            last_sync=self.last_sync,
            errors=errors,
        )

    def mark_synced(self, when: datetime | None = None) -> None:
        self.last_sync = when or self.now()
