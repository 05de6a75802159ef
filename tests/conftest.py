# tests/conftest.py
from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Any, Callable
from urllib.parse import unquote

import httpx
import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from mlsbridge.adapters.cache import ResponseCache
from mlsbridge.adapters.clients.geocoding import FixedGeocoder
from mlsbridge.adapters.clients.mls_client import MLSClient
from mlsbridge.config import MLSConfig, MLSCredentials
from mlsbridge.models import Base

API_URL = "https://mls.test/odata"
NOW = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)
COLUMBUS = (39.9612, -82.9988)


class FakeClock:
    def __init__(self, start: float = NOW.timestamp()) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class SleepRecorder:
    """Records requested delays and moves the fake clock instead of waiting."""

    def __init__(self, clock: FakeClock | None = None) -> None:
        self.calls: list[float] = []
        self.clock = clock

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        if self.clock is not None:
            self.clock.advance(seconds)


def iso(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def listing(listing_id: str, **overrides: Any) -> dict[str, Any]:
    """RESO-shaped raw record."""
    rec: dict[str, Any] = {
        "ListingId": listing_id,
        "ListingKey": f"key-{listing_id}",
        "PropertyType": "Residential",
        "StandardStatus": "Active",
        "StreetNumber": "123",
        "StreetName": "High",
        "StreetSuffix": "St",
        "City": "Columbus",
        "StateOrProvince": "OH",
        "PostalCode": "43215",
        "Latitude": COLUMBUS[0],
        "Longitude": COLUMBUS[1],
        "BedroomsTotal": 3,
        "BathroomsTotalInteger": 2,
        "LivingArea": 1500,
        "YearBuilt": 1995,
        "ListPrice": 250000,
        "OnMarketDate": iso(NOW - timedelta(days=20)),
        "ModificationTimestamp": iso(NOW - timedelta(minutes=5)),
    }
    rec.update(overrides)
    return rec


_PROPERTY_RE = re.compile(r"/Property\('(.+)'\)$")
_MODIFIED_RE = re.compile(r"ModificationTimestamp ge (\S+)")


class FakeListingsApi:
    """In-process OData provider served through httpx.MockTransport."""

    def __init__(self) -> None:
        self.records: list[dict[str, Any]] = []
        self.requests: list[httpx.Request] = []
        self.token_requests: list[httpx.Request] = []
        self.token_status = 200
        self.token_seq = 0
        self.current_token: str | None = None
        self.declared_total: int | None = None
        self._queued: list[Callable[[httpx.Request], httpx.Response]] = []

    # ----- scripting -----

    def add(self, *records: dict[str, Any]) -> None:
        self.records.extend(records)

    def fail_next(self, status: int, *, times: int = 1, headers: dict[str, str] | None = None) -> None:
        for _ in range(times):
            self._queued.append(lambda req, s=status: httpx.Response(s, headers=headers, json={"message": f"boom {s}"}))

    def disconnect_next(self, *, times: int = 1) -> None:
        def _raise(req: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=req)

        self._queued.extend([_raise] * times)

    def revoke_token(self) -> None:
        self.current_token = None

    @property
    def data_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if not r.url.path.endswith("/Token")]

    # ----- transport -----

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = unquote(request.url.path)

        if path.endswith("/Token"):
            self.token_requests.append(request)
            if self.token_status != 200:
                return httpx.Response(self.token_status, json={"error": "invalid_client"})
            self.token_seq += 1
            self.current_token = f"tok-{self.token_seq}"
            return httpx.Response(200, json={"access_token": self.current_token, "expires_in": 3600})

        if request.headers.get("authorization") != f"Bearer {self.current_token}":
            return httpx.Response(401, json={"message": "token expired"})

        if self._queued:
            return self._queued.pop(0)(request)

        if path.endswith("/Property/$count"):
            return httpx.Response(200, json=len(self.records))

        m = _PROPERTY_RE.search(path)
        if m:
            listing_id = m.group(1)
            for rec in self.records:
                if rec.get("ListingId") == listing_id:
                    return httpx.Response(200, json=rec)
            return httpx.Response(404, json={"message": f"{listing_id} not found"})

        if path.endswith("/Property"):
            return self._search(request)

        return httpx.Response(404, json={"message": "no route"})

    def _search(self, request: httpx.Request) -> httpx.Response:
        params = request.url.params
        top = int(params.get("$top", "50"))
        skip = int(params.get("$skip", "0"))
        rows = list(self.records)

        m = _MODIFIED_RE.search(params.get("$filter", ""))
        if m:
            since = datetime.fromisoformat(m.group(1).replace("Z", "+00:00"))
            rows = [
                r
                for r in rows
                if datetime.fromisoformat(r["ModificationTimestamp"].replace("Z", "+00:00")) >= since
            ]

        total = self.declared_total if self.declared_total is not None else len(rows)
        return httpx.Response(200, json={"@odata.count": total, "value": rows[skip : skip + top]})


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleeps(clock: FakeClock) -> SleepRecorder:
    return SleepRecorder(clock)


@pytest.fixture
def api() -> FakeListingsApi:
    return FakeListingsApi()


@pytest.fixture
def mls_config() -> MLSConfig:
    return MLSConfig(
        provider="RESO",
        environment="sandbox",
        credentials=MLSCredentials(client_id="client-id", client_secret="client-secret", api_url=API_URL),
        max_retries=3,
    )


@pytest.fixture
def client(mls_config: MLSConfig, api: FakeListingsApi, clock: FakeClock, sleeps: SleepRecorder) -> MLSClient:
    return MLSClient(
        mls_config,
        cache=ResponseCache(clock=clock),
        geocoder=FixedGeocoder(*COLUMBUS),
        transport=api.transport(),
        clock=clock,
        sleep=sleeps,
    )


@pytest.fixture
async def engine():
    """
    Fresh in-memory DB per test. StaticPool makes all connections share the same
    in-memory database for the lifetime of this engine fixture.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def async_session_maker(engine):
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=True)
