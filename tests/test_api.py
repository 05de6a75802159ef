from datetime import datetime, timezone

import pytest
from conftest import API_URL, iso, listing
from fastapi.testclient import TestClient

from mlsbridge.adapters.repos.properties import InMemoryPropertyStore
from mlsbridge.config import Settings, settings as app_settings
from mlsbridge.entrypoints.fastapi_app import create_app
from mlsbridge.service_layer.integration import build_integration


@pytest.fixture
def http(api):
    s = Settings(
        MLS_API_URL=API_URL,
        MLS_CLIENT_ID="client-id",
        MLS_CLIENT_SECRET="client-secret",
        SYNC_PAGE_PAUSE_S=0,
        HTTP_MAX_RETRIES=0,
    )
    integration = build_integration(s, transport=api.transport(), store=InMemoryPropertyStore())
    app = create_app(integration, settings=s, create_tables=False)
    with TestClient(app) as c:
        yield c


def test_health(http):
    assert http.get("/health").json() == {"status": "ok"}


def test_api_key_guard(http, monkeypatch):
    monkeypatch.setattr(app_settings, "API_KEY", "sekret")

    assert http.get("/sync/status").status_code == 401
    assert http.get("/sync/status", headers={"X-API-Key": "wrong"}).status_code == 401
    assert http.get("/sync/status", headers={"X-API-Key": "sekret"}).status_code == 200
    # health stays open
    assert http.get("/health").status_code == 200


def test_search_merges_text_and_params(http, api):
    api.add(listing("A"), listing("B"))

    r = http.get("/mls/search", params={"q": "3 bed in Bexley under $400k", "limit": 1})
    assert r.status_code == 200
    body = r.json()
    assert body["criteria"]["city"] == ["Bexley"]
    assert body["criteria"]["max_list_price"] == 400000
    assert body["criteria"]["limit"] == 1
    assert [p["listing_id"] for p in body["result"]["properties"]] == ["A"]
    assert body["result"]["has_more"] is True

    r = http.get("/mls/search", params={"q": "condo", "city": "Dublin"})
    assert r.json()["criteria"]["city"] == ["Dublin"]


def test_search_rejects_bad_ranges(http):
    r = http.get("/mls/search", params={"min_list_price": 500000, "max_list_price": 100000})
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "INVALID_SEARCH_CRITERIA"


def test_get_property_and_not_found(http, api):
    api.add(listing("A"))

    r = http.get("/mls/properties/A")
    assert r.status_code == 200
    assert r.json()["listing_id"] == "A"

    r = http.get("/mls/properties/NOPE")
    assert r.status_code == 404
    err = r.json()["error"]
    assert err["code"] == "PROPERTY_NOT_FOUND"
    assert err["retryable"] is False


def test_market_analysis_validates_property_type(http):
    r = http.get("/mls/market-analysis", params={"address": "123 High St", "property_type": "Castle"})
    assert r.status_code == 400


def test_auto_populate(http, api):
    api.add(listing("A"))

    r = http.post("/mls/auto-populate", json={"address": "123 High St, Columbus, OH 43215"})
    assert r.status_code == 200
    body = r.json()
    assert body["property"]["listing_id"] == "A"
    assert body["confidence"] == 100

    r = http.post("/mls/auto-populate", json={"address": "1 Woodward Ave, Detroit, MI 48226"})
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "INVALID_ADDRESS"


def test_suggestions(http, api):
    api.add(listing("A"))
    assert http.get("/mls/suggestions", params={"partial": "12"}).json() == []
    assert [s["listing_id"] for s in http.get("/mls/suggestions", params={"partial": "123 High"}).json()] == ["A"]


def test_sync_endpoints(http, api):
    api.add(listing("A"))

    r = http.post("/sync/full")
    assert r.status_code == 202
    job_id = r.json()["job_id"]
    assert job_id.startswith("full_")

    r = http.get(f"/sync/jobs/{job_id}")
    assert r.status_code == 200
    assert r.json()["type"] == "full"

    assert http.post("/sync/incremental", json={"since": "2026-10-01T00:00:00Z"}).status_code == 202
    assert http.post("/sync/properties", json={"listing_ids": ["A"]}).status_code == 202
    assert http.post("/sync/properties", json={"listing_ids": [" "]}).status_code == 400
    assert http.get("/sync/jobs/missing").status_code == 404

    status = http.get("/sync/status").json()
    assert status["is_running"] is False
    assert "queue_length" in status


def test_cache_endpoints(http, api):
    api.add(listing("A"))
    http.get("/mls/properties/A")

    stats = http.get("/cache/stats").json()
    assert stats["cache"]["total_entries"] == 1
    assert "errors" in stats

    assert http.delete("/cache", params={"pattern": "("}).status_code == 400
    assert http.delete("/cache", params={"pattern": "^property:"}).json() == {"removed": 1}
    assert http.delete("/cache").json() == {"removed": 0}


def test_status_and_initialize(http, api):
    r = http.get("/mls/status")
    assert r.status_code == 200
    assert r.json()["api_status"] == "healthy"

    r = http.post("/mls/initialize")
    assert r.status_code == 200
    assert r.json()["is_connected"] is True


def test_initialize_reports_auth_failure(http, api):
    api.token_status = 401
    r = http.post("/mls/initialize")
    assert r.status_code == 401
    assert r.json()["error"]["type"] == "AUTHENTICATION_ERROR"


def test_comparables(http, api):
    api.add(listing("A"), listing("B"))
    r = http.get("/mls/comparables", params={"address": "123 High St", "max_results": 1})
    assert r.status_code == 200
    body = r.json()
    assert len(body["comparables"]) == 1
    assert body["price_estimate"]["estimate"] == 250000


def test_debug_config_redacts_secrets(http):
    body = http.get("/debug/config").json()
    assert "MLS_CLIENT_SECRET" not in body
    assert "MLS_CLIENT_SECRET_SET" in body


def test_rate_limited_call_returns_429_with_retry_after(api):
    s = Settings(
        MLS_API_URL=API_URL,
        MLS_CLIENT_ID="client-id",
        MLS_CLIENT_SECRET="client-secret",
        MLS_REQUESTS_PER_MINUTE=2,
        HTTP_MAX_RETRIES=0,
    )
    integration = build_integration(s, transport=api.transport(), store=InMemoryPropertyStore())
    api.add(listing("A"), listing("B"))

    with TestClient(create_app(integration, settings=s, create_tables=False)) as c:
        # token request plus one detail call use the whole minute
        assert c.get("/mls/properties/A").status_code == 200
        r = c.get("/mls/properties/B")

    assert r.status_code == 429
    assert r.json()["error"]["code"] == "RATE_LIMIT_EXCEEDED"
    assert 1 <= int(r.headers["Retry-After"]) <= 60


def test_history_routes(http, api):
    api.add(listing("A", OriginalListPrice=275000, StandardStatus="Pending"))

    r = http.get("/mls/properties/A/history")
    assert r.status_code == 200
    assert {e["event"] for e in r.json()["events"]} == {"Listed", "Price Change", "Status Change"}

    body = http.get("/mls/properties/A/price-history").json()
    assert body["original_price"] == 275000
    assert body["total_price_change"] == -25000

    body = http.get("/mls/properties/A/market-timing", params={"average_days_on_market": 30}).json()
    assert body["average_days_on_market"] == 30
    assert body["current_status"] == "Pending"
    assert body["recommendations"]

    assert http.get("/mls/properties/NOPE/history").status_code == 404


def test_neighborhood_trends_route(http, api):
    now = datetime.now(timezone.utc)
    api.add(listing("S1", StandardStatus="Closed", CloseDate=iso(now), ModificationTimestamp=iso(now)))

    r = http.get("/mls/neighborhood-trends", params={"address": "123 High St", "timeframe": "1year"})
    assert r.status_code == 200
    body = r.json()
    assert body["timeframe"] == "1year"
    assert body["total_sales"] == 1
    assert body["inventory_level"] == "Low"

    assert http.get("/mls/neighborhood-trends", params={"address": "123 High St", "timeframe": "2weeks"}).status_code == 422


def test_market_analysis_accepts_subject_details(http, api):
    api.add(listing("A", LivingArea=1600))
    r = http.get("/mls/market-analysis", params={"address": "123 High St", "square_feet": 1500})
    assert r.status_code == 200
    [comp] = r.json()["comparables"]
    assert comp["adjustment_factors"] == {"square_feet": -10000}
    assert comp["adjusted_price"] == 240000
