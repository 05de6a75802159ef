from conftest import NOW, listing

from mlsbridge.adapters.cache import property_cache_key
from mlsbridge.adapters.clients.mls_client import MLSClient, search_cache_key
from mlsbridge.adapters.clients.rate_limiter import RateLimiter
from mlsbridge.domain.errors import MLSErrorType
from mlsbridge.domain.types import SearchCriteria


async def test_invalid_criteria_fail_before_any_request(client, api):
    r = await client.search_properties({"min_list_price": 500000, "max_list_price": 100000})
    assert not r.ok
    assert r.error.code == "INVALID_SEARCH_CRITERIA"
    assert r.error.type == MLSErrorType.validation
    assert api.requests == []


async def test_search_normalizes_and_pages(client, api):
    api.add(*(listing(f"L{i}") for i in range(5)))
    r = await client.search_properties(SearchCriteria(limit=2))
    assert r.ok
    assert [p.listing_id for p in r.value.properties] == ["L0", "L1"]
    assert r.value.total_count == 5
    assert r.value.has_more is True
    assert r.value.next_offset == 2

    last = await client.search_properties(SearchCriteria(limit=2, offset=4))
    assert last.value.has_more is False
    assert last.value.next_offset is None


async def test_search_drops_malformed_records_but_keeps_offsets(client, api):
    api.add(listing("OK1"), listing("BAD", PostalCode="nope"), listing("OK2"))
    r = await client.search_properties(SearchCriteria(limit=3))
    assert [p.listing_id for p in r.value.properties] == ["OK1", "OK2"]
    assert r.value.has_more is False


async def test_search_results_are_cached(client, api):
    api.add(listing("L1"))
    c = SearchCriteria(city=["Columbus"])
    await client.search_properties(c)
    await client.search_properties(c)
    assert len(api.data_requests) == 1
    assert client.cache.contains(search_cache_key(c))

    await client.search_properties(c, use_cache=False)
    assert len(api.data_requests) == 2


async def test_get_property_404_is_property_not_found(client, api):
    r = await client.get_property("X123")
    assert not r.ok
    assert r.error.code == "PROPERTY_NOT_FOUND"
    assert r.error.retryable is False
    assert len(api.data_requests) == 1


async def test_get_property_second_call_within_ttl_hits_cache(client, api, clock):
    api.add(listing("X123"))
    first = await client.get_property("X123")
    assert first.ok
    clock.advance(120)
    second = await client.get_property("X123")
    assert second.ok and second.value == first.value
    assert len(api.data_requests) == 1

    clock.advance(300)
    await client.get_property("X123")
    assert len(api.data_requests) == 2


async def test_stale_entry_served_when_refresh_fails(client, api, clock):
    api.add(listing("X1"))
    await client.get_property("X1")
    clock.advance(301)
    api.fail_next(503, times=4)

    r = await client.get_property("X1")
    assert r.ok
    assert r.value.listing_id == "X1"
    # entry survives the failed refresh
    assert client.cache.get_stale(property_cache_key("X1")) is not None


async def test_outage_without_cache_propagates_error(client, api, sleeps):
    api.disconnect_next(times=4)
    r = await client.search_properties(SearchCriteria())
    assert not r.ok
    assert r.error.type == MLSErrorType.network
    assert len(sleeps.calls) == 3


async def test_not_found_never_falls_back_to_stale(client, api, clock):
    api.add(listing("GONE"))
    await client.get_property("GONE")
    api.records.clear()
    clock.advance(301)
    r = await client.get_property("GONE")
    assert r.error.code == "PROPERTY_NOT_FOUND"


async def test_expired_token_triggers_single_reauth(client, api):
    api.add(listing("L1"))
    await client.get_property("L1", use_cache=False)
    api.revoke_token()
    r = await client.get_property("L1", use_cache=False)
    assert r.ok
    assert len(api.token_requests) == 2


async def test_rate_limit_denial_is_typed(mls_config, api, clock, sleeps):
    client = MLSClient(
        mls_config,
        rate_limiter=RateLimiter(2, clock=clock),
        transport=api.transport(),
        clock=clock,
        sleep=sleeps,
    )
    api.add(listing("L1"))
    assert (await client.get_property("L1", use_cache=False)).ok
    clock.advance(15)
    r = await client.get_property("L1", use_cache=False)
    assert r.error.code == "RATE_LIMIT_EXCEEDED"
    assert r.error.type == MLSErrorType.rate_limit
    assert r.error.retryable is True
    assert r.error.retry_after == 45
    # one slot for the token, one for the detail call
    assert len(api.token_requests) == 1


async def test_status_and_initialize(client, api):
    api.add(listing("L1"))
    assert (await client.initialize()).ok
    status = await client.get_status()
    assert status.is_connected is True
    assert status.api_status == "healthy"
    assert status.auth_status == "valid"
    assert status.rate_limit.remaining > 0

    client.mark_synced(NOW)
    assert (await client.get_status()).last_sync == NOW


async def test_status_down_when_provider_unreachable(client, api):
    await client.auth.ensure_valid_token()
    api.disconnect_next()
    status = await client.get_status()
    assert status.api_status == "down"
    assert status.is_connected is False
    assert status.errors


async def test_initialize_fails_on_bad_credentials(client, api):
    api.token_status = 401
    r = await client.initialize()
    assert not r.ok
    assert r.error.type == MLSErrorType.authentication


async def test_status_check_counts_against_rate_limit(mls_config, api, clock, sleeps):
    client = MLSClient(
        mls_config,
        rate_limiter=RateLimiter(3, clock=clock),
        transport=api.transport(),
        clock=clock,
        sleep=sleeps,
    )
    api.add(listing("L1"))
    assert (await client.auth.ensure_valid_token()).ok

    first = await client.get_status()
    assert first.api_status == "healthy"
    assert first.rate_limit.remaining == 1

    assert (await client.get_status()).rate_limit.remaining == 0
    sent = len(api.data_requests)

    limited = await client.get_status()
    assert limited.api_status == "degraded"
    assert any("Rate limit exceeded" in e for e in limited.errors)
    assert len(api.data_requests) == sent
