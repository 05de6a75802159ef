import pytest
from conftest import FakeClock, NOW

from mlsbridge.adapters.cache import ResponseCache, property_cache_key, store_property
from mlsbridge.domain.errors import CacheError
from mlsbridge.domain.policies import CachePolicy
from mlsbridge.domain.types import Address, Property, PropertyType, StandardStatus


def _prop(listing_id: str = "A1", status: StandardStatus = StandardStatus.active) -> Property:
    return Property(
        listing_id=listing_id,
        property_type=PropertyType.residential,
        address=Address(street_number="1", street_name="Main", city="Columbus", state_or_province="OH", postal_code="43215"),
        list_price=100000,
        standard_status=status,
        modification_timestamp=NOW,
    )


def test_get_returns_data_until_ttl_then_misses_idempotently():
    clock = FakeClock()
    cache = ResponseCache(clock=clock)
    cache.set("k", {"v": 1}, 60)

    clock.advance(60)
    assert cache.get("k") == {"v": 1}

    clock.advance(1)
    assert cache.get("k") is None
    assert cache.get("k") is None
    assert cache.misses == 2
    assert cache.hits == 1


def test_expired_entry_still_available_as_stale():
    clock = FakeClock()
    cache = ResponseCache(clock=clock)
    cache.set("k", "old", 10)
    clock.advance(11)
    assert cache.get("k") is None
    assert cache.get_stale("k") == "old"
    assert cache.contains("k") is False
    assert cache.contains("k", include_stale=True) is True


def test_cleanup_counts_expired_entries():
    clock = FakeClock()
    cache = ResponseCache(clock=clock)
    cache.set("a", 1, 10)
    cache.set("b", 2, 100)
    clock.advance(50)
    assert cache.cleanup() == 1
    assert len(cache) == 1
    assert cache.get("b") == 2


def test_set_rejects_non_positive_ttl():
    cache = ResponseCache(clock=FakeClock())
    with pytest.raises(CacheError):
        cache.set("k", 1, 0)


def test_invalidate_by_pattern():
    cache = ResponseCache(clock=FakeClock())
    cache.set("property:1", 1, 60)
    cache.set("property:2", 2, 60)
    cache.set("search:abc", 3, 60)
    assert cache.invalidate(r"^property:") == 2
    assert cache.get("search:abc") == 3
    assert cache.invalidate() == 1
    assert len(cache) == 0


def test_stale_area_is_bounded():
    clock = FakeClock()
    cache = ResponseCache(stale_capacity=2, clock=clock)
    for k in ("a", "b", "c"):
        cache.set(k, k, 1)
    clock.advance(2)
    assert cache.cleanup() == 3
    assert cache.get_stale("a") is None
    assert cache.get_stale("c") == "c"


def test_store_property_reports_new_then_updated_and_uses_status_ttl():
    clock = FakeClock()
    cache = ResponseCache(clock=clock)
    policy = CachePolicy(active_ttl=300, pending_ttl=900, terminal_ttl=86400)

    assert store_property(cache, _prop(), policy) is True
    assert store_property(cache, _prop(), policy) is False

    store_property(cache, _prop("C1", StandardStatus.closed), policy)
    clock.advance(301)
    assert cache.get(property_cache_key("A1")) is None
    assert cache.get(property_cache_key("C1")) is not None


def test_policy_ttls():
    p = CachePolicy()
    assert p.ttl_for_status(StandardStatus.active) == 300
    assert p.ttl_for_status(StandardStatus.pending) == 900
    assert p.ttl_for_status(StandardStatus.active_under_contract) == 900
    assert p.ttl_for_status("Withdrawn") == 86400
    assert p.ttl_for_status(StandardStatus.hold) == 600
    assert p.ttl_for_status(None) == 600


def test_stats_reports_hit_rate():
    cache = ResponseCache(clock=FakeClock())
    cache.set("k", 1, 60)
    cache.get("k")
    cache.get("missing")
    s = cache.stats()
    assert s["total_entries"] == 1
    assert s["hits"] == 1
    assert s["misses"] == 1
    assert s["hit_rate"] == 0.5
