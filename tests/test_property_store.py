from conftest import listing

from mlsbridge.adapters.repos.properties import SqlAlchemyPropertyStore
from mlsbridge.domain.normalize import normalize_property


async def test_upsert_is_idempotent(async_session_maker):
    store = SqlAlchemyPropertyStore(async_session_maker)
    prop = normalize_property(listing("A"))

    await store.upsert(prop, True)
    await store.upsert(prop, False)
    assert await store.count() == 1


async def test_upsert_overwrites_and_roundtrips(async_session_maker):
    store = SqlAlchemyPropertyStore(async_session_maker)
    await store.upsert(normalize_property(listing("A")), True)
    await store.upsert(normalize_property(listing("A", ListPrice=199000, StandardStatus="Pending")), False)
    await store.upsert(normalize_property(listing("B")), True)

    got = await store.get("A")
    assert got.list_price == 199000
    assert got.standard_status.value == "Pending"
    assert got.address.street_line == "123 High St"
    assert await store.count() == 2


async def test_get_unknown_listing(async_session_maker):
    store = SqlAlchemyPropertyStore(async_session_maker)
    assert await store.get("nope") is None
