# mlsbridge/adapters/repos/properties.py
from __future__ import annotations

from datetime import datetime
from typing import Protocol

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ...domain.types import Property
from ...models import ListingRecord


class PropertyStore(Protocol):
    async def upsert(self, prop: Property, is_new: bool) -> None: ...


class InMemoryPropertyStore:
    """Keeps the latest copy per listing plus an upsert log."""

    def __init__(self) -> None:
        self.properties: dict[str, Property] = {}
        self.upserts: list[tuple[str, bool]] = []

    async def upsert(self, prop: Property, is_new: bool) -> None:
        self.properties[prop.listing_id] = prop
        self.upserts.append((prop.listing_id, is_new))


def _apply(row: ListingRecord, prop: Property) -> None:
    row.listing_key = prop.listing_key
    row.property_type = prop.property_type.value
    row.standard_status = prop.standard_status.value

    row.address_line = prop.address.street_line
    row.city = prop.address.city
    row.state = prop.address.state_or_province
    row.postal_code = prop.address.postal_code

    row.lat = prop.coordinates.latitude if prop.coordinates else None
    row.lon = prop.coordinates.longitude if prop.coordinates else None

    row.beds = prop.bedrooms
    row.baths = prop.bathrooms
    row.sqft = prop.square_feet
    row.year_built = prop.year_built
    row.list_price = prop.list_price

    row.modification_timestamp = prop.modification_timestamp
    row.payload_json = prop.model_dump_json()
    row.updated_at = datetime.utcnow()


class SqlAlchemyPropertyStore:
    """Upserts synced listings into the `listings` table, keyed by listing_id."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self._session_maker = session_maker

    async def upsert(self, prop: Property, is_new: bool) -> None:
        # `is_new` reflects the cache's view; the table decides insert vs update
        async with self._session_maker() as session:
            q = select(ListingRecord).where(ListingRecord.listing_id == prop.listing_id)
            row = (await session.execute(q)).scalars().first()
            if row is None:
                row = ListingRecord(listing_id=prop.listing_id)
                session.add(row)
            _apply(row, prop)
            await session.commit()

    async def get(self, listing_id: str) -> Property | None:
        async with self._session_maker() as session:
            q = select(ListingRecord).where(ListingRecord.listing_id == listing_id)
            row = (await session.execute(q)).scalars().first()
        if row is None:
            return None
        return Property.model_validate_json(row.payload_json)

    async def count(self) -> int:
        async with self._session_maker() as session:
            n = (await session.execute(select(func.count()).select_from(ListingRecord))).scalar_one()
        return int(n)
