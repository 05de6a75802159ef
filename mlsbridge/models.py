# mlsbridge/models.py
from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Float, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class ListingRecord(Base):
    """CRM-side copy of a synced MLS listing."""

    __tablename__ = "listings"
    __table_args__ = (UniqueConstraint("listing_id", name="uq_listing_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    listing_id: Mapped[str] = mapped_column(String(64), index=True)
    listing_key: Mapped[str | None] = mapped_column(String(64), nullable=True)

    property_type: Mapped[str] = mapped_column(String(40))
    standard_status: Mapped[str] = mapped_column(String(40), index=True)

    address_line: Mapped[str] = mapped_column(String(255))
    city: Mapped[str] = mapped_column(String(80))
    state: Mapped[str] = mapped_column(String(2))
    postal_code: Mapped[str] = mapped_column(String(10), index=True)

    lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    lon: Mapped[float | None] = mapped_column(Float, nullable=True)

    beds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    baths: Mapped[float | None] = mapped_column(Float, nullable=True)
    sqft: Mapped[int | None] = mapped_column(Integer, nullable=True)
    year_built: Mapped[int | None] = mapped_column(Integer, nullable=True)

    list_price: Mapped[float] = mapped_column(Float, default=0.0)

    modification_timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    payload_json: Mapped[str] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
