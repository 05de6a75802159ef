# mlsbridge/schemas.py
from datetime import datetime

from pydantic import BaseModel, Field

from .domain.types import Coordinates, MarketStatistics, PriceEstimate, SearchCriteria, SearchResult


class PropertySearchResponse(BaseModel):
    criteria: SearchCriteria
    result: SearchResult
    suggestions: list[str] = Field(default_factory=list)


class PropertySuggestion(BaseModel):
    listing_id: str
    address: str
    list_price: float
    bedrooms: int | None = None
    bathrooms: float | None = None
    square_feet: int | None = None
    standard_status: str
    relevance: int = 0


class MarketInsights(BaseModel):
    average_price: float
    median_price: float
    average_price_per_sqft: float
    average_days_on_market: float
    comparable_count: int
    price_estimate: PriceEstimate | None = None


class AutoPopulateData(BaseModel):
    listing_id: str
    address: str
    city: str
    state: str
    postal_code: str
    property_type: str
    bedrooms: int | None = None
    bathrooms: float | None = None
    square_feet: int | None = None
    lot_size_acres: float | None = None
    year_built: int | None = None
    list_price: float
    standard_status: str
    days_on_market: int | None = None
    price_per_sqft: float | None = None
    description: str | None = None
    features: list[str] = Field(default_factory=list)
    photos: list[str] = Field(default_factory=list)
    coordinates: Coordinates | None = None
    listing_agent: str | None = None
    market_insights: MarketInsights | None = None


class AutoPopulateResult(BaseModel):
    property: AutoPopulateData | None = None
    suggestions: list[PropertySuggestion] = Field(default_factory=list)
    confidence: int = Field(0, ge=0, le=100)
    formatted_address: str | None = None
    errors: list[str] = Field(default_factory=list)


class ComparableSale(BaseModel):
    listing_id: str
    address: str
    list_price: float
    standard_status: str
    bedrooms: int | None = None
    bathrooms: float | None = None
    square_feet: int | None = None
    distance: float
    price_per_sqft: float | None = None
    days_on_market: int | None = None
    close_date: datetime | None = None


class ComparablesReport(BaseModel):
    subject_address: str
    comparables: list[ComparableSale]
    statistics: MarketStatistics
    price_estimate: PriceEstimate | None = None


# ----- request bodies -----


class AutoPopulateIn(BaseModel):
    address: str = Field(..., min_length=1)


class FullSyncIn(BaseModel):
    criteria: SearchCriteria | None = None


class IncrementalSyncIn(BaseModel):
    since: datetime | None = None


class PropertySyncIn(BaseModel):
    listing_ids: list[str] = Field(..., min_length=1, max_length=500)


class JobScheduled(BaseModel):
    job_id: str
