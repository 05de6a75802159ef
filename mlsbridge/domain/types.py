# mlsbridge/domain/types.py
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, field_validator, model_validator

POSTAL_CODE_PATTERN = r"^\d{5}(-\d{4})?$"

PostalCode = Annotated[str, StringConstraints(pattern=POSTAL_CODE_PATTERN)]


class PropertyType(str, Enum):
    residential = "Residential"
    condo = "Condo"
    townhouse = "Townhouse"
    manufactured = "Manufactured"
    land = "Land"
    commercial = "Commercial"
    business_opportunity = "Business Opportunity"
    rental = "Rental"


class StandardStatus(str, Enum):
    active = "Active"
    active_under_contract = "Active Under Contract"
    pending = "Pending"
    closed = "Closed"
    expired = "Expired"
    canceled = "Canceled"
    withdrawn = "Withdrawn"
    hold = "Hold"
    incomplete = "Incomplete"


class SortField(str, Enum):
    list_price = "ListPrice"
    living_area = "LivingArea"
    bedrooms = "BedroomsTotal"
    bathrooms = "BathroomsTotal"
    on_market_date = "OnMarketDate"
    modification_timestamp = "ModificationTimestamp"


SortOrder = Literal["asc", "desc"]


def _max_year_built() -> int:
    return datetime.now(timezone.utc).year + 2


class Address(BaseModel):
    model_config = ConfigDict(frozen=True)

    street_number: str | None = None
    street_name: str | None = None
    street_suffix: str | None = None
    unit_number: str | None = None
    city: str = Field(..., min_length=1)
    state_or_province: str = Field(..., min_length=2, max_length=2)
    postal_code: PostalCode
    county: str | None = None

    @property
    def street_line(self) -> str:
        parts = [self.street_number, self.street_name, self.street_suffix]
        line = " ".join(p for p in parts if p)
        if self.unit_number:
            line = f"{line} #{self.unit_number}"
        return line


class Coordinates(BaseModel):
    model_config = ConfigDict(frozen=True)

    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class Photo(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: str
    caption: str | None = None
    order: int = 0


class Agent(BaseModel):
    model_config = ConfigDict(frozen=True)

    agent_id: str | None = None
    name: str | None = None
    email: str | None = None
    phone: str | None = None


class Office(BaseModel):
    model_config = ConfigDict(frozen=True)

    office_id: str | None = None
    name: str | None = None
    phone: str | None = None


class Property(BaseModel):
    """Normalized listing record."""

    model_config = ConfigDict(frozen=True)

    listing_id: str = Field(..., min_length=1)
    listing_key: str | None = None

    property_type: PropertyType
    property_sub_type: str | None = None

    address: Address
    coordinates: Coordinates | None = None

    bedrooms: int | None = Field(None, ge=0, le=50)
    bathrooms: float | None = Field(None, ge=0, le=50)
    bathrooms_full: int | None = Field(None, ge=0, le=50)
    bathrooms_half: int | None = Field(None, ge=0, le=50)
    square_feet: int | None = Field(None, ge=1, le=100000)
    lot_size_square_feet: float | None = Field(None, ge=0)
    lot_size_acres: float | None = Field(None, ge=0)
    year_built: int | None = Field(None, ge=1800)

    list_price: float = Field(..., ge=0)
    original_list_price: float | None = Field(None, ge=0)
    previous_list_price: float | None = Field(None, ge=0)
    price_change_timestamp: datetime | None = None

    standard_status: StandardStatus
    mls_status: str | None = None
    listing_contract_date: datetime | None = None
    on_market_date: datetime | None = None
    off_market_date: datetime | None = None
    close_date: datetime | None = None
    expiration_date: datetime | None = None

    public_remarks: str | None = None
    photos: list[Photo] = Field(default_factory=list)
    listing_agent: Agent | None = None
    listing_office: Office | None = None

    modification_timestamp: datetime

    @field_validator("year_built")
    @classmethod
    def _year_not_in_far_future(cls, v: int | None) -> int | None:
        if v is not None and v > _max_year_built():
            raise ValueError(f"year_built {v} is in the future")
        return v

    @property
    def price_per_sqft(self) -> float | None:
        if not self.square_feet or self.list_price <= 0:
            return None
        return round(self.list_price / self.square_feet, 2)


class ComparableProperty(Property):
    distance: float = Field(..., ge=0)  # miles from the subject
    adjusted_price: float | None = None
    adjustment_factors: dict[str, float] = Field(default_factory=dict)


class SubjectFeatures(BaseModel):
    """What is known about the subject of a market analysis."""

    model_config = ConfigDict(frozen=True)

    square_feet: int | None = Field(None, ge=1, le=100000)
    bedrooms: int | None = Field(None, ge=0, le=50)
    bathrooms: float | None = Field(None, ge=0, le=50)
    year_built: int | None = Field(None, ge=1800)


class BoundingBox(BaseModel):
    model_config = ConfigDict(frozen=True)

    north: float = Field(..., ge=-90, le=90)
    south: float = Field(..., ge=-90, le=90)
    east: float = Field(..., ge=-180, le=180)
    west: float = Field(..., ge=-180, le=180)

    @model_validator(mode="after")
    def _corners_ordered(self) -> "BoundingBox":
        if self.south > self.north:
            raise ValueError("bounding_box south cannot be greater than north")
        if self.west > self.east:
            raise ValueError("bounding_box west cannot be greater than east")
        return self


# (min field, max field) pairs that must be order-consistent
_RANGE_PAIRS: tuple[tuple[str, str], ...] = (
    ("min_bedrooms", "max_bedrooms"),
    ("min_bathrooms", "max_bathrooms"),
    ("min_square_feet", "max_square_feet"),
    ("min_lot_size", "max_lot_size"),
    ("min_year_built", "max_year_built"),
    ("min_list_price", "max_list_price"),
    ("min_on_market_date", "max_on_market_date"),
)


class SearchCriteria(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    # location
    city: list[str] | None = None
    postal_code: list[PostalCode] | None = None
    county: list[str] | None = None
    bounding_box: BoundingBox | None = None

    # property
    property_type: list[PropertyType] | None = None
    min_bedrooms: int | None = Field(None, ge=0, le=50)
    max_bedrooms: int | None = Field(None, ge=0, le=50)
    min_bathrooms: float | None = Field(None, ge=0, le=50)
    max_bathrooms: float | None = Field(None, ge=0, le=50)
    min_square_feet: int | None = Field(None, ge=0)
    max_square_feet: int | None = Field(None, ge=0)
    min_lot_size: float | None = Field(None, ge=0)
    max_lot_size: float | None = Field(None, ge=0)
    min_year_built: int | None = Field(None, ge=1800)
    max_year_built: int | None = Field(None, ge=1800)

    # price
    min_list_price: float | None = Field(None, ge=0)
    max_list_price: float | None = Field(None, ge=0)

    # status / dates
    standard_status: list[StandardStatus] | None = None
    min_on_market_date: datetime | None = None
    max_on_market_date: datetime | None = None
    modified_since: datetime | None = None

    # pagination / sort
    limit: int = Field(50, ge=1, le=1000)
    offset: int = Field(0, ge=0)
    sort_by: SortField = SortField.modification_timestamp
    sort_order: SortOrder = "desc"

    @model_validator(mode="after")
    def _ranges_are_ordered(self) -> "SearchCriteria":
        for lo_name, hi_name in _RANGE_PAIRS:
            lo = getattr(self, lo_name)
            hi = getattr(self, hi_name)
            if lo is not None and hi is not None and lo > hi:
                raise ValueError(f"{lo_name} cannot be greater than {hi_name}")
        return self


class SearchResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    properties: list[Property]
    total_count: int = Field(..., ge=0)
    has_more: bool
    next_offset: int | None = None
    request_id: str


class MarketStatistics(BaseModel):
    model_config = ConfigDict(frozen=True)

    average_list_price: float = 0.0
    median_list_price: float = 0.0
    average_price_per_sqft: float = 0.0
    average_days_on_market: float = 0.0
    total_active_listings: int = 0
    sold_last_30_days: int = 0
    sold_last_90_days: int = 0


class PriceEstimate(BaseModel):
    model_config = ConfigDict(frozen=True)

    low: float
    high: float
    estimate: float
    confidence: int = Field(..., ge=0, le=100)


class MarketAnalysis(BaseModel):
    model_config = ConfigDict(frozen=True)

    subject_address: str
    subject_coordinates: Coordinates
    comparables: list[ComparableProperty]
    statistics: MarketStatistics
    price_estimate: PriceEstimate | None = None


class TrendTimeframe(str, Enum):
    one_month = "1month"
    three_months = "3months"
    six_months = "6months"
    one_year = "1year"


class NeighborhoodTrends(BaseModel):
    model_config = ConfigDict(frozen=True)

    timeframe: TrendTimeframe
    total_sales: int = 0
    price_appreciation: float = 0.0  # percent, later half of the window vs earlier half
    average_price: float = 0.0
    median_days_on_market: int = 0
    inventory_level: Literal["Low", "Medium", "High"] = "Low"
    trend: Literal["Increasing", "Decreasing", "Stable"] = "Stable"


HistoryEventKind = Literal["Listed", "Price Change", "Status Change"]


class HistoryEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    date: datetime
    event: HistoryEventKind
    previous_value: float | str | None = None
    new_value: float | str | None = None
    description: str


class PropertyHistory(BaseModel):
    listing_id: str
    events: list[HistoryEvent]  # newest first


class PriceChange(BaseModel):
    date: datetime
    price: float
    change_amount: float
    change_percent: float
    days_on_market: int


class PriceHistory(BaseModel):
    listing_id: str
    price_changes: list[PriceChange]  # oldest first
    current_price: float
    original_price: float
    total_price_change: float
    total_price_change_percent: float


class MarketTiming(BaseModel):
    listing_id: str
    original_list_date: datetime | None = None
    current_status: StandardStatus
    total_days_on_market: int
    average_days_on_market: float
    market_timing: Literal["Excellent", "Good", "Fair", "Poor"]
    price_strategy: Literal["Aggressive", "Market", "Conservative"]
    recommendations: list[str]


class RateLimitStatus(BaseModel):
    remaining: int
    reset_time: datetime


class IntegrationStatus(BaseModel):
    is_connected: bool
    api_status: Literal["healthy", "degraded", "down"]
    auth_status: Literal["valid", "expired", "invalid"]
    rate_limit: RateLimitStatus
    last_sync: datetime | None = None
    errors: list[str] = Field(default_factory=list)
