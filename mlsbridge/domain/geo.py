# mlsbridge/domain/geo.py
from __future__ import annotations

import math
import statistics
from datetime import datetime, timedelta, timezone
from typing import Sequence

from .types import (
    BoundingBox,
    ComparableProperty,
    Coordinates,
    MarketStatistics,
    NeighborhoodTrends,
    PriceEstimate,
    Property,
    StandardStatus,
    SubjectFeatures,
    TrendTimeframe,
)

EARTH_RADIUS_MILES = 3959.0

# miles per degree (Columbus latitude approximation for longitude)
MILES_PER_DEG_LAT = 69.0
MILES_PER_DEG_LON = 54.6

ESTIMATE_SPREAD = 0.10
MAX_CONFIDENCE = 90

# dollars per unit of difference between the subject and a comparable
ADJUST_PER_SQFT = 100
ADJUST_PER_BEDROOM = 5000
ADJUST_PER_BATHROOM = 3000
ADJUST_PER_YEAR = 1000

TIMEFRAME_DAYS = {
    TrendTimeframe.one_month: 30,
    TrendTimeframe.three_months: 90,
    TrendTimeframe.six_months: 180,
    TrendTimeframe.one_year: 365,
}
TREND_BOX_DEGREES = 0.01
TREND_THRESHOLD_PCT = 2.0
# closed sales in the window
LOW_INVENTORY_SALES = 20
MEDIUM_INVENTORY_SALES = 50


def haversine_miles(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_MILES * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def bounding_box(center: Coordinates, radius_miles: float) -> BoundingBox:
    d_lat = radius_miles / MILES_PER_DEG_LAT
    d_lon = radius_miles / MILES_PER_DEG_LON
    return BoundingBox(
        north=min(90.0, center.latitude + d_lat),
        south=max(-90.0, center.latitude - d_lat),
        east=min(180.0, center.longitude + d_lon),
        west=max(-180.0, center.longitude - d_lon),
    )


def price_adjustments(comp: Property, subject: SubjectFeatures) -> tuple[float, dict[str, float]]:
    """
    Move a comparable's list price toward the subject.

    A factor applies only when both sides know the value; a subject that is
    larger, has more rooms or is newer adds to the comparable's price.
    """
    factors: dict[str, float] = {}
    if comp.square_feet and subject.square_feet:
        factors["square_feet"] = (subject.square_feet - comp.square_feet) * ADJUST_PER_SQFT
    if comp.bedrooms and subject.bedrooms:
        factors["bedrooms"] = (subject.bedrooms - comp.bedrooms) * ADJUST_PER_BEDROOM
    if comp.bathrooms and subject.bathrooms:
        factors["bathrooms"] = (subject.bathrooms - comp.bathrooms) * ADJUST_PER_BATHROOM
    if comp.year_built and subject.year_built:
        factors["age"] = (subject.year_built - comp.year_built) * ADJUST_PER_YEAR
    return float(round(comp.list_price + sum(factors.values()))), factors


def nearest_comparables(
    subject: Coordinates,
    candidates: Sequence[Property],
    max_comps: int,
    features: SubjectFeatures | None = None,
) -> list[ComparableProperty]:
    """Candidates without coordinates are skipped; result is sorted by distance."""
    features = features or SubjectFeatures()
    comps: list[ComparableProperty] = []
    for p in candidates:
        if p.coordinates is None:
            continue
        d = haversine_miles(subject.latitude, subject.longitude, p.coordinates.latitude, p.coordinates.longitude)
        adjusted, factors = price_adjustments(p, features)
        comps.append(
            ComparableProperty.model_validate(
                {
                    **p.model_dump(),
                    "distance": round(d, 4),
                    "adjusted_price": adjusted,
                    "adjustment_factors": factors,
                }
            )
        )
    comps.sort(key=lambda c: c.distance)
    return comps[:max_comps]


def days_on_market(p: Property, now: datetime | None = None) -> int | None:
    if p.on_market_date is None:
        return None
    end = p.close_date or p.off_market_date or now or datetime.now(timezone.utc)
    return max(0, (end - p.on_market_date).days)


def market_statistics(comps: Sequence[Property], now: datetime | None = None) -> MarketStatistics:
    if not comps:
        return MarketStatistics()

    now = now or datetime.now(timezone.utc)
    prices = [c.list_price for c in comps if c.list_price > 0]
    per_sqft = [c.price_per_sqft for c in comps if c.price_per_sqft is not None]
    doms = [d for d in (days_on_market(c, now) for c in comps) if d is not None]

    def _sold_within(days: int) -> int:
        cutoff = now - timedelta(days=days)
        return sum(
            1
            for c in comps
            if c.standard_status == StandardStatus.closed and c.close_date is not None and c.close_date >= cutoff
        )

    return MarketStatistics(
        average_list_price=round(statistics.fmean(prices), 2) if prices else 0.0,
        median_list_price=round(statistics.median(prices), 2) if prices else 0.0,
        average_price_per_sqft=round(statistics.fmean(per_sqft), 2) if per_sqft else 0.0,
        average_days_on_market=round(statistics.fmean(doms), 1) if doms else 0.0,
        total_active_listings=sum(1 for c in comps if c.standard_status == StandardStatus.active),
        sold_last_30_days=_sold_within(30),
        sold_last_90_days=_sold_within(90),
    )


def price_estimate(comps: Sequence[Property], stats: MarketStatistics) -> PriceEstimate | None:
    """Mean list price +/- 10%; confidence grows 10 points per comp up to 90."""
    if not comps or stats.average_list_price <= 0:
        return None
    avg = stats.average_list_price
    return PriceEstimate(
        low=round(avg * (1 - ESTIMATE_SPREAD), 2),
        high=round(avg * (1 + ESTIMATE_SPREAD), 2),
        estimate=avg,
        confidence=min(len(comps) * 10, MAX_CONFIDENCE),
    )


def trend_box(center: Coordinates) -> BoundingBox:
    return BoundingBox(
        north=min(90.0, center.latitude + TREND_BOX_DEGREES),
        south=max(-90.0, center.latitude - TREND_BOX_DEGREES),
        east=min(180.0, center.longitude + TREND_BOX_DEGREES),
        west=max(-180.0, center.longitude - TREND_BOX_DEGREES),
    )


def _inventory_level(sales: int) -> str:
    if sales < LOW_INVENTORY_SALES:
        return "Low"
    if sales < MEDIUM_INVENTORY_SALES:
        return "Medium"
    return "High"


def neighborhood_trends(properties: Sequence[Property], timeframe: TrendTimeframe) -> NeighborhoodTrends:
    """
    Summarize closed sales in a window.

    Sales are ordered by close date and split in half; appreciation is the
    later half's mean list price against the earlier half's, in percent.
    Records without a close date are ignored.
    """
    sales = sorted((p for p in properties if p.close_date is not None), key=lambda p: p.close_date)
    half = len(sales) // 2
    earlier, later = sales[:half], sales[half:]

    appreciation = 0.0
    if earlier and later:
        base = statistics.fmean(p.list_price for p in earlier)
        if base > 0:
            appreciation = (statistics.fmean(p.list_price for p in later) - base) / base * 100

    doms = [
        d
        for d in ((p.close_date - p.on_market_date).days for p in sales if p.on_market_date is not None)
        if d > 0
    ]

    if appreciation > TREND_THRESHOLD_PCT:
        trend = "Increasing"
    elif appreciation < -TREND_THRESHOLD_PCT:
        trend = "Decreasing"
    else:
        trend = "Stable"

    return NeighborhoodTrends(
        timeframe=timeframe,
        total_sales=len(sales),
        price_appreciation=round(appreciation, 2),
        average_price=float(round(statistics.fmean(p.list_price for p in sales))) if sales else 0.0,
        median_days_on_market=round(statistics.median(doms)) if doms else 0,
        inventory_level=_inventory_level(len(sales)),
        trend=trend,
    )
