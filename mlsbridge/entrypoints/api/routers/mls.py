# mlsbridge/entrypoints/api/routers/mls.py
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query

from ..deps import get_integration, require_api_key
from ....domain.types import (
    IntegrationStatus,
    MarketAnalysis,
    MarketTiming,
    NeighborhoodTrends,
    PriceHistory,
    Property,
    PropertyHistory,
    PropertyType,
    SubjectFeatures,
    TrendTimeframe,
)
from ....schemas import (
    AutoPopulateIn,
    AutoPopulateResult,
    ComparablesReport,
    PropertySearchResponse,
    PropertySuggestion,
)
from ....service_layer.integration import MLSIntegration

router = APIRouter(prefix="/mls", tags=["mls"], dependencies=[Depends(require_api_key)])


def _csv(v: str | None) -> list[str] | None:
    if not v:
        return None
    items = [x.strip() for x in v.split(",") if x.strip()]
    return items or None


@router.get("/status", response_model=IntegrationStatus)
async def mls_status(integration: MLSIntegration = Depends(get_integration)) -> IntegrationStatus:
    return await integration.client.get_status()


@router.post("/initialize", response_model=IntegrationStatus)
async def mls_initialize(integration: MLSIntegration = Depends(get_integration)) -> IntegrationStatus:
    (await integration.client.initialize()).unwrap()
    return await integration.client.get_status()


@router.get("/search", response_model=PropertySearchResponse)
async def search(
    q: str | None = Query(None, description="Free text, e.g. '3 bed condo in Short North under $400k'"),
    city: str | None = Query(None, description="Comma-separated"),
    postal_code: str | None = Query(None, description="Comma-separated"),
    property_type: str | None = Query(None, description="Comma-separated"),
    status: str | None = Query(None, description="Comma-separated"),
    min_bedrooms: int | None = Query(None, ge=0),
    max_bedrooms: int | None = Query(None, ge=0),
    min_bathrooms: float | None = Query(None, ge=0),
    max_bathrooms: float | None = Query(None, ge=0),
    min_square_feet: int | None = Query(None, ge=0),
    max_square_feet: int | None = Query(None, ge=0),
    min_list_price: float | None = Query(None, ge=0),
    max_list_price: float | None = Query(None, ge=0),
    limit: int = Query(50, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    sort_by: str | None = Query(None),
    sort_order: str | None = Query(None),
    integration: MLSIntegration = Depends(get_integration),
) -> PropertySearchResponse:
    svc = integration.properties
    fields: dict[str, Any] = svc.parse_query(q) if q else {}

    explicit = {
        "city": _csv(city),
        "postal_code": _csv(postal_code),
        "property_type": _csv(property_type),
        "standard_status": _csv(status),
        "min_bedrooms": min_bedrooms,
        "max_bedrooms": max_bedrooms,
        "min_bathrooms": min_bathrooms,
        "max_bathrooms": max_bathrooms,
        "min_square_feet": min_square_feet,
        "max_square_feet": max_square_feet,
        "min_list_price": min_list_price,
        "max_list_price": max_list_price,
        "sort_by": sort_by,
        "sort_order": sort_order,
    }
    fields.update({k: v for k, v in explicit.items() if v is not None})
    fields["limit"] = limit
    fields["offset"] = offset

    return (await svc.search(fields)).unwrap()


@router.get("/properties/{listing_id}", response_model=Property)
async def get_property(
    listing_id: str,
    use_cache: bool = Query(True),
    integration: MLSIntegration = Depends(get_integration),
) -> Property:
    return (await integration.client.get_property(listing_id, use_cache=use_cache)).unwrap()


@router.get("/properties/{listing_id}/history", response_model=PropertyHistory)
async def property_history(
    listing_id: str,
    integration: MLSIntegration = Depends(get_integration),
) -> PropertyHistory:
    return (await integration.properties.get_property_history(listing_id)).unwrap()


@router.get("/properties/{listing_id}/price-history", response_model=PriceHistory)
async def price_history(
    listing_id: str,
    integration: MLSIntegration = Depends(get_integration),
) -> PriceHistory:
    return (await integration.properties.get_price_history(listing_id)).unwrap()


@router.get("/properties/{listing_id}/market-timing", response_model=MarketTiming)
async def market_timing(
    listing_id: str,
    average_days_on_market: float | None = Query(None, gt=0),
    integration: MLSIntegration = Depends(get_integration),
) -> MarketTiming:
    result = await integration.properties.get_market_timing(
        listing_id, average_days_on_market=average_days_on_market
    )
    return result.unwrap()


@router.get("/market-analysis", response_model=MarketAnalysis)
async def market_analysis(
    address: str = Query(..., min_length=3),
    radius: float = Query(0.5, gt=0, le=25),
    max_comps: int = Query(10, ge=1, le=500),
    property_type: str | None = Query(None, description="Comma-separated"),
    square_feet: int | None = Query(None, ge=1, description="Subject size, for comparable adjustments"),
    bedrooms: int | None = Query(None, ge=0),
    bathrooms: float | None = Query(None, ge=0),
    year_built: int | None = Query(None, ge=1800),
    integration: MLSIntegration = Depends(get_integration),
) -> MarketAnalysis:
    try:
        types = [PropertyType(t) for t in _csv(property_type) or []] or None
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid property_type: {property_type}")
    subject = SubjectFeatures(
        square_feet=square_feet, bedrooms=bedrooms, bathrooms=bathrooms, year_built=year_built
    )
    result = await integration.client.get_market_analysis(
        address, radius=radius, max_comps=max_comps, property_types=types, subject=subject
    )
    return result.unwrap()


@router.get("/neighborhood-trends", response_model=NeighborhoodTrends)
async def neighborhood_trends(
    address: str = Query(..., min_length=3),
    timeframe: TrendTimeframe = Query(TrendTimeframe.six_months),
    integration: MLSIntegration = Depends(get_integration),
) -> NeighborhoodTrends:
    return (await integration.client.get_neighborhood_trends(address, timeframe)).unwrap()


@router.get("/comparables", response_model=ComparablesReport)
async def comparables(
    address: str = Query(..., min_length=3),
    radius: float = Query(0.5, gt=0, le=25),
    max_results: int = Query(6, ge=1, le=50),
    days_back: int = Query(90, ge=1, le=3650),
    integration: MLSIntegration = Depends(get_integration),
) -> ComparablesReport:
    result = await integration.properties.get_recent_comparables(
        address, radius=radius, max_results=max_results, days_back=days_back
    )
    return result.unwrap()


@router.get("/suggestions", response_model=list[PropertySuggestion])
async def suggestions(
    partial: str = Query(""),
    integration: MLSIntegration = Depends(get_integration),
) -> list[PropertySuggestion]:
    return (await integration.properties.get_property_suggestions(partial)).unwrap()


@router.post("/auto-populate", response_model=AutoPopulateResult)
async def auto_populate(
    body: AutoPopulateIn,
    integration: MLSIntegration = Depends(get_integration),
) -> AutoPopulateResult:
    return (await integration.properties.auto_populate_from_address(body.address)).unwrap()
