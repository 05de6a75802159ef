# mlsbridge/service_layer/property_service.py
from __future__ import annotations

import logging
import re
import statistics
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Iterable, Mapping, Sequence

from pydantic import ValidationError

from ..adapters.clients.mls_client import MLSClient
from ..domain.address import AddressComponents, validate_address
from ..domain.errors import INVALID_SEARCH_CRITERIA, PROPERTY_NOT_FOUND, MLSError, MLSErrorType, Result
from ..domain.geo import days_on_market, market_statistics, price_estimate
from ..domain.history import market_timing, price_history, property_history
from ..domain.types import (
    Address,
    ComparableProperty,
    MarketAnalysis,
    MarketTiming,
    PriceHistory,
    Property,
    PropertyHistory,
    PropertyType,
    SearchCriteria,
    StandardStatus,
)
from ..schemas import (
    AutoPopulateData,
    AutoPopulateResult,
    ComparableSale,
    ComparablesReport,
    MarketInsights,
    PropertySearchResponse,
    PropertySuggestion,
)

log = logging.getLogger(__name__)

INVALID_ADDRESS = "INVALID_ADDRESS"

# neighborhoods and suburbs a buyer may name instead of a city
NEIGHBORHOODS: tuple[str, ...] = (
    "German Village",
    "Short North",
    "Victorian Village",
    "Clintonville",
    "Grandview Heights",
    "Bexley",
    "Westerville",
    "Gahanna",
    "Upper Arlington",
    "Dublin",
    "Powell",
    "Delaware",
    "Worthington",
    "Hilliard",
    "Grove City",
    "Pickerington",
    "Reynoldsburg",
    "Canal Winchester",
    "Groveport",
)

_PRICE = r"\$?\s*(\d[\d,]*(?:\.\d+)?)\s*(k)?"
_PRICE_RANGE_RE = re.compile(_PRICE + r"\s*(?:-|to)\s*" + _PRICE, re.IGNORECASE)
_PRICE_MAX_RE = re.compile(r"\b(?:under|below|less than|max)\s+" + _PRICE, re.IGNORECASE)
_PRICE_MIN_RE = re.compile(r"\b(?:over|above|more than|min)\s+" + _PRICE, re.IGNORECASE)
_BEDS_RE = re.compile(r"(\d+)\s*\+?\s*(?:bedrooms?|beds?|br)\b", re.IGNORECASE)
_BATHS_RE = re.compile(r"(\d+(?:\.\d)?)\s*\+?\s*(?:bathrooms?|baths?|ba)\b", re.IGNORECASE)

_TYPE_WORDS: tuple[tuple[re.Pattern[str], PropertyType], ...] = (
    (re.compile(r"\bcondos?\b", re.IGNORECASE), PropertyType.condo),
    (re.compile(r"\btown\s?homes?\b|\btownhouses?\b", re.IGNORECASE), PropertyType.townhouse),
    (re.compile(r"\bland\b|\blots?\b", re.IGNORECASE), PropertyType.land),
)

# prices below this are read as noise ("2 to 3 beds"), not dollar amounts
_MIN_PLAUSIBLE_PRICE = 1000

_DIRECTIONALS = {"north": "n", "south": "s", "east": "e", "west": "w"}

MAX_SUGGESTIONS = 5
REFINE_THRESHOLD = 100
AUTO_POPULATE_SEARCH_LIMIT = 100
SUGGESTION_SEARCH_LIMIT = 50
TIMING_COMPS = 10


def _price(amount: str, k: str | None) -> float:
    value = float(amount.replace(",", ""))
    return value * 1000 if k else value


def _first_plausible_price(rx: re.Pattern[str], text: str) -> float | None:
    for m in rx.finditer(text):
        value = _price(m.group(1), m.group(2))
        if value >= _MIN_PLAUSIBLE_PRICE:
            return value
    return None


def parse_query(query: str, *, default_city: str = "Columbus") -> dict[str, Any]:
    """
    Turn a free-text request into SearchCriteria fields.

    "3 bed condo in Short North under $400k" ->
    {"city": ["Short North"], "property_type": ["Condo"], "min_bedrooms": 3,
     "max_list_price": 400000.0, ...}
    """
    text = query or ""
    out: dict[str, Any] = {}

    for m in _PRICE_RANGE_RE.finditer(text):
        lo, hi = _price(m.group(1), m.group(2)), _price(m.group(3), m.group(4))
        if lo >= _MIN_PLAUSIBLE_PRICE and hi >= _MIN_PLAUSIBLE_PRICE:
            out["min_list_price"], out["max_list_price"] = min(lo, hi), max(lo, hi)
            break
    if "max_list_price" not in out:
        hi = _first_plausible_price(_PRICE_MAX_RE, text)
        if hi is not None:
            out["max_list_price"] = hi
    if "min_list_price" not in out:
        lo = _first_plausible_price(_PRICE_MIN_RE, text)
        if lo is not None:
            out["min_list_price"] = lo

    m = _BEDS_RE.search(text)
    if m:
        out["min_bedrooms"] = int(m.group(1))
    m = _BATHS_RE.search(text)
    if m:
        out["min_bathrooms"] = float(m.group(1))

    types = [pt for rx, pt in _TYPE_WORDS if rx.search(text)]
    if types:
        out["property_type"] = types

    low = text.lower()
    cities = [n for n in NEIGHBORHOODS if n.lower() in low]
    out["city"] = cities or [default_city]
    out["standard_status"] = [StandardStatus.active]
    return out


def _normalize_street_name(name: str) -> str:
    words = re.sub(r"[^\w\s]", "", name.lower()).split()
    return " ".join(_DIRECTIONALS.get(w, w) for w in words)


def street_names_match(a: str | None, b: str | None) -> bool:
    if not a or not b:
        return False
    na, nb = _normalize_street_name(a), _normalize_street_name(b)
    return na == nb or na in nb or nb in na


def display_address(a: Address) -> str:
    return f"{a.street_line}, {a.city}, {a.state_or_province} {a.postal_code}"


def relevance_score(p: Property, target: AddressComponents, formatted: str) -> int:
    a = p.address
    if display_address(a).lower() == formatted.lower():
        return 1000
    score = 0
    if a.street_number and a.street_number == target.street_number:
        score += 100
    if street_names_match(a.street_name, target.street_name):
        score += 50
    if target.postal_code and a.postal_code[:5] == target.postal_code[:5]:
        score += 25
    if p.standard_status == StandardStatus.active:
        score += 10
    return score


def match_confidence(p: Property, target: AddressComponents) -> int:
    a = p.address
    confidence = 0
    if a.street_number == target.street_number:
        confidence += 40
    if (a.street_name or "").lower() == target.street_name.lower():
        confidence += 30
    elif street_names_match(a.street_name, target.street_name):
        confidence += 20
    if target.postal_code and a.postal_code[:5] == target.postal_code[:5]:
        confidence += 20
    if p.standard_status == StandardStatus.active:
        confidence += 10
    return min(confidence, 100)


def is_address_match(p: Property, target: AddressComponents) -> bool:
    return p.address.street_number == target.street_number and street_names_match(
        p.address.street_name, target.street_name
    )


def dedupe(properties: Iterable[Property]) -> list[Property]:
    seen: set[str] = set()
    out: list[Property] = []
    for p in properties:
        if p.listing_id in seen:
            continue
        seen.add(p.listing_id)
        out.append(p)
    return out


def extract_features(p: Property, now: datetime) -> list[str]:
    features: list[str] = []
    if p.year_built:
        age = now.year - p.year_built
        if age < 5:
            features.append("Newly built")
        elif age < 15:
            features.append("Recently built")
    if p.lot_size_acres and p.lot_size_acres >= 1:
        features.append(f"{p.lot_size_acres:g} acre lot")
    if p.bathrooms_half:
        features.append(f"{p.bathrooms_half} half bath" + ("s" if p.bathrooms_half > 1 else ""))
    if p.previous_list_price and p.previous_list_price > p.list_price:
        features.append("Price reduced")
    if p.photos:
        features.append(f"{len(p.photos)} photos")
    return features


def _suggestion(p: Property, relevance: int = 0) -> PropertySuggestion:
    return PropertySuggestion(
        listing_id=p.listing_id,
        address=display_address(p.address),
        list_price=p.list_price,
        bedrooms=p.bedrooms,
        bathrooms=p.bathrooms,
        square_feet=p.square_feet,
        standard_status=p.standard_status.value,
        relevance=relevance,
    )


def search_suggestions(criteria: SearchCriteria, total: int, properties: Sequence[Property]) -> list[str]:
    """Hints for widening an empty search or narrowing an oversized one."""
    out: list[str] = []
    if total == 0:
        if criteria.min_list_price is not None or criteria.max_list_price is not None:
            lo = round((criteria.min_list_price or 0) * 0.8)
            hi = criteria.max_list_price
            if hi is not None:
                out.append(f"Try expanding the price range to ${lo:,}-${round(hi * 1.2):,}")
            else:
                out.append(f"Try lowering the minimum price to ${lo:,}")
        if criteria.min_bedrooms:
            out.append(f"Try {max(1, criteria.min_bedrooms - 1)}+ bedrooms")
        if not out:
            out.append("Try searching a nearby neighborhood")
    elif total > REFINE_THRESHOLD:
        prices = [p.list_price for p in properties if p.list_price > 0]
        if prices:
            avg = statistics.fmean(prices)
            out.append(f"Refine your search around ${round(avg * 0.9):,}-${round(avg * 1.1):,}")
        else:
            out.append("Add a price range or bedroom count to narrow results")
    return out


@dataclass(frozen=True)
class ServiceArea:
    default_city: str = "Columbus"
    default_state: str = "OH"
    valid_postal_prefixes: tuple[str, ...] = ("432",)
    # fallback when no comparable has a usable days-on-market figure
    typical_days_on_market: float = 28.0


class PropertyService:
    """Search, auto-populate and comparables on top of an MLSClient."""

    def __init__(self, client: MLSClient, *, area: ServiceArea | None = None) -> None:
        self.client = client
        self.area = area or ServiceArea()

    def _now(self) -> datetime:
        return self.client.now()

    def _validate(self, address: str) -> Result[tuple[AddressComponents, str]]:
        v = validate_address(
            address,
            default_city=self.area.default_city,
            default_state=self.area.default_state,
            valid_postal_prefixes=self.area.valid_postal_prefixes,
        )
        if not v.is_valid or v.components is None or v.formatted is None:
            return Result.failure(
                MLSError(
                    type=MLSErrorType.validation,
                    code=INVALID_ADDRESS,
                    message="Invalid address: " + ", ".join(v.errors),
                    retryable=False,
                    details={"errors": v.errors},
                )
            )
        return Result.success((v.components, v.formatted))

    # ----- search -----

    def parse_query(self, query: str) -> dict[str, Any]:
        return parse_query(query, default_city=self.area.default_city)

    async def search(
        self,
        query: str | SearchCriteria | Mapping[str, Any],
    ) -> Result[PropertySearchResponse]:
        if isinstance(query, SearchCriteria):
            criteria = query
        else:
            fields = self.parse_query(query) if isinstance(query, str) else dict(query)
            fields.setdefault("city", [self.area.default_city])
            fields.setdefault("standard_status", [StandardStatus.active])
            try:
                criteria = SearchCriteria.model_validate(fields)
            except ValidationError as e:
                first = e.errors(include_url=False, include_context=False)
                return Result.failure(
                    MLSError(
                        type=MLSErrorType.validation,
                        code=INVALID_SEARCH_CRITERIA,
                        message=first[0]["msg"] if first else "Invalid search criteria",
                        retryable=False,
                        details=first,
                    )
                )

        found = await self.client.search_properties(criteria)
        if not found.ok:
            return Result.failure(found.error)

        result = found.value
        return Result.success(
            PropertySearchResponse(
                criteria=criteria,
                result=result,
                suggestions=search_suggestions(criteria, result.total_count, result.properties),
            )
        )

    # ----- auto-populate -----

    async def auto_populate_from_address(self, address: str) -> Result[AutoPopulateResult]:
        checked = self._validate(address)
        if not checked.ok:
            return Result.failure(checked.error)
        target, formatted = checked.value

        criteria = SearchCriteria(
            city=[target.city],
            postal_code=[target.postal_code] if target.postal_code else None,
            limit=AUTO_POPULATE_SEARCH_LIMIT,
        )
        found = await self.client.search_properties(criteria)
        if not found.ok:
            return Result.failure(found.error)

        matches = dedupe(p for p in found.value.properties if is_address_match(p, target))
        if not matches:
            return Result.failure(
                MLSError(
                    type=MLSErrorType.api,
                    code=PROPERTY_NOT_FOUND,
                    message=f"No matching MLS listing for {formatted}",
                    retryable=False,
                    details={"address": formatted},
                )
            )

        scored = sorted(((relevance_score(p, target, formatted), p) for p in matches), key=lambda t: -t[0])
        best = scored[0][1]
        errors: list[str] = []

        insights: MarketInsights | None = None
        comps = await self.get_recent_comparables(formatted)
        if comps.ok:
            report = comps.value
            insights = MarketInsights(
                average_price=report.statistics.average_list_price,
                median_price=report.statistics.median_list_price,
                average_price_per_sqft=report.statistics.average_price_per_sqft,
                average_days_on_market=report.statistics.average_days_on_market,
                comparable_count=len(report.comparables),
                price_estimate=report.price_estimate,
            )
        else:
            # comparables are optional enrichment
            log.warning("auto_populate: comparables unavailable for %s: %s", formatted, comps.error.message)
            errors.append(comps.error.message)

        now = self._now()
        a = best.address
        data = AutoPopulateData(
            listing_id=best.listing_id,
            address=a.street_line,
            city=a.city,
            state=a.state_or_province,
            postal_code=a.postal_code,
            property_type=best.property_type.value,
            bedrooms=best.bedrooms,
            bathrooms=best.bathrooms,
            square_feet=best.square_feet,
            lot_size_acres=best.lot_size_acres,
            year_built=best.year_built,
            list_price=best.list_price,
            standard_status=best.standard_status.value,
            days_on_market=days_on_market(best, now),
            price_per_sqft=best.price_per_sqft,
            description=best.public_remarks,
            features=extract_features(best, now),
            photos=[ph.url for ph in sorted(best.photos, key=lambda ph: ph.order)],
            coordinates=best.coordinates,
            listing_agent=best.listing_agent.name if best.listing_agent else None,
            market_insights=insights,
        )
        return Result.success(
            AutoPopulateResult(
                property=data,
                suggestions=[_suggestion(p, s) for s, p in scored[1 : 1 + MAX_SUGGESTIONS]],
                confidence=match_confidence(best, target),
                formatted_address=formatted,
                errors=errors,
            )
        )

    # ----- autocomplete -----

    async def get_property_suggestions(self, partial: str) -> Result[list[PropertySuggestion]]:
        partial = " ".join((partial or "").split())
        if len(partial) < 3:
            return Result.success([])

        found = await self.client.search_properties(
            SearchCriteria(city=[self.area.default_city], limit=SUGGESTION_SEARCH_LIMIT)
        )
        if not found.ok:
            return Result.failure(found.error)

        needle = partial.lower()
        out: list[PropertySuggestion] = []
        for p in found.value.properties:
            a = p.address
            if (
                needle in display_address(a).lower()
                or (a.street_number or "").startswith(partial)
                or needle in (a.street_name or "").lower()
            ):
                out.append(_suggestion(p))
            if len(out) >= MAX_SUGGESTIONS:
                break
        return Result.success(out)

    # ----- comparables -----

    async def get_recent_comparables(
        self,
        address: str,
        *,
        radius: float = 0.5,
        max_results: int = 6,
        days_back: int = 90,
    ) -> Result[ComparablesReport]:
        analysis = await self.client.get_market_analysis(address, radius=radius, max_comps=max_results)
        if not analysis.ok:
            return Result.failure(analysis.error)

        now = self._now()
        cutoff = now - timedelta(days=days_back)
        recent = [c for c in analysis.value.comparables if _is_recent(c, cutoff)]
        return Result.success(_report(analysis.value, recent, now))

    # ----- history -----

    async def get_property_history(self, listing_id: str) -> Result[PropertyHistory]:
        found = await self.client.get_property(listing_id)
        if not found.ok:
            return Result.failure(found.error)
        return Result.success(property_history(found.value, self._now()))

    async def get_price_history(self, listing_id: str) -> Result[PriceHistory]:
        found = await self.client.get_property(listing_id)
        if not found.ok:
            return Result.failure(found.error)
        p = found.value
        return Result.success(price_history(p, property_history(p, self._now())))

    async def get_market_timing(
        self,
        listing_id: str,
        *,
        average_days_on_market: float | None = None,
    ) -> Result[MarketTiming]:
        """
        How the listing is doing against its comparables.

        Without an explicit average, days on market of nearby comparables
        (the listing itself excluded) are averaged; if none is usable the
        area's typical figure applies.
        """
        found = await self.client.get_property(listing_id)
        if not found.ok:
            return Result.failure(found.error)

        p = found.value
        now = self._now()
        average = average_days_on_market or await self._comparable_days_on_market(p, now)
        history = property_history(p, now)
        return Result.success(market_timing(p, history, price_history(p, history), average, now))

    async def _comparable_days_on_market(self, p: Property, now: datetime) -> float:
        analysis = await self.client.get_market_analysis(display_address(p.address), max_comps=TIMING_COMPS)
        if not analysis.ok:
            log.warning(
                "Comparable days on market unavailable for %s: %s", p.listing_id, analysis.error.message
            )
            return self.area.typical_days_on_market

        doms = [
            d
            for d in (days_on_market(c, now) for c in analysis.value.comparables if c.listing_id != p.listing_id)
            if d
        ]
        if not doms:
            return self.area.typical_days_on_market
        return round(statistics.fmean(doms), 1)


def _is_recent(c: Property, cutoff: datetime) -> bool:
    stamps = (c.close_date, c.on_market_date, c.modification_timestamp)
    return any(s is not None and s >= cutoff for s in stamps)


def _report(analysis: MarketAnalysis, comps: Sequence[ComparableProperty], now: datetime) -> ComparablesReport:
    sales = [
        ComparableSale(
            listing_id=c.listing_id,
            address=display_address(c.address),
            list_price=c.list_price,
            standard_status=c.standard_status.value,
            bedrooms=c.bedrooms,
            bathrooms=c.bathrooms,
            square_feet=c.square_feet,
            distance=c.distance,
            price_per_sqft=c.price_per_sqft,
            days_on_market=days_on_market(c, now),
            close_date=c.close_date,
        )
        for c in comps
    ]
    stats = market_statistics(comps, now=now)
    return ComparablesReport(
        subject_address=analysis.subject_address,
        comparables=sales,
        statistics=stats,
        price_estimate=price_estimate(comps, stats),
    )
