# mlsbridge/adapters/clients/query_builders.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Protocol

from ...domain.errors import MLSError, MLSErrorType, MLSIntegrationError
from ...domain.parsing import get_nested, to_int
from ...domain.types import PropertyType, SearchCriteria, SortField, StandardStatus


class QueryBuilder(Protocol):
    """Provider dialect: request shapes out, raw rows back."""

    search_path: str
    status_path: str
    status_params: dict[str, Any]

    def build_search_params(self, criteria: SearchCriteria) -> dict[str, Any]: ...

    def property_request(self, listing_id: str) -> tuple[str, dict[str, Any]]: ...

    def parse_search_response(self, data: Any) -> tuple[list[dict[str, Any]], int | None]: ...

    def parse_property_response(self, data: Any) -> dict[str, Any] | None: ...


def _malformed(message: str) -> MLSIntegrationError:
    return MLSIntegrationError(
        MLSError(type=MLSErrorType.data_format, code="MALFORMED_RESPONSE", message=message, retryable=False)
    )


def odata_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def odata_datetime(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _or_group(field: str, values: list[str]) -> str:
    parts = [f"{field} eq {odata_literal(v)}" for v in values]
    return parts[0] if len(parts) == 1 else "(" + " or ".join(parts) + ")"


def _num(v: float | int) -> str:
    return str(int(v)) if float(v).is_integer() else str(v)


class ODataQueryBuilder:
    """RESO Web API (OData v4) dialect."""

    search_path = "/Property"
    status_path = "/Property/$count"
    status_params: dict[str, Any] = {}

    # (criteria min field, criteria max field, OData field)
    RANGES: tuple[tuple[str, str, str], ...] = (
        ("min_bedrooms", "max_bedrooms", "BedroomsTotal"),
        ("min_bathrooms", "max_bathrooms", "BathroomsTotalInteger"),
        ("min_square_feet", "max_square_feet", "LivingArea"),
        ("min_lot_size", "max_lot_size", "LotSizeSquareFeet"),
        ("min_year_built", "max_year_built", "YearBuilt"),
        ("min_list_price", "max_list_price", "ListPrice"),
    )

    def build_filter(self, c: SearchCriteria) -> str:
        filters: list[str] = []

        if c.city:
            filters.append(_or_group("City", c.city))
        if c.postal_code:
            filters.append(_or_group("PostalCode", c.postal_code))
        if c.county:
            filters.append(_or_group("CountyOrParish", c.county))
        if c.bounding_box:
            b = c.bounding_box
            filters.append(f"Latitude ge {b.south} and Latitude le {b.north}")
            filters.append(f"Longitude ge {b.west} and Longitude le {b.east}")
        if c.property_type:
            filters.append(_or_group("PropertyType", [t.value for t in c.property_type]))

        for lo_name, hi_name, field in self.RANGES:
            lo, hi = getattr(c, lo_name), getattr(c, hi_name)
            if lo is not None:
                filters.append(f"{field} ge {_num(lo)}")
            if hi is not None:
                filters.append(f"{field} le {_num(hi)}")

        if c.standard_status:
            filters.append(_or_group("StandardStatus", [s.value for s in c.standard_status]))
        if c.min_on_market_date:
            filters.append(f"OnMarketDate ge {odata_datetime(c.min_on_market_date)}")
        if c.max_on_market_date:
            filters.append(f"OnMarketDate le {odata_datetime(c.max_on_market_date)}")
        if c.modified_since:
            filters.append(f"ModificationTimestamp ge {odata_datetime(c.modified_since)}")

        return " and ".join(filters)

    def build_search_params(self, criteria: SearchCriteria) -> dict[str, Any]:
        params: dict[str, Any] = {
            "$top": criteria.limit,
            "$skip": criteria.offset,
            "$orderby": f"{criteria.sort_by.value} {criteria.sort_order}",
            "$count": "true",
        }
        flt = self.build_filter(criteria)
        if flt:
            params["$filter"] = flt
        return params

    def property_request(self, listing_id: str) -> tuple[str, dict[str, Any]]:
        return f"/Property({odata_literal(listing_id)})", {}

    def parse_search_response(self, data: Any) -> tuple[list[dict[str, Any]], int | None]:
        if not isinstance(data, dict):
            raise _malformed("OData search response is not an object")
        items = data.get("value")
        if not isinstance(items, list):
            raise _malformed("OData search response has no 'value' list")
        return [x for x in items if isinstance(x, dict)], to_int(data.get("@odata.count"))

    def parse_property_response(self, data: Any) -> dict[str, Any] | None:
        if not isinstance(data, dict):
            return None
        # some servers wrap single entities in a one-element collection
        if isinstance(data.get("value"), list):
            items = data["value"]
            return items[0] if items and isinstance(items[0], dict) else None
        return data or None


_NATIVE_TYPES: dict[PropertyType, str] = {
    PropertyType.residential: "single_family",
    PropertyType.condo: "condos",
    PropertyType.townhouse: "townhomes",
    PropertyType.manufactured: "mobile",
    PropertyType.land: "land",
    PropertyType.commercial: "commercial",
    PropertyType.business_opportunity: "commercial",
    PropertyType.rental: "rental",
}

_NATIVE_STATUS: dict[StandardStatus, str] = {
    StandardStatus.active: "for_sale",
    StandardStatus.active_under_contract: "pending",
    StandardStatus.pending: "pending",
    StandardStatus.closed: "sold",
    StandardStatus.withdrawn: "off_market",
    StandardStatus.expired: "off_market",
    StandardStatus.canceled: "off_market",
}

_NATIVE_SORT: dict[SortField, str] = {
    SortField.list_price: "price",
    SortField.living_area: "sqft",
    SortField.bedrooms: "beds",
    SortField.bathrooms: "baths",
    SortField.on_market_date: "list_date",
    SortField.modification_timestamp: "last_update_date",
}


class NativeQueryBuilder:
    """RapidAPI-style realtor listings dialect (plain query params)."""

    search_path = "/properties/v3/list"
    status_path = "/properties/v3/list"
    status_params: dict[str, Any] = {"limit": 1, "offset": 0}

    RANGES: tuple[tuple[str, str, str], ...] = (
        ("min_bedrooms", "max_bedrooms", "beds"),
        ("min_bathrooms", "max_bathrooms", "baths"),
        ("min_square_feet", "max_square_feet", "sqft"),
        ("min_lot_size", "max_lot_size", "lot_sqft"),
        ("min_year_built", "max_year_built", "year_built"),
        ("min_list_price", "max_list_price", "price"),
    )

    def build_search_params(self, criteria: SearchCriteria) -> dict[str, Any]:
        c = criteria
        params: dict[str, Any] = {
            "limit": c.limit,
            "offset": c.offset,
            "sort": f"{_NATIVE_SORT[c.sort_by]}_{c.sort_order}",
        }
        if c.city:
            params["city"] = ",".join(c.city)
        if c.postal_code:
            params["postal_code"] = ",".join(c.postal_code)
        if c.county:
            params["county"] = ",".join(c.county)
        if c.bounding_box:
            b = c.bounding_box
            params["bbox"] = f"{b.west},{b.south},{b.east},{b.north}"
        if c.property_type:
            params["type"] = ",".join(sorted({_NATIVE_TYPES[t] for t in c.property_type}))
        for lo_name, hi_name, field in self.RANGES:
            lo, hi = getattr(c, lo_name), getattr(c, hi_name)
            if lo is not None:
                params[f"{field}_min"] = _num(lo)
            if hi is not None:
                params[f"{field}_max"] = _num(hi)
        statuses = c.standard_status or [StandardStatus.active]
        params["status"] = ",".join(sorted({_NATIVE_STATUS.get(s, "for_sale") for s in statuses}))
        if c.modified_since:
            params["updated_since"] = odata_datetime(c.modified_since)
        return params

    def property_request(self, listing_id: str) -> tuple[str, dict[str, Any]]:
        return "/properties/v3/detail", {"property_id": listing_id}

    def parse_search_response(self, data: Any) -> tuple[list[dict[str, Any]], int | None]:
        if not isinstance(data, dict):
            raise _malformed("search response is not an object")
        items = data.get("properties")
        if items is None:
            items = get_nested(data, "data.home_search.results")
        if not isinstance(items, list):
            raise _malformed("search response has no 'properties' list")
        total = to_int(get_nested(data, "meta.matching_rows"))
        if total is None:
            total = to_int(get_nested(data, "data.home_search.total"))
        return [x for x in items if isinstance(x, dict)], total

    def parse_property_response(self, data: Any) -> dict[str, Any] | None:
        if not isinstance(data, dict):
            return None
        home = get_nested(data, "data.home") or data.get("property")
        if isinstance(home, dict):
            return home
        return data or None


def build_query_builder(provider: str) -> QueryBuilder:
    if provider.upper() == "RAPIDAPI":
        return NativeQueryBuilder()
    return ODataQueryBuilder()
