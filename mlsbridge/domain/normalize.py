# mlsbridge/domain/normalize.py
from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Any, Mapping

from pydantic import ValidationError

from .address import split_street_line
from .parsing import get_first, to_datetime, to_float, to_int, to_str
from .types import Property, PropertyType, StandardStatus

log = logging.getLogger(__name__)

# Every accepted alias per canonical field, in priority order.
# RESO PascalCase first, then snake_case / camelCase, then nested RapidAPI shapes.
ALIASES: dict[str, tuple[str, ...]] = {
    "listing_id": ("ListingId", "ListingID", "MlsNumber", "listingId", "listing_id", "mls_number", "mlsId", "property_id", "id"),
    "listing_key": ("ListingKey", "listingKey", "listing_key", "property_id"),
    "property_type": ("PropertyType", "property_type", "propertyType", "description.type", "type"),
    "property_sub_type": ("PropertySubType", "property_sub_type", "propertySubType", "description.sub_type"),
    "street_number": ("StreetNumber", "street_number", "streetNumber", "address.street_number"),
    "street_name": ("StreetName", "street_name", "streetName", "address.street_name"),
    "street_suffix": ("StreetSuffix", "street_suffix", "streetSuffix", "address.street_suffix"),
    "unit_number": ("UnitNumber", "unit_number", "unitNumber", "address.unit"),
    "address_line": ("UnparsedAddress", "address_line", "addressLine", "streetAddress", "address.line", "formattedAddress"),
    "city": ("City", "PostalCity", "city", "address.city"),
    "state": ("StateOrProvince", "state_or_province", "state", "stateCode", "state_code", "address.state_code", "address.state"),
    "postal_code": ("PostalCode", "postal_code", "postalCode", "zip_code", "zipCode", "zipcode", "address.postal_code"),
    "county": ("CountyOrParish", "county", "address.county"),
    "latitude": ("Latitude", "latitude", "lat", "address.coordinate.lat"),
    "longitude": ("Longitude", "longitude", "lng", "lon", "address.coordinate.lon"),
    "bedrooms": ("BedroomsTotal", "bedrooms", "beds", "bedroomsTotal", "description.beds"),
    "bathrooms": ("BathroomsTotalDecimal", "BathroomsTotal", "BathroomsTotalInteger", "bathrooms", "baths", "description.baths"),
    "bathrooms_full": ("BathroomsFull", "bathrooms_full", "bathroomsFull", "description.baths_full"),
    "bathrooms_half": ("BathroomsHalf", "bathrooms_half", "bathroomsHalf", "description.baths_half"),
    "square_feet": ("LivingArea", "square_feet", "squareFootage", "squareFeet", "sqft", "description.sqft"),
    "lot_size_square_feet": ("LotSizeSquareFeet", "lot_size_square_feet", "lotSize", "lot_sqft", "description.lot_sqft"),
    "lot_size_acres": ("LotSizeAcres", "lot_size_acres", "lotSizeAcres"),
    "year_built": ("YearBuilt", "year_built", "yearBuilt", "description.year_built"),
    "list_price": ("ListPrice", "list_price", "listPrice", "price"),
    "original_list_price": ("OriginalListPrice", "original_list_price", "original_price", "originalListPrice"),
    "previous_list_price": ("PreviousListPrice", "previous_list_price", "previous_price", "previousListPrice"),
    "price_change_timestamp": ("PriceChangeTimestamp", "price_change_timestamp", "priceChangeTimestamp"),
    "standard_status": ("StandardStatus", "standard_status", "standardStatus", "status", "MlsStatus"),
    "mls_status": ("MlsStatus", "mls_status", "mlsStatus"),
    "listing_contract_date": ("ListingContractDate", "listing_contract_date", "listingContractDate"),
    "on_market_date": ("OnMarketDate", "on_market_date", "onMarketDate", "list_date", "listedDate"),
    "off_market_date": ("OffMarketDate", "off_market_date", "offMarketDate"),
    "close_date": ("CloseDate", "close_date", "closeDate", "sold_date"),
    "expiration_date": ("ExpirationDate", "expiration_date", "expirationDate"),
    "public_remarks": ("PublicRemarks", "public_remarks", "publicRemarks", "remarks", "description.text", "description"),
    "modification_timestamp": (
        "ModificationTimestamp",
        "modification_timestamp",
        "modificationTimestamp",
        "last_update_date",
        "updated_at",
        "lastModified",
    ),
    "agent_id": ("ListAgentMlsId", "ListAgentKey", "agent_id", "agents.0.id"),
    "agent_name": ("ListAgentFullName", "agent_name", "agents.0.name"),
    "agent_email": ("ListAgentEmail", "agent_email", "agents.0.email"),
    "agent_phone": ("ListAgentPreferredPhone", "ListAgentDirectPhone", "agent_phone", "agents.0.phone"),
    "office_id": ("ListOfficeMlsId", "ListOfficeKey", "office_id", "office.id"),
    "office_name": ("ListOfficeName", "office_name", "office.name"),
    "office_phone": ("ListOfficePhone", "office_phone", "office.phone"),
}


def map_property_type(raw: Any) -> PropertyType:
    s = str(raw or "").strip().lower()
    s = re.sub(r"[\s_/|-]+", " ", s)
    if "condo" in s:
        return PropertyType.condo
    if any(k in s for k in ("townhouse", "town house", "townhome", "town home")):
        return PropertyType.townhouse
    if any(k in s for k in ("manufactured", "mobile")):
        return PropertyType.manufactured
    if any(k in s for k in ("land", "vacant", "lot")):
        return PropertyType.land
    if any(k in s for k in ("commercial", "office", "retail")):
        return PropertyType.commercial
    if "business" in s:
        return PropertyType.business_opportunity
    if any(k in s for k in ("rental", "lease")):
        return PropertyType.rental
    return PropertyType.residential


def map_standard_status(raw: Any) -> StandardStatus:
    s = str(raw or "").strip().lower().replace("_", " ")
    if ("active" in s and "contract" in s) or "under contract" in s:
        return StandardStatus.active_under_contract
    if "active" in s or "for sale" in s:
        return StandardStatus.active
    if "pending" in s or "contingent" in s:
        return StandardStatus.pending
    if "sold" in s or "closed" in s:
        return StandardStatus.closed
    if "expired" in s:
        return StandardStatus.expired
    if "cancel" in s:
        return StandardStatus.canceled
    if "withdrawn" in s or "off market" in s:
        return StandardStatus.withdrawn
    if "hold" in s:
        return StandardStatus.hold
    if "incomplete" in s:
        return StandardStatus.incomplete
    return StandardStatus.active


def _lookup(raw: Mapping[str, Any], field: str) -> Any:
    return _get_path_first(raw, ALIASES[field])


def _get_path_first(raw: Mapping[str, Any], keys: tuple[str, ...]) -> Any:
    # list indexes ("agents.0.name") are not handled by get_first
    for k in keys:
        if ".0." in k:
            head, tail = k.split(".0.", 1)
            seq = raw.get(head)
            if isinstance(seq, list) and seq and isinstance(seq[0], dict):
                primary = next((a for a in seq if isinstance(a, dict) and a.get("primary")), seq[0])
                v = get_first(primary, tail)
                if v is not None:
                    return v
            continue
        v = get_first(raw, k)
        if v is not None and not isinstance(v, (dict, list)):
            return v
    return None


def _split_address_line(line: str) -> dict[str, str | None]:
    parsed = split_street_line(line.split(",")[0])
    if parsed is None:
        return {}
    number, name, suffix, unit = parsed
    return {"street_number": number, "street_name": name, "street_suffix": suffix, "unit_number": unit}


def _photos(raw: Mapping[str, Any]) -> list[dict[str, Any]]:
    out: list[dict[str, Any]] = []
    media = raw.get("Media") or raw.get("media")
    if isinstance(media, list):
        for i, m in enumerate(media):
            if isinstance(m, dict) and m.get("MediaURL"):
                out.append({"url": m["MediaURL"], "caption": m.get("ShortDescription"), "order": to_int(m.get("Order")) or i})
    photos = raw.get("photos") or raw.get("Photos")
    if isinstance(photos, list):
        for i, p in enumerate(photos):
            if isinstance(p, str):
                out.append({"url": p, "order": i})
            elif isinstance(p, dict) and (p.get("href") or p.get("url")):
                out.append({"url": p.get("href") or p.get("url"), "caption": p.get("title"), "order": i})
    return out


def _positive_or_none(v: int | None) -> int | None:
    # providers send 0 for "unknown"
    return v if v else None


def _postal(v: Any) -> str | None:
    s = to_str(v)
    if s is None:
        return None
    if s.isdigit() and len(s) < 5:  # numeric zips lose leading zeros
        s = s.zfill(5)
    return s


class PropertyNormalizer:
    """Pure mapping from an untyped provider record to `Property`."""

    def __init__(self, *, default_state: str = "OH") -> None:
        self.default_state = default_state

    def to_fields(self, raw: Mapping[str, Any]) -> dict[str, Any]:
        g = lambda name: _lookup(raw, name)  # noqa: E731

        street = {
            "street_number": to_str(g("street_number")),
            "street_name": to_str(g("street_name")),
            "street_suffix": to_str(g("street_suffix")),
            "unit_number": to_str(g("unit_number")),
        }
        if not street["street_name"]:
            line = to_str(g("address_line"))
            if line:
                street.update({k: v for k, v in _split_address_line(line).items() if v})

        state = to_str(g("state")) or self.default_state
        address = {
            **street,
            "city": to_str(g("city")),
            "state_or_province": state.upper(),
            "postal_code": _postal(g("postal_code")),
            "county": to_str(g("county")),
        }

        lat, lon = to_float(g("latitude")), to_float(g("longitude"))
        coordinates = {"latitude": lat, "longitude": lon} if lat is not None and lon is not None else None

        listing_id = to_str(g("listing_id"))
        remarks = g("public_remarks")

        agent = {
            "agent_id": to_str(g("agent_id")),
            "name": to_str(g("agent_name")),
            "email": to_str(g("agent_email")),
            "phone": to_str(g("agent_phone")),
        }
        office = {
            "office_id": to_str(g("office_id")),
            "name": to_str(g("office_name")),
            "phone": to_str(g("office_phone")),
        }

        return {
            "listing_id": listing_id,
            "listing_key": to_str(g("listing_key")),
            "property_type": map_property_type(g("property_type")),
            "property_sub_type": to_str(g("property_sub_type")),
            "address": address,
            "coordinates": coordinates,
            "bedrooms": to_int(g("bedrooms")),
            "bathrooms": to_float(g("bathrooms")),
            "bathrooms_full": to_int(g("bathrooms_full")),
            "bathrooms_half": to_int(g("bathrooms_half")),
            "square_feet": _positive_or_none(to_int(g("square_feet"))),
            "lot_size_square_feet": to_float(g("lot_size_square_feet")),
            "lot_size_acres": to_float(g("lot_size_acres")),
            "year_built": _positive_or_none(to_int(g("year_built"))),
            "list_price": to_float(g("list_price")) or 0.0,
            "original_list_price": to_float(g("original_list_price")),
            "previous_list_price": to_float(g("previous_list_price")),
            "price_change_timestamp": to_datetime(g("price_change_timestamp")),
            "standard_status": map_standard_status(g("standard_status")),
            "mls_status": to_str(g("mls_status")),
            "listing_contract_date": to_datetime(g("listing_contract_date")),
            "on_market_date": to_datetime(g("on_market_date")),
            "off_market_date": to_datetime(g("off_market_date")),
            "close_date": to_datetime(g("close_date")),
            "expiration_date": to_datetime(g("expiration_date")),
            "public_remarks": to_str(remarks) if isinstance(remarks, str) else None,
            "photos": _photos(raw),
            "listing_agent": agent if any(agent.values()) else None,
            "listing_office": office if any(office.values()) else None,
            "modification_timestamp": to_datetime(g("modification_timestamp")) or datetime.now(timezone.utc),
        }

    def normalize(self, raw: Any) -> Property | None:
        """Returns None (never raises) when the record cannot be made valid."""
        if not isinstance(raw, Mapping):
            return None
        try:
            return Property.model_validate(self.to_fields(raw))
        except (ValidationError, ValueError, TypeError) as e:
            log.warning("Dropping malformed listing %r: %s", _raw_id(raw), e)
            return None


def _raw_id(raw: Mapping[str, Any]) -> Any:
    return _lookup(raw, "listing_id")


def validate_property(data: Any) -> tuple[bool, Property | None, list[str]]:
    """Schema check for an already-mapped record (dict or Property)."""
    payload = data.model_dump() if isinstance(data, Property) else data
    try:
        return True, Property.model_validate(payload), []
    except ValidationError as e:
        errors = [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
        return False, None, errors


_default = PropertyNormalizer()


def normalize_property(raw: Any) -> Property | None:
    return _default.normalize(raw)
