# mlsbridge/domain/address.py
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable

from .types import POSTAL_CODE_PATTERN

# USPS-style suffix abbreviations, keyed by lowercase spelling
STREET_SUFFIXES: dict[str, str] = {
    "st": "St",
    "street": "St",
    "ave": "Ave",
    "av": "Ave",
    "avenue": "Ave",
    "rd": "Rd",
    "road": "Rd",
    "dr": "Dr",
    "drive": "Dr",
    "ln": "Ln",
    "lane": "Ln",
    "blvd": "Blvd",
    "boulevard": "Blvd",
    "ct": "Ct",
    "court": "Ct",
    "pl": "Pl",
    "place": "Pl",
    "way": "Way",
    "cir": "Cir",
    "circle": "Cir",
    "pkwy": "Pkwy",
    "parkway": "Pkwy",
    "ter": "Ter",
    "terrace": "Ter",
    "trl": "Trl",
    "trail": "Trl",
    "hwy": "Hwy",
    "highway": "Hwy",
    "sq": "Sq",
    "square": "Sq",
}

_STREET_RE = re.compile(r"^(\d+[A-Za-z]?)\s+(.+)$")
_UNIT_RE = re.compile(r"\s+(?:#|apt\.?|unit|suite|ste\.?)\s*([\w-]+)$", re.IGNORECASE)
_TRAILING_ZIP_RE = re.compile(r"[\s,]*(\d{5}(?:-\d{4})?)$")
_TRAILING_STATE_RE = re.compile(r"^(.*?)[\s,]+([A-Za-z]{2})$")
_ZIP_RE = re.compile(POSTAL_CODE_PATTERN)


@dataclass(frozen=True)
class AddressComponents:
    street_number: str
    street_name: str
    street_suffix: str | None
    unit_number: str | None
    city: str
    state: str
    postal_code: str | None

    @property
    def street_line(self) -> str:
        line = " ".join(p for p in (self.street_number, self.street_name, self.street_suffix) if p)
        if self.unit_number:
            line = f"{line} #{self.unit_number}"
        return line


@dataclass(frozen=True)
class AddressValidation:
    is_valid: bool
    formatted: str | None = None
    components: AddressComponents | None = None
    errors: list[str] = field(default_factory=list)


def standardize_street_suffix(suffix: str | None) -> str | None:
    if not suffix:
        return None
    return STREET_SUFFIXES.get(suffix.strip().rstrip(".").lower())


def format_address(c: AddressComponents) -> str:
    tail = f"{c.city}, {c.state}"
    if c.postal_code:
        tail = f"{tail} {c.postal_code}"
    return f"{c.street_line}, {tail}"


def split_street_line(street: str) -> tuple[str, str, str | None, str | None] | None:
    """'123 N High Street Apt 4' -> ('123', 'N High', 'St', '4')"""
    street = " ".join(street.split())
    unit = None
    m = _UNIT_RE.search(street)
    if m:
        unit = m.group(1)
        street = street[: m.start()]

    m = _STREET_RE.match(street)
    if not m:
        return None
    number, rest = m.group(1), m.group(2)

    words = rest.split(" ")
    suffix = standardize_street_suffix(words[-1]) if len(words) > 1 else None
    if suffix:
        words = words[:-1]
    name = " ".join(w if not w.islower() else w.title() for w in words)
    return number, name, suffix, unit


def _split_locality(parts: list[str]) -> tuple[str | None, str | None]:
    """Return (city, state) from the comma separated tail of an address."""
    if not parts:
        return None, None
    if len(parts) >= 2:
        return parts[0] or None, parts[1] or None

    only = parts[0]
    m = _TRAILING_STATE_RE.match(only)
    if m:
        return (m.group(1).strip(" ,") or None), m.group(2)
    if len(only) == 2 and only.isalpha():
        return None, only
    return only or None, None


def _strip_city_state_suffix(street: str, city: str, state: str) -> tuple[str, bool]:
    """Handles comma-less input such as '123 Main St Columbus OH'."""
    low = street.lower()
    for tail in (f" {city} {state}", f" {city}"):
        if low.endswith(tail.lower()):
            return street[: -len(tail)].rstrip(" ,"), True
    return street, False


def validate_address(
    raw: str | None,
    *,
    default_city: str = "Columbus",
    default_state: str = "OH",
    valid_postal_prefixes: Iterable[str] = ("432",),
) -> AddressValidation:
    """
    Parse a loosely structured address into components.

    Missing city/state fall back to the service area defaults. A postal code is
    optional, but when present it must match 5 or 5+4 digits and one of
    `valid_postal_prefixes` (empty means no restriction).
    """
    text = " ".join((raw or "").split())
    if not text:
        return AddressValidation(is_valid=False, errors=["Address is required"])

    errors: list[str] = []

    postal_code = None
    m = _TRAILING_ZIP_RE.search(text)
    if m:
        postal_code = m.group(1)
        text = text[: m.start()]

    segments = [s.strip() for s in text.split(",") if s.strip()]
    if not segments:
        return AddressValidation(is_valid=False, errors=["Invalid address format"])

    street = segments[0]
    city, state = _split_locality(segments[1:])
    if len(segments) == 1:
        street, matched = _strip_city_state_suffix(street, default_city, default_state)
        if matched:
            city, state = default_city, default_state

    parsed = split_street_line(street)
    if parsed is None:
        return AddressValidation(is_valid=False, errors=["Invalid address format"])
    number, name, suffix, unit = parsed
    if not name:
        errors.append("Street name is required")

    city = (city or default_city).strip()
    city = city.title() if city.isupper() or city.islower() else city
    state = (state or default_state).strip().upper()
    if len(state) != 2 or not state.isalpha():
        errors.append(f"Invalid state: {state}")

    if postal_code is not None:
        if not _ZIP_RE.match(postal_code):
            errors.append(f"Invalid postal code: {postal_code}")
        prefixes = tuple(valid_postal_prefixes)
        if prefixes and not postal_code.startswith(prefixes):
            errors.append(f"Postal code {postal_code} is outside the service area")

    components = AddressComponents(
        street_number=number,
        street_name=name,
        street_suffix=suffix,
        unit_number=unit,
        city=city,
        state=state,
        postal_code=postal_code,
    )
    return AddressValidation(
        is_valid=not errors,
        formatted=format_address(components),
        components=components,
        errors=errors,
    )
