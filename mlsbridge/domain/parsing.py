# mlsbridge/domain/parsing.py
from __future__ import annotations

import re
from datetime import date, datetime, timezone
from typing import Any

_MONEY_JUNK = re.compile(r"[$,\s]")


def to_number(x: Any) -> float | None:
    """Numeric coercion that tolerates '$1,250,000' style strings."""
    if x is None or isinstance(x, bool):
        return None
    if isinstance(x, (int, float)):
        return float(x)
    s = _MONEY_JUNK.sub("", str(x))
    if not s:
        return None
    try:
        return float(s)
    except ValueError:
        return None


def to_int(x: Any) -> int | None:
    n = to_number(x)
    if n is None:
        return None
    return int(round(n))


def to_float(x: Any) -> float | None:
    return to_number(x)


def to_str(x: Any) -> str | None:
    if x is None:
        return None
    s = str(x).strip()
    return s or None


def to_datetime(x: Any) -> datetime | None:
    """
    Accepts datetimes, dates, ISO strings ('Z' suffix ok) and epoch seconds/ms.
    Always returns an aware UTC datetime.
    """
    if x is None or x == "":
        return None
    if isinstance(x, datetime):
        dt = x
    elif isinstance(x, date):
        dt = datetime(x.year, x.month, x.day)
    elif isinstance(x, (int, float)) and not isinstance(x, bool):
        ts = float(x)
        if ts > 1e11:  # milliseconds
            ts = ts / 1000.0
        try:
            return datetime.fromtimestamp(ts, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    else:
        s = str(x).strip()
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(s)
        except ValueError:
            return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def get_first(payload: dict[str, Any], *keys: str) -> Any:
    """Return first non-empty value; dotted keys walk nested dicts."""
    for k in keys:
        v = get_nested(payload, k) if "." in k else payload.get(k)
        if v is None:
            continue
        if isinstance(v, str) and not v.strip():
            continue
        return v
    return None


def get_nested(payload: dict[str, Any], path: str) -> Any:
    """Tiny dot-path getter: 'address.line' or 'address.coordinate.lat'."""
    cur: Any = payload
    for part in path.split("."):
        if not isinstance(cur, dict):
            return None
        cur = cur.get(part)
        if cur is None:
            return None
    return cur
