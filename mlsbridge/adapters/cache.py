# mlsbridge/adapters/cache.py
from __future__ import annotations

import logging
import re
import time
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from ..domain.errors import CacheError
from ..domain.policies import CachePolicy
from ..domain.types import Property

log = logging.getLogger(__name__)

DEFAULT_STALE_CAPACITY = 1000


@dataclass(frozen=True)
class CacheEntry:
    data: Any
    timestamp: float
    ttl: float

    @property
    def expires_at(self) -> float:
        return self.timestamp + self.ttl

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


def property_cache_key(listing_id: str) -> str:
    return f"property:{listing_id}"


class ResponseCache:
    """
    In-process key/value cache with per-entry TTL.

    Expired entries leave the live map on read or sweep and are parked in a
    bounded stale area, which only `get_stale` consults.
    """

    def __init__(
        self,
        *,
        stale_capacity: int = DEFAULT_STALE_CAPACITY,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._entries: dict[str, CacheEntry] = {}
        self._stale: OrderedDict[str, CacheEntry] = OrderedDict()
        self._stale_capacity = stale_capacity
        self._clock = clock
        self.hits = 0
        self.misses = 0
        self.last_update: float | None = None

    def __len__(self) -> int:
        return len(self._entries)

    def _park(self, key: str, entry: CacheEntry) -> None:
        self._stale[key] = entry
        self._stale.move_to_end(key)
        while len(self._stale) > self._stale_capacity:
            self._stale.popitem(last=False)

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None
        if entry.is_expired(self._clock()):
            del self._entries[key]
            self._park(key, entry)
            self.misses += 1
            return None
        self.hits += 1
        return entry.data

    def get_stale(self, key: str) -> Any | None:
        """Fresh or expired data for `key`, or None if never cached."""
        entry = self._entries.get(key) or self._stale.get(key)
        return entry.data if entry is not None else None

    def contains(self, key: str, *, include_stale: bool = False) -> bool:
        if key in self._entries:
            return True
        return include_stale and key in self._stale

    def set(self, key: str, data: Any, ttl_seconds: float) -> None:
        if ttl_seconds <= 0:
            raise CacheError(f"ttl must be positive for {key!r}")
        now = self._clock()
        # replace, never mutate in place
        self._entries[key] = CacheEntry(data=data, timestamp=now, ttl=float(ttl_seconds))
        self._stale.pop(key, None)
        self.last_update = now

    def delete(self, key: str) -> bool:
        found = self._entries.pop(key, None) is not None
        return self._stale.pop(key, None) is not None or found

    def cleanup(self) -> int:
        """Evict expired entries; returns how many were removed."""
        now = self._clock()
        expired = [k for k, e in self._entries.items() if e.is_expired(now)]
        for k in expired:
            self._park(k, self._entries.pop(k))
        if expired:
            log.info("Cache sweep evicted %s expired entries", len(expired))
        return len(expired)

    def invalidate(self, pattern: str | None = None) -> int:
        """Drop every key matching the regex `pattern` (all keys when None)."""
        if pattern is None:
            n = len(self._entries)
            self._entries.clear()
            self._stale.clear()
            return n
        rx = re.compile(pattern)
        keys = [k for k in self._entries if rx.search(k)]
        for k in keys:
            del self._entries[k]
        for k in [k for k in self._stale if rx.search(k)]:
            del self._stale[k]
        return len(keys)

    def clear(self) -> None:
        self.invalidate(None)
        self.hits = 0
        self.misses = 0

    def stats(self) -> dict[str, Any]:
        now = self._clock()
        fresh = sum(1 for e in self._entries.values() if not e.is_expired(now))
        lookups = self.hits + self.misses
        return {
            "total_entries": len(self._entries),
            "fresh_entries": fresh,
            "stale_entries": len(self._entries) - fresh,
            "parked_entries": len(self._stale),
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": round(self.hits / lookups, 4) if lookups else 0.0,
            "last_update": (
                datetime.fromtimestamp(self.last_update, tz=timezone.utc).isoformat() if self.last_update else None
            ),
        }


def store_property(cache: ResponseCache, prop: Property, policy: CachePolicy) -> bool:
    """
    The one write path for property entries. Returns True when the listing
    was not cached before (fresh or stale).
    """
    key = property_cache_key(prop.listing_id)
    is_new = not cache.contains(key, include_stale=True)
    cache.set(key, prop, policy.ttl_for_status(prop.standard_status))
    return is_new
