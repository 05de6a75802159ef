# mlsbridge/domain/policies.py
from __future__ import annotations

from dataclasses import dataclass

from .types import StandardStatus

TERMINAL_STATUSES: frozenset[StandardStatus] = frozenset(
    {
        StandardStatus.closed,
        StandardStatus.expired,
        StandardStatus.withdrawn,
        StandardStatus.canceled,
    }
)


@dataclass(frozen=True)
class CachePolicy:
    """Seconds a cached property stays fresh, by listing status."""

    active_ttl: int = 300
    pending_ttl: int = 900
    terminal_ttl: int = 86400
    default_ttl: int = 600

    def ttl_for_status(self, status: StandardStatus | str | None) -> int:
        if status is None:
            return self.default_ttl
        try:
            s = StandardStatus(status)
        except ValueError:
            return self.default_ttl
        if s == StandardStatus.active:
            return self.active_ttl
        if s in (StandardStatus.pending, StandardStatus.active_under_contract):
            return self.pending_ttl
        if s in TERMINAL_STATUSES:
            return self.terminal_ttl
        return self.default_ttl
