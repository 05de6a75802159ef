# mlsbridge/domain/history.py
from __future__ import annotations

from datetime import datetime

from .types import (
    HistoryEvent,
    MarketTiming,
    PriceChange,
    PriceHistory,
    Property,
    PropertyHistory,
    StandardStatus,
)

# percent moves between original and current price
AGGRESSIVE_CUT_PCT = -10.0
CONSERVATIVE_RAISE_PCT = 5.0

WINTER_MONTHS = {11, 12, 1, 2, 3}
SPRING_MONTHS = {3, 4, 5, 6}


def _listed(history: PropertyHistory) -> HistoryEvent | None:
    return next((e for e in history.events if e.event == "Listed"), None)


def property_history(p: Property, now: datetime) -> PropertyHistory:
    """
    Rebuild a listing's event timeline from its detail fields.

    Events with no recorded date (a price change without
    price_change_timestamp, a status change without off_market_date) are
    stamped `now`.
    """
    events: list[HistoryEvent] = []

    listed_at = p.listing_contract_date or p.on_market_date
    if listed_at is not None:
        price = p.original_list_price or p.list_price
        events.append(
            HistoryEvent(
                date=listed_at,
                event="Listed",
                new_value=price,
                description=f"Property listed at ${price:,.0f}",
            )
        )

    if p.original_list_price and p.original_list_price != p.list_price:
        change = p.list_price - p.original_list_price
        pct = change / p.original_list_price * 100
        direction = "increased" if change > 0 else "decreased"
        events.append(
            HistoryEvent(
                date=p.price_change_timestamp or now,
                event="Price Change",
                previous_value=p.original_list_price,
                new_value=p.list_price,
                description=f"Price {direction} by ${abs(change):,.0f} ({abs(pct):.1f}%)",
            )
        )

    if p.standard_status != StandardStatus.active:
        events.append(
            HistoryEvent(
                date=p.off_market_date or now,
                event="Status Change",
                previous_value=StandardStatus.active.value,
                new_value=p.standard_status.value,
                description=f"Status changed from {StandardStatus.active.value} to {p.standard_status.value}",
            )
        )

    events.sort(key=lambda e: e.date, reverse=True)
    return PropertyHistory(listing_id=p.listing_id, events=events)


def price_history(p: Property, history: PropertyHistory) -> PriceHistory:
    listed = _listed(history)
    changes: list[PriceChange] = []
    for e in reversed(history.events):
        if e.event != "Price Change":
            continue
        prev, new = float(e.previous_value or 0), float(e.new_value or 0)
        amount = new - prev
        changes.append(
            PriceChange(
                date=e.date,
                price=new,
                change_amount=round(amount),
                change_percent=round(amount / prev * 100, 2) if prev else 0.0,
                days_on_market=max(0, (e.date - listed.date).days) if listed else 0,
            )
        )

    original = p.original_list_price or p.list_price
    total = p.list_price - original
    return PriceHistory(
        listing_id=p.listing_id,
        price_changes=changes,
        current_price=p.list_price,
        original_price=original,
        total_price_change=round(total),
        total_price_change_percent=round(total / original * 100, 2) if original else 0.0,
    )


def timing_rating(days: int, average_days: float) -> str:
    if average_days <= 0:
        return "Fair"
    ratio = days / average_days
    if ratio <= 0.5:
        return "Excellent"
    if ratio <= 0.8:
        return "Good"
    if ratio <= 1.2:
        return "Fair"
    return "Poor"


def price_strategy(prices: PriceHistory) -> str:
    if not prices.price_changes:
        return "Market"
    if prices.total_price_change_percent < AGGRESSIVE_CUT_PCT:
        return "Aggressive"
    if prices.total_price_change_percent > CONSERVATIVE_RAISE_PCT:
        return "Conservative"
    return "Market"


def recommendations(days: int, average_days: float, strategy: str, prices: PriceHistory, month: int) -> list[str]:
    out: list[str] = []
    if days > average_days * 1.5:
        out.append("Consider a price reduction to attract more buyers")
        out.append("Review and update listing photos and description")
    if days > average_days * 2:
        out.append("Reassess pricing strategy; the property may be overpriced for the current market")

    if strategy == "Aggressive" and len(prices.price_changes) > 2:
        out.append("Consider more aggressive pricing to generate interest")
    if strategy == "Conservative" and days < average_days * 0.5:
        out.append("Strong market interest suggests pricing could be optimized higher")

    if month in WINTER_MONTHS:
        out.append("Consider enhanced staging and lighting for the winter showing season")
    if month in SPRING_MONTHS:
        out.append("Optimal selling season; maintain competitive pricing")

    if not out:
        out.append("Monitor market conditions and comparable sales")
        out.append("Ensure the listing is well maintained and showcased")
    return out


def market_timing(
    p: Property,
    history: PropertyHistory,
    prices: PriceHistory,
    average_days: float,
    now: datetime,
) -> MarketTiming:
    """Days on market run from the Listed event to close, off-market or `now`."""
    listed = _listed(history)
    end = p.close_date or p.off_market_date or now
    days = max(0, (end - listed.date).days) if listed else 0
    strategy = price_strategy(prices)
    return MarketTiming(
        listing_id=p.listing_id,
        original_list_date=listed.date if listed else None,
        current_status=p.standard_status,
        total_days_on_market=days,
        average_days_on_market=average_days,
        market_timing=timing_rating(days, average_days),
        price_strategy=strategy,
        recommendations=recommendations(days, average_days, strategy, prices, now.month),
    )
