"""Derived market status. Only timestamps and the outcome are persisted."""

from __future__ import annotations

from datetime import datetime, timedelta

from pmtracker.models import HourlyMarket, MarketStatus

HOUR = timedelta(hours=1)


def classify(market: HourlyMarket, now: datetime) -> MarketStatus:
    """DISCOVERED -> ACTIVE -> AWAITING_CLOSE -> RESOLVED, from the clock and outcome."""
    if market.outcome is not None:
        return MarketStatus.RESOLVED
    if now < market.event_start_time:
        return MarketStatus.DISCOVERED
    if now < market.event_start_time + HOUR:
        return MarketStatus.ACTIVE
    return MarketStatus.AWAITING_CLOSE


def minute_of_hour(market: HourlyMarket, now: datetime) -> int:
    """Whole minutes since event start. Negative under clock drift; not clamped."""
    return int((now - market.event_start_time) // timedelta(minutes=1))
