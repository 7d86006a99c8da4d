"""Canonical schema (Pydantic) - HourlyMarket, Snapshot, venue records."""

from pmtracker.models.market import HourlyMarket, MarketStatus, Outcome
from pmtracker.models.snapshot import Snapshot
from pmtracker.models.venue import GammaMarket, OrderBookSummary, PricePoint, PriceLevel

__all__ = [
    "HourlyMarket",
    "MarketStatus",
    "Outcome",
    "Snapshot",
    "GammaMarket",
    "OrderBookSummary",
    "PriceLevel",
    "PricePoint",
]
