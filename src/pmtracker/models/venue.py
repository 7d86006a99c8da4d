"""Venue-side records: Gamma market view, CLOB order book, price history."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class GammaMarket(BaseModel):
    """Public Gamma market record. JSON-encoded list fields are kept raw and parsed on use."""

    id: str = ""
    question: str = ""
    condition_id: str = ""
    slug: str = ""
    outcomes: Any = None
    outcome_prices: Any = None  # '["0.95","0.05"]' or list; index 0 = Up
    clob_token_ids: Any = None  # '["<up>","<down>"]' or list
    start_date: datetime | None = None
    end_date: datetime | None = None
    event_start_time: datetime | None = None
    active: bool = False
    closed: bool = False
    volume: float = 0.0
    liquidity: float = 0.0
    series_slug: str = ""
    best_bid: float | None = None
    best_ask: float | None = None
    spread: float | None = None
    last_trade_price: float | None = None
    volume_24hr: float | None = None
    accepting_orders: bool = False
    enable_order_book: bool = False


class PriceLevel(BaseModel):
    """Single price level (price -> size)."""

    price: float
    size: float = 0.0


class OrderBookSummary(BaseModel):
    """CLOB book for one token, bids and asks ordered best-first."""

    asset_id: str = ""
    bids: list[PriceLevel] = Field(default_factory=list)
    asks: list[PriceLevel] = Field(default_factory=list)

    @property
    def best_bid(self) -> float | None:
        return self.bids[0].price if self.bids else None

    @property
    def best_ask(self) -> float | None:
        return self.asks[0].price if self.asks else None

    @property
    def spread(self) -> float | None:
        """best_ask - best_bid; None unless both sides are non-empty."""
        if self.best_bid is None or self.best_ask is None:
            return None
        return self.best_ask - self.best_bid


class PricePoint(BaseModel):
    t: int  # unix seconds
    p: float
