"""Snapshot - one price observation for one market."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class Snapshot(BaseModel):
    """Prices are stored as reported; optional fields stay None rather than 0."""

    id: int | None = None  # assigned by the store
    market_id: str
    fetched_at: datetime
    minute_of_hour: int
    up_price: float = 0.0
    down_price: float = 0.0
    up_bid: float | None = None
    up_ask: float | None = None
    spread: float | None = None
    midpoint: float | None = None
    last_trade_price: float | None = None
    volume_24h: float | None = None
