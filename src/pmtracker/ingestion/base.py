"""Data source protocol consumed by the tracking engines."""

from __future__ import annotations

from typing import Protocol

from pmtracker.models import GammaMarket, OrderBookSummary


class MarketDataSource(Protocol):
    """Public market data for hourly markets. Implementations retry transient failures
    and raise DataSourceError once retries are exhausted."""

    async def get_market_by_slug(self, slug: str) -> GammaMarket | None: ...

    async def get_prices(self, token_ids: list[str]) -> dict[str, float]: ...

    async def get_midpoint(self, token_id: str) -> float | None: ...

    async def get_order_book(self, token_id: str) -> OrderBookSummary: ...
