"""PolymarketDataSource - Gamma + CLOB behind one retrying async client."""

from __future__ import annotations

import httpx

from pmtracker.ingestion.polymarket import clob, gamma
from pmtracker.ingestion.retry import call_with_retry
from pmtracker.models import GammaMarket, OrderBookSummary, PricePoint


class PolymarketDataSource:
    """Implements MarketDataSource. Every call is retried per the configured bounds."""

    def __init__(
        self,
        gamma_api_base: str = gamma.GAMMA_API_BASE,
        clob_api_base: str = clob.CLOB_API_BASE,
        *,
        timeout_sec: float = 10.0,
        max_retries: int = 3,
        retry_delay_sec: float = 1.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.gamma_api_base = gamma_api_base
        self.clob_api_base = clob_api_base
        self.max_retries = max_retries
        self.retry_delay_sec = retry_delay_sec
        self._client = client or httpx.AsyncClient(timeout=timeout_sec)

    async def __aenter__(self) -> PolymarketDataSource:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _retry(self, fn, label: str):
        return await call_with_retry(
            fn,
            label,
            max_retries=self.max_retries,
            delay_sec=self.retry_delay_sec,
        )

    async def get_market_by_slug(self, slug: str) -> GammaMarket | None:
        return await self._retry(
            lambda: gamma.fetch_market_by_slug(self._client, slug, self.gamma_api_base),
            f"get_market_by_slug({slug})",
        )

    async def search_markets(self, series_slug: str) -> list[GammaMarket]:
        return await self._retry(
            lambda: gamma.search_markets(self._client, series_slug, self.gamma_api_base),
            f"search_markets({series_slug})",
        )

    async def get_prices(self, token_ids: list[str]) -> dict[str, float]:
        return await self._retry(
            lambda: clob.fetch_prices(self._client, token_ids, base_url=self.clob_api_base),
            "get_prices",
        )

    async def get_midpoint(self, token_id: str) -> float | None:
        return await self._retry(
            lambda: clob.fetch_midpoint(self._client, token_id, self.clob_api_base),
            f"get_midpoint({token_id})",
        )

    async def get_order_book(self, token_id: str) -> OrderBookSummary:
        return await self._retry(
            lambda: clob.fetch_order_book(self._client, token_id, self.clob_api_base),
            f"get_order_book({token_id})",
        )

    async def get_price_history(self, token_id: str, fidelity: int = 60) -> list[PricePoint]:
        return await self._retry(
            lambda: clob.fetch_price_history(self._client, token_id, fidelity, self.clob_api_base),
            f"get_price_history({token_id})",
        )
