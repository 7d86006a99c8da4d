"""Shared fixtures: temp store, tracker config, and a scripted data source."""

from __future__ import annotations

import asyncio
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
import structlog

from pmtracker.config import AssetConfig, JobSchedule, TrackerConfig
from pmtracker.models import GammaMarket, HourlyMarket, OrderBookSummary, Outcome, PriceLevel
from pmtracker.storage import MarketRepository

BTC = AssetConfig(asset="BTC", series_slug="bitcoin-up-or-down-hourly", slug_prefix="bitcoin-up-or-down")
ETH = AssetConfig(asset="ETH", series_slug="ethereum-up-or-down-hourly", slug_prefix="ethereum-up-or-down")


def utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def make_market(
    slug: str,
    start: datetime,
    *,
    asset: str = "BTC",
    condition_id: str | None = None,
    outcome: Outcome | None = None,
) -> HourlyMarket:
    return HourlyMarket(
        id=str(uuid.uuid4()),
        condition_id=condition_id or f"0x{uuid.uuid4().hex}",
        token_id_up=f"{slug}-up",
        token_id_down=f"{slug}-down",
        asset=asset,
        question=f"{asset} Up or Down?",
        event_start_time=start,
        hour_start=start,
        hour_end=start + timedelta(hours=1),
        outcome=outcome,
        slug=slug,
        series_slug="bitcoin-up-or-down-hourly",
        created_at=start - timedelta(hours=1),
        updated_at=start - timedelta(hours=1),
    )


def make_record(
    slug: str,
    start: datetime,
    *,
    token_ids: Any = '["111", "222"]',
    closed: bool = False,
    outcome_prices: Any = '["0.5", "0.5"]',
    condition_id: str | None = None,
) -> GammaMarket:
    return GammaMarket(
        id="12345",
        question="Bitcoin Up or Down?",
        condition_id=condition_id or f"0x{slug.encode().hex()[:64]}",
        slug=slug,
        clob_token_ids=token_ids,
        outcome_prices=outcome_prices,
        event_start_time=start,
        end_date=start + timedelta(hours=1),
        closed=closed,
        active=not closed,
        series_slug="bitcoin-up-or-down-hourly",
        last_trade_price=0.51,
        volume_24hr=1234.5,
    )


class FakeSource:
    """Scripted MarketDataSource. Values may be exceptions, which are raised."""

    def __init__(self) -> None:
        self.records: dict[str, Any] = {}
        self.prices: dict[str, float] = {}
        self.midpoints: dict[str, Any] = {}
        self.books: dict[str, Any] = {}
        self.calls: list[tuple[str, Any]] = []
        self.book_delay = 0.0
        self.in_flight = 0
        self.max_in_flight = 0

    @staticmethod
    def _maybe_raise(value: Any) -> Any:
        if isinstance(value, BaseException):
            raise value
        return value

    async def get_market_by_slug(self, slug: str) -> GammaMarket | None:
        self.calls.append(("get_market_by_slug", slug))
        return self._maybe_raise(self.records.get(slug))

    async def get_prices(self, token_ids: list[str]) -> dict[str, float]:
        self.calls.append(("get_prices", tuple(token_ids)))
        for tid in token_ids:
            self._maybe_raise(self.prices.get(tid))
        return {tid: self.prices[tid] for tid in token_ids if tid in self.prices}

    async def get_midpoint(self, token_id: str) -> float | None:
        self.calls.append(("get_midpoint", token_id))
        return self._maybe_raise(self.midpoints.get(token_id))

    async def get_order_book(self, token_id: str) -> OrderBookSummary:
        self.calls.append(("get_order_book", token_id))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.book_delay:
                await asyncio.sleep(self.book_delay)
            book = self._maybe_raise(self.books.get(token_id))
        finally:
            self.in_flight -= 1
        return book if book is not None else OrderBookSummary(asset_id=token_id)


def book(bids: list[float], asks: list[float]) -> OrderBookSummary:
    return OrderBookSummary(
        bids=[PriceLevel(price=p, size=100) for p in bids],
        asks=[PriceLevel(price=p, size=100) for p in asks],
    )


@pytest.fixture
def repo(tmp_path):
    repository = MarketRepository(tmp_path / "test.duckdb")
    yield repository
    repository.close()


@pytest.fixture
def config() -> TrackerConfig:
    return TrackerConfig(
        assets=(BTC,),
        discovery_hours_ahead=2,
        max_retries=3,
        retry_delay_sec=0.0,
        max_concurrency=4,
        closing_window_minutes=5,
        resolution_threshold=0.9,
        schedules={
            "discovery": JobSchedule(3600, 300),
            "fetch": JobSchedule(600),
            "closing": JobSchedule(60),
            "resolution": JobSchedule(300),
        },
    )


@pytest.fixture
def source() -> FakeSource:
    return FakeSource()


@pytest.fixture(autouse=True)
def reset_logging():
    # CLI commands configure structlog globally.
    yield
    structlog.reset_defaults()
