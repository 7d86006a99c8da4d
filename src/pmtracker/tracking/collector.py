"""Snapshot collector - one price snapshot per active market per run."""

from __future__ import annotations

import asyncio
from datetime import datetime

import structlog

from pmtracker.config import TrackerConfig
from pmtracker.ingestion.base import MarketDataSource
from pmtracker.models import HourlyMarket, Snapshot
from pmtracker.storage import MarketRepository
from pmtracker.timeutil import utcnow
from pmtracker.tracking.lifecycle import minute_of_hour

log = structlog.get_logger(__name__)


class SnapshotCollector:
    """Captures prices, midpoint, book spread and the Gamma view for each market.
    The four reads of one market are issued together; markets run concurrently up to
    config.max_concurrency. Store writes run in a worker thread, off the event loop."""

    def __init__(self, source: MarketDataSource, repository: MarketRepository, config: TrackerConfig) -> None:
        self.source = source
        self.repository = repository
        self.config = config

    async def collect_active(self, now: datetime | None = None) -> int:
        """Snapshot every market inside its hour window. Returns snapshots written."""
        now = now or utcnow()
        markets = self.repository.get_active_markets(now)
        if not markets:
            log.info("fetch_no_active_markets")
            return 0
        saved = await self._capture_all(markets, now)
        log.info("fetch_done", saved=saved, markets=len(markets))
        return saved

    async def collect_closing_soon(self, window_minutes: int | None = None, now: datetime | None = None) -> int:
        """Snapshot markets whose hour ends within window_minutes."""
        now = now or utcnow()
        window = self.config.closing_window_minutes if window_minutes is None else window_minutes
        markets = self.repository.get_closing_markets(window, now)
        if not markets:
            log.debug("closing_no_markets", window_minutes=window)
            return 0
        saved = await self._capture_all(markets, now)
        log.debug("closing_done", saved=saved, markets=len(markets))
        return saved

    async def _capture_all(self, markets: list[HourlyMarket], now: datetime) -> int:
        semaphore = asyncio.Semaphore(max(1, self.config.max_concurrency))

        async def guarded(market: HourlyMarket) -> bool:
            async with semaphore:
                try:
                    snapshot = await self.capture(market, now)
                    await asyncio.to_thread(self.repository.insert_snapshot, snapshot)
                except Exception as e:
                    log.error("snapshot_failed", slug=market.slug, error=str(e))
                    return False
                log.debug(
                    "snapshot_saved",
                    slug=market.slug,
                    minute=snapshot.minute_of_hour,
                    up=snapshot.up_price,
                    down=snapshot.down_price,
                )
                return True

        results = await asyncio.gather(*(guarded(m) for m in markets))
        return sum(results)

    async def capture(self, market: HourlyMarket, now: datetime) -> Snapshot:
        """Read the market's signals and build (not persist) its snapshot."""
        results = await asyncio.gather(
            self.source.get_prices([market.token_id_up, market.token_id_down]),
            self.source.get_midpoint(market.token_id_up),
            self.source.get_order_book(market.token_id_up),
            self.source.get_market_by_slug(market.slug),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        prices, midpoint, book, view = results

        return Snapshot(
            market_id=market.id,
            fetched_at=now,
            minute_of_hour=minute_of_hour(market, now),
            up_price=prices.get(market.token_id_up, 0.0),
            down_price=prices.get(market.token_id_down, 0.0),
            up_bid=book.best_bid,
            up_ask=book.best_ask,
            spread=book.spread,
            midpoint=midpoint,
            last_trade_price=view.last_trade_price if view is not None else None,
            volume_24h=view.volume_24hr if view is not None else None,
        )
