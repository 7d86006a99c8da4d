"""Resolution engine - set the outcome of finished markets once the venue closes them."""

from __future__ import annotations

import asyncio
from datetime import datetime

import structlog

from pmtracker.config import TrackerConfig
from pmtracker.errors import DataSourceError, MalformedPayloadError, StorageError
from pmtracker.ingestion.base import MarketDataSource
from pmtracker.ingestion.polymarket.gamma import parse_outcome_prices
from pmtracker.models import GammaMarket, HourlyMarket, Outcome
from pmtracker.storage import MarketRepository
from pmtracker.timeutil import utcnow

log = structlog.get_logger(__name__)

RESOLUTION_THRESHOLD = 0.9


def determine_outcome(record: GammaMarket, threshold: float = RESOLUTION_THRESHOLD) -> Outcome | None:
    """UP if the Up settlement price exceeds threshold, else DOWN if Down does, else None.
    Raises MalformedPayloadError when outcomePrices does not parse."""
    up, down = parse_outcome_prices(record)
    if up > threshold:
        return Outcome.UP
    if down > threshold:
        return Outcome.DOWN
    return None


class ResolutionEngine:
    """Polls markets past their hour end. Markets stay pending until the venue reports
    closed with a settlement price above the threshold; there is no forced resolution."""

    def __init__(self, source: MarketDataSource, repository: MarketRepository, config: TrackerConfig) -> None:
        self.source = source
        self.repository = repository
        self.config = config

    async def check_resolutions(self, now: datetime | None = None) -> int:
        """Returns the number of markets whose outcome was written."""
        now = now or utcnow()
        markets = self.repository.get_pending_resolution_markets(now)
        if not markets:
            log.info("resolution_no_pending")
            return 0

        log.info("resolution_checking", markets=len(markets))
        updated = 0
        for market in markets:
            try:
                if await self.resolve(market, now):
                    updated += 1
            except Exception as e:
                log.error("resolution_market_failed", slug=market.slug, error=str(e))

        log.info("resolution_done", updated=updated)
        return updated

    async def resolve(self, market: HourlyMarket, now: datetime) -> bool:
        """Check one market against the venue. Returns True when its outcome was written."""
        try:
            record = await self.source.get_market_by_slug(market.slug)
        except DataSourceError as e:
            log.error("resolution_fetch_failed", slug=market.slug, error=str(e))
            return False
        except MalformedPayloadError as e:
            log.warning("resolution_unparseable", slug=market.slug, error=str(e))
            return False
        if record is None:
            log.warning("resolution_market_missing", slug=market.slug)
            return False

        if not record.closed:
            pending_min = (now - market.hour_end).total_seconds() / 60
            log.info("resolution_pending", slug=market.slug, minutes_since_end=round(pending_min, 1))
            return False

        try:
            outcome = determine_outcome(record, self.config.resolution_threshold)
        except MalformedPayloadError as e:
            log.warning("resolution_unparseable", slug=market.slug, error=str(e))
            return False
        if outcome is None:
            log.info("resolution_ambiguous", slug=market.slug, outcome_prices=record.outcome_prices)
            return False

        try:
            changed = await asyncio.to_thread(self.repository.update_outcome, market.id, outcome, now)
        except StorageError as e:
            log.error("resolution_persist_failed", slug=market.slug, error=str(e))
            return False
        if changed:
            log.info("resolution_resolved", slug=market.slug, outcome=outcome.value)
        return changed
