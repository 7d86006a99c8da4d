"""Discovery engine - find newly listed hourly markets and persist them once."""

from __future__ import annotations

import asyncio
import uuid
from datetime import datetime, timedelta

import structlog

from pmtracker.config import TrackerConfig
from pmtracker.errors import MalformedPayloadError
from pmtracker.ingestion.base import MarketDataSource
from pmtracker.ingestion.polymarket.gamma import parse_token_ids
from pmtracker.models import GammaMarket, HourlyMarket
from pmtracker.storage import MarketRepository
from pmtracker.timeutil import utcnow
from pmtracker.tracking.slug import upcoming_slugs

log = structlog.get_logger(__name__)


def build_market(asset: str, record: GammaMarket, now: datetime) -> HourlyMarket:
    """New unresolved market from a venue record. Raises MalformedPayloadError."""
    up, down = parse_token_ids(record)
    if not record.condition_id:
        raise MalformedPayloadError("missing conditionId")
    if record.event_start_time is None:
        raise MalformedPayloadError("missing eventStartTime")
    hour_end = record.end_date or record.event_start_time + timedelta(hours=1)
    return HourlyMarket(
        id=str(uuid.uuid4()),
        condition_id=record.condition_id,
        token_id_up=up,
        token_id_down=down,
        asset=asset,
        question=record.question,
        event_start_time=record.event_start_time,
        hour_start=record.event_start_time,
        hour_end=hour_end,
        outcome=None,
        slug=record.slug,
        series_slug=record.series_slug,
        created_at=now,
        updated_at=now,
    )


class DiscoveryEngine:
    """Checks the current and next hour's slugs per asset. Known slugs never hit the venue."""

    def __init__(self, source: MarketDataSource, repository: MarketRepository, config: TrackerConfig) -> None:
        self.source = source
        self.repository = repository
        self.config = config

    async def discover_new_markets(self, now: datetime | None = None) -> list[HourlyMarket]:
        now = now or utcnow()
        new_markets: list[HourlyMarket] = []
        for asset_cfg in self.config.assets:
            try:
                new_markets.extend(await self.discover_asset(asset_cfg.asset, now=now))
            except Exception as e:
                log.error("discovery_asset_failed", asset=asset_cfg.asset, error=str(e))
        log.info("discovery_done", new_markets=len(new_markets))
        return new_markets

    async def discover_asset(self, asset: str, now: datetime | None = None) -> list[HourlyMarket]:
        now = now or utcnow()
        asset_cfg = self.config.asset_config(asset)
        slugs = upcoming_slugs(asset_cfg.slug_prefix, self.config.discovery_hours_ahead, now=now)
        new_markets: list[HourlyMarket] = []

        for slug in slugs:
            try:
                if self.repository.get_market_by_slug(slug) is not None:
                    log.debug("discovery_known", slug=slug)
                    continue

                record = await self.source.get_market_by_slug(slug)
                if record is None:
                    log.debug("discovery_not_listed", slug=slug)
                    continue
                if not record.slug:
                    record = record.model_copy(update={"slug": slug})

                try:
                    market = build_market(asset, record, now)
                except MalformedPayloadError as e:
                    log.warning("discovery_malformed_market", slug=slug, error=str(e))
                    continue

                await asyncio.to_thread(self.repository.upsert_market, market)
                new_markets.append(market)
                log.debug("discovery_new_market", asset=asset, slug=slug)
            except Exception as e:
                log.error("discovery_slug_failed", slug=slug, error=str(e))

        if new_markets:
            log.info("discovery_asset_done", asset=asset, new_markets=len(new_markets))
        return new_markets
