"""Polymarket Gamma API client - market lookup by slug and series search."""

from __future__ import annotations

import json
from typing import Any
from urllib.parse import quote

import httpx
import structlog
from pydantic import ValidationError

from pmtracker.errors import MalformedPayloadError
from pmtracker.models import GammaMarket
from pmtracker.timeutil import parse_iso

log = structlog.get_logger(__name__)

GAMMA_API_BASE = "https://gamma-api.polymarket.com"


def _float_or_none(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _json_list(value: Any) -> list[Any]:
    """Gamma encodes list fields either as JSON strings or as real lists."""
    if isinstance(value, list):
        return value
    if not value:
        return []
    try:
        parsed = json.loads(value)
    except (json.JSONDecodeError, TypeError) as e:
        raise MalformedPayloadError(f"not a JSON list: {value!r}") from e
    if not isinstance(parsed, list):
        raise MalformedPayloadError(f"not a JSON list: {value!r}")
    return parsed


def _series_slug(raw: dict[str, Any]) -> str:
    events = raw.get("events") or []
    if events and isinstance(events[0], dict) and events[0].get("seriesSlug"):
        return str(events[0]["seriesSlug"])
    return str(raw.get("seriesSlug") or "")


def parse_gamma_market(raw: Any) -> GammaMarket:
    """Convert a Gamma API market object to GammaMarket. Raises MalformedPayloadError."""
    if not isinstance(raw, dict):
        raise MalformedPayloadError(f"market record is not an object: {raw!r}")
    try:
        return _build_gamma_market(raw)
    except (AttributeError, TypeError, ValueError, ValidationError) as e:
        raise MalformedPayloadError(f"malformed market record {raw.get('slug')!r}: {e}") from e


def _build_gamma_market(raw: dict[str, Any]) -> GammaMarket:
    start_date = parse_iso(raw.get("startDate"))
    return GammaMarket(
        id=str(raw.get("id", "")),
        question=raw.get("question") or "",
        condition_id=str(raw.get("conditionId") or ""),
        slug=raw.get("slug") or "",
        outcomes=raw.get("outcomes"),
        outcome_prices=raw.get("outcomePrices"),
        clob_token_ids=raw.get("clobTokenIds"),
        start_date=start_date,
        end_date=parse_iso(raw.get("endDate")),
        event_start_time=parse_iso(raw.get("eventStartTime")) or start_date,
        active=bool(raw.get("active")),
        closed=bool(raw.get("closed")),
        volume=_float_or_none(raw.get("volume")) or 0.0,
        liquidity=_float_or_none(raw.get("liquidity")) or 0.0,
        series_slug=_series_slug(raw),
        best_bid=_float_or_none(raw.get("bestBid")),
        best_ask=_float_or_none(raw.get("bestAsk")),
        spread=_float_or_none(raw.get("spread")),
        last_trade_price=_float_or_none(raw.get("lastTradePrice")),
        volume_24hr=_float_or_none(raw.get("volume24hr")),
        accepting_orders=bool(raw.get("acceptingOrders")),
        enable_order_book=bool(raw.get("enableOrderBook")),
    )


def parse_token_ids(market: GammaMarket) -> tuple[str, str]:
    """Return (up, down) token ids. First element is Up, second is Down."""
    ids = _json_list(market.clob_token_ids)
    if len(ids) < 2:
        raise MalformedPayloadError(f"expected 2 token ids, got {len(ids)}")
    return str(ids[0]), str(ids[1])


def parse_outcome_prices(market: GammaMarket) -> tuple[float, float]:
    """Return (up, down) settlement prices from outcomePrices."""
    prices = _json_list(market.outcome_prices)
    if len(prices) < 2:
        raise MalformedPayloadError(f"expected 2 outcome prices, got {len(prices)}")
    try:
        return float(prices[0]), float(prices[1])
    except (TypeError, ValueError) as e:
        raise MalformedPayloadError(f"unparseable outcome prices: {prices!r}") from e


async def fetch_market_by_slug(
    client: httpx.AsyncClient,
    slug: str,
    base_url: str = GAMMA_API_BASE,
) -> GammaMarket | None:
    """GET /markets/slug/{slug}. A 404 means the market is not listed (yet)."""
    url = f"{base_url.rstrip('/')}/markets/slug/{quote(slug, safe='')}"
    resp = await client.get(url)
    if resp.status_code == 404:
        return None
    resp.raise_for_status()
    data = resp.json()
    if not data:
        return None
    if isinstance(data, list):
        data = data[0]
    return parse_gamma_market(data)


async def search_markets(
    client: httpx.AsyncClient,
    series_slug: str,
    base_url: str = GAMMA_API_BASE,
    limit: int = 50,
) -> list[GammaMarket]:
    """List open markets of a series."""
    url = f"{base_url.rstrip('/')}/markets"
    params = {
        "series_slug": series_slug,
        "active": "true",
        "closed": "false",
        "limit": limit,
    }
    resp = await client.get(url, params=params)
    resp.raise_for_status()
    data = resp.json()
    if not isinstance(data, list):
        return []
    markets = []
    for row in data:
        try:
            markets.append(parse_gamma_market(row))
        except MalformedPayloadError as e:
            log.warning("skip_market", error=str(e))
    return markets
