"""Polymarket CLOB public REST endpoints - prices, midpoint, book, price history."""

from __future__ import annotations

from typing import Any

import httpx

from pmtracker.models import OrderBookSummary, PricePoint, PriceLevel

CLOB_API_BASE = "https://clob.polymarket.com"


def _levels(raw: list[dict[str, Any]] | None, descending: bool) -> list[PriceLevel]:
    levels = []
    for row in raw or []:
        try:
            levels.append(PriceLevel(price=float(row["price"]), size=float(row.get("size") or 0)))
        except (KeyError, TypeError, ValueError):
            continue
    levels.sort(key=lambda lvl: lvl.price, reverse=descending)
    return levels


def parse_order_book(raw: dict[str, Any], token_id: str = "") -> OrderBookSummary:
    """Build a best-first book: bids highest first, asks lowest first."""
    return OrderBookSummary(
        asset_id=str(raw.get("asset_id") or token_id),
        bids=_levels(raw.get("bids"), descending=True),
        asks=_levels(raw.get("asks"), descending=False),
    )


async def fetch_prices(
    client: httpx.AsyncClient,
    token_ids: list[str],
    side: str = "BUY",
    base_url: str = CLOB_API_BASE,
) -> dict[str, float]:
    """POST /prices. Response: {token_id: {"BUY": "0.51", "SELL": "0.49"}}.
    Tokens without a price for the side are left out of the mapping."""
    body = [{"token_id": tid, "side": side} for tid in token_ids]
    resp = await client.post(f"{base_url.rstrip('/')}/prices", json=body)
    resp.raise_for_status()
    data = resp.json()
    prices: dict[str, float] = {}
    if not isinstance(data, dict):
        return prices
    for tid in token_ids:
        entry = data.get(tid)
        if not isinstance(entry, dict):
            continue
        value = entry.get(side)
        if value in (None, ""):
            continue
        try:
            prices[tid] = float(value)
        except (TypeError, ValueError):
            continue
    return prices


async def fetch_midpoint(
    client: httpx.AsyncClient,
    token_id: str,
    base_url: str = CLOB_API_BASE,
) -> float | None:
    """GET /midpoint. Response: {"mid": "0.505"}."""
    resp = await client.get(f"{base_url.rstrip('/')}/midpoint", params={"token_id": token_id})
    resp.raise_for_status()
    data = resp.json()
    mid = data.get("mid") if isinstance(data, dict) else None
    if mid in (None, ""):
        return None
    try:
        return float(mid)
    except (TypeError, ValueError):
        return None


async def fetch_order_book(
    client: httpx.AsyncClient,
    token_id: str,
    base_url: str = CLOB_API_BASE,
) -> OrderBookSummary:
    """GET /book."""
    resp = await client.get(f"{base_url.rstrip('/')}/book", params={"token_id": token_id})
    resp.raise_for_status()
    data = resp.json()
    if not isinstance(data, dict):
        return OrderBookSummary(asset_id=token_id)
    return parse_order_book(data, token_id)


async def fetch_price_history(
    client: httpx.AsyncClient,
    token_id: str,
    fidelity: int = 60,
    base_url: str = CLOB_API_BASE,
) -> list[PricePoint]:
    """GET /prices-history over the token's full life at `fidelity` minutes resolution."""
    params = {"market": token_id, "interval": "max", "fidelity": fidelity}
    resp = await client.get(f"{base_url.rstrip('/')}/prices-history", params=params)
    resp.raise_for_status()
    data = resp.json()
    history = data.get("history", []) if isinstance(data, dict) else data
    points = []
    for row in history or []:
        try:
            points.append(PricePoint(t=int(row["t"]), p=float(row["p"])))
        except (KeyError, TypeError, ValueError):
            continue
    return points
