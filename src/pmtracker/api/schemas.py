"""Pydantic schemas for API responses."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from pmtracker.models import HourlyMarket, MarketStatus, Outcome, Snapshot


# --- Health ---
class HealthResponse(BaseModel):
    status: str = "ok"


# --- Error (consistent shape for 4xx/5xx) ---
class ErrorResponse(BaseModel):
    detail: str = Field(..., description="Human-readable message")
    code: str | None = Field(None, description="Machine-readable code, e.g. not_found")


# --- Markets ---
class MarketListItem(BaseModel):
    id: str
    slug: str
    asset: str
    condition_id: str
    question: str
    event_start_time: datetime
    hour_end: datetime
    outcome: Outcome | None = None
    status: MarketStatus

    @classmethod
    def from_market(cls, market: HourlyMarket, status: MarketStatus) -> MarketListItem:
        return cls(
            id=market.id,
            slug=market.slug,
            asset=market.asset,
            condition_id=market.condition_id,
            question=market.question,
            event_start_time=market.event_start_time,
            hour_end=market.hour_end,
            outcome=market.outcome,
            status=status,
        )


class MarketsListResponse(BaseModel):
    markets: list[MarketListItem]
    total: int


class SnapshotsResponse(BaseModel):
    market: MarketListItem
    snapshots: list[Snapshot]


# --- Stats ---
class StatsResponse(BaseModel):
    total_markets: int
    total_snapshots: int
    by_asset: list[dict[str, str | int]]
