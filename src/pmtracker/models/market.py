"""HourlyMarket - one hourly Up/Down contract for one asset."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict


class Outcome(str, Enum):
    UP = "UP"
    DOWN = "DOWN"


class MarketStatus(str, Enum):
    """Derived lifecycle state; computed from timestamps and outcome, never stored."""

    DISCOVERED = "DISCOVERED"
    ACTIVE = "ACTIVE"
    AWAITING_CLOSE = "AWAITING_CLOSE"
    RESOLVED = "RESOLVED"


class HourlyMarket(BaseModel):
    """Canonical tracked market. Immutable except for outcome and updated_at."""

    model_config = ConfigDict(frozen=True)

    id: str
    condition_id: str
    token_id_up: str
    token_id_down: str
    asset: str
    question: str = ""
    event_start_time: datetime
    hour_start: datetime
    hour_end: datetime
    outcome: Outcome | None = None
    slug: str
    series_slug: str = ""
    created_at: datetime
    updated_at: datetime
