"""DuckDB persistence for markets and snapshots."""

from pmtracker.storage.repository import MarketRepository

__all__ = ["MarketRepository"]
