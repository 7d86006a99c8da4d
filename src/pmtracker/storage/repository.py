"""MarketRepository - the store shared by the tracking engines."""

from __future__ import annotations

import threading
from datetime import datetime
from pathlib import Path
from typing import Any

import duckdb
import structlog

from pmtracker.errors import StorageError
from pmtracker.models import HourlyMarket, Outcome, Snapshot
from pmtracker.storage import markets as market_store
from pmtracker.storage import snapshots as snapshot_store
from pmtracker.storage.db import get_connection, init_schema
from pmtracker.storage.export import export_snapshots_to_parquet
from pmtracker.timeutil import utcnow

log = structlog.get_logger(__name__)


class MarketRepository:
    """Owns the DuckDB connection. Writes go through a single lock; reads use their own
    cursor so overlapping jobs can read while another writes, and any method may be
    called from a worker thread. Durability comes from the DuckDB write-ahead log;
    close() checkpoints it."""

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = str(db_path)
        self._write_lock = threading.Lock()
        self._conn = None
        try:
            self._conn = get_connection(db_path)
            init_schema(self._conn)
        except (duckdb.Error, OSError) as e:
            raise StorageError(f"cannot open store at {db_path}: {e}") from e

    def __enter__(self) -> MarketRepository:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def cursor(self):
        """A new cursor on the shared connection; the caller closes it."""
        return self._conn.cursor()

    def _read(self, fn, *args):
        cursor = self._conn.cursor()
        try:
            return fn(cursor, *args)
        except duckdb.Error as e:
            raise StorageError(str(e)) from e
        finally:
            cursor.close()

    def _write(self, fn, *args):
        with self._write_lock:
            cursor = self._conn.cursor()
            try:
                return fn(cursor, *args)
            except duckdb.Error as e:
                raise StorageError(str(e)) from e
            finally:
                cursor.close()

    # Markets

    def upsert_market(self, market: HourlyMarket) -> None:
        self._write(market_store.upsert_market, market)

    def get_market_by_slug(self, slug: str) -> HourlyMarket | None:
        return self._read(market_store.get_market_by_slug, slug)

    def get_market_by_condition_id(self, condition_id: str) -> HourlyMarket | None:
        return self._read(market_store.get_market_by_condition_id, condition_id)

    def get_market_by_id(self, market_id: str) -> HourlyMarket | None:
        return self._read(market_store.get_market_by_id, market_id)

    def get_active_markets(self, now: datetime | None = None) -> list[HourlyMarket]:
        return self._read(market_store.get_active_markets, now or utcnow())

    def get_closing_markets(self, window_minutes: int, now: datetime | None = None) -> list[HourlyMarket]:
        return self._read(market_store.get_closing_markets, now or utcnow(), window_minutes)

    def get_pending_resolution_markets(self, now: datetime | None = None) -> list[HourlyMarket]:
        return self._read(market_store.get_pending_resolution_markets, now or utcnow())

    def update_outcome(self, market_id: str, outcome: Outcome, now: datetime | None = None) -> bool:
        """Write-once: returns False (and changes nothing) when the outcome was already set."""
        return self._write(market_store.update_outcome, market_id, outcome, now or utcnow())

    def list_markets(self, asset: str | None = None, limit: int | None = None) -> list[HourlyMarket]:
        return self._read(market_store.list_markets, asset, limit)

    def stats(self) -> dict[str, Any]:
        return self._read(market_store.market_stats)

    # Snapshots

    def insert_snapshot(self, snapshot: Snapshot) -> int:
        return self._write(snapshot_store.insert_snapshot, snapshot)

    def get_snapshots_by_market(self, market_id: str) -> list[Snapshot]:
        return self._read(snapshot_store.get_snapshots_by_market, market_id)

    def export_snapshots(self, output_path: str | Path, asset: str | None = None) -> int:
        return self._read(export_snapshots_to_parquet, output_path, asset)

    def close(self) -> None:
        if self._conn is None:
            return
        with self._write_lock:
            try:
                self._conn.execute("CHECKPOINT")
            except duckdb.Error as e:
                log.warning("checkpoint_failed", error=str(e))
            self._conn.close()
            self._conn = None
