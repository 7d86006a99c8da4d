"""DuckDB connection and schema init."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import duckdb

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

# Instants are ms epoch (UTC) BIGINTs.
SCHEMA_SQL = """
CREATE SEQUENCE IF NOT EXISTS snapshot_seq START 1;

-- One row per hourly market. Rows are never updated once inserted
CREATE TABLE IF NOT EXISTS markets (
    id                  VARCHAR PRIMARY KEY,
    condition_id        VARCHAR NOT NULL UNIQUE,
    token_id_up         VARCHAR NOT NULL,
    token_id_down       VARCHAR NOT NULL,
    asset               VARCHAR NOT NULL,
    question            VARCHAR NOT NULL,
    event_start_time    BIGINT NOT NULL,
    hour_start          BIGINT NOT NULL,
    hour_end            BIGINT NOT NULL,
    slug                VARCHAR NOT NULL,
    series_slug         VARCHAR NOT NULL,
    created_at          BIGINT NOT NULL,
    updated_at          BIGINT NOT NULL
);

-- Settled outcome, at most one row per market (write-once)
CREATE TABLE IF NOT EXISTS market_outcomes (
    market_id           VARCHAR PRIMARY KEY REFERENCES markets(id),
    outcome             VARCHAR NOT NULL,
    resolved_at         BIGINT NOT NULL
);

-- Price observations (append-only)
CREATE TABLE IF NOT EXISTS snapshots (
    id                  BIGINT PRIMARY KEY DEFAULT nextval('snapshot_seq'),
    market_id           VARCHAR NOT NULL REFERENCES markets(id),
    fetched_at          BIGINT NOT NULL,
    minute_of_hour      INTEGER NOT NULL,
    up_price            DOUBLE NOT NULL,
    down_price          DOUBLE NOT NULL,
    up_bid              DOUBLE,
    up_ask              DOUBLE,
    spread              DOUBLE,
    midpoint            DOUBLE,
    last_trade_price    DOUBLE,
    volume_24h          DOUBLE
);

CREATE INDEX IF NOT EXISTS idx_markets_slug ON markets(slug);
CREATE INDEX IF NOT EXISTS idx_markets_asset ON markets(asset);
CREATE INDEX IF NOT EXISTS idx_markets_event_start ON markets(event_start_time);
CREATE INDEX IF NOT EXISTS idx_snapshots_market_id ON snapshots(market_id);
CREATE INDEX IF NOT EXISTS idx_snapshots_fetched ON snapshots(fetched_at);
"""


def get_connection(db_path: str | Path, read_only: bool = False) -> DuckDBPyConnection:
    """Return a DuckDB connection. Caller must close or use as context manager.
    Use read_only=True when another process may be writing (e.g. pmtracker track start)."""
    path = Path(db_path)
    if not read_only and str(db_path) != ":memory:":
        path.parent.mkdir(parents=True, exist_ok=True)
    return duckdb.connect(str(db_path), read_only=read_only)


def init_schema(conn: DuckDBPyConnection) -> None:
    """Create tables, sequences and indexes if they do not exist."""
    for stmt in SCHEMA_SQL.split(";"):
        stmt = stmt.strip()
        if stmt:
            try:
                conn.execute(stmt)
            except duckdb.Error as e:
                if "already exists" not in str(e).lower():
                    raise
