"""Persist price snapshots (append-only)."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pmtracker.models import Snapshot
from pmtracker.timeutil import from_ms, to_ms

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

SNAPSHOT_COLUMNS = [
    "id",
    "market_id",
    "fetched_at",
    "minute_of_hour",
    "up_price",
    "down_price",
    "up_bid",
    "up_ask",
    "spread",
    "midpoint",
    "last_trade_price",
    "volume_24h",
]


def row_to_snapshot(row: tuple[Any, ...]) -> Snapshot:
    data = dict(zip(SNAPSHOT_COLUMNS, row))
    data["fetched_at"] = from_ms(data["fetched_at"])
    return Snapshot(**data)


def insert_snapshot(conn: DuckDBPyConnection, snapshot: Snapshot) -> int:
    """Append one snapshots row and return its id. Optional fields are stored as given (None stays NULL)."""
    row = conn.execute(
        """
        INSERT INTO snapshots (
            market_id, fetched_at, minute_of_hour, up_price, down_price,
            up_bid, up_ask, spread, midpoint, last_trade_price, volume_24h
        )
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        RETURNING id
        """,
        [
            snapshot.market_id,
            to_ms(snapshot.fetched_at),
            snapshot.minute_of_hour,
            snapshot.up_price,
            snapshot.down_price,
            snapshot.up_bid,
            snapshot.up_ask,
            snapshot.spread,
            snapshot.midpoint,
            snapshot.last_trade_price,
            snapshot.volume_24h,
        ],
    ).fetchone()
    return int(row[0])


def get_snapshots_by_market(conn: DuckDBPyConnection, market_id: str) -> list[Snapshot]:
    """All snapshots of one market in capture order."""
    rows = conn.execute(
        f"SELECT {', '.join(SNAPSHOT_COLUMNS)} FROM snapshots WHERE market_id = ? ORDER BY fetched_at, id",
        [market_id],
    ).fetchall()
    return [row_to_snapshot(r) for r in rows]
