"""Market persistence. Market rows are immutable; the outcome lives in market_outcomes."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

import duckdb

from pmtracker.errors import StorageError
from pmtracker.models import HourlyMarket, Outcome
from pmtracker.timeutil import from_ms, to_ms

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

HOUR_MS = 3_600_000

MARKET_COLUMNS = [
    "id",
    "condition_id",
    "token_id_up",
    "token_id_down",
    "asset",
    "question",
    "event_start_time",
    "hour_start",
    "hour_end",
    "outcome",
    "slug",
    "series_slug",
    "created_at",
    "updated_at",
]
_INSERT_COLUMNS = [c for c in MARKET_COLUMNS if c != "outcome"]
_SELECT = """
SELECT m.id, m.condition_id, m.token_id_up, m.token_id_down, m.asset, m.question,
       m.event_start_time, m.hour_start, m.hour_end, o.outcome, m.slug, m.series_slug,
       m.created_at, COALESCE(o.resolved_at, m.updated_at)
FROM markets m
LEFT JOIN market_outcomes o ON o.market_id = m.id
"""
_TIME_COLUMNS = {"event_start_time", "hour_start", "hour_end", "created_at", "updated_at"}


def row_to_market(row: tuple[Any, ...]) -> HourlyMarket:
    data = dict(zip(MARKET_COLUMNS, row))
    for col in _TIME_COLUMNS:
        data[col] = from_ms(data[col])
    data["outcome"] = Outcome(data["outcome"]) if data["outcome"] else None
    return HourlyMarket(**data)


def _insert_outcome(conn: DuckDBPyConnection, market_id: str, outcome: Outcome, now: datetime) -> bool:
    """Insert the outcome unless one exists. Callers hold the store's write lock."""
    existing = conn.execute("SELECT 1 FROM market_outcomes WHERE market_id = ?", [market_id]).fetchone()
    if existing is not None:
        return False
    conn.execute(
        "INSERT INTO market_outcomes (market_id, outcome, resolved_at) VALUES (?, ?, ?)",
        [market_id, outcome.value, to_ms(now)],
    )
    return True


def upsert_market(conn: DuckDBPyConnection, market: HourlyMarket) -> None:
    """Insert a market. A known id only gains an outcome if it has none yet: an existing
    outcome is never reverted. A different market reusing a condition id raises StorageError."""
    existing = conn.execute("SELECT 1 FROM markets WHERE id = ?", [market.id]).fetchone()
    if existing is None:
        try:
            conn.execute(
                f"INSERT INTO markets ({', '.join(_INSERT_COLUMNS)}) "
                f"VALUES ({', '.join('?' * len(_INSERT_COLUMNS))})",
                [
                    market.id,
                    market.condition_id,
                    market.token_id_up,
                    market.token_id_down,
                    market.asset,
                    market.question,
                    to_ms(market.event_start_time),
                    to_ms(market.hour_start),
                    to_ms(market.hour_end),
                    market.slug,
                    market.series_slug,
                    to_ms(market.created_at),
                    to_ms(market.updated_at),
                ],
            )
        except duckdb.ConstraintException as e:
            raise StorageError(f"cannot persist market {market.slug}: {e}") from e
    if market.outcome is not None:
        _insert_outcome(conn, market.id, market.outcome, market.updated_at)


def get_market_by_slug(conn: DuckDBPyConnection, slug: str) -> HourlyMarket | None:
    row = conn.execute(f"{_SELECT} WHERE m.slug = ? LIMIT 1", [slug]).fetchone()
    return row_to_market(row) if row else None


def get_market_by_condition_id(conn: DuckDBPyConnection, condition_id: str) -> HourlyMarket | None:
    row = conn.execute(f"{_SELECT} WHERE m.condition_id = ?", [condition_id]).fetchone()
    return row_to_market(row) if row else None


def get_market_by_id(conn: DuckDBPyConnection, market_id: str) -> HourlyMarket | None:
    row = conn.execute(f"{_SELECT} WHERE m.id = ?", [market_id]).fetchone()
    return row_to_market(row) if row else None


def get_active_markets(conn: DuckDBPyConnection, now: datetime) -> list[HourlyMarket]:
    """Unresolved markets whose hour window [event_start, event_start + 1h) contains now."""
    now_ms = to_ms(now)
    rows = conn.execute(
        f"""
        {_SELECT}
        WHERE o.outcome IS NULL
          AND m.event_start_time <= ?
          AND m.event_start_time + {HOUR_MS} > ?
        ORDER BY m.event_start_time, m.asset
        """,
        [now_ms, now_ms],
    ).fetchall()
    return [row_to_market(r) for r in rows]


def get_closing_markets(conn: DuckDBPyConnection, now: datetime, window_minutes: int) -> list[HourlyMarket]:
    """Unresolved markets whose hour ends within window_minutes of now."""
    now_ms = to_ms(now)
    rows = conn.execute(
        f"""
        {_SELECT}
        WHERE o.outcome IS NULL
          AND m.hour_end > ?
          AND m.hour_end <= ?
        ORDER BY m.hour_end, m.asset
        """,
        [now_ms, now_ms + window_minutes * 60_000],
    ).fetchall()
    return [row_to_market(r) for r in rows]


def get_pending_resolution_markets(conn: DuckDBPyConnection, now: datetime) -> list[HourlyMarket]:
    """Unresolved markets whose hour has ended."""
    rows = conn.execute(
        f"{_SELECT} WHERE o.outcome IS NULL AND m.hour_end <= ? ORDER BY m.hour_end, m.asset",
        [to_ms(now)],
    ).fetchall()
    return [row_to_market(r) for r in rows]


def update_outcome(conn: DuckDBPyConnection, market_id: str, outcome: Outcome, now: datetime) -> bool:
    """Set outcome if still unset. Returns True when it was written."""
    return _insert_outcome(conn, market_id, outcome, now)


def list_markets(
    conn: DuckDBPyConnection,
    asset: str | None = None,
    limit: int | None = None,
) -> list[HourlyMarket]:
    """Markets newest first, optionally for one asset."""
    sql = _SELECT
    params: list[Any] = []
    if asset:
        sql += " WHERE m.asset = ?"
        params.append(asset)
    sql += " ORDER BY m.event_start_time DESC, m.asset"
    if limit:
        sql += " LIMIT ?"
        params.append(limit)
    return [row_to_market(r) for r in conn.execute(sql, params).fetchall()]


def market_stats(conn: DuckDBPyConnection) -> dict[str, Any]:
    """Market counts per asset and outcome, plus snapshot totals."""
    by_asset = conn.execute(
        """
        SELECT m.asset, COALESCE(o.outcome, 'UNSET') AS outcome, COUNT(*)
        FROM markets m
        LEFT JOIN market_outcomes o ON o.market_id = m.id
        GROUP BY 1, 2 ORDER BY 1, 2
        """
    ).fetchall()
    total_markets = conn.execute("SELECT COUNT(*) FROM markets").fetchone()[0]
    total_snapshots = conn.execute("SELECT COUNT(*) FROM snapshots").fetchone()[0]
    return {
        "total_markets": total_markets,
        "total_snapshots": total_snapshots,
        "by_asset": [{"asset": r[0], "outcome": r[1], "count": r[2]} for r in by_asset],
    }
