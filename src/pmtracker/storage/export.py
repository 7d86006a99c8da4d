"""Export snapshots joined with their market to Parquet."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

_EXPORT_SELECT = """
SELECT
    m.slug, m.asset, m.condition_id, o.outcome,
    epoch_ms(m.event_start_time) AS event_start_time,
    s.id AS snapshot_id, epoch_ms(s.fetched_at) AS fetched_at, s.minute_of_hour,
    s.up_price, s.down_price, s.up_bid, s.up_ask, s.spread, s.midpoint,
    s.last_trade_price, s.volume_24h
FROM snapshots s
JOIN markets m ON m.id = s.market_id
LEFT JOIN market_outcomes o ON o.market_id = m.id
"""


def export_snapshots_to_parquet(
    conn: DuckDBPyConnection,
    output_path: str | Path,
    asset: str | None = None,
) -> int:
    """Export snapshots (with market columns) to a Parquet file. Optional filter by asset. Returns row count."""
    path = Path(output_path).resolve()
    path.parent.mkdir(parents=True, exist_ok=True)
    path_str = str(path).replace("'", "''")
    if asset:
        conn.execute(
            f"COPY ({_EXPORT_SELECT} WHERE m.asset = ? ORDER BY s.id) TO '{path_str}' (FORMAT PARQUET)",
            [asset],
        )
        count = conn.execute(
            "SELECT COUNT(*) FROM snapshots s JOIN markets m ON m.id = s.market_id WHERE m.asset = ?",
            [asset],
        ).fetchone()[0]
    else:
        conn.execute(f"COPY ({_EXPORT_SELECT} ORDER BY s.id) TO '{path_str}' (FORMAT PARQUET)")
        count = conn.execute("SELECT COUNT(*) FROM snapshots").fetchone()[0]
    return count
