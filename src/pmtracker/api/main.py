"""FastAPI read-only view over tracked markets and snapshots."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager, contextmanager
from pathlib import Path
from typing import Iterator

from fastapi import FastAPI, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from pmtracker.api.schemas import (
    HealthResponse,
    MarketListItem,
    MarketsListResponse,
    SnapshotsResponse,
    StatsResponse,
)
from pmtracker.config import get_settings
from pmtracker.storage import markets as market_store
from pmtracker.storage import snapshots as snapshot_store
from pmtracker.storage.db import get_connection
from pmtracker.storage.repository import MarketRepository
from pmtracker.timeutil import utcnow
from pmtracker.tracking.lifecycle import classify

# Set by run_api() so lifespan can start the tracker in the same process.
_run_with_tracker = False
_config_profile: str | None = None
_config_dir: Path | None = None
_repository: MarketRepository | None = None


@contextmanager
def _reader() -> Iterator:
    """Cursor on the in-process tracker's store, else a read-only connection."""
    if _repository is not None:
        cursor = _repository.cursor()
        try:
            yield cursor
        finally:
            cursor.close()
        return
    settings = get_settings(_config_profile, _config_dir)
    conn = get_connection(settings.db_path, read_only=True)
    try:
        yield conn
    finally:
        conn.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _repository
    settings = get_settings(_config_profile, _config_dir)
    # Make sure the schema exists before read-only connections are used.
    MarketRepository(settings.db_path).close()

    tracker_task = None
    tracker_stop = None
    source = None
    if _run_with_tracker:
        from pmtracker.cli.common import make_source
        from pmtracker.tracking.tracker import Tracker

        _repository = MarketRepository(settings.db_path)
        source = make_source(settings)
        tracker = Tracker(_repository, source, settings.tracker_config())
        tracker_stop = asyncio.Event()
        tracker_task = asyncio.create_task(tracker.run(stop_event=tracker_stop))

    yield

    if tracker_task is not None and tracker_stop is not None:
        tracker_stop.set()
        await tracker_task
    if source is not None:
        await source.aclose()
    if _repository is not None:
        _repository.close()
        _repository = None


app = FastAPI(title="pm-tracker API", version="0.1.0", lifespan=lifespan)
app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])


def _error_json(code: str, message: str, status_code: int = 404) -> JSONResponse:
    """Return consistent error JSON: { detail, code }."""
    return JSONResponse(
        status_code=status_code,
        content={"detail": message, "code": code},
    )


@app.get("/health", response_model=HealthResponse)
def health() -> HealthResponse:
    return HealthResponse(status="ok")


@app.get("/markets", response_model=MarketsListResponse)
def markets_list(
    asset: str | None = None,
    limit: int = Query(100, ge=1, le=1000),
) -> MarketsListResponse:
    """Markets newest first with their derived status."""
    now = utcnow()
    with _reader() as conn:
        rows = market_store.list_markets(conn, asset=asset.upper() if asset else None, limit=limit)
    items = [MarketListItem.from_market(m, classify(m, now)) for m in rows]
    return MarketsListResponse(markets=items, total=len(items))


@app.get("/markets/{slug}", response_model=MarketListItem)
def market_detail(slug: str):
    with _reader() as conn:
        market = market_store.get_market_by_slug(conn, slug)
    if market is None:
        return _error_json("not_found", f"Unknown market: {slug}")
    return MarketListItem.from_market(market, classify(market, utcnow()))


@app.get("/markets/{slug}/snapshots", response_model=SnapshotsResponse)
def market_snapshots(slug: str):
    with _reader() as conn:
        market = market_store.get_market_by_slug(conn, slug)
        if market is None:
            return _error_json("not_found", f"Unknown market: {slug}")
        rows = snapshot_store.get_snapshots_by_market(conn, market.id)
    return SnapshotsResponse(
        market=MarketListItem.from_market(market, classify(market, utcnow())),
        snapshots=rows,
    )


@app.get("/stats", response_model=StatsResponse)
def stats() -> StatsResponse:
    with _reader() as conn:
        return StatsResponse(**market_store.market_stats(conn))


def run_api(
    host: str = "127.0.0.1",
    port: int = 8000,
    with_tracker: bool = False,
    profile: str | None = None,
    config_dir: Path | None = None,
) -> None:
    global _run_with_tracker, _config_profile, _config_dir
    _run_with_tracker = with_tracker
    _config_profile = profile
    _config_dir = config_dir
    import uvicorn

    uvicorn.run("pmtracker.api.main:app", host=host, port=port, reload=False)
