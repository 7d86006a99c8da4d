"""Tracker orchestrator - wires store, data source, engines and the scheduler."""

from __future__ import annotations

import asyncio
import time
from typing import Any

import structlog

from pmtracker.config import TrackerConfig
from pmtracker.ingestion.base import MarketDataSource
from pmtracker.storage import MarketRepository
from pmtracker.tracking.collector import SnapshotCollector
from pmtracker.tracking.discovery import DiscoveryEngine
from pmtracker.tracking.resolution import ResolutionEngine
from pmtracker.tracking.scheduler import ScheduledJob, Scheduler

log = structlog.get_logger(__name__)


class Tracker:
    """Runs discovery, coarse fetch, closing-soon fetch and resolution on their cadences."""

    def __init__(
        self,
        repository: MarketRepository,
        source: MarketDataSource,
        config: TrackerConfig,
    ) -> None:
        self.repository = repository
        self.source = source
        self.config = config
        self.discovery = DiscoveryEngine(source, repository, config)
        self.collector = SnapshotCollector(source, repository, config)
        self.resolution = ResolutionEngine(source, repository, config)
        self.scheduler = Scheduler(self.build_jobs())
        self._start_ts: float | None = None

    def build_jobs(self) -> list[ScheduledJob]:
        schedules = self.config.schedules
        return [
            ScheduledJob("discovery", schedules["discovery"], self.discovery.discover_new_markets),
            ScheduledJob("fetch", schedules["fetch"], self.collector.collect_active),
            ScheduledJob(
                "closing",
                schedules["closing"],
                lambda: self.collector.collect_closing_soon(self.config.closing_window_minutes),
            ),
            ScheduledJob("resolution", schedules["resolution"], self.resolution.check_resolutions),
        ]

    async def run(self, stop_event: asyncio.Event | None = None) -> None:
        """Initial discovery and fetch, then the scheduler until stop_event is set."""
        self._start_ts = time.time()
        log.info(
            "tracker_starting",
            db=self.repository.db_path,
            assets=[a.asset for a in self.config.assets],
        )
        for job in self.scheduler.jobs:
            if job.name in ("discovery", "fetch"):
                await self.scheduler.run_job(job)

        watcher = None
        if stop_event is not None:
            async def watch() -> None:
                await stop_event.wait()
                self.scheduler.stop()

            watcher = asyncio.create_task(watch())
        try:
            await self.scheduler.run()
        finally:
            if watcher is not None:
                watcher.cancel()
        log.info("tracker_stopped", runs=self.scheduler.run_counts)

    def stop(self) -> None:
        self.scheduler.stop()

    def get_status(self) -> dict[str, Any]:
        """Uptime and per-job run counts."""
        elapsed = (time.time() - self._start_ts) if self._start_ts else 0
        return {
            "elapsed_sec": round(elapsed, 1),
            "runs": dict(self.scheduler.run_counts),
        }
