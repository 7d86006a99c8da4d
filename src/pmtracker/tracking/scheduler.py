"""Clock-aligned periodic jobs on one asyncio loop."""

from __future__ import annotations

import asyncio
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

import structlog

from pmtracker.config import JobSchedule
from pmtracker.timeutil import utcnow

log = structlog.get_logger(__name__)


def next_fire_time(now: datetime, schedule: JobSchedule) -> datetime:
    """First instant strictly after now that is a multiple of interval_sec plus offset_sec."""
    interval = max(1, schedule.interval_sec)
    ts = now.timestamp()
    k = math.floor((ts - schedule.offset_sec) / interval) + 1
    return datetime.fromtimestamp(k * interval + schedule.offset_sec, tz=timezone.utc)


@dataclass
class ScheduledJob:
    name: str
    schedule: JobSchedule
    run: Callable[[], Awaitable[Any]]


class Scheduler:
    """Runs each job on its own cadence. A job's next fire is computed only after its
    current run returns, so a job never overlaps itself; different jobs may overlap."""

    def __init__(
        self,
        jobs: list[ScheduledJob],
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.jobs = jobs
        self.clock = clock
        self._stop = asyncio.Event()
        self.run_counts: dict[str, int] = {job.name: 0 for job in jobs}

    def stop(self) -> None:
        self._stop.set()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    async def run(self) -> None:
        """Run all job loops until stop() is called."""
        log.info("scheduler_started", jobs=[job.name for job in self.jobs])
        await asyncio.gather(*(self._loop(job) for job in self.jobs))
        log.info("scheduler_stopped")

    async def run_job(self, job: ScheduledJob) -> None:
        """Run one job; failures are logged and never propagate."""
        try:
            await job.run()
        except Exception:
            log.exception("job_failed", job=job.name)
        finally:
            self.run_counts[job.name] += 1

    async def _loop(self, job: ScheduledJob) -> None:
        while not self._stop.is_set():
            fire_at = next_fire_time(self.clock(), job.schedule)
            delay = (fire_at - self.clock()).total_seconds()
            if await self._wait(delay):
                break
            await self.run_job(job)

    async def _wait(self, delay: float) -> bool:
        """Sleep up to delay seconds. Returns True if stop was requested meanwhile."""
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=max(0.0, delay))
        except asyncio.TimeoutError:
            return False
        return True
