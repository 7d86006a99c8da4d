"""Track subcommand: start, status."""

from __future__ import annotations

import asyncio
import signal
import sys
from collections import Counter

import typer

from pmtracker.cli.common import make_source, open_repository
from pmtracker.timeutil import utcnow
from pmtracker.tracking.lifecycle import classify
from pmtracker.tracking.tracker import Tracker

app = typer.Typer(help="Run the tracker and show status")


@app.command("start")
def start(ctx: typer.Context) -> None:
    """Run discovery, snapshot and resolution jobs until Ctrl+C / SIGTERM."""
    settings = ctx.obj["settings"]
    config = settings.tracker_config()
    repository = open_repository(settings)
    stop_event = asyncio.Event()

    def shutdown() -> None:
        stop_event.set()

    async def main() -> None:
        loop = asyncio.get_running_loop()
        if sys.platform != "win32":
            loop.add_signal_handler(signal.SIGINT, shutdown)
            loop.add_signal_handler(signal.SIGTERM, shutdown)
        async with make_source(settings) as source:
            tracker = Tracker(repository, source, config)
            await tracker.run(stop_event=stop_event)

    try:
        typer.echo(f"Tracking {', '.join(a.asset for a in config.assets)} (Ctrl+C to stop)...")
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
    finally:
        repository.close()
    typer.echo("Stopped.")


@app.command("status")
def status(ctx: typer.Context) -> None:
    """Show market counts per derived status and snapshot totals."""
    settings = ctx.obj["settings"]
    repository = open_repository(settings)
    try:
        now = utcnow()
        markets = repository.list_markets()
        by_status = Counter(classify(m, now).value for m in markets)
        stats = repository.stats()
        typer.echo(f"Markets: {stats['total_markets']}")
        for name, count in sorted(by_status.items()):
            typer.echo(f"  {name:<15} {count}")
        typer.echo(f"Snapshots: {stats['total_snapshots']}")
        for row in stats["by_asset"]:
            typer.echo(f"  {row['asset']:<5} {row['outcome']:<6} {row['count']}")
    finally:
        repository.close()
