"""Snapshots subcommand: fetch, show, export."""

from __future__ import annotations

import asyncio

import typer

from pmtracker.cli.common import make_source, open_repository
from pmtracker.tracking.collector import SnapshotCollector

app = typer.Typer(help="Price snapshots: capture, inspect, export")


def _fmt(value: float | None) -> str:
    return "-" if value is None else f"{value:.3f}"


@app.command("fetch")
def fetch(
    ctx: typer.Context,
    closing: int | None = typer.Option(
        None, "--closing", help="Only markets whose hour ends within this many minutes"
    ),
) -> None:
    """Capture one snapshot per active (or closing-soon) market."""
    settings = ctx.obj["settings"]
    config = settings.tracker_config()
    repository = open_repository(settings)

    async def main():
        async with make_source(settings) as source:
            collector = SnapshotCollector(source, repository, config)
            if closing is not None:
                return await collector.collect_closing_soon(closing)
            return await collector.collect_active()

    try:
        saved = asyncio.run(main())
        typer.echo(f"Saved {saved} snapshots.")
    finally:
        repository.close()


@app.command("show")
def show(
    ctx: typer.Context,
    slug: str = typer.Argument(..., help="Market slug"),
) -> None:
    """Print a market's snapshots in capture order."""
    settings = ctx.obj["settings"]
    repository = open_repository(settings)
    try:
        market = repository.get_market_by_slug(slug)
        if market is None:
            typer.echo(f"Unknown market: {slug}", err=True)
            raise typer.Exit(1)
        rows = repository.get_snapshots_by_market(market.id)
        typer.echo("  min    up     down   bid    ask    spread mid")
        for s in rows:
            typer.echo(
                f"  {s.minute_of_hour:<6} {_fmt(s.up_price)}  {_fmt(s.down_price)}  {_fmt(s.up_bid)}  "
                f"{_fmt(s.up_ask)}  {_fmt(s.spread)}  {_fmt(s.midpoint)}"
            )
        outcome = market.outcome.value if market.outcome else "unresolved"
        typer.echo(f"Total: {len(rows)} snapshots, outcome {outcome}")
    finally:
        repository.close()


@app.command("export")
def export(
    ctx: typer.Context,
    asset: str | None = typer.Option(None, "--asset", "-a", help="Filter by asset"),
    output: str = typer.Option("snapshots.parquet", "--output", "-o", help="Output path"),
) -> None:
    """Export snapshots joined with market columns to Parquet."""
    settings = ctx.obj["settings"]
    repository = open_repository(settings)
    try:
        count = repository.export_snapshots(output, asset=asset.upper() if asset else None)
        typer.echo(f"Exported {count} snapshots to {output}")
    finally:
        repository.close()
