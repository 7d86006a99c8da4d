"""Markets subcommand: discover, resolve, list, slugs, series, history."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import typer

from pmtracker.cli.common import make_source, open_repository
from pmtracker.timeutil import utcnow
from pmtracker.tracking.discovery import DiscoveryEngine
from pmtracker.tracking.lifecycle import classify
from pmtracker.tracking.resolution import ResolutionEngine
from pmtracker.tracking.slug import upcoming_slugs

app = typer.Typer(help="Market discovery, resolution and listing")


@app.command("discover")
def discover(ctx: typer.Context) -> None:
    """Look up the current and next hour's markets and store new ones."""
    settings = ctx.obj["settings"]
    config = settings.tracker_config()
    repository = open_repository(settings)

    async def main():
        async with make_source(settings) as source:
            return await DiscoveryEngine(source, repository, config).discover_new_markets()

    try:
        new_markets = asyncio.run(main())
        for m in new_markets:
            typer.echo(f"  {m.asset:<4} {m.slug}")
        typer.echo(f"Discovered {len(new_markets)} new markets.")
    finally:
        repository.close()


@app.command("resolve")
def resolve(ctx: typer.Context) -> None:
    """Check finished markets and record outcomes the venue has settled."""
    settings = ctx.obj["settings"]
    config = settings.tracker_config()
    repository = open_repository(settings)

    async def main():
        async with make_source(settings) as source:
            return await ResolutionEngine(source, repository, config).check_resolutions()

    try:
        updated = asyncio.run(main())
        typer.echo(f"Resolved {updated} markets.")
    finally:
        repository.close()


@app.command("list")
def list_markets(
    ctx: typer.Context,
    asset: str | None = typer.Option(None, "--asset", "-a", help="Only this asset (e.g. BTC)"),
    limit: int = typer.Option(50, "--limit", "-n", help="Max markets to show"),
) -> None:
    """List stored markets, newest first, with derived status."""
    settings = ctx.obj["settings"]
    repository = open_repository(settings)
    try:
        now = utcnow()
        rows = repository.list_markets(asset=asset.upper() if asset else None, limit=limit)
        for m in rows:
            outcome = m.outcome.value if m.outcome else "-"
            typer.echo(f"  {m.asset:<4} {classify(m, now).value:<15} {outcome:<5} {m.slug}")
        typer.echo(f"Total: {len(rows)} markets")
    finally:
        repository.close()


@app.command("slugs")
def slugs(
    ctx: typer.Context,
    asset: str = typer.Argument(..., help="Asset symbol, e.g. BTC"),
    n: int = typer.Option(2, "--n", "-n", help="Number of hours, starting with the current one"),
) -> None:
    """Print the slugs discovery would look up."""
    config = ctx.obj["settings"].tracker_config()
    try:
        asset_cfg = config.asset_config(asset.upper())
    except KeyError:
        typer.echo(f"Unknown asset: {asset}", err=True)
        raise typer.Exit(1)
    for slug in upcoming_slugs(asset_cfg.slug_prefix, n):
        typer.echo(slug)


@app.command("series")
def series(
    ctx: typer.Context,
    asset: str = typer.Argument(..., help="Asset symbol, e.g. BTC"),
) -> None:
    """List the venue's open markets in the asset's hourly series."""
    settings = ctx.obj["settings"]
    try:
        asset_cfg = settings.tracker_config().asset_config(asset.upper())
    except KeyError:
        typer.echo(f"Unknown asset: {asset}", err=True)
        raise typer.Exit(1)

    async def main():
        async with make_source(settings) as source:
            return await source.search_markets(asset_cfg.series_slug)

    records = asyncio.run(main())
    for r in records:
        start = r.event_start_time.isoformat() if r.event_start_time else "?"
        typer.echo(f"  {start}  {r.slug}")
    typer.echo(f"Total: {len(records)} open markets in {asset_cfg.series_slug}")


@app.command("history")
def history(
    ctx: typer.Context,
    slug: str = typer.Argument(..., help="Market slug"),
    fidelity: int = typer.Option(60, "--fidelity", "-f", help="Resolution in minutes"),
) -> None:
    """Print the venue price history of a stored market's Up token."""
    settings = ctx.obj["settings"]
    repository = open_repository(settings)
    try:
        market = repository.get_market_by_slug(slug)
    finally:
        repository.close()
    if market is None:
        typer.echo(f"Unknown market: {slug}", err=True)
        raise typer.Exit(1)

    async def main():
        async with make_source(settings) as source:
            return await source.get_price_history(market.token_id_up, fidelity)

    for point in asyncio.run(main()):
        ts = datetime.fromtimestamp(point.t, tz=timezone.utc).isoformat()
        typer.echo(f"  {ts}  {point.p:.3f}")
