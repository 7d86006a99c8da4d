"""Root CLI app - entry point and command registration."""

from pathlib import Path

import typer

from pmtracker.config import get_settings
from pmtracker.config.settings import configure_logging

app = typer.Typer(
    name="pmtracker",
    help="pm-tracker - Discover, snapshot and resolve hourly Up/Down prediction markets.",
    no_args_is_help=True,
)


@app.callback()
def main(
    ctx: typer.Context,
    config_dir: Path | None = typer.Option(
        None, "--config-dir", "-C", help="Config directory (default: ./config or package config)"
    ),
    profile: str | None = typer.Option(
        None, "--profile", "-p", help="Config profile (e.g. dev) to overlay on default.toml"
    ),
) -> None:
    """Configure logging and store options in context."""
    settings = get_settings(profile, config_dir)
    configure_logging(settings)
    ctx.obj = {"settings": settings, "config_dir": config_dir, "profile": profile}


# Subcommands registered from other modules
from pmtracker.cli import api_cmd, markets, snapshots, track  # noqa: E402

app.add_typer(markets.app, name="markets")
app.add_typer(snapshots.app, name="snapshots")
app.add_typer(track.app, name="track")
app.add_typer(api_cmd.app, name="api")


def run() -> None:
    app()


if __name__ == "__main__":
    run()
