"""Shared helpers for CLI commands."""

from __future__ import annotations

import typer

from pmtracker.config import Settings
from pmtracker.errors import StorageError
from pmtracker.ingestion.polymarket.source import PolymarketDataSource
from pmtracker.storage import MarketRepository


def open_repository(settings: Settings) -> MarketRepository:
    """Open the store; failing to do so is fatal for the command."""
    try:
        return MarketRepository(settings.db_path)
    except StorageError as e:
        typer.echo(f"Cannot open store: {e}", err=True)
        raise typer.Exit(1)


def make_source(settings: Settings) -> PolymarketDataSource:
    return PolymarketDataSource(
        settings.gamma_api_base,
        settings.clob_api_base,
        timeout_sec=settings.timeout_sec,
        max_retries=settings.max_retries,
        retry_delay_sec=settings.retry_delay_sec,
    )
