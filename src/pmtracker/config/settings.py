"""TOML config loading, profiles, and the immutable tracker config."""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

# Default config search path (project root or cwd)
_CONFIG_DIR = Path(__file__).resolve().parent.parent.parent.parent / "config"
_CWD_CONFIG = Path.cwd() / "config"

DB_PATH_ENV = "PMTRACKER_DB_PATH"

_DEFAULT_ASSETS: dict[str, dict[str, str]] = {
    "BTC": {"series_slug": "bitcoin-up-or-down-hourly", "slug_prefix": "bitcoin-up-or-down"},
    "ETH": {"series_slug": "ethereum-up-or-down-hourly", "slug_prefix": "ethereum-up-or-down"},
    "SOL": {"series_slug": "solana-up-or-down-hourly", "slug_prefix": "solana-up-or-down"},
}

_DEFAULT_SCHEDULE: dict[str, tuple[int, int]] = {
    "fetch": (600, 0),
    "discovery": (3600, 300),
    "closing": (60, 0),
    "resolution": (300, 0),
}


def _load_toml(path: Path) -> dict[str, Any]:
    with open(path, "rb") as f:
        return tomllib.load(f)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override into base. Override values take precedence."""
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _find_config_dir(config_dir: Path | None = None) -> Path:
    if config_dir is not None:
        return config_dir
    if _CWD_CONFIG.exists():
        return _CWD_CONFIG
    return _CONFIG_DIR


def load_config(profile: str | None = None, config_dir: Path | None = None) -> dict[str, Any]:
    """Load merged config from default.toml and optional profile overlay."""
    directory = _find_config_dir(config_dir)
    default_path = directory / "default.toml"
    if not default_path.exists():
        return {}
    base = _load_toml(default_path)
    if profile:
        profile_path = directory / f"{profile}.toml"
        if profile_path.exists():
            overlay = _load_toml(profile_path)
            base = _deep_merge(base, overlay)
    return base


def get_settings(profile: str | None = None, config_dir: Path | None = None) -> Settings:
    """Return Settings instance from merged config."""
    raw = load_config(profile, config_dir)
    return Settings.from_dict(raw)


@dataclass(frozen=True)
class AssetConfig:
    """Slug naming for one tracked asset."""

    asset: str
    series_slug: str
    slug_prefix: str


@dataclass(frozen=True)
class JobSchedule:
    """Wall-clock aligned cadence: fire at every multiple of interval_sec plus offset_sec."""

    interval_sec: int
    offset_sec: int = 0


@dataclass(frozen=True)
class TrackerConfig:
    """Process-wide tracker configuration, injected into each engine."""

    assets: tuple[AssetConfig, ...]
    discovery_hours_ahead: int = 2
    max_retries: int = 3
    retry_delay_sec: float = 1.0
    max_concurrency: int = 4
    closing_window_minutes: int = 5
    resolution_threshold: float = 0.9
    schedules: dict[str, JobSchedule] = field(default_factory=dict)

    def asset_config(self, asset: str) -> AssetConfig:
        for cfg in self.assets:
            if cfg.asset == asset:
                return cfg
        raise KeyError(f"Unknown asset: {asset}")


class Settings:
    """Application settings from TOML config."""

    def __init__(
        self,
        *,
        storage: dict[str, Any] | None = None,
        polymarket: dict[str, Any] | None = None,
        tracking: dict[str, Any] | None = None,
        schedule: dict[str, Any] | None = None,
        logging: dict[str, Any] | None = None,
    ):
        self.storage = storage or {}
        self.polymarket = polymarket or {}
        self.tracking = tracking or {}
        self.schedule = schedule or {}
        self.logging = logging or {}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Settings:
        return cls(
            storage=raw.get("storage"),
            polymarket=raw.get("polymarket"),
            tracking=raw.get("tracking"),
            schedule=raw.get("schedule"),
            logging=raw.get("logging"),
        )

    # Convenience accessors with defaults
    @property
    def db_path(self) -> str:
        return os.environ.get(DB_PATH_ENV) or self.storage.get("db_path", "data/tracker.duckdb")

    @property
    def gamma_api_base(self) -> str:
        return self.polymarket.get("gamma_api_base", "https://gamma-api.polymarket.com")

    @property
    def clob_api_base(self) -> str:
        return self.polymarket.get("clob_api_base", "https://clob.polymarket.com")

    @property
    def timeout_sec(self) -> float:
        return float(self.polymarket.get("timeout_sec", 10.0))

    @property
    def max_retries(self) -> int:
        return int(self.polymarket.get("max_retries", 3))

    @property
    def retry_delay_sec(self) -> float:
        return float(self.polymarket.get("retry_delay_sec", 1.0))

    @property
    def assets(self) -> list[str]:
        return list(self.tracking.get("assets") or _DEFAULT_ASSETS.keys())

    @property
    def discovery_hours_ahead(self) -> int:
        return int(self.tracking.get("discovery_hours_ahead", 2))

    @property
    def max_concurrency(self) -> int:
        return int(self.tracking.get("max_concurrency", 4))

    @property
    def closing_window_minutes(self) -> int:
        return int(self.tracking.get("closing_window_minutes", 5))

    @property
    def resolution_threshold(self) -> float:
        return float(self.tracking.get("resolution_threshold", 0.9))

    @property
    def logging_level(self) -> str:
        return self.logging.get("level", "INFO").upper()

    @property
    def logging_format(self) -> str:
        return self.logging.get("format", "console")

    @property
    def logging_level_num(self) -> int:
        return getattr(logging, self.logging_level, logging.INFO)

    def asset_configs(self) -> tuple[AssetConfig, ...]:
        configured = self.tracking.get("asset_config") or {}
        result = []
        for asset in self.assets:
            raw = _deep_merge(_DEFAULT_ASSETS.get(asset, {}), configured.get(asset) or {})
            if "slug_prefix" not in raw:
                raise ValueError(f"No slug_prefix configured for asset {asset}")
            result.append(
                AssetConfig(
                    asset=asset,
                    series_slug=raw.get("series_slug", ""),
                    slug_prefix=raw["slug_prefix"],
                )
            )
        return tuple(result)

    def job_schedules(self) -> dict[str, JobSchedule]:
        schedules = {}
        for name, (interval, offset) in _DEFAULT_SCHEDULE.items():
            raw = self.schedule.get(name) or {}
            schedules[name] = JobSchedule(
                interval_sec=int(raw.get("interval_sec", interval)),
                offset_sec=int(raw.get("offset_sec", offset)),
            )
        return schedules

    def tracker_config(self) -> TrackerConfig:
        """Build the immutable config handed to the engines."""
        return TrackerConfig(
            assets=self.asset_configs(),
            discovery_hours_ahead=self.discovery_hours_ahead,
            max_retries=self.max_retries,
            retry_delay_sec=self.retry_delay_sec,
            max_concurrency=self.max_concurrency,
            closing_window_minutes=self.closing_window_minutes,
            resolution_threshold=self.resolution_threshold,
            schedules=self.job_schedules(),
        )


def configure_logging(settings: Settings) -> None:
    """Configure structlog with settings. Call once at application entry."""
    import structlog

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]
    if settings.logging_format == "json":
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(settings.logging_level_num),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
