"""Configuration loading."""

from pmtracker.config.settings import (
    AssetConfig,
    JobSchedule,
    Settings,
    TrackerConfig,
    configure_logging,
    get_settings,
    load_config,
)

__all__ = [
    "AssetConfig",
    "JobSchedule",
    "Settings",
    "TrackerConfig",
    "configure_logging",
    "get_settings",
    "load_config",
]
