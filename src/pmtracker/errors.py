"""Exception hierarchy shared by the tracker components."""

from __future__ import annotations


class TrackerError(Exception):
    """Base class for tracker errors."""


class DataSourceError(TrackerError):
    """An external call failed after exhausting its retries."""


class MalformedPayloadError(TrackerError):
    """A venue payload could not be parsed (token ids, settlement prices)."""


class StorageError(TrackerError):
    """A persist operation was rejected by the store (e.g. duplicate condition id)."""
