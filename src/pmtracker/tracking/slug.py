"""Hourly market slugs: "{prefix}-{month}-{day}-{hour}{am|pm}-et" in US Eastern time."""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from pmtracker.timeutil import utcnow

ET = ZoneInfo("America/New_York")

MONTHS = [
    "january",
    "february",
    "march",
    "april",
    "may",
    "june",
    "july",
    "august",
    "september",
    "october",
    "november",
    "december",
]

SLUG_RE = re.compile(r"^.+-([a-z]+)-(\d+)-(\d+)(am|pm)-et$")


def encode(asset_prefix: str, instant: datetime) -> str:
    """Slug of the market whose ET hour contains `instant`."""
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    et = instant.astimezone(ET)
    hour12 = et.hour % 12 or 12
    ampm = "am" if et.hour < 12 else "pm"
    return f"{asset_prefix}-{MONTHS[et.month - 1]}-{et.day}-{hour12}{ampm}-et"


def upcoming_slugs(asset_prefix: str, n: int, now: datetime | None = None) -> list[str]:
    """Slugs for the current hour and the n-1 hours after it."""
    now = now or utcnow()
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    top = now.astimezone(timezone.utc).replace(minute=0, second=0, microsecond=0)
    return [encode(asset_prefix, top + timedelta(hours=i)) for i in range(n)]


def decode(slug: str, now: datetime | None = None) -> datetime | None:
    """Start instant (UTC) of the hour a slug names, or None if it does not parse.

    The slug carries no year: the year of `now` in ET is assumed, so a slug from
    late December decoded in January lands a year off.
    """
    match = SLUG_RE.match(slug)
    if not match:
        return None
    month_str, day_str, hour_str, ampm = match.groups()
    if month_str not in MONTHS:
        return None
    hour = int(hour_str)
    if not 1 <= hour <= 12:
        return None
    if ampm == "pm" and hour != 12:
        hour += 12
    if ampm == "am" and hour == 12:
        hour = 0
    year = (now or utcnow()).astimezone(ET).year
    try:
        local = datetime(year, MONTHS.index(month_str) + 1, int(day_str), hour, tzinfo=ET)
    except ValueError:
        return None
    return local.astimezone(timezone.utc)
