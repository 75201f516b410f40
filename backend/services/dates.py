"""Date helpers.

Calendar days are UTC everywhere: snapshot keys, "posts published today" and
growth period targets all use the same boundary.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_today() -> date:
    return utc_now().date()


def days_ago(days: int, today: Optional[date] = None) -> date:
    """Calendar date ``days`` before today (UTC)."""
    return (today or utc_today()) - timedelta(days=days)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes read back from backends without tz support."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_iso_datetime(val: Optional[str]) -> Optional[datetime]:
    """Parse an ISO 8601 datetime string, returning None on failure."""
    if not val:
        return None
    try:
        # Instagram sends "+0000" offsets and sometimes a trailing Z
        val = val.replace("Z", "+00:00")
        if len(val) > 5 and val[-5] in "+-" and val[-4:].isdigit():
            val = f"{val[:-2]}:{val[-2:]}"
        return as_utc(datetime.fromisoformat(val))
    except (ValueError, TypeError):
        return None
