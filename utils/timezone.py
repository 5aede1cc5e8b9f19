"""UTC-only clock helpers. Every timestamp in the auth tables is timezone-aware."""

from datetime import datetime, timezone


def now_utc() -> datetime:
    """Current time in UTC. Use instead of datetime.now()."""
    return datetime.now(timezone.utc)


def to_utc(dt: datetime) -> datetime:
    """
    Convert an aware datetime to UTC.

    Naive datetimes coming back from the driver are assumed to already be UTC,
    because every column is written with now_utc().
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
