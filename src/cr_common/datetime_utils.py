"""UTC datetime utilities."""

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo


def utc_now() -> datetime:
    """Return timezone-aware UTC now."""
    return datetime.now(timezone.utc)


def calendar_date(moment: datetime, tz_name: str) -> date:
    """Calendar date of `moment` in the given IANA timezone.

    Naive datetimes are treated as UTC.
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    tz = timezone.utc if tz_name.upper() == "UTC" else ZoneInfo(tz_name)
    return moment.astimezone(tz).date()
