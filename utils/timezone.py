"""UTC-everywhere time handling for payment dates.

Payments written by older versions store dates as naive "YYYY-MM-DD HH:MM:SS"
strings in store-local time. These are read back as UTC; everything written
from now on is an ISO 8601 string with an explicit offset.
"""

from datetime import datetime, timezone

_LEGACY_FORMAT = "%Y-%m-%d %H:%M:%S"


def now_utc() -> datetime:
    """
    Current time in UTC.

    Use this instead of datetime.now() everywhere.
    """
    return datetime.now(timezone.utc)


def to_utc(dt: datetime) -> datetime:
    """
    Convert a datetime to UTC.

    Raises ValueError if datetime is naive (no timezone).
    """
    if dt.tzinfo is None:
        raise ValueError(
            "Cannot convert naive datetime to UTC. Datetime must be timezone-aware."
        )
    return dt.astimezone(timezone.utc)


def parse_stored(value: str | datetime | None) -> datetime | None:
    """
    Parse a stored payment date.

    Accepts ISO 8601 strings, legacy naive strings (assumed UTC) and datetime
    objects as returned by psycopg2. Empty values parse to None.
    """
    if value is None or value == "" or value is False:
        return None

    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = datetime.fromisoformat(value)
        except ValueError:
            dt = datetime.strptime(value, _LEGACY_FORMAT)

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return to_utc(dt)


def format_stored(dt: datetime | None) -> str:
    """Serialize a datetime for storage. None becomes the empty string."""
    if dt is None:
        return ""
    return to_utc(dt).isoformat()
