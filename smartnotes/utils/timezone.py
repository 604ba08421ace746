from datetime import datetime, timezone as dt_timezone
from typing import Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from smartnotes.core.config import settings


def get_zoneinfo(tz_name: Optional[str] = None) -> ZoneInfo:
    """Resolve a tz database name, falling back to settings.DEFAULT_TIMEZONE, then UTC."""
    for candidate in (tz_name, settings.DEFAULT_TIMEZONE):
        if not candidate:
            continue
        try:
            return ZoneInfo(candidate)
        except (ZoneInfoNotFoundError, ValueError):
            continue
    return ZoneInfo("UTC")


def utcnow() -> datetime:
    return datetime.now(dt_timezone.utc)


def to_utc_aware(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize any datetime to UTC-aware (tzinfo=UTC).
    - Aware datetimes are converted to UTC
    - Naive datetimes are assumed UTC and tz attached
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=dt_timezone.utc)
    return dt.astimezone(dt_timezone.utc)


def parse_instant(value: Union[datetime, str, None]) -> Optional[datetime]:
    """Parse a stored instant into a UTC-aware datetime.

    Accepts datetimes and ISO-8601 strings (a trailing ``Z`` is allowed).
    Raises ValueError when the value cannot be interpreted as an instant.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return to_utc_aware(value)
    if isinstance(value, str):
        raw = value.strip()
        if not raw:
            raise ValueError("empty instant")
        return to_utc_aware(datetime.fromisoformat(raw.replace("Z", "+00:00")))
    raise ValueError(f"unsupported instant type: {type(value).__name__}")


def isoformat_utc_ms(dt: datetime) -> str:
    """UTC ISO-8601 with millisecond precision and a ``Z`` suffix."""
    utc = to_utc_aware(dt)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"


def local_date_str(dt: datetime, tz: ZoneInfo) -> str:
    return to_utc_aware(dt).astimezone(tz).strftime("%Y-%m-%d")
