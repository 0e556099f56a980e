"""
Instant handling.

Stored datetimes are naive UTC. Tournament wall-clock settings ("18:00" in
the tournament's timezone) are converted to UTC exactly once when slots are
built, and converted back only when a value is rendered.
"""
from datetime import date, datetime, time, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from courtside.errors import ValidationError


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_hhmm(value: str, field: str = "time") -> time:
    """Parse a "HH:MM" string; raises ValidationError on anything else."""
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a 'HH:MM' string, got {value!r}")
    parts = value.strip().split(":")
    if len(parts) != 2 or not all(p.isdigit() for p in parts):
        raise ValidationError(f"{field} must be 'HH:MM', got {value!r}")
    hour, minute = int(parts[0]), int(parts[1])
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValidationError(f"{field} out of range: {value!r}")
    return time(hour, minute)


def get_zone(tz_name: Optional[str]) -> ZoneInfo:
    try:
        return ZoneInfo(tz_name or "UTC")
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValidationError(f"Unknown timezone: {tz_name!r}") from exc


def local_to_utc(day: date, wall_time: time, tz_name: Optional[str]) -> datetime:
    """Resolve a local wall-clock time on a given day to a naive UTC instant."""
    local = datetime.combine(day, wall_time, tzinfo=get_zone(tz_name))
    return local.astimezone(timezone.utc).replace(tzinfo=None)


def to_local(instant: Optional[datetime], tz_name: Optional[str]) -> Optional[datetime]:
    """Presentation only: render a stored UTC instant in the tournament's zone."""
    if instant is None:
        return None
    aware = instant if instant.tzinfo else instant.replace(tzinfo=timezone.utc)
    return aware.astimezone(get_zone(tz_name))


def format_local(instant: Optional[datetime], tz_name: Optional[str], fmt: str = "%Y-%m-%d %H:%M") -> Optional[str]:
    local = to_local(instant, tz_name)
    return local.strftime(fmt) if local else None
