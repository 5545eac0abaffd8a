"""Time-zone helpers for operating windows, marketplace timestamps and logs.

Stateless functions over an IANA zone name. All arithmetic goes through
zoneinfo so daylight-saving transitions are handled by the tz database.
"""
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Tuple
from zoneinfo import ZoneInfo


def zone(name: str) -> ZoneInfo:
    """Return the ZoneInfo for `name` (raises ZoneInfoNotFoundError if unknown)."""
    return ZoneInfo(name)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_local(instant: datetime, zone_name: str) -> datetime:
    """Convert an aware instant to wall-clock time in `zone_name`.

    Naive datetimes are treated as UTC.
    """
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(zone(zone_name))


def to_utc(local: datetime, zone_name: str) -> datetime:
    """Convert a wall-clock time in `zone_name` to an aware UTC instant.

    Naive datetimes are interpreted as local time in `zone_name`.
    """
    if local.tzinfo is None:
        local = local.replace(tzinfo=zone(zone_name))
    return local.astimezone(timezone.utc)


def day_bounds(day: date, zone_name: str) -> Tuple[datetime, datetime]:
    """Return (start, end) UTC instants of the local calendar day `day`.

    start is local midnight; end is the last microsecond before the next
    local midnight, so 23- and 25-hour DST days are covered exactly.
    """
    tz = zone(zone_name)
    start = datetime.combine(day, time.min, tzinfo=tz)
    next_start = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    end_utc = next_start.astimezone(timezone.utc) - timedelta(microseconds=1)
    return start.astimezone(timezone.utc), end_utc


def epoch_millis(instant: datetime) -> int:
    """Milliseconds since the Unix epoch, as the marketplace API expects."""
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return int(instant.timestamp() * 1000)


def from_epoch_millis(value: Optional[int]) -> Optional[datetime]:
    """Aware UTC datetime from a marketplace epoch-millis timestamp."""
    if value is None:
        return None
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def format_log_date(zone_name: str, instant: Optional[datetime] = None) -> str:
    """Operator-facing wall-clock time, e.g. '3:07:09 PM'."""
    local = to_local(instant or utc_now(), zone_name)
    hour = local.hour % 12 or 12
    suffix = "AM" if local.hour < 12 else "PM"
    return f"{hour}:{local.minute:02d}:{local.second:02d} {suffix}"
