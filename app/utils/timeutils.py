from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
from app.utils.errors import ValidationError

# All persisted datetimes are naive UTC; civil dates are resolved in the venue's zone.


def utcnow() -> datetime:
    """Current time as naive UTC"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def get_zone(tz_name: str) -> ZoneInfo:
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValidationError(f"Unknown timezone: {tz_name}")


def to_utc_naive(value: datetime, tz_name: str = None) -> datetime:
    """
    Normalise a datetime to naive UTC.
    Naive input is read as local time in tz_name when given, otherwise as UTC.
    """
    if value.tzinfo is None:
        if not tz_name:
            return value
        value = value.replace(tzinfo=get_zone(tz_name))
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def to_local(value: datetime, tz_name: str) -> datetime:
    """Aware local datetime for a naive UTC value"""
    return value.replace(tzinfo=timezone.utc).astimezone(get_zone(tz_name))


def local_date(value: datetime, tz_name: str) -> date:
    """Civil date of a naive UTC instant in the given zone"""
    return to_local(value, tz_name).date()


def combine_local(on_date: date, at_time: time, tz_name: str) -> datetime:
    """Naive UTC instant for a local wall-clock time on a civil date"""
    local = datetime.combine(on_date, at_time).replace(tzinfo=get_zone(tz_name))
    return local.astimezone(timezone.utc).replace(tzinfo=None)


def local_day_bounds(on_date: date, tz_name: str):
    """Half-open naive UTC bounds of a civil day"""
    start = combine_local(on_date, time(0, 0), tz_name)
    end = combine_local(on_date + timedelta(days=1), time(0, 0), tz_name)
    return start, end


def parse_iso_datetime(value: str, tz_name: str = None) -> datetime:
    """Parse an ISO 8601 / RFC 3339 string into naive UTC"""
    if not value or not isinstance(value, str):
        raise ValidationError("Datetime value is required")
    text = value.strip()
    if text.endswith('Z') or text.endswith('z'):
        text = text[:-1] + '+00:00'
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        raise ValidationError(f"Invalid datetime format: {value}. Use ISO format")
    return to_utc_naive(parsed, tz_name)


def parse_time_of_day(value: str) -> time:
    """Parse HH:MM (or HH:MM:SS) wall-clock time"""
    try:
        return time.fromisoformat(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid time of day: {value}. Use HH:MM")


def to_rfc3339(value: datetime) -> str:
    """Naive UTC datetime as an RFC 3339 string with Z suffix"""
    return value.replace(microsecond=0).isoformat() + 'Z'
