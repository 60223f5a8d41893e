from datetime import date, datetime, timedelta
from typing import List
from app.utils.errors import ValidationError
from app.utils.timeutils import local_date


def overlaps(a_start, a_end, b_start, b_end) -> bool:
    """Half-open interval intersection; touching endpoints do not overlap"""
    return a_start < b_end and a_end > b_start


def validate_interval(start: datetime, end: datetime):
    """Reject missing, zero-length and inverted intervals"""
    if start is None or end is None:
        raise ValidationError("Start and end time are required")
    if end <= start:
        raise ValidationError("End time must be after start time")


def local_dates_spanned(start: datetime, end: datetime, tz_name: str) -> List[date]:
    """Civil dates in tz_name touched by the half-open UTC interval [start, end)"""
    validate_interval(start, end)
    first = local_date(start, tz_name)
    # The end instant itself is excluded
    last = local_date(end - timedelta(microseconds=1), tz_name)
    days = []
    current = first
    while current <= last:
        days.append(current)
        current += timedelta(days=1)
    return days
