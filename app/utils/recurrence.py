from datetime import date, datetime
from typing import Iterable, Iterator, Optional, Tuple
from app.models.schedule import RecurringSessionRule, Weekday
from app.utils.intervals import local_dates_spanned
from app.utils.timeutils import combine_local


def expand_session(rule: RecurringSessionRule, on_date: date,
                   tz_name: str) -> Optional[Tuple[datetime, datetime]]:
    """
    Project a weekly rule onto a civil date.
    Returns the naive UTC interval, or None when the rule is off or on another weekday.
    """
    if not rule.enabled:
        return None
    if Weekday.of(on_date) != rule.weekday:
        return None
    return (
        combine_local(on_date, rule.start_time, tz_name),
        combine_local(on_date, rule.end_time, tz_name),
    )


def expand_sessions(rules: Iterable[RecurringSessionRule], start: datetime, end: datetime,
                    tz_name: str) -> Iterator[Tuple[RecurringSessionRule, datetime, datetime]]:
    """Every concrete session occurrence on the civil dates an interval spans"""
    days = local_dates_spanned(start, end, tz_name)
    for rule in rules:
        for day in days:
            occurrence = expand_session(rule, day, tz_name)
            if occurrence:
                yield rule, occurrence[0], occurrence[1]
