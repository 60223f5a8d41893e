"""
Typed venue configuration.

Venues keep opening hours and weekly group sessions as JSON columns; these
structures are built from them at the store boundary so the availability
engine never touches raw dictionaries.
"""
import enum
from dataclasses import dataclass
from datetime import date, time
from typing import Dict, List, Optional
from app.utils.errors import ValidationError
from app.utils.timeutils import parse_time_of_day


class Weekday(enum.Enum):
    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"

    @classmethod
    def of(cls, on_date: date) -> 'Weekday':
        return list(cls)[on_date.weekday()]

    @classmethod
    def parse(cls, value: str) -> 'Weekday':
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValidationError(f"Invalid weekday: {value}")


GROUP_DISPLAY_NAMES = {
    'squirrels': 'Squirrels',
    'beavers': 'Beavers',
    'cubs': 'Cubs',
    'scouts': 'Scouts',
    'explorers': 'Explorers',
}


@dataclass(frozen=True)
class DayAvailability:
    weekday: Weekday
    enabled: bool
    start_time: time
    end_time: time

    def to_dict(self) -> Dict:
        return {
            'enabled': self.enabled,
            'start_time': self.start_time.strftime('%H:%M'),
            'end_time': self.end_time.strftime('%H:%M'),
        }


@dataclass(frozen=True)
class RecurringSessionRule:
    group: str
    enabled: bool
    weekday: Weekday
    start_time: time
    end_time: time

    @property
    def display_name(self) -> str:
        name = GROUP_DISPLAY_NAMES.get(self.group, self.group.replace('_', ' ').title())
        return f"{name} Session"

    def to_dict(self) -> Dict:
        return {
            'enabled': self.enabled,
            'day': self.weekday.value,
            'start_time': self.start_time.strftime('%H:%M'),
            'end_time': self.end_time.strftime('%H:%M'),
        }


def _parse_times(entry: Dict, label: str):
    if not isinstance(entry, dict):
        raise ValidationError(f"{label} must be an object")
    start = parse_time_of_day(entry.get('start_time'))
    end = parse_time_of_day(entry.get('end_time'))
    if end <= start:
        raise ValidationError(f"{label}: end time must be after start time")
    return start, end


def parse_availability(raw: Optional[Dict]) -> Dict[Weekday, DayAvailability]:
    """Opening hours keyed by weekday; an empty mapping means no restriction"""
    result = {}
    if not raw:
        return result
    if not isinstance(raw, dict):
        raise ValidationError("Availability must be an object keyed by weekday")
    for day_name, entry in raw.items():
        weekday = Weekday.parse(day_name)
        start, end = _parse_times(entry, f"Availability for {weekday.value}")
        result[weekday] = DayAvailability(
            weekday=weekday,
            enabled=bool(entry.get('enabled', False)),
            start_time=start,
            end_time=end,
        )
    return result


def parse_weekly_sessions(raw: Optional[Dict]) -> List[RecurringSessionRule]:
    """Session rules in group-name order"""
    rules = []
    if not raw:
        return rules
    if not isinstance(raw, dict):
        raise ValidationError("Weekly sessions must be an object keyed by group name")
    for group in sorted(raw):
        entry = raw[group]
        start, end = _parse_times(entry, f"Session '{group}'")
        rules.append(RecurringSessionRule(
            group=str(group).strip().lower(),
            enabled=bool(entry.get('enabled', False)),
            weekday=Weekday.parse(entry.get('day')),
            start_time=start,
            end_time=end,
        ))
    return rules
