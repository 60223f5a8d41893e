import enum
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, List, Optional, Tuple
from sqlalchemy.exc import SQLAlchemyError
from app.database import get_db
from app.models import Reservation, SyncedEvent, MirrorDirection, Venue
from app.models.reservation import BLOCKING_STATUSES, ReservationStatus
from app.models.schedule import Weekday
from app.utils.errors import ErrorKind, ScoutBookingsError
from app.utils.intervals import validate_interval, local_dates_spanned
from app.utils.logger import get_logger
from app.utils.recurrence import expand_sessions
from app.utils.result import Failure, Result, Success
from app.utils.timeutils import combine_local, local_day_bounds, to_local, to_rfc3339
from config.config import Config

logger = get_logger(__name__)


class ConflictType(enum.Enum):
    RESERVATION = "reservation"
    EXTERNAL_BLOCK = "external_block"
    RECURRING_SESSION = "recurring_session"


@dataclass(frozen=True)
class Conflict:
    type: ConflictType
    title: str
    start: datetime
    end: datetime
    contact: Optional[Dict] = None
    reservation_id: Optional[int] = None
    pending: bool = False
    owner_scope: bool = False

    def to_dict(self) -> Dict:
        data = {
            'type': self.type.value,
            'title': self.title,
            'start': to_rfc3339(self.start),
            'end': to_rfc3339(self.end),
        }
        if self.owner_scope and self.reservation_id is not None:
            data['reservation_id'] = self.reservation_id
            data['pending'] = self.pending
        if self.contact is not None:
            data['contact'] = self.contact
        return data


@dataclass(frozen=True)
class AvailabilityResult:
    conflicts: Tuple[Conflict, ...] = ()
    degraded_sources: Tuple[str, ...] = field(default=())

    @property
    def available(self) -> bool:
        return not self.conflicts

    def to_dict(self) -> Dict:
        data = {
            'available': self.available,
            'conflicts': [c.to_dict() for c in self.conflicts],
        }
        if self.degraded_sources:
            data['degraded_sources'] = list(self.degraded_sources)
        return data


class AvailabilityService:
    """Decides whether a venue is free for a candidate interval"""

    def _reservation_conflicts(self, db, venue: Venue, start: datetime, end: datetime,
                               exclude_reservation_id: Optional[int], owner_scope: bool) -> List[Conflict]:
        query = db.query(Reservation).filter(
            Reservation.venue_id == venue.id,
            Reservation.status.in_(BLOCKING_STATUSES),
            Reservation.start_time < end,
            Reservation.end_time > start
        )
        if exclude_reservation_id is not None:
            query = query.filter(Reservation.id != exclude_reservation_id)

        conflicts = []
        for reservation in query.order_by(Reservation.start_time, Reservation.id).all():
            conflicts.append(Conflict(
                type=ConflictType.RESERVATION,
                title=reservation.event_name if owner_scope else Config.PUBLIC_RESERVATION_TITLE,
                start=reservation.start_time,
                end=reservation.end_time,
                contact=reservation.contact_info if owner_scope else None,
                reservation_id=reservation.id,
                pending=reservation.status == ReservationStatus.PENDING,
                owner_scope=owner_scope,
            ))
        return conflicts

    def _external_conflicts(self, db, venue: Venue, start: datetime, end: datetime,
                            owner_scope: bool) -> List[Conflict]:
        mirrors = db.query(SyncedEvent).filter(
            SyncedEvent.venue_id == venue.id,
            SyncedEvent.direction == MirrorDirection.IMPORTED,
            SyncedEvent.start_time < end,
            SyncedEvent.end_time > start
        ).order_by(SyncedEvent.start_time, SyncedEvent.id).all()

        return [
            Conflict(
                type=ConflictType.EXTERNAL_BLOCK,
                # Raw external titles are for the owner only
                title=(mirror.title or '') if owner_scope else Config.EXTERNAL_BLOCK_PUBLIC_TITLE,
                start=mirror.start_time,
                end=mirror.end_time,
            )
            for mirror in mirrors
        ]

    def _session_conflicts(self, venue: Venue, start: datetime, end: datetime) -> List[Conflict]:
        conflicts = []
        for rule, session_start, session_end in expand_sessions(venue.session_rules, start, end, venue.zone_name):
            if session_start < end and session_end > start:
                conflicts.append(Conflict(
                    type=ConflictType.RECURRING_SESSION,
                    title=rule.display_name,
                    start=session_start,
                    end=session_end,
                ))
        return sorted(conflicts, key=lambda c: (c.start, c.title))

    def find_conflicts(self, db, venue: Venue, start: datetime, end: datetime,
                       exclude_reservation_id: int = None, owner_scope: bool = False) -> AvailabilityResult:
        """
        Collect conflicts inside an open session.

        Reservation lookups propagate store errors so callers fail closed;
        an unreadable external-block source is skipped and reported as degraded.
        """
        validate_interval(start, end)

        conflicts = self._reservation_conflicts(db, venue, start, end, exclude_reservation_id, owner_scope)

        degraded = []
        try:
            conflicts.extend(self._external_conflicts(db, venue, start, end, owner_scope))
        except SQLAlchemyError as e:
            logger.warning(f"External blocks unavailable for venue {venue.id}, checking without them: {str(e)}")
            degraded.append('external_blocks')

        conflicts.extend(self._session_conflicts(venue, start, end))

        return AvailabilityResult(conflicts=tuple(conflicts), degraded_sources=tuple(degraded))

    def check_availability(self, venue_id: int, start: datetime, end: datetime,
                           exclude_reservation_id: int = None, owner_scope: bool = False) -> Result:
        """Success(AvailabilityResult) or Failure"""
        try:
            validate_interval(start, end)
        except ScoutBookingsError as e:
            return Failure.from_exception(e)

        try:
            with get_db() as db:
                venue = db.query(Venue).filter_by(id=venue_id).first()
                if not venue:
                    return Failure(ErrorKind.NOT_FOUND, 'Venue not found')
                result = self.find_conflicts(db, venue, start, end, exclude_reservation_id, owner_scope)
        except ScoutBookingsError as e:
            return Failure.from_exception(e)
        except SQLAlchemyError as e:
            logger.error(f"Reservation lookup failed for venue {venue_id}: {str(e)}")
            return Failure(ErrorKind.STORE_ERROR, 'Could not verify availability')

        logger.debug(f"Availability for venue {venue_id} {start}..{end}: "
                     f"available={result.available}, conflicts={len(result.conflicts)}")
        return Success(result)

    @staticmethod
    def within_opening_hours(venue: Venue, start: datetime, end: datetime) -> bool:
        """True when the interval sits inside one day's opening hours; no hours configured means always open"""
        hours = venue.opening_hours
        if not hours:
            return True
        tz_name = venue.zone_name
        days = local_dates_spanned(start, end, tz_name)
        if len(days) != 1:
            return False
        day = days[0]
        config = hours.get(Weekday.of(day))
        if not config or not config.enabled:
            return False
        return (combine_local(day, config.start_time, tz_name) <= start
                and end <= combine_local(day, config.end_time, tz_name))

    def get_blocked_slots(self, venue_id: int, on_date: date, owner_scope: bool = False) -> Result:
        """Everything occupying a venue on one civil date, ordered by start"""
        try:
            with get_db() as db:
                venue = db.query(Venue).filter_by(id=venue_id).first()
                if not venue:
                    return Failure(ErrorKind.NOT_FOUND, 'Venue not found')
                day_start, day_end = local_day_bounds(on_date, venue.zone_name)
                result = self.find_conflicts(db, venue, day_start, day_end, owner_scope=owner_scope)
                tz_name = venue.zone_name
        except ScoutBookingsError as e:
            return Failure.from_exception(e)
        except SQLAlchemyError as e:
            logger.error(f"Blocked slot lookup failed for venue {venue_id}: {str(e)}")
            return Failure(ErrorKind.STORE_ERROR, 'Could not load blocked slots')

        slots = []
        for conflict in sorted(result.conflicts, key=lambda c: c.start):
            slot = conflict.to_dict()
            slot['local_start'] = to_local(conflict.start, tz_name).strftime('%H:%M')
            slot['local_end'] = to_local(conflict.end, tz_name).strftime('%H:%M')
            slots.append(slot)
        return Success({'date': on_date.isoformat(), 'slots': slots,
                        'degraded_sources': list(result.degraded_sources)})
