import re
from typing import Dict, Optional
from app.database import DatabaseManager, get_db
from app.models import CalendarCredential, SyncedEvent, MirrorDirection, User, Venue, SyncDirection
from app.models.schedule import parse_availability, parse_weekly_sessions
from app.services.sync_service import CalendarSyncService
from app.utils.errors import ErrorKind, ValidationError
from app.utils.logger import get_logger
from app.utils.result import Failure, Result, Success
from app.utils.security import generate_secure_token
from app.utils.timeutils import get_zone, to_rfc3339
from config.config import Config

logger = get_logger(__name__)


def slugify(name: str) -> str:
    return re.sub(r'[^a-z0-9]+', '-', name.lower()).strip('-')


class VenueService:
    """Venue settings: schedule configuration and calendar sync"""

    def __init__(self, sync_service: CalendarSyncService = None, scheduler=None):
        self.venue_db = DatabaseManager(Venue)
        self.sync_service = sync_service
        self.scheduler = scheduler

    def _owned_venue(self, db, owner_id: int, venue_id: int) -> Optional[Venue]:
        return db.query(Venue).filter_by(id=venue_id, owner_id=owner_id).first()

    def create_venue(self, owner_id: int, name: str, timezone: str = None,
                     availability: Dict = None, weekly_sessions: Dict = None,
                     public_booking_enabled: bool = True) -> Result:
        try:
            if not name or not name.strip():
                raise ValidationError("Venue name is required")
            tz_name = timezone or Config.DEFAULT_VENUE_TIMEZONE
            get_zone(tz_name)
            opening_hours = parse_availability(availability)
            sessions = parse_weekly_sessions(weekly_sessions)
        except ValidationError as e:
            return Failure.from_exception(e)

        slug = slugify(name)
        if self.venue_db.exists(slug=slug):
            slug = f"{slug}-{generate_secure_token()[:6].lower()}"

        venue = self.venue_db.create(
            owner_id=owner_id,
            name=name.strip(),
            slug=slug,
            timezone=tz_name,
            public_booking_enabled=bool(public_booking_enabled),
            availability={d.weekday.value: d.to_dict() for d in opening_hours.values()},
            weekly_sessions={r.group: r.to_dict() for r in sessions}
        )
        logger.info(f"Created venue {venue.id} for owner {owner_id}")
        return Success(venue)

    def update_availability(self, owner_id: int, venue_id: int, raw: Dict) -> Result:
        """Replace opening hours after validating them"""
        try:
            parsed = parse_availability(raw)
        except ValidationError as e:
            return Failure.from_exception(e)

        with get_db() as db:
            venue = self._owned_venue(db, owner_id, venue_id)
            if not venue:
                return Failure(ErrorKind.NOT_FOUND, 'Venue not found')
            venue.availability = {d.weekday.value: d.to_dict() for d in parsed.values()}
        return Success(venue)

    def update_weekly_sessions(self, owner_id: int, venue_id: int, raw: Dict) -> Result:
        """Replace recurring group sessions after validating them"""
        try:
            rules = parse_weekly_sessions(raw)
        except ValidationError as e:
            return Failure.from_exception(e)

        with get_db() as db:
            venue = self._owned_venue(db, owner_id, venue_id)
            if not venue:
                return Failure(ErrorKind.NOT_FOUND, 'Venue not found')
            venue.weekly_sessions = {r.group: r.to_dict() for r in rules}
        return Success(venue)

    def update_sync_settings(self, owner_id: int, venue_id: int, enabled: bool = None,
                             calendar_id: str = None, direction: str = None) -> Result:
        """
        Change a venue's sync configuration.
        Enabling schedules the venue job with an immediate pass; disabling stops it.
        """
        try:
            new_direction = SyncDirection(direction) if direction is not None else None
        except ValueError:
            return Failure(ErrorKind.VALIDATION, f"Invalid sync direction: {direction}")

        with get_db() as db:
            venue = self._owned_venue(db, owner_id, venue_id)
            if not venue:
                return Failure(ErrorKind.NOT_FOUND, 'Venue not found')

            was_enabled = venue.sync_enabled
            target_calendar = calendar_id if calendar_id is not None else venue.google_calendar_id
            target_enabled = enabled if enabled is not None else venue.sync_enabled

            if target_enabled:
                if not target_calendar:
                    return Failure(ErrorKind.VALIDATION, 'Select a calendar before enabling sync')
                if not db.query(CalendarCredential).filter_by(user_id=owner_id).first():
                    return Failure(ErrorKind.AUTH, 'Connect a calendar before enabling sync')

            calendar_changed = calendar_id is not None and calendar_id != venue.google_calendar_id
            if calendar_changed:
                # Mirrors describe the previous calendar
                db.query(SyncedEvent).filter_by(venue_id=venue.id).delete(synchronize_session=False)
                venue.last_synced_at = None
                logger.info(f"Calendar for venue {venue.id} changed; mirror records cleared")
            elif new_direction is not None and not new_direction.imports:
                db.query(SyncedEvent).filter_by(
                    venue_id=venue.id, direction=MirrorDirection.IMPORTED
                ).delete(synchronize_session=False)

            venue.google_calendar_id = target_calendar
            venue.sync_enabled = bool(target_enabled)
            if new_direction is not None:
                venue.sync_direction = new_direction

        if venue.sync_enabled:
            if self.scheduler:
                self.scheduler.schedule_venue(venue.id, run_now=True)
            elif self.sync_service and (not was_enabled or calendar_changed):
                self.sync_service.run_full_sync(venue.id)
        elif was_enabled and self.scheduler:
            self.scheduler.unschedule_venue(venue.id)

        logger.info(f"Sync settings for venue {venue.id}: enabled={venue.sync_enabled}, "
                    f"direction={venue.sync_direction.value}")
        return self.get_sync_status(owner_id, venue.id)

    def get_sync_status(self, owner_id: int, venue_id: int) -> Result:
        with get_db() as db:
            venue = self._owned_venue(db, owner_id, venue_id)
            if not venue:
                return Failure(ErrorKind.NOT_FOUND, 'Venue not found')
            connected = db.query(CalendarCredential).filter_by(user_id=owner_id).first() is not None
            owner = db.query(User).filter_by(id=owner_id).first()

            status = {
                'venue_id': venue.id,
                'enabled': venue.sync_enabled,
                'calendar_id': venue.google_calendar_id,
                'direction': venue.sync_direction.value,
                'last_synced_at': to_rfc3339(venue.last_synced_at) if venue.last_synced_at else None,
                'connected': connected,
                'reconnect_required': bool(owner and owner.calendar_reconnect_required),
            }
        if self.scheduler:
            status['scheduled'] = self.scheduler.is_scheduled(venue_id)
        return Success(status)
