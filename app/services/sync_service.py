from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional
from sqlalchemy.exc import SQLAlchemyError
from app.database import get_db
from app.integrations import GoogleCalendarClient, EventPayload
from app.models import Reservation, ReservationStatus, SyncedEvent, MirrorDirection, Venue
from app.services.token_service import TokenService
from app.utils.errors import ErrorKind, NotFoundError, ScoutBookingsError, SyncStatus
from app.utils.locks import venue_sync_locks
from app.utils.logger import get_logger
from app.utils.result import Failure, Result, Success
from app.utils.timeutils import utcnow
from config.config import Config

logger = get_logger(__name__)


@dataclass
class SyncReport:
    venue_id: int
    pass_name: str
    created: int = 0
    updated: int = 0
    deleted: int = 0
    unchanged: int = 0
    skipped: int = 0
    failed: int = 0
    flagged_for_recreate: int = 0
    aborted: bool = False
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return asdict(self)

    def summary(self) -> str:
        return (f"{self.pass_name} for venue {self.venue_id}: created={self.created} "
                f"updated={self.updated} deleted={self.deleted} unchanged={self.unchanged} "
                f"skipped={self.skipped} failed={self.failed}")


def event_title(reservation: Reservation) -> str:
    return f"Scout Booking: {reservation.event_name}"


def event_description(reservation: Reservation) -> str:
    lines = (
        f"Contact: {reservation.contact_name or 'N/A'}\n"
        f"Email: {reservation.contact_email or 'N/A'}\n"
        f"Phone: {reservation.contact_phone or 'N/A'}\n\n"
        f"{reservation.notes or ''}"
    )
    return lines.strip()


def is_exportable(reservation: Optional[Reservation], now: datetime) -> bool:
    """Confirmed reservations that have not started yet are mirrored externally"""
    return (reservation is not None
            and reservation.status == ReservationStatus.CONFIRMED
            and reservation.start_time >= now)


class CalendarSyncService:
    """Reconciles a venue's reservations with its external calendar"""

    def __init__(self, calendar_client: GoogleCalendarClient = None, token_service: TokenService = None):
        self.calendar_client = calendar_client or GoogleCalendarClient()
        self.token_service = token_service or TokenService(self.calendar_client)
        self.window = timedelta(days=Config.SYNC_WINDOW_DAYS)

    @staticmethod
    def _load_venue(venue_id: int) -> Optional[Venue]:
        with get_db() as db:
            return db.query(Venue).filter_by(id=venue_id).first()

    @staticmethod
    def _sync_still_enabled(venue_id: int) -> bool:
        with get_db() as db:
            venue = db.query(Venue).filter_by(id=venue_id).first()
            return bool(venue and venue.sync_enabled)

    # ------------------------------------------------------------------
    # Pass A: external calendar -> imported mirror records
    # ------------------------------------------------------------------

    def sync_from_external(self, venue_id: int, access_token: str, calendar_id: str) -> Result:
        """Mirror the external calendar's timed events as blocks on the venue"""
        report = SyncReport(venue_id=venue_id, pass_name='import')
        now = utcnow()
        logger.info(f"Starting import from {calendar_id} for venue {venue_id}")

        try:
            events = self.calendar_client.list_events(access_token, calendar_id, now, now + self.window)
        except ScoutBookingsError as e:
            # Nothing is deleted when the listing itself failed
            logger.error(f"Could not fetch external events for venue {venue_id}: {e.message}")
            return Failure.from_exception(e, detail=report)

        try:
            with get_db() as db:
                existing = {
                    mirror.external_event_id: mirror
                    for mirror in db.query(SyncedEvent).filter_by(
                        venue_id=venue_id, direction=MirrorDirection.IMPORTED
                    ).all()
                }
                # Events this system exported must not block their own reservations
                exported_ids = {
                    row.external_event_id
                    for row in db.query(SyncedEvent.external_event_id).filter_by(
                        venue_id=venue_id, direction=MirrorDirection.EXPORTED
                    ).all()
                }

                seen = set()
                for event in events:
                    if event.id in seen or event.id in exported_ids:
                        report.skipped += 1
                        continue
                    seen.add(event.id)

                    mirror = existing.get(event.id)
                    if mirror is None:
                        db.add(SyncedEvent(
                            venue_id=venue_id,
                            external_event_id=event.id,
                            direction=MirrorDirection.IMPORTED,
                            start_time=event.start,
                            end_time=event.end,
                            title=event.title,
                            last_synced_at=now
                        ))
                        report.created += 1
                        logger.debug(f"Imported external event {event.id} for venue {venue_id}")
                    elif (mirror.start_time != event.start or mirror.end_time != event.end
                          or mirror.title != event.title):
                        mirror.start_time = event.start
                        mirror.end_time = event.end
                        mirror.title = event.title
                        mirror.last_synced_at = now
                        report.updated += 1
                        logger.debug(f"Updated imported event {event.id} for venue {venue_id}")
                    else:
                        report.unchanged += 1

                for external_id, mirror in existing.items():
                    if external_id not in seen:
                        db.delete(mirror)
                        report.deleted += 1
                        logger.debug(f"Removed imported event {external_id} for venue {venue_id}")

                venue = db.query(Venue).filter_by(id=venue_id).first()
                if venue:
                    venue.last_synced_at = now
        except SQLAlchemyError as e:
            logger.error(f"Import for venue {venue_id} could not be stored: {str(e)}")
            return Failure(ErrorKind.STORE_ERROR, 'Failed to store imported events', report)

        logger.info(report.summary())
        return Success(report)

    # ------------------------------------------------------------------
    # Pass B: confirmed future reservations -> external calendar
    # ------------------------------------------------------------------

    def _export_reservation(self, reservation: Reservation, mirror: Optional[SyncedEvent],
                            access_token: str, calendar_id: str, tz_name: str) -> str:
        """
        Create or update the external event for one reservation.
        Returns created, updated, unchanged, flagged or failed.
        """
        payload = EventPayload(
            title=event_title(reservation),
            description=event_description(reservation),
            start=reservation.start_time,
            end=reservation.end_time,
            timezone=tz_name
        )
        now = utcnow()

        if mirror is None or mirror.needs_recreate:
            try:
                external_id = self.calendar_client.create_event(access_token, calendar_id, payload)
            except ScoutBookingsError as e:
                logger.error(f"Failed to create external event for reservation {reservation.id}: {e.message}")
                return 'failed'

            try:
                with get_db() as db:
                    if mirror is None:
                        db.add(SyncedEvent(
                            venue_id=reservation.venue_id,
                            external_event_id=external_id,
                            reservation_id=reservation.id,
                            direction=MirrorDirection.EXPORTED,
                            start_time=reservation.start_time,
                            end_time=reservation.end_time,
                            title=payload.title,
                            last_synced_at=now
                        ))
                    else:
                        record = db.query(SyncedEvent).filter_by(id=mirror.id).first()
                        record.external_event_id = external_id
                        record.start_time = reservation.start_time
                        record.end_time = reservation.end_time
                        record.title = payload.title
                        record.needs_recreate = False
                        record.last_synced_at = now
            except SQLAlchemyError as e:
                logger.error(f"Created event {external_id} but could not record it for "
                             f"reservation {reservation.id}: {str(e)}")
                # Without a mirror the event would be orphaned
                try:
                    self.calendar_client.delete_event(access_token, calendar_id, external_id)
                except ScoutBookingsError as cleanup_error:
                    logger.error(f"Could not remove orphaned event {external_id}: {cleanup_error.message}")
                return 'failed'

            logger.debug(f"Exported reservation {reservation.id} as {external_id}")
            return 'created'

        if (mirror.start_time == reservation.start_time and mirror.end_time == reservation.end_time
                and mirror.title == payload.title):
            return 'unchanged'

        try:
            self.calendar_client.update_event(access_token, calendar_id, mirror.external_event_id, payload)
        except NotFoundError:
            logger.warning(f"External event {mirror.external_event_id} for reservation {reservation.id} "
                           f"no longer exists; flagged for recreation")
            try:
                with get_db() as db:
                    record = db.query(SyncedEvent).filter_by(id=mirror.id).first()
                    if record:
                        record.needs_recreate = True
            except SQLAlchemyError as e:
                logger.error(f"Could not flag mirror {mirror.id} for recreation: {str(e)}")
                return 'failed'
            return 'flagged'
        except ScoutBookingsError as e:
            logger.error(f"Failed to update external event for reservation {reservation.id}: {e.message}")
            return 'failed'

        try:
            with get_db() as db:
                record = db.query(SyncedEvent).filter_by(id=mirror.id).first()
                if record:
                    record.start_time = reservation.start_time
                    record.end_time = reservation.end_time
                    record.title = payload.title
                    record.last_synced_at = now
        except SQLAlchemyError as e:
            # The stale mirror makes the next pass retry the update
            logger.error(f"Updated event {mirror.external_event_id} but could not record it for "
                         f"reservation {reservation.id}: {str(e)}")
            return 'failed'
        logger.debug(f"Updated external event {mirror.external_event_id} for reservation {reservation.id}")
        return 'updated'

    def _remove_export(self, mirror: SyncedEvent, access_token: str, calendar_id: str) -> bool:
        """Delete the external event, then its mirror; a failed delete keeps the mirror for retry"""
        try:
            self.calendar_client.delete_event(access_token, calendar_id, mirror.external_event_id)
        except ScoutBookingsError as e:
            logger.error(f"Failed to delete external event {mirror.external_event_id}: {e.message}")
            return False

        try:
            with get_db() as db:
                db.query(SyncedEvent).filter_by(id=mirror.id).delete(synchronize_session=False)
        except SQLAlchemyError as e:
            logger.error(f"Deleted event {mirror.external_event_id} but could not remove its mirror: {str(e)}")
            return False
        logger.debug(f"Removed exported event {mirror.external_event_id}")
        return True

    def sync_to_external(self, venue_id: int, access_token: str, calendar_id: str) -> Result:
        """Push confirmed future reservations to the external calendar"""
        report = SyncReport(venue_id=venue_id, pass_name='export')
        now = utcnow()
        logger.info(f"Starting export to {calendar_id} for venue {venue_id}")

        try:
            with get_db() as db:
                venue = db.query(Venue).filter_by(id=venue_id).first()
                if not venue:
                    return Failure(ErrorKind.NOT_FOUND, 'Venue not found', report)
                tz_name = venue.zone_name
                reservations = db.query(Reservation).filter(
                    Reservation.venue_id == venue_id,
                    Reservation.status == ReservationStatus.CONFIRMED,
                    Reservation.start_time >= now
                ).order_by(Reservation.start_time).all()
                mirrors = {
                    mirror.reservation_id: mirror
                    for mirror in db.query(SyncedEvent).filter_by(
                        venue_id=venue_id, direction=MirrorDirection.EXPORTED
                    ).all()
                }
        except SQLAlchemyError as e:
            logger.error(f"Could not load reservations for export from venue {venue_id}: {str(e)}")
            return Failure(ErrorKind.STORE_ERROR, 'Failed to load reservations', report)

        current_ids = set()
        for reservation in reservations:
            current_ids.add(reservation.id)
            mirror = mirrors.get(reservation.id)
            needs_write = (mirror is None or mirror.needs_recreate
                           or mirror.start_time != reservation.start_time
                           or mirror.end_time != reservation.end_time
                           or mirror.title != event_title(reservation))
            if needs_write and not self._sync_still_enabled(venue_id):
                report.aborted = True
                break

            outcome = self._export_reservation(reservation, mirror, access_token, calendar_id, tz_name)
            if outcome == 'created':
                report.created += 1
            elif outcome == 'updated':
                report.updated += 1
            elif outcome == 'unchanged':
                report.unchanged += 1
            elif outcome == 'flagged':
                report.flagged_for_recreate += 1
            else:
                report.failed += 1
                report.errors.append(f"reservation {reservation.id}")

        if not report.aborted:
            for reservation_id, mirror in mirrors.items():
                if reservation_id in current_ids:
                    continue
                if not self._sync_still_enabled(venue_id):
                    report.aborted = True
                    break
                if self._remove_export(mirror, access_token, calendar_id):
                    report.deleted += 1
                else:
                    report.failed += 1
                    report.errors.append(f"event {mirror.external_event_id}")

        if report.aborted:
            logger.info(f"Export for venue {venue_id} stopped: sync was disabled mid-pass")
            return Failure(ErrorKind.SYNC_DISABLED, 'Sync disabled during export', report)

        try:
            with get_db() as db:
                venue = db.query(Venue).filter_by(id=venue_id).first()
                if venue:
                    venue.last_synced_at = utcnow()
        except SQLAlchemyError as e:
            logger.error(f"Could not record export time for venue {venue_id}: {str(e)}")

        logger.info(report.summary())
        return Success(report)

    # ------------------------------------------------------------------
    # Orchestration
    # ------------------------------------------------------------------

    def run_full_sync(self, venue_id: int) -> Result:
        """Run the passes the venue's direction calls for; one pass per venue at a time"""
        with venue_sync_locks.hold(venue_id, blocking=False) as acquired:
            if not acquired:
                logger.info(f"Sync already running for venue {venue_id}")
                return Failure(ErrorKind.SYNC_IN_PROGRESS, 'Sync already in progress')
            try:
                return self._run_passes(venue_id)
            except SQLAlchemyError as e:
                logger.error(f"Sync for venue {venue_id} stopped on a store error: {str(e)}")
                return Failure(ErrorKind.STORE_ERROR, 'Sync could not read or write venue state')

    def _run_passes(self, venue_id: int) -> Result:
        venue = self._load_venue(venue_id)
        if not venue:
            return Failure(ErrorKind.NOT_FOUND, 'Venue not found')
        if not venue.sync_enabled:
            return Failure(ErrorKind.SYNC_DISABLED, 'Calendar sync is disabled for this venue')
        if not venue.google_calendar_id:
            return Failure(ErrorKind.VALIDATION, 'No calendar selected for this venue')

        access_token = self.token_service.get_valid_access_token(venue.owner_id)
        if not access_token:
            logger.warning(f"No valid calendar credentials for owner of venue {venue_id}")
            return Failure(ErrorKind.AUTH, 'Calendar not connected or reconnect required')

        results = {}
        if venue.sync_direction.imports:
            results['import'] = self.sync_from_external(venue_id, access_token, venue.google_calendar_id)
        if venue.sync_direction.exports:
            results['export'] = self.sync_to_external(venue_id, access_token, venue.google_calendar_id)

        if results and all(not r.ok for r in results.values()):
            return next(iter(results.values()))

        summary = {}
        for name, result in results.items():
            if result.ok:
                summary[name] = result.value.to_dict()
            else:
                summary[name] = {'error': result.error.value, 'message': result.message}
        return Success(summary)

    def sync_reservation(self, venue_id: int, reservation_id: int) -> SyncStatus:
        """Best-effort export of one reservation after it was written"""
        try:
            venue = self._load_venue(venue_id)
            if not venue or not venue.sync_enabled or not venue.sync_direction.exports:
                return SyncStatus.SYNC_DISABLED
            if not venue.google_calendar_id:
                return SyncStatus.NOT_SYNCED

            access_token = self.token_service.get_valid_access_token(venue.owner_id)
            if not access_token:
                return SyncStatus.NO_CREDENTIALS

            with venue_sync_locks.hold(venue_id, timeout=Config.SYNC_LOCK_TIMEOUT_SECONDS) as acquired:
                if not acquired:
                    logger.info(f"Sync of reservation {reservation_id} deferred to the next pass")
                    return SyncStatus.DEFERRED

                with get_db() as db:
                    reservation = db.query(Reservation).filter_by(id=reservation_id).first()
                    mirror = db.query(SyncedEvent).filter_by(
                        reservation_id=reservation_id, direction=MirrorDirection.EXPORTED
                    ).first()

                if is_exportable(reservation, utcnow()):
                    if not self._sync_still_enabled(venue_id):
                        return SyncStatus.SYNC_DISABLED
                    outcome = self._export_reservation(
                        reservation, mirror, access_token, venue.google_calendar_id, venue.zone_name
                    )
                    if outcome in ('created', 'updated', 'unchanged'):
                        return SyncStatus.SYNCED
                    if outcome == 'flagged':
                        return SyncStatus.EVENT_DELETED_EXTERNALLY
                    return SyncStatus.SYNC_FAILED

                if mirror is None:
                    return SyncStatus.NOT_SYNCED
                if not self._sync_still_enabled(venue_id):
                    return SyncStatus.SYNC_DISABLED
                if self._remove_export(mirror, access_token, venue.google_calendar_id):
                    return SyncStatus.SYNCED
                return SyncStatus.SYNC_FAILED
        except (ScoutBookingsError, SQLAlchemyError) as e:
            logger.error(f"Sync of reservation {reservation_id} failed: {str(e)}")
            return SyncStatus.SYNC_ERROR
