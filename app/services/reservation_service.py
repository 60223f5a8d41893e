from datetime import datetime
from typing import Dict, List, Optional, Tuple
from sqlalchemy.exc import SQLAlchemyError
from app.database import get_db
from app.models import Reservation, ReservationStatus, ReservationSource, User, Venue
from app.services.availability_service import AvailabilityService
from app.services.notification_service import NotificationService
from app.services.sync_service import CalendarSyncService
from app.utils.errors import ErrorKind, ScoutBookingsError, SyncStatus, ValidationError
from app.utils.intervals import validate_interval
from app.utils.locks import venue_booking_locks
from app.utils.logger import get_logger
from app.utils.result import Failure, Result, Success
from app.utils.security import generate_booking_token
from app.utils.timeutils import parse_iso_datetime, to_local, to_rfc3339
from app.utils.validators import require_fields, validate_contact

logger = get_logger(__name__)


def serialize_reservation(reservation: Reservation, tz_name: str = None) -> Dict:
    data = {
        'id': reservation.id,
        'venue_id': reservation.venue_id,
        'event_name': reservation.event_name,
        'contact_name': reservation.contact_name,
        'contact_email': reservation.contact_email,
        'contact_phone': reservation.contact_phone,
        'notes': reservation.notes,
        'start_time': to_rfc3339(reservation.start_time),
        'end_time': to_rfc3339(reservation.end_time),
        'status': reservation.status.value,
        'source': reservation.source.value,
        'created_at': to_rfc3339(reservation.created_at) if reservation.created_at else None,
    }
    if tz_name:
        data['local_start'] = to_local(reservation.start_time, tz_name).isoformat()
        data['local_end'] = to_local(reservation.end_time, tz_name).isoformat()
    return data


class ReservationService:
    """Booking lifecycle; every write re-checks availability and then syncs best-effort"""

    def __init__(self, availability_service: AvailabilityService = None,
                 sync_service: CalendarSyncService = None,
                 notification_service: NotificationService = None):
        self.availability_service = availability_service or AvailabilityService()
        self.sync_service = sync_service
        self.notification_service = notification_service or NotificationService()

    @staticmethod
    def _parse_interval(data: Dict, tz_name: str) -> Tuple[datetime, datetime]:
        start = parse_iso_datetime(data.get('start_time'), tz_name)
        end = parse_iso_datetime(data.get('end_time'), tz_name)
        validate_interval(start, end)
        return start, end

    def _conflict_failure(self, db, venue: Venue, start: datetime, end: datetime,
                          exclude_id: Optional[int], owner_scope: bool) -> Optional[Failure]:
        result = self.availability_service.find_conflicts(db, venue, start, end, exclude_id, owner_scope)
        if result.available:
            return None
        return Failure(ErrorKind.CONFLICT, 'The requested time is not available',
                       [c.to_dict() for c in result.conflicts])

    def _sync(self, venue_id: int, reservation_id: int) -> SyncStatus:
        if not self.sync_service:
            return SyncStatus.NOT_SYNCED
        try:
            return self.sync_service.sync_reservation(venue_id, reservation_id)
        except Exception as e:
            logger.error(f"Sync after write failed for reservation {reservation_id}: {str(e)}")
            return SyncStatus.SYNC_ERROR

    @staticmethod
    def _outcome(reservation: Reservation, venue: Venue, sync_status: SyncStatus) -> Success:
        return Success({
            'reservation': serialize_reservation(reservation, venue.zone_name),
            'sync_status': sync_status.value,
        })

    def _create(self, venue_id: int, data: Dict, owner_id: Optional[int]) -> Result:
        is_owner = owner_id is not None
        try:
            required = ('event_name', 'start_time', 'end_time')
            if not is_owner:
                required += ('contact_name', 'contact_email')
            require_fields(data, required)
            if is_owner and not data.get('contact_email'):
                # Owners may block time without a contact
                contact = {
                    'contact_name': data.get('contact_name'),
                    'contact_email': None,
                    'contact_phone': data.get('contact_phone'),
                }
            else:
                contact = validate_contact(data)
        except ValidationError as e:
            return Failure.from_exception(e)

        try:
            with venue_booking_locks.hold(venue_id):
                with get_db() as db:
                    venue = db.query(Venue).filter_by(id=venue_id).with_for_update().first()
                    if not venue or (is_owner and venue.owner_id != owner_id) or (not is_owner and not venue.is_active):
                        return Failure(ErrorKind.NOT_FOUND, 'Venue not found')
                    if not is_owner and not venue.public_booking_enabled:
                        return Failure(ErrorKind.VALIDATION,
                                       'Public bookings are not currently available for this venue')

                    start, end = self._parse_interval(data, venue.zone_name)
                    if not is_owner and not self.availability_service.within_opening_hours(venue, start, end):
                        return Failure(ErrorKind.VALIDATION, 'The requested time is outside the venue opening hours')

                    conflict = self._conflict_failure(db, venue, start, end, None, owner_scope=is_owner)
                    if conflict:
                        return conflict

                    reservation = Reservation(
                        venue_id=venue.id,
                        event_name=data['event_name'].strip(),
                        notes=data.get('notes'),
                        start_time=start,
                        end_time=end,
                        status=ReservationStatus.CONFIRMED if is_owner else ReservationStatus.PENDING,
                        source=ReservationSource.OWNER if is_owner else ReservationSource.PUBLIC,
                        booking_token=None if is_owner else generate_booking_token(),
                        **contact
                    )
                    db.add(reservation)
                    db.flush()
                    db.refresh(reservation)
                    owner = db.query(User).filter_by(id=venue.owner_id).first()
                    owner_email = owner.email if owner else None
        except ScoutBookingsError as e:
            return Failure.from_exception(e)
        except SQLAlchemyError as e:
            logger.error(f"Could not create reservation for venue {venue_id}: {str(e)}")
            return Failure(ErrorKind.STORE_ERROR, 'Failed to create reservation')

        logger.info(f"Created {reservation.status.value} reservation {reservation.id} for venue {venue_id}")
        sync_status = self._sync(venue_id, reservation.id)
        if not is_owner:
            self.notification_service.notify_booking_request(owner_email, venue, reservation)

        outcome = self._outcome(reservation, venue, sync_status)
        if reservation.booking_token:
            outcome.value['booking_token'] = reservation.booking_token
        return outcome

    def create_reservation(self, owner_id: int, venue_id: int, data: Dict) -> Result:
        """Owner booking, confirmed immediately"""
        return self._create(venue_id, data, owner_id)

    def request_booking(self, venue_id: int, data: Dict) -> Result:
        """Public booking request, pending until the owner approves it"""
        return self._create(venue_id, data, None)

    def _load_owned(self, db, owner_id: int, reservation_id: int, lock: bool = False):
        query = db.query(Reservation).join(Venue, Venue.id == Reservation.venue_id).filter(
            Reservation.id == reservation_id,
            Venue.owner_id == owner_id
        )
        reservation = query.first()
        if not reservation:
            return None, None
        venue_query = db.query(Venue).filter_by(id=reservation.venue_id)
        venue = venue_query.with_for_update().first() if lock else venue_query.first()
        return reservation, venue

    def _venue_id_for(self, owner_id: int, reservation_id: int) -> Optional[int]:
        with get_db() as db:
            reservation, _ = self._load_owned(db, owner_id, reservation_id)
            return reservation.venue_id if reservation else None

    def update_reservation(self, owner_id: int, reservation_id: int, data: Dict) -> Result:
        """Change times or details; a new interval must be free of other bookings"""
        venue_id = self._venue_id_for(owner_id, reservation_id)
        if venue_id is None:
            return Failure(ErrorKind.NOT_FOUND, 'Reservation not found')

        try:
            with venue_booking_locks.hold(venue_id):
                with get_db() as db:
                    reservation, venue = self._load_owned(db, owner_id, reservation_id, lock=True)
                    if not reservation:
                        return Failure(ErrorKind.NOT_FOUND, 'Reservation not found')
                    if reservation.status == ReservationStatus.CANCELLED:
                        return Failure(ErrorKind.VALIDATION, 'Cancelled reservations cannot be edited')

                    start, end = reservation.start_time, reservation.end_time
                    if 'start_time' in data or 'end_time' in data:
                        start, end = self._parse_interval({
                            'start_time': data.get('start_time') or to_rfc3339(start),
                            'end_time': data.get('end_time') or to_rfc3339(end),
                        }, venue.zone_name)
                        conflict = self._conflict_failure(db, venue, start, end, reservation.id, owner_scope=True)
                        if conflict:
                            return conflict

                    if 'event_name' in data:
                        if not (data['event_name'] or '').strip():
                            return Failure(ErrorKind.VALIDATION, 'event_name is required')
                        reservation.event_name = data['event_name'].strip()
                    if 'contact_email' in data and data['contact_email']:
                        contact = validate_contact(data)
                        for key, value in contact.items():
                            setattr(reservation, key, value)
                    else:
                        for key in ('contact_name', 'contact_phone'):
                            if key in data:
                                setattr(reservation, key, data[key])
                    if 'notes' in data:
                        reservation.notes = data['notes']
                    reservation.start_time = start
                    reservation.end_time = end
                    db.flush()
                    db.refresh(reservation)
        except ScoutBookingsError as e:
            return Failure.from_exception(e)
        except SQLAlchemyError as e:
            logger.error(f"Could not update reservation {reservation_id}: {str(e)}")
            return Failure(ErrorKind.STORE_ERROR, 'Failed to update reservation')

        logger.info(f"Updated reservation {reservation_id}")
        return self._outcome(reservation, venue, self._sync(venue_id, reservation_id))

    def _transition(self, owner_id: int, reservation_id: int, allowed_from: Tuple[ReservationStatus, ...],
                    target: ReservationStatus, recheck: bool = False) -> Result:
        venue_id = self._venue_id_for(owner_id, reservation_id)
        if venue_id is None:
            return Failure(ErrorKind.NOT_FOUND, 'Reservation not found')

        try:
            with venue_booking_locks.hold(venue_id):
                with get_db() as db:
                    reservation, venue = self._load_owned(db, owner_id, reservation_id, lock=True)
                    if not reservation:
                        return Failure(ErrorKind.NOT_FOUND, 'Reservation not found')
                    if reservation.status not in allowed_from:
                        return Failure(ErrorKind.VALIDATION,
                                       f"Cannot change a {reservation.status.value} reservation to {target.value}")
                    if recheck:
                        conflict = self._conflict_failure(db, venue, reservation.start_time, reservation.end_time,
                                                          reservation.id, owner_scope=True)
                        if conflict:
                            return conflict
                    reservation.status = target
                    db.flush()
                    db.refresh(reservation)
        except ScoutBookingsError as e:
            return Failure.from_exception(e)
        except SQLAlchemyError as e:
            logger.error(f"Could not set reservation {reservation_id} to {target.value}: {str(e)}")
            return Failure(ErrorKind.STORE_ERROR, 'Failed to update reservation')

        logger.info(f"Reservation {reservation_id} is now {target.value}")
        return self._outcome(reservation, venue, self._sync(venue_id, reservation_id))

    def approve_reservation(self, owner_id: int, reservation_id: int) -> Result:
        result = self._transition(owner_id, reservation_id, (ReservationStatus.PENDING,),
                                  ReservationStatus.CONFIRMED, recheck=True)
        self._notify(result, 'booking_confirmed')
        return result

    def decline_reservation(self, owner_id: int, reservation_id: int) -> Result:
        result = self._transition(owner_id, reservation_id, (ReservationStatus.PENDING,),
                                  ReservationStatus.CANCELLED)
        self._notify(result, 'booking_declined')
        return result

    def cancel_reservation(self, owner_id: int, reservation_id: int) -> Result:
        result = self._transition(owner_id, reservation_id,
                                  (ReservationStatus.PENDING, ReservationStatus.CONFIRMED),
                                  ReservationStatus.CANCELLED)
        self._notify(result, 'booking_cancelled')
        return result

    def _notify(self, result: Result, template_kind: str):
        if not result.ok:
            return
        reservation_id = result.value['reservation']['id']
        with get_db() as db:
            reservation = db.query(Reservation).filter_by(id=reservation_id).first()
            venue = db.query(Venue).filter_by(id=reservation.venue_id).first() if reservation else None
        if reservation and venue and reservation.contact_email:
            self.notification_service.notify_requester(template_kind, venue, reservation)

    def delete_reservation(self, owner_id: int, reservation_id: int) -> Result:
        """Hard delete; the exported event is removed by the follow-up sync"""
        venue_id = self._venue_id_for(owner_id, reservation_id)
        if venue_id is None:
            return Failure(ErrorKind.NOT_FOUND, 'Reservation not found')

        with venue_booking_locks.hold(venue_id):
            with get_db() as db:
                deleted = db.query(Reservation).filter_by(id=reservation_id).delete(synchronize_session=False)
        if not deleted:
            return Failure(ErrorKind.NOT_FOUND, 'Reservation not found')

        logger.info(f"Deleted reservation {reservation_id}")
        sync_status = self._sync(venue_id, reservation_id)
        return Success({'deleted': True, 'sync_status': sync_status.value})

    def get_reservation(self, owner_id: int, reservation_id: int) -> Result:
        with get_db() as db:
            reservation, venue = self._load_owned(db, owner_id, reservation_id)
        if not reservation:
            return Failure(ErrorKind.NOT_FOUND, 'Reservation not found')
        return Success(serialize_reservation(reservation, venue.zone_name))

    def list_reservations(self, owner_id: int, venue_id: int, status: str = None) -> Result:
        try:
            status_filter = ReservationStatus(status) if status else None
        except ValueError:
            return Failure(ErrorKind.VALIDATION, f"Invalid status: {status}")

        with get_db() as db:
            venue = db.query(Venue).filter_by(id=venue_id, owner_id=owner_id).first()
            if not venue:
                return Failure(ErrorKind.NOT_FOUND, 'Venue not found')
            query = db.query(Reservation).filter_by(venue_id=venue_id)
            if status_filter:
                query = query.filter(Reservation.status == status_filter)
            reservations: List[Reservation] = query.order_by(Reservation.start_time).all()
        return Success([serialize_reservation(r, venue.zone_name) for r in reservations])
