import pytest
from datetime import date
from unittest.mock import patch
from sqlalchemy.exc import OperationalError
from app.database import DatabaseManager
from app.models import Reservation, ReservationStatus, SyncedEvent, MirrorDirection, Venue
from app.services.availability_service import AvailabilityService, ConflictType
from app.utils.errors import ErrorKind
from config.config import Config
from conftest import at, upcoming


@pytest.fixture
def availability_service():
    return AvailabilityService()


@pytest.fixture
def monday():
    return upcoming(0)


def add_reservation(venue, start, end, status=ReservationStatus.CONFIRMED, name='Jumble Sale'):
    return DatabaseManager(Reservation).create(
        venue_id=venue.id, event_name=name, contact_name='Akela', contact_email='akela@example.com',
        start_time=start, end_time=end, status=status
    )


def add_external_block(venue, start, end, title='Dentist appointment', external_id='ext-1'):
    return DatabaseManager(SyncedEvent).create(
        venue_id=venue.id, external_event_id=external_id, direction=MirrorDirection.IMPORTED,
        start_time=start, end_time=end, title=title
    )


class TestAvailabilityEngine:
    """Conflict detection across reservations, external blocks and sessions"""

    def test_empty_venue_is_available(self, availability_service, venue, monday):
        result = availability_service.check_availability(venue.id, at(monday, 10), at(monday, 11))
        assert result.ok
        assert result.value.available is True
        assert result.value.conflicts == ()

    def test_reservation_boundaries(self, availability_service, venue, monday):
        add_reservation(venue, at(monday, 10), at(monday, 11))

        overlapping = availability_service.check_availability(venue.id, at(monday, 10, 30), at(monday, 11, 30))
        assert overlapping.value.available is False
        assert len(overlapping.value.conflicts) == 1
        assert overlapping.value.conflicts[0].type == ConflictType.RESERVATION

        adjacent = availability_service.check_availability(venue.id, at(monday, 11), at(monday, 12))
        assert adjacent.value.available is True

    def test_pending_blocks_and_cancelled_does_not(self, availability_service, venue, monday):
        add_reservation(venue, at(monday, 10), at(monday, 11), status=ReservationStatus.PENDING)
        add_reservation(venue, at(monday, 12), at(monday, 13), status=ReservationStatus.CANCELLED)

        assert availability_service.check_availability(venue.id, at(monday, 10), at(monday, 11)).value.available is False
        assert availability_service.check_availability(venue.id, at(monday, 12), at(monday, 13)).value.available is True

    def test_excluded_reservation_is_ignored(self, availability_service, venue, monday):
        reservation = add_reservation(venue, at(monday, 10), at(monday, 11))
        result = availability_service.check_availability(
            venue.id, at(monday, 10, 30), at(monday, 11, 30), exclude_reservation_id=reservation.id
        )
        assert result.value.available is True

    def test_cubs_session_conflict(self, availability_service, venue, monday):
        DatabaseManager(Venue).update(venue.id, weekly_sessions={
            'cubs': {'enabled': True, 'day': 'monday', 'start_time': '16:00', 'end_time': '17:00'}
        })

        result = availability_service.check_availability(venue.id, at(monday, 16, 30), at(monday, 17, 30))
        assert result.value.available is False
        assert len(result.value.conflicts) == 1
        conflict = result.value.conflicts[0]
        assert conflict.type == ConflictType.RECURRING_SESSION
        assert conflict.title == 'Cubs Session'
        assert (conflict.start, conflict.end) == (at(monday, 16), at(monday, 17))

        tuesday = date.fromordinal(monday.toordinal() + 1)
        assert availability_service.check_availability(
            venue.id, at(tuesday, 16, 30), at(tuesday, 17, 30)
        ).value.available is True

    def test_session_in_london_time(self, availability_service, venue, monday):
        DatabaseManager(Venue).update(venue.id, timezone='Europe/London', weekly_sessions={
            'cubs': {'enabled': True, 'day': 'monday', 'start_time': '16:00', 'end_time': '17:00'}
        })
        session_start = AvailabilityService().check_availability(
            venue.id, at(monday, 0), at(monday, 23, 59)
        ).value.conflicts[0].start
        # 16:00 local is 15:00 or 16:00 UTC depending on summer time
        assert session_start in (at(monday, 15), at(monday, 16))

    def test_conflict_order_is_stable(self, availability_service, venue, monday):
        DatabaseManager(Venue).update(venue.id, weekly_sessions={
            'cubs': {'enabled': True, 'day': 'monday', 'start_time': '09:00', 'end_time': '10:00'}
        })
        add_external_block(venue, at(monday, 8), at(monday, 9, 30))
        add_reservation(venue, at(monday, 9, 30), at(monday, 10, 30))

        result = availability_service.check_availability(venue.id, at(monday, 8), at(monday, 11))
        assert [c.type for c in result.value.conflicts] == [
            ConflictType.RESERVATION, ConflictType.EXTERNAL_BLOCK, ConflictType.RECURRING_SESSION
        ]

    def test_public_callers_never_see_external_titles(self, availability_service, venue, monday):
        add_external_block(venue, at(monday, 14), at(monday, 15), title='Secret surgery')
        add_reservation(venue, at(monday, 15), at(monday, 16), name='Private party')

        public = availability_service.check_availability(venue.id, at(monday, 13), at(monday, 17))
        titles = [c.title for c in public.value.conflicts]
        assert 'Secret surgery' not in titles
        assert Config.EXTERNAL_BLOCK_PUBLIC_TITLE in titles
        assert 'Private party' not in titles
        assert all(c.contact is None for c in public.value.conflicts)
        assert 'Secret surgery' not in str(public.value.to_dict())

        owner = availability_service.check_availability(venue.id, at(monday, 13), at(monday, 17), owner_scope=True)
        owner_titles = [c.title for c in owner.value.conflicts]
        assert 'Secret surgery' in owner_titles
        assert 'Private party' in owner_titles

    def test_zero_length_candidate_rejected(self, availability_service, venue, monday):
        result = availability_service.check_availability(venue.id, at(monday, 10), at(monday, 10))
        assert not result.ok
        assert result.error == ErrorKind.VALIDATION

    def test_unknown_venue(self, availability_service, db, monday):
        result = availability_service.check_availability(999, at(monday, 10), at(monday, 11))
        assert result.error == ErrorKind.NOT_FOUND

    def test_reservation_source_failure_fails_closed(self, availability_service, venue, monday):
        with patch.object(AvailabilityService, '_reservation_conflicts',
                          side_effect=OperationalError('SELECT', {}, Exception('database is locked'))):
            result = availability_service.check_availability(venue.id, at(monday, 10), at(monday, 11))
        assert not result.ok
        assert result.error == ErrorKind.STORE_ERROR

    def test_external_source_failure_degrades(self, availability_service, venue, monday):
        add_reservation(venue, at(monday, 10), at(monday, 11))
        with patch.object(AvailabilityService, '_external_conflicts',
                          side_effect=OperationalError('SELECT', {}, Exception('no such table'))):
            result = availability_service.check_availability(venue.id, at(monday, 10), at(monday, 11))
        assert result.ok
        assert result.value.available is False
        assert result.value.degraded_sources == ('external_blocks',)


class TestOpeningHoursAndDayView:
    """Opening hours and the blocked-slot view"""

    def test_within_opening_hours(self, venue, monday):
        DatabaseManager(Venue).update(venue.id, availability={
            'monday': {'enabled': True, 'start_time': '09:00', 'end_time': '21:00'},
            'tuesday': {'enabled': False, 'start_time': '09:00', 'end_time': '21:00'},
        })
        venue = DatabaseManager(Venue).get(venue.id)
        tuesday = date.fromordinal(monday.toordinal() + 1)

        assert AvailabilityService.within_opening_hours(venue, at(monday, 9), at(monday, 21))
        assert not AvailabilityService.within_opening_hours(venue, at(monday, 8), at(monday, 10))
        assert not AvailabilityService.within_opening_hours(venue, at(monday, 20), at(monday, 22))
        assert not AvailabilityService.within_opening_hours(venue, at(tuesday, 10), at(tuesday, 11))

    def test_no_hours_means_always_open(self, venue, monday):
        assert AvailabilityService.within_opening_hours(venue, at(monday, 2), at(monday, 3))

    def test_blocked_slots_sorted_and_marked(self, availability_service, venue, monday):
        DatabaseManager(Venue).update(venue.id, weekly_sessions={
            'beavers': {'enabled': True, 'day': 'monday', 'start_time': '18:00', 'end_time': '19:00'}
        })
        add_reservation(venue, at(monday, 12), at(monday, 13), status=ReservationStatus.PENDING)
        add_external_block(venue, at(monday, 9), at(monday, 10), title='Gym')

        result = availability_service.get_blocked_slots(venue.id, monday)
        slots = result.value['slots']
        assert [s['local_start'] for s in slots] == ['09:00', '12:00', '18:00']
        assert slots[0]['title'] == Config.EXTERNAL_BLOCK_PUBLIC_TITLE
        assert slots[1]['title'] == Config.PUBLIC_RESERVATION_TITLE
        assert 'pending' not in slots[1]
        assert 'reservation_id' not in slots[1]
        assert slots[2]['title'] == 'Beavers Session'

    def test_owner_blocked_slots_carry_reservation_details(self, availability_service, venue, monday):
        reservation = add_reservation(venue, at(monday, 12), at(monday, 13), status=ReservationStatus.PENDING)

        slots = availability_service.get_blocked_slots(venue.id, monday, owner_scope=True).value['slots']
        assert slots[0]['title'] == 'Jumble Sale'
        assert slots[0]['reservation_id'] == reservation.id
        assert slots[0]['pending'] is True
        assert slots[0]['contact']['email'] == 'akela@example.com'
