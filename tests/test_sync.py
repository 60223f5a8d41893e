import pytest
from contextlib import contextmanager
from datetime import timedelta
from unittest.mock import Mock
from sqlalchemy.exc import OperationalError
from app.database import DatabaseManager, get_db
from app.models import (CalendarCredential, Reservation, ReservationStatus, SyncedEvent, MirrorDirection,
                        Venue, SyncDirection)
from app.services.availability_service import AvailabilityService
from app.services.reservation_service import ReservationService
from app.services.sync_service import CalendarSyncService
from app.services.token_service import TokenService
from app.utils.errors import ErrorKind, SyncStatus, TransientExternalError
from app.utils.locks import venue_sync_locks
from app.utils.result import Success
from app.utils.timeutils import utcnow
from conftest import at, upcoming

CALENDAR = 'hut-calendar'


@pytest.fixture
def sync_service(fake_calendar):
    return CalendarSyncService(fake_calendar, TokenService(fake_calendar))


@pytest.fixture
def reservation_service(sync_service):
    return ReservationService(sync_service=sync_service, notification_service=_SilentNotifications())


class _SilentNotifications:
    def notify_booking_request(self, *args):
        return True

    def notify_requester(self, *args):
        return True


def mirrors(venue_id, direction=None):
    with get_db() as db:
        query = db.query(SyncedEvent).filter_by(venue_id=venue_id)
        if direction:
            query = query.filter_by(direction=direction)
        return query.all()


def add_confirmed(venue, day, start_hour, end_hour, name='Group Camp Briefing'):
    return DatabaseManager(Reservation).create(
        venue_id=venue.id, event_name=name, contact_name='Baloo', contact_email='baloo@example.com',
        start_time=at(day, start_hour), end_time=at(day, end_hour), status=ReservationStatus.CONFIRMED
    )


class TestImportPass:
    """External calendar into imported mirror records"""

    def test_creates_updates_and_deletes(self, sync_service, fake_calendar, connected_venue):
        day = upcoming(2)
        keep = fake_calendar.add_event(CALENDAR, 'Dentist', at(day, 9), at(day, 10))
        move = fake_calendar.add_event(CALENDAR, 'School run', at(day, 15), at(day, 16))
        gone = fake_calendar.add_event(CALENDAR, 'Holiday', at(day, 18), at(day, 19))

        first = sync_service.sync_from_external(connected_venue.id, 'token', CALENDAR)
        assert first.ok and first.value.created == 3
        assert len(mirrors(connected_venue.id, MirrorDirection.IMPORTED)) == 3

        fake_calendar.add_event(CALENDAR, 'School run (late)', at(day, 15, 30), at(day, 16, 30), event_id=move)
        fake_calendar.remove_event(CALENDAR, gone)

        second = sync_service.sync_from_external(connected_venue.id, 'token', CALENDAR)
        assert (second.value.created, second.value.updated, second.value.deleted) == (0, 1, 1)

        by_id = {m.external_event_id: m for m in mirrors(connected_venue.id)}
        assert set(by_id) == {keep, move}
        assert by_id[move].title == 'School run (late)'
        assert by_id[move].start_time == at(day, 15, 30)

    def test_second_run_without_changes_writes_nothing(self, sync_service, fake_calendar, connected_venue):
        day = upcoming(3)
        fake_calendar.add_event(CALENDAR, 'Dentist', at(day, 9), at(day, 10))
        sync_service.sync_from_external(connected_venue.id, 'token', CALENDAR)
        before = {m.id: m.updated_at for m in mirrors(connected_venue.id)}

        again = sync_service.sync_from_external(connected_venue.id, 'token', CALENDAR)
        report = again.value
        assert (report.created, report.updated, report.deleted, report.unchanged) == (0, 0, 0, 1)
        assert {m.id: m.updated_at for m in mirrors(connected_venue.id)} == before
        assert DatabaseManager(Venue).get(connected_venue.id).last_synced_at is not None

    def test_deleted_external_event_frees_the_slot(self, sync_service, fake_calendar, connected_venue):
        day = upcoming(4)
        event_id = fake_calendar.add_event(CALENDAR, 'Dentist', at(day, 9), at(day, 10))
        sync_service.sync_from_external(connected_venue.id, 'token', CALENDAR)

        availability = AvailabilityService()
        assert availability.check_availability(connected_venue.id, at(day, 9), at(day, 10)).value.available is False

        fake_calendar.remove_event(CALENDAR, event_id)
        sync_service.sync_from_external(connected_venue.id, 'token', CALENDAR)
        assert availability.check_availability(connected_venue.id, at(day, 9), at(day, 10)).value.available is True

    def test_no_duplicate_mirrors(self, sync_service, fake_calendar, connected_venue):
        day = upcoming(1)
        fake_calendar.add_event(CALENDAR, 'A', at(day, 9), at(day, 10))
        fake_calendar.add_event(CALENDAR, 'B', at(day, 11), at(day, 12))
        for _ in range(3):
            sync_service.sync_from_external(connected_venue.id, 'token', CALENDAR)

        ids = [m.external_event_id for m in mirrors(connected_venue.id)]
        assert len(ids) == len(set(ids)) == 2

    def test_listing_failure_keeps_existing_mirrors(self, sync_service, fake_calendar, connected_venue):
        day = upcoming(1)
        fake_calendar.add_event(CALENDAR, 'A', at(day, 9), at(day, 10))
        sync_service.sync_from_external(connected_venue.id, 'token', CALENDAR)

        fake_calendar.fail('list_events', TransientExternalError('503'))
        result = sync_service.sync_from_external(connected_venue.id, 'token', CALENDAR)
        assert result.error == ErrorKind.TRANSIENT_EXTERNAL
        assert len(mirrors(connected_venue.id)) == 1

    def test_exported_events_are_not_imported_back(self, sync_service, fake_calendar, connected_venue):
        day = upcoming(1)
        add_confirmed(connected_venue, day, 10, 12)

        sync_service.sync_to_external(connected_venue.id, 'token', CALENDAR)
        result = sync_service.sync_from_external(connected_venue.id, 'token', CALENDAR)

        assert result.value.skipped == 1
        assert mirrors(connected_venue.id, MirrorDirection.IMPORTED) == []


class TestExportPass:
    """Confirmed future reservations onto the external calendar"""

    def test_create_update_and_remove(self, sync_service, fake_calendar, connected_venue):
        day = upcoming(5)
        reservation = add_confirmed(connected_venue, day, 10, 12)

        created = sync_service.sync_to_external(connected_venue.id, 'token', CALENDAR)
        assert created.value.created == 1
        [mirror] = mirrors(connected_venue.id, MirrorDirection.EXPORTED)
        assert mirror.reservation_id == reservation.id
        assert fake_calendar.events(CALENDAR)[mirror.external_event_id].title == 'Scout Booking: Group Camp Briefing'

        DatabaseManager(Reservation).update(reservation.id, end_time=at(day, 13))
        updated = sync_service.sync_to_external(connected_venue.id, 'token', CALENDAR)
        assert updated.value.updated == 1
        assert fake_calendar.events(CALENDAR)[mirror.external_event_id].end == at(day, 13)

        unchanged = sync_service.sync_to_external(connected_venue.id, 'token', CALENDAR)
        assert unchanged.value.unchanged == 1
        assert fake_calendar.count('update_event') == 1

        DatabaseManager(Reservation).update(reservation.id, status=ReservationStatus.CANCELLED)
        removed = sync_service.sync_to_external(connected_venue.id, 'token', CALENDAR)
        assert removed.value.deleted == 1
        assert mirrors(connected_venue.id) == []
        assert fake_calendar.events(CALENDAR) == {}

    def test_creation_failure_leaves_no_mirror(self, sync_service, fake_calendar, connected_venue):
        add_confirmed(connected_venue, upcoming(1), 10, 12)
        fake_calendar.fail('create_event', TransientExternalError('500'))

        result = sync_service.sync_to_external(connected_venue.id, 'token', CALENDAR)
        assert result.value.failed == 1
        assert mirrors(connected_venue.id) == []

    def test_failed_delete_keeps_mirror_for_retry(self, sync_service, fake_calendar, connected_venue):
        reservation = add_confirmed(connected_venue, upcoming(1), 10, 12)
        sync_service.sync_to_external(connected_venue.id, 'token', CALENDAR)
        DatabaseManager(Reservation).delete_where(id=reservation.id)

        fake_calendar.fail('delete_event', TransientExternalError('503'))
        failed = sync_service.sync_to_external(connected_venue.id, 'token', CALENDAR)
        assert failed.value.failed == 1
        assert len(mirrors(connected_venue.id)) == 1

        retried = sync_service.sync_to_external(connected_venue.id, 'token', CALENDAR)
        assert retried.value.deleted == 1
        assert mirrors(connected_venue.id) == []

    def test_externally_deleted_event_is_recreated(self, sync_service, fake_calendar, connected_venue):
        day = upcoming(1)
        reservation = add_confirmed(connected_venue, day, 10, 12)
        sync_service.sync_to_external(connected_venue.id, 'token', CALENDAR)
        [mirror] = mirrors(connected_venue.id)
        fake_calendar.remove_event(CALENDAR, mirror.external_event_id)

        DatabaseManager(Reservation).update(reservation.id, start_time=at(day, 9))
        flagged = sync_service.sync_to_external(connected_venue.id, 'token', CALENDAR)
        assert flagged.value.flagged_for_recreate == 1
        assert mirrors(connected_venue.id)[0].needs_recreate is True

        recreated = sync_service.sync_to_external(connected_venue.id, 'token', CALENDAR)
        assert recreated.value.created == 1
        [fresh] = mirrors(connected_venue.id)
        assert fresh.needs_recreate is False
        assert fresh.external_event_id != mirror.external_event_id
        assert fresh.external_event_id in fake_calendar.events(CALENDAR)

    def test_store_error_on_one_reservation_does_not_stop_the_batch(self, sync_service, fake_calendar,
                                                                   connected_venue, monkeypatch):
        day = upcoming(2)
        first = add_confirmed(connected_venue, day, 10, 11)
        second = add_confirmed(connected_venue, day, 14, 15)
        sync_service.sync_to_external(connected_venue.id, 'token', CALENDAR)
        DatabaseManager(Reservation).update(first.id, end_time=at(day, 12))
        DatabaseManager(Reservation).update(second.id, end_time=at(day, 16))
        DatabaseManager(Venue).update(connected_venue.id, sync_direction=SyncDirection.EXPORT_ONLY)

        store_down = {'next_session': False}
        real_update_event = fake_calendar.update_event

        def update_then_lose_store(*args):
            event_id = real_update_event(*args)
            if fake_calendar.count('update_event') == 1:
                store_down['next_session'] = True
            return event_id

        @contextmanager
        def flaky_get_db():
            if store_down['next_session']:
                store_down['next_session'] = False
                raise OperationalError('UPDATE', {}, Exception('database is locked'))
            with get_db() as session:
                yield session

        monkeypatch.setattr(fake_calendar, 'update_event', update_then_lose_store)
        monkeypatch.setattr('app.services.sync_service.get_db', flaky_get_db)

        result = sync_service.run_full_sync(connected_venue.id)
        assert result.ok
        assert result.value['export']['failed'] == 1
        assert result.value['export']['updated'] == 1
        assert fake_calendar.count('update_event') == 2

    def test_past_reservations_are_not_exported(self, sync_service, fake_calendar, connected_venue):
        start = utcnow() - timedelta(days=2)
        DatabaseManager(Reservation).create(
            venue_id=connected_venue.id, event_name='Last week', start_time=start,
            end_time=start + timedelta(hours=1), status=ReservationStatus.CONFIRMED
        )
        result = sync_service.sync_to_external(connected_venue.id, 'token', CALENDAR)
        assert result.value.created == 0
        assert fake_calendar.count('create_event') == 0

    def test_disabling_mid_pass_stops_external_writes(self, sync_service, fake_calendar, connected_venue):
        add_confirmed(connected_venue, upcoming(1), 10, 12)
        DatabaseManager(Venue).update(connected_venue.id, sync_enabled=False)

        result = sync_service.sync_to_external(connected_venue.id, 'token', CALENDAR)
        assert result.error == ErrorKind.SYNC_DISABLED
        assert fake_calendar.count('create_event') == 0


class TestOrchestration:
    """Full passes and per-reservation sync"""

    def test_full_sync_follows_direction(self, sync_service, fake_calendar, connected_venue):
        DatabaseManager(Venue).update(connected_venue.id, sync_direction=SyncDirection.IMPORT_ONLY)
        add_confirmed(connected_venue, upcoming(1), 10, 12)

        result = sync_service.run_full_sync(connected_venue.id)
        assert result.ok
        assert set(result.value) == {'import'}
        assert fake_calendar.count('create_event') == 0

    def test_export_only_full_sync_records_sync_time(self, sync_service, fake_calendar, connected_venue):
        DatabaseManager(Venue).update(connected_venue.id, sync_direction=SyncDirection.EXPORT_ONLY)
        add_confirmed(connected_venue, upcoming(1), 10, 12)

        result = sync_service.run_full_sync(connected_venue.id)
        assert result.value['export']['created'] == 1
        assert fake_calendar.count('list_events') == 0
        assert DatabaseManager(Venue).get(connected_venue.id).last_synced_at is not None

    def test_store_error_becomes_a_failure(self, sync_service, connected_venue, monkeypatch):
        def broken_load(venue_id):
            raise OperationalError('SELECT', {}, Exception('database is locked'))

        monkeypatch.setattr(sync_service, '_load_venue', broken_load)
        assert sync_service.run_full_sync(connected_venue.id).error == ErrorKind.STORE_ERROR

    def test_full_sync_requires_credentials(self, sync_service, connected_venue, owner):
        DatabaseManager(CalendarCredential).delete_where(user_id=owner.id)
        result = sync_service.run_full_sync(connected_venue.id)
        assert result.error == ErrorKind.AUTH

    def test_single_flight_per_venue(self, sync_service, connected_venue):
        with venue_sync_locks.hold(connected_venue.id):
            result = sync_service.run_full_sync(connected_venue.id)
        assert result.error == ErrorKind.SYNC_IN_PROGRESS

    def test_disabled_venue_is_not_synced(self, sync_service, connected_venue):
        DatabaseManager(Venue).update(connected_venue.id, sync_enabled=False)
        assert sync_service.run_full_sync(connected_venue.id).error == ErrorKind.SYNC_DISABLED
        assert sync_service.sync_reservation(connected_venue.id, 1) == SyncStatus.SYNC_DISABLED

    def test_to_google_create_then_cancel(self, reservation_service, fake_calendar, connected_venue, owner):
        DatabaseManager(Venue).update(connected_venue.id, sync_direction=SyncDirection.EXPORT_ONLY)
        day = upcoming(2)

        created = reservation_service.create_reservation(owner.id, connected_venue.id, {
            'event_name': 'District AGM',
            'start_time': at(day, 19).isoformat(),
            'end_time': at(day, 21).isoformat(),
        })
        assert created.ok
        assert created.value['sync_status'] == SyncStatus.SYNCED.value
        exported = mirrors(connected_venue.id, MirrorDirection.EXPORTED)
        assert len(exported) == 1
        assert len(fake_calendar.events(CALENDAR)) == 1

        cancelled = reservation_service.cancel_reservation(owner.id, created.value['reservation']['id'])
        assert cancelled.value['sync_status'] == SyncStatus.SYNCED.value
        assert mirrors(connected_venue.id) == []
        assert fake_calendar.events(CALENDAR) == {}

    def test_hard_delete_removes_external_event(self, reservation_service, fake_calendar, connected_venue, owner):
        day = upcoming(2)
        created = reservation_service.create_reservation(owner.id, connected_venue.id, {
            'event_name': 'Quiz Night', 'start_time': at(day, 19).isoformat(), 'end_time': at(day, 21).isoformat(),
        })
        deleted = reservation_service.delete_reservation(owner.id, created.value['reservation']['id'])
        assert deleted.value['sync_status'] == SyncStatus.SYNCED.value
        assert fake_calendar.events(CALENDAR) == {}

    def test_sync_failure_does_not_abort_the_write(self, reservation_service, fake_calendar, connected_venue, owner):
        fake_calendar.fail('create_event', TransientExternalError('503'))
        day = upcoming(2)
        created = reservation_service.create_reservation(owner.id, connected_venue.id, {
            'event_name': 'Quiz Night', 'start_time': at(day, 19).isoformat(), 'end_time': at(day, 21).isoformat(),
        })
        assert created.ok
        assert created.value['sync_status'] == SyncStatus.SYNC_FAILED.value
        assert DatabaseManager(Reservation).count(venue_id=connected_venue.id) == 1

    def test_busy_venue_defers_reservation_sync(self, sync_service, connected_venue, monkeypatch):
        monkeypatch.setattr('app.services.sync_service.Config.SYNC_LOCK_TIMEOUT_SECONDS', 0.01)
        reservation = add_confirmed(connected_venue, upcoming(1), 10, 12)
        with venue_sync_locks.hold(connected_venue.id):
            status = sync_service.sync_reservation(connected_venue.id, reservation.id)
        assert status == SyncStatus.DEFERRED


class TestSyncCron:
    """Cron entry point over every sync-enabled venue"""

    def test_one_failing_venue_does_not_stop_the_rest(self, connected_venue, owner, monkeypatch):
        from scripts import run_sync_cron
        other = DatabaseManager(Venue).create(
            owner_id=owner.id, name='Second Hut', slug='second-hut', timezone='UTC',
            google_calendar_id='other-calendar', sync_enabled=True
        )
        service = Mock()
        service.run_full_sync.side_effect = [RuntimeError('calendar exploded'), Success({})]
        monkeypatch.setattr(run_sync_cron, 'CalendarSyncService', Mock(return_value=service))

        assert run_sync_cron.main() == 1
        synced = [call.args[0] for call in service.run_full_sync.call_args_list]
        assert sorted(synced) == sorted([connected_venue.id, other.id])
