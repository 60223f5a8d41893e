import os
import tempfile

# Must be set before config is imported
os.environ['DATABASE_URL'] = 'sqlite:///' + os.path.join(tempfile.gettempdir(), 'scoutbookings_test.db')
os.environ['SYNC_SCHEDULER_ENABLED'] = 'false'

import itertools
import pytest
from datetime import date, datetime, timedelta
from app.database import DatabaseManager, drop_db, init_db
from app.integrations import ExternalEvent, TokenGrant
from app.models import CalendarCredential, User, Venue, SyncDirection
from app.utils.errors import NotFoundError
from app.utils.timeutils import utcnow


class FakeCalendarClient:
    """In-memory stand-in for the Google Calendar client"""

    def __init__(self):
        self.calendars = {}
        self.calls = []
        self.failures = {}
        self.refresh_result = None
        self._ids = itertools.count(1)

    def add_event(self, calendar_id, title, start, end, event_id=None):
        event_id = event_id or f'ext_{next(self._ids)}'
        self.calendars.setdefault(calendar_id, {})[event_id] = ExternalEvent(event_id, title, start, end)
        return event_id

    def remove_event(self, calendar_id, event_id):
        self.calendars.get(calendar_id, {}).pop(event_id, None)

    def events(self, calendar_id):
        return self.calendars.get(calendar_id, {})

    def fail(self, operation, exc):
        """Raise exc on the next call of operation"""
        self.failures[operation] = exc

    def _maybe_fail(self, operation):
        exc = self.failures.pop(operation, None)
        if exc:
            raise exc

    def list_calendars(self, access_token):
        self.calls.append(('list_calendars',))
        self._maybe_fail('list_calendars')
        return [{'id': cid, 'summary': cid, 'primary': cid == 'primary', 'access_role': 'owner'}
                for cid in sorted(self.calendars)]

    def list_events(self, access_token, calendar_id, time_min, time_max):
        self.calls.append(('list_events', calendar_id))
        self._maybe_fail('list_events')
        return [e for e in self.events(calendar_id).values() if e.end > time_min and e.start < time_max]

    def create_event(self, access_token, calendar_id, payload):
        self.calls.append(('create_event', calendar_id, payload.title))
        self._maybe_fail('create_event')
        return self.add_event(calendar_id, payload.title, payload.start, payload.end)

    def update_event(self, access_token, calendar_id, event_id, payload):
        self.calls.append(('update_event', calendar_id, event_id))
        self._maybe_fail('update_event')
        if event_id not in self.events(calendar_id):
            raise NotFoundError('Update event failed (404)')
        self.calendars[calendar_id][event_id] = ExternalEvent(event_id, payload.title, payload.start, payload.end)
        return event_id

    def delete_event(self, access_token, calendar_id, event_id):
        self.calls.append(('delete_event', calendar_id, event_id))
        self._maybe_fail('delete_event')
        self.remove_event(calendar_id, event_id)
        return True

    def refresh_access_token(self, refresh_token):
        self.calls.append(('refresh_access_token',))
        self._maybe_fail('refresh_access_token')
        return self.refresh_result or TokenGrant('refreshed-token', refresh_token, utcnow() + timedelta(hours=1))

    def exchange_code(self, code, redirect_uri=None):
        self.calls.append(('exchange_code', code))
        self._maybe_fail('exchange_code')
        return TokenGrant(f'token-for-{code}', 'refresh-from-code', utcnow() + timedelta(hours=1))

    def count(self, operation):
        return sum(1 for call in self.calls if call[0] == operation)


@pytest.fixture
def db():
    """Fresh schema per test"""
    drop_db()
    init_db()
    yield
    drop_db()


@pytest.fixture
def fake_calendar():
    return FakeCalendarClient()


@pytest.fixture
def owner(db):
    return DatabaseManager(User).create(email='owner@example.com', full_name='Hut Owner')


@pytest.fixture
def venue(owner):
    return DatabaseManager(Venue).create(owner_id=owner.id, name='1st Testville Scout Hut', slug='1st-testville',
                                         timezone='UTC')


@pytest.fixture
def connected_venue(owner):
    """Venue syncing both ways with a fresh credential"""
    DatabaseManager(CalendarCredential).create(
        user_id=owner.id,
        access_token='access-token',
        refresh_token='refresh-token',
        expires_at=utcnow() + timedelta(hours=1)
    )
    return DatabaseManager(Venue).create(
        owner_id=owner.id, name='Synced Hut', slug='synced-hut', timezone='UTC',
        google_calendar_id='hut-calendar', sync_enabled=True, sync_direction=SyncDirection.BOTH
    )


def upcoming(weekday: int, weeks_ahead: int = 1) -> date:
    """A date at least weeks_ahead weeks out falling on weekday (0 = Monday)"""
    base = date.today() + timedelta(weeks=weeks_ahead)
    return base + timedelta(days=(weekday - base.weekday()) % 7)


def at(day: date, hour: int, minute: int = 0) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute)
