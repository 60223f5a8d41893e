import requests
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional
from urllib.parse import quote
from config.config import Config
from app.utils.errors import AuthError, NotFoundError, TransientExternalError, ValidationError
from app.utils.logger import get_logger
from app.utils.timeutils import parse_iso_datetime, to_rfc3339, utcnow

logger = get_logger(__name__)


@dataclass(frozen=True)
class ExternalEvent:
    """A timed event as read from the provider, start/end in naive UTC"""
    id: str
    title: str
    start: datetime
    end: datetime
    status: str = 'confirmed'
    html_link: Optional[str] = None


@dataclass(frozen=True)
class EventPayload:
    title: str
    start: datetime
    end: datetime
    description: str = ''
    timezone: str = 'Europe/London'

    def to_body(self) -> Dict:
        return {
            'summary': self.title,
            'description': self.description,
            'start': {'dateTime': to_rfc3339(self.start), 'timeZone': self.timezone},
            'end': {'dateTime': to_rfc3339(self.end), 'timeZone': self.timezone},
        }


@dataclass(frozen=True)
class TokenGrant:
    access_token: str
    refresh_token: Optional[str]
    expires_at: datetime

    @classmethod
    def from_response(cls, data: Dict, fallback_refresh_token: str = None) -> 'TokenGrant':
        expires_in = data.get('expires_in') or Config.DEFAULT_TOKEN_EXPIRY_SECONDS
        return cls(
            access_token=data['access_token'],
            # The provider usually omits the refresh token on refresh
            refresh_token=data.get('refresh_token') or fallback_refresh_token,
            expires_at=utcnow() + timedelta(seconds=int(expires_in)),
        )


class GoogleCalendarClient:
    """Wrapper for Google Calendar REST operations"""

    def __init__(self, session: requests.Session = None):
        self.base_url = Config.GOOGLE_CALENDAR_API_BASE.rstrip('/')
        self.token_endpoint = Config.GOOGLE_TOKEN_ENDPOINT
        self.client_id = Config.GOOGLE_CLIENT_ID
        self.client_secret = Config.GOOGLE_CLIENT_SECRET
        self.timeout = Config.EXTERNAL_API_TIMEOUT_SECONDS
        self.session = session or requests.Session()

        if not self.client_id or not self.client_secret:
            logger.warning("Google OAuth client credentials not configured")

    @staticmethod
    def _raise_for_status(response, context: str):
        status = response.status_code
        if status < 400:
            return
        try:
            detail = response.json().get('error', {})
            message = detail.get('message') if isinstance(detail, dict) else str(detail)
        except ValueError:
            message = None
        message = f"{context} failed ({status}): {message or response.reason}"

        if status == 400:
            raise ValidationError(message)
        if status in (401, 403):
            raise AuthError(message)
        if status in (404, 410):
            raise NotFoundError(message)
        raise TransientExternalError(message)

    def _make_request(self, method: str, endpoint: str, access_token: str,
                      params: Dict = None, data: Dict = None, context: str = 'Calendar request'):
        """Make an authorised API request; raises typed errors"""
        url = f"{self.base_url}{endpoint}"
        headers = {
            'Authorization': f"Bearer {access_token}",
            'Content-Type': 'application/json'
        }
        try:
            response = self.session.request(
                method=method,
                url=url,
                headers=headers,
                params=params,
                json=data,
                timeout=self.timeout
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"Google Calendar network error during {context}: {str(e)}")
            raise TransientExternalError(f"{context} failed: {str(e)}")

        self._raise_for_status(response, context)
        if response.status_code == 204 or not response.content:
            return {}
        return response.json()

    def _post_token(self, form: Dict, context: str) -> Dict:
        try:
            response = self.session.post(
                self.token_endpoint,
                data=form,
                headers={'Content-Type': 'application/x-www-form-urlencoded'},
                timeout=self.timeout
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"Token endpoint network error during {context}: {str(e)}")
            raise TransientExternalError(f"{context} failed: {str(e)}")

        # A rejected grant is unrecoverable; anything else may succeed later
        if response.status_code in (400, 401):
            raise AuthError(f"{context} rejected ({response.status_code})")
        if response.status_code >= 400:
            raise TransientExternalError(f"{context} failed ({response.status_code})")
        return response.json()

    @staticmethod
    def _events_path(calendar_id: str, event_id: str = None) -> str:
        path = f"/calendars/{quote(calendar_id, safe='')}/events"
        if event_id:
            path = f"{path}/{quote(event_id, safe='')}"
        return path

    def list_calendars(self, access_token: str) -> List[Dict]:
        """Calendars the user can see, primary first"""
        data = self._make_request('GET', '/users/me/calendarList', access_token,
                                  context='List calendars')
        calendars = [
            {
                'id': item['id'],
                'summary': item.get('summary') or item['id'],
                'primary': bool(item.get('primary')),
                'access_role': item.get('accessRole'),
            }
            for item in data.get('items', [])
        ]
        return sorted(calendars, key=lambda c: (not c['primary'], c['summary'].lower()))

    def list_events(self, access_token: str, calendar_id: str,
                    time_min: datetime, time_max: datetime) -> List[ExternalEvent]:
        """Timed events in [time_min, time_max); all-day and cancelled events are dropped"""
        params = {
            'timeMin': to_rfc3339(time_min),
            'timeMax': to_rfc3339(time_max),
            'singleEvents': 'true',
            'orderBy': 'startTime',
            'maxResults': 2500,
        }
        events = []
        skipped = 0
        while True:
            data = self._make_request('GET', self._events_path(calendar_id), access_token,
                                      params=params, context='List events')
            for item in data.get('items', []):
                start = (item.get('start') or {}).get('dateTime')
                end = (item.get('end') or {}).get('dateTime')
                if not start or not end or item.get('status') == 'cancelled':
                    skipped += 1
                    continue
                events.append(ExternalEvent(
                    id=item['id'],
                    title=item.get('summary') or 'Untitled Event',
                    start=parse_iso_datetime(start),
                    end=parse_iso_datetime(end),
                    status=item.get('status', 'confirmed'),
                    html_link=item.get('htmlLink'),
                ))
            page_token = data.get('nextPageToken')
            if not page_token:
                break
            params = dict(params, pageToken=page_token)

        logger.debug(f"Fetched {len(events)} timed events from {calendar_id} ({skipped} skipped)")
        return events

    def create_event(self, access_token: str, calendar_id: str, payload: EventPayload) -> str:
        """Create an event and return its id"""
        data = self._make_request('POST', self._events_path(calendar_id), access_token,
                                  data=payload.to_body(), context='Create event')
        return data['id']

    def update_event(self, access_token: str, calendar_id: str, event_id: str, payload: EventPayload) -> str:
        data = self._make_request('PUT', self._events_path(calendar_id, event_id), access_token,
                                  data=payload.to_body(), context='Update event')
        return data.get('id', event_id)

    def delete_event(self, access_token: str, calendar_id: str, event_id: str) -> bool:
        """Delete an event; an already-deleted event counts as success"""
        try:
            self._make_request('DELETE', self._events_path(calendar_id, event_id), access_token,
                               context='Delete event')
        except NotFoundError:
            logger.info(f"Event {event_id} already gone from {calendar_id}")
        return True

    def refresh_access_token(self, refresh_token: str) -> TokenGrant:
        data = self._post_token({
            'refresh_token': refresh_token,
            'client_id': self.client_id,
            'client_secret': self.client_secret,
            'grant_type': 'refresh_token',
        }, 'Token refresh')
        return TokenGrant.from_response(data, fallback_refresh_token=refresh_token)

    def exchange_code(self, code: str, redirect_uri: str = None) -> TokenGrant:
        """Exchange an OAuth authorization code for tokens"""
        data = self._post_token({
            'code': code,
            'client_id': self.client_id,
            'client_secret': self.client_secret,
            'redirect_uri': redirect_uri or Config.GOOGLE_REDIRECT_URI,
            'grant_type': 'authorization_code',
        }, 'Authorization code exchange')
        return TokenGrant.from_response(data)
