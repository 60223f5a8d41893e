from datetime import timedelta
from typing import Dict
from app.database import get_db
from app.integrations import GoogleCalendarClient, TokenGrant
from app.models import SyncedEvent, Venue
from app.services.token_service import TokenService
from app.utils.errors import ErrorKind, ScoutBookingsError
from app.utils.logger import get_logger
from app.utils.result import Failure, Result, Success
from app.utils.timeutils import utcnow
from config.config import Config

logger = get_logger(__name__)


class CalendarService:
    """Connecting and disconnecting an owner's external calendar"""

    def __init__(self, calendar_client: GoogleCalendarClient = None, token_service: TokenService = None,
                 scheduler=None):
        self.calendar_client = calendar_client or GoogleCalendarClient()
        self.token_service = token_service or TokenService(self.calendar_client)
        self.scheduler = scheduler

    def connect_calendar(self, user_id: int, grant: Dict) -> Result:
        """Store credentials from raw tokens or an authorization code"""
        if not isinstance(grant, dict):
            return Failure(ErrorKind.VALIDATION, 'Grant must be an object')

        try:
            if grant.get('code'):
                token_grant = self.calendar_client.exchange_code(grant['code'], grant.get('redirect_uri'))
            elif grant.get('access_token'):
                expires_in = int(grant.get('expires_in') or Config.DEFAULT_TOKEN_EXPIRY_SECONDS)
                token_grant = TokenGrant(
                    access_token=grant['access_token'],
                    refresh_token=grant.get('refresh_token'),
                    expires_at=utcnow() + timedelta(seconds=expires_in)
                )
            else:
                return Failure(ErrorKind.VALIDATION, 'Authorization code or access token is required')
        except (TypeError, ValueError):
            return Failure(ErrorKind.VALIDATION, 'expires_in must be a number of seconds')
        except ScoutBookingsError as e:
            logger.error(f"Calendar connection failed for user {user_id}: {e.message}")
            return Failure.from_exception(e)

        self.token_service.save_credentials(user_id, token_grant)
        logger.info(f"Calendar connected for user {user_id}")
        return Success({'connected': True})

    def disconnect_calendar(self, user_id: int) -> Result:
        """Stop sync for all of the user's venues and forget their credential"""
        with get_db() as db:
            venue_ids = [row.id for row in db.query(Venue.id).filter_by(owner_id=user_id).all()]

        if self.scheduler:
            for venue_id in venue_ids:
                self.scheduler.unschedule_venue(venue_id)

        with get_db() as db:
            venues = db.query(Venue).filter_by(owner_id=user_id).all()

            if venue_ids:
                removed = db.query(SyncedEvent).filter(
                    SyncedEvent.venue_id.in_(venue_ids)
                ).delete(synchronize_session=False)
                logger.info(f"Removed {removed} mirror records for user {user_id}")

            for venue in venues:
                venue.sync_enabled = False
                venue.google_calendar_id = None
                venue.last_synced_at = None

        self.token_service.delete_credentials(user_id)
        logger.info(f"Calendar disconnected for user {user_id}")
        return Success({'connected': False, 'venues_updated': len(venue_ids)})

    def is_connected(self, user_id: int) -> bool:
        return self.token_service.has_credential(user_id)

    def list_calendars(self, user_id: int) -> Result:
        access_token = self.token_service.get_valid_access_token(user_id)
        if not access_token:
            return Failure(ErrorKind.AUTH, 'Calendar not connected or reconnect required')
        try:
            return Success(self.calendar_client.list_calendars(access_token))
        except ScoutBookingsError as e:
            logger.error(f"Could not list calendars for user {user_id}: {e.message}")
            return Failure.from_exception(e)
