from datetime import datetime, timedelta
from typing import Optional
from sqlalchemy.exc import SQLAlchemyError
from app.database import DatabaseManager, get_db
from app.integrations import GoogleCalendarClient, TokenGrant
from app.models import CalendarCredential, User
from app.utils.errors import AuthError, TransientExternalError
from app.utils.locks import credential_refresh_locks
from app.utils.logger import get_logger
from app.utils.timeutils import utcnow
from config.config import Config

logger = get_logger(__name__)


class TokenService:
    """Keeps calendar OAuth credentials fresh"""

    def __init__(self, calendar_client: GoogleCalendarClient = None):
        self.credential_db = DatabaseManager(CalendarCredential)
        self.calendar_client = calendar_client or GoogleCalendarClient()
        self.refresh_buffer = timedelta(minutes=Config.TOKEN_REFRESH_BUFFER_MINUTES)

    def get_credential(self, user_id: int) -> Optional[CalendarCredential]:
        return self.credential_db.get_by(user_id=user_id)

    def has_credential(self, user_id: int) -> bool:
        return self.credential_db.exists(user_id=user_id)

    def is_expiring(self, credential: CalendarCredential, now: datetime = None) -> bool:
        """True when the access token expires within the refresh buffer"""
        now = now or utcnow()
        return credential.expires_at <= now + self.refresh_buffer

    def save_credentials(self, user_id: int, grant: TokenGrant) -> CalendarCredential:
        """Create or replace the user's credential from an OAuth grant"""
        with get_db() as db:
            credential = db.query(CalendarCredential).filter_by(user_id=user_id).first()
            if credential:
                credential.access_token = grant.access_token
                if grant.refresh_token:
                    credential.refresh_token = grant.refresh_token
                credential.expires_at = grant.expires_at
            else:
                credential = CalendarCredential(
                    user_id=user_id,
                    access_token=grant.access_token,
                    refresh_token=grant.refresh_token,
                    expires_at=grant.expires_at
                )
                db.add(credential)

            user = db.query(User).filter_by(id=user_id).first()
            if user:
                user.calendar_reconnect_required = False

            db.flush()
            db.refresh(credential)

        logger.info(f"Stored calendar credentials for user {user_id}")
        return credential

    def delete_credentials(self, user_id: int, reconnect_required: bool = False) -> bool:
        """Remove the credential; optionally flag the user to reconnect"""
        with get_db() as db:
            deleted = db.query(CalendarCredential).filter_by(user_id=user_id).delete(synchronize_session=False)
            if reconnect_required:
                user = db.query(User).filter_by(id=user_id).first()
                if user:
                    user.calendar_reconnect_required = True
        if deleted:
            logger.info(f"Removed calendar credentials for user {user_id}")
        return bool(deleted)

    def get_valid_access_token(self, user_id: int) -> Optional[str]:
        """
        Return a usable access token, refreshing it when close to expiry.
        None when the user has no credential, the refresh was rejected
        (credential purged) or the provider is temporarily unreachable.
        """
        credential = self.get_credential(user_id)
        if not credential:
            return None
        if not self.is_expiring(credential):
            return credential.access_token

        with credential_refresh_locks.hold(user_id):
            # Another caller may have refreshed while we waited
            credential = self.get_credential(user_id)
            if not credential:
                return None
            if not self.is_expiring(credential):
                return credential.access_token

            if not credential.refresh_token:
                logger.warning(f"No refresh token stored for user {user_id}; reconnect required")
                self.delete_credentials(user_id, reconnect_required=True)
                return None

            try:
                grant = self.calendar_client.refresh_access_token(credential.refresh_token)
            except AuthError as e:
                logger.warning(f"Refresh token rejected for user {user_id}: {e.message}")
                self.delete_credentials(user_id, reconnect_required=True)
                return None
            except TransientExternalError as e:
                logger.error(f"Token refresh temporarily failed for user {user_id}: {e.message}")
                return None

            try:
                self.save_credentials(user_id, grant)
            except SQLAlchemyError as e:
                logger.error(f"Refreshed token for user {user_id} could not be stored: {str(e)}")
                return None
            logger.info(f"Refreshed access token for user {user_id}")
            return grant.access_token
