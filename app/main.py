import atexit
import os
from flask import Flask, jsonify
from config.config import config
from app.database import init_db, db_session
from app.integrations import GoogleCalendarClient
from app.services.calendar_service import CalendarService
from app.services.reservation_service import ReservationService
from app.services.sync_scheduler import SyncScheduler
from app.services.sync_service import CalendarSyncService
from app.services.token_service import TokenService
from app.services.venue_service import VenueService
from app.utils.logger import get_logger

logger = get_logger(__name__)


def create_app(config_name: str = None, calendar_client: GoogleCalendarClient = None) -> Flask:
    """Application factory"""
    config_name = config_name or os.environ.get('FLASK_ENV', 'default')
    settings = config.get(config_name, config['default'])

    app = Flask(__name__)
    app.config.from_object(settings)

    init_db()

    calendar_client = calendar_client or GoogleCalendarClient()
    token_service = TokenService(calendar_client)
    sync_service = CalendarSyncService(calendar_client, token_service)

    scheduler = None
    if settings.SYNC_SCHEDULER_ENABLED:
        scheduler = SyncScheduler(sync_service)
        scheduler.start()
        scheduler.resume_enabled_venues()
        atexit.register(scheduler.shutdown)

    app.extensions['sync_scheduler'] = scheduler
    app.extensions['sync_service'] = sync_service
    app.extensions['reservation_service'] = ReservationService(sync_service=sync_service)
    app.extensions['calendar_service'] = CalendarService(calendar_client, token_service, scheduler)
    app.extensions['venue_service'] = VenueService(sync_service, scheduler)

    from app.routes import availability, calendar, reservations, venues
    app.register_blueprint(availability.bp, url_prefix='/api/venues')
    app.register_blueprint(venues.bp, url_prefix='/api/venues')
    app.register_blueprint(reservations.bp, url_prefix='/api')
    app.register_blueprint(calendar.bp, url_prefix='/api/calendar')

    @app.route('/api/health')
    def health():
        return jsonify({'status': 'ok'}), 200

    @app.teardown_appcontext
    def remove_session(exception=None):
        db_session.remove()

    logger.info(f"Scout Bookings app created ({config_name})")
    return app
