import os
from dotenv import load_dotenv

load_dotenv()


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-production'
    DATABASE_URL = os.environ.get('DATABASE_URL') or 'sqlite:///scoutbookings.db'
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Google Calendar OAuth
    GOOGLE_CLIENT_ID = os.environ.get('GOOGLE_CLIENT_ID')
    GOOGLE_CLIENT_SECRET = os.environ.get('GOOGLE_CLIENT_SECRET')
    GOOGLE_REDIRECT_URI = os.environ.get('GOOGLE_REDIRECT_URI', 'http://localhost:5001/settings/calendar/callback')
    GOOGLE_TOKEN_ENDPOINT = os.environ.get('GOOGLE_TOKEN_ENDPOINT', 'https://oauth2.googleapis.com/token')
    GOOGLE_CALENDAR_API_BASE = os.environ.get('GOOGLE_CALENDAR_API_BASE', 'https://www.googleapis.com/calendar/v3')

    # Email
    SENDGRID_API_KEY = os.environ.get('SENDGRID_API_KEY')
    SENDGRID_FROM_EMAIL = os.environ.get('SENDGRID_FROM_EMAIL', 'notifications@scoutbookings.com')

    # Application Settings
    APP_URL = os.environ.get('APP_URL', 'http://localhost:5001')
    DEFAULT_VENUE_TIMEZONE = os.environ.get('DEFAULT_VENUE_TIMEZONE', 'Europe/London')

    # Calendar Sync
    SYNC_WINDOW_DAYS = int(os.environ.get('SYNC_WINDOW_DAYS', '90'))
    AUTO_SYNC_INTERVAL_MINUTES = int(os.environ.get('AUTO_SYNC_INTERVAL_MINUTES', '15'))
    SYNC_SCHEDULER_ENABLED = os.environ.get('SYNC_SCHEDULER_ENABLED', 'true').lower() == 'true'
    SYNC_LOCK_TIMEOUT_SECONDS = int(os.environ.get('SYNC_LOCK_TIMEOUT_SECONDS', '30'))
    EXTERNAL_API_TIMEOUT_SECONDS = int(os.environ.get('EXTERNAL_API_TIMEOUT_SECONDS', '20'))
    TOKEN_REFRESH_BUFFER_MINUTES = 5
    DEFAULT_TOKEN_EXPIRY_SECONDS = 3600

    # Privacy placeholders shown to public callers
    EXTERNAL_BLOCK_PUBLIC_TITLE = 'Owner has personal commitment'
    PUBLIC_RESERVATION_TITLE = 'Booked'

    # Token Settings
    ACCESS_TOKEN_EXPIRE_MINUTES = 60 * 24  # 24 hours

    # Logging
    LOG_FILE = 'logs/scoutbookings.log'
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')


class DevelopmentConfig(Config):
    DEBUG = True
    TESTING = False


class TestingConfig(Config):
    DEBUG = True
    TESTING = True
    SYNC_SCHEDULER_ENABLED = False


class ProductionConfig(Config):
    DEBUG = False
    TESTING = False


config = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
    'default': DevelopmentConfig
}
