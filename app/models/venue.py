from sqlalchemy import Column, String, Integer, Boolean, ForeignKey, DateTime, Enum, JSON
from sqlalchemy.orm import relationship
import enum
from .base import BaseModel
from .schedule import parse_availability, parse_weekly_sessions
from config.config import Config


class SyncDirection(enum.Enum):
    BOTH = "both"
    IMPORT_ONLY = "from_google"
    EXPORT_ONLY = "to_google"

    @property
    def imports(self) -> bool:
        return self in (SyncDirection.BOTH, SyncDirection.IMPORT_ONLY)

    @property
    def exports(self) -> bool:
        return self in (SyncDirection.BOTH, SyncDirection.EXPORT_ONLY)


class Venue(BaseModel):
    __tablename__ = 'venues'

    owner_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), unique=True, index=True)
    is_active = Column(Boolean, default=True)
    public_booking_enabled = Column(Boolean, default=True, nullable=False)
    timezone = Column(String(64), default=lambda: Config.DEFAULT_VENUE_TIMEZONE, nullable=False)

    # Schedule configuration
    availability = Column(JSON, default=dict)  # {weekday: {enabled, start_time, end_time}}
    weekly_sessions = Column(JSON, default=dict)  # {group: {enabled, day, start_time, end_time}}

    # Calendar sync
    google_calendar_id = Column(String(255))
    sync_enabled = Column(Boolean, default=False, nullable=False)
    sync_direction = Column(Enum(SyncDirection), default=SyncDirection.BOTH, nullable=False)
    last_synced_at = Column(DateTime)

    # Relationships
    owner = relationship("User", back_populates="venues")
    reservations = relationship("Reservation", back_populates="venue", lazy='dynamic')

    @property
    def opening_hours(self):
        return parse_availability(self.availability)

    @property
    def session_rules(self):
        return parse_weekly_sessions(self.weekly_sessions)

    @property
    def zone_name(self) -> str:
        return self.timezone or Config.DEFAULT_VENUE_TIMEZONE
