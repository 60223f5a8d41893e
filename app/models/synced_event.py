from sqlalchemy import Column, String, Integer, Boolean, ForeignKey, DateTime, Enum, UniqueConstraint
import enum
from .base import BaseModel


class MirrorDirection(enum.Enum):
    IMPORTED = "google_to_scout"
    EXPORTED = "scout_to_google"


class SyncedEvent(BaseModel):
    """Local mirror of one event that crossed the calendar sync boundary"""
    __tablename__ = 'synced_events'
    __table_args__ = (
        UniqueConstraint('venue_id', 'external_event_id', name='uq_synced_event_external'),
        UniqueConstraint('reservation_id', 'direction', name='uq_synced_event_reservation'),
    )

    venue_id = Column(Integer, ForeignKey('venues.id'), nullable=False, index=True)
    external_event_id = Column(String(1024), nullable=False)
    # No foreign key: the record must outlive a hard-deleted reservation until Pass B cleans it up
    reservation_id = Column(Integer, index=True)
    direction = Column(Enum(MirrorDirection), nullable=False, index=True)

    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    title = Column(String(1024))
    last_synced_at = Column(DateTime)

    # External event vanished; create a fresh one on the next export
    needs_recreate = Column(Boolean, default=False, nullable=False)
