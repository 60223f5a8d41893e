from sqlalchemy import Column, String, Integer, Text, ForeignKey, DateTime, Enum, CheckConstraint
from sqlalchemy.orm import relationship
import enum
from .base import BaseModel


class ReservationStatus(enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class ReservationSource(enum.Enum):
    OWNER = "owner"
    PUBLIC = "public"


# Statuses that occupy the venue
BLOCKING_STATUSES = (ReservationStatus.CONFIRMED, ReservationStatus.PENDING)


class Reservation(BaseModel):
    __tablename__ = 'reservations'
    __table_args__ = (
        CheckConstraint('end_time > start_time', name='ck_reservation_interval'),
    )

    venue_id = Column(Integer, ForeignKey('venues.id'), nullable=False, index=True)

    event_name = Column(String(255), nullable=False)
    contact_name = Column(String(200))
    contact_email = Column(String(255))
    contact_phone = Column(String(30))
    notes = Column(Text)

    start_time = Column(DateTime, nullable=False, index=True)
    end_time = Column(DateTime, nullable=False)

    status = Column(Enum(ReservationStatus), default=ReservationStatus.PENDING, nullable=False, index=True)
    source = Column(Enum(ReservationSource), default=ReservationSource.OWNER, nullable=False)
    booking_token = Column(String(64), unique=True, index=True)

    venue = relationship("Venue", back_populates="reservations")

    @property
    def contact_info(self):
        return {
            'name': self.contact_name,
            'email': self.contact_email,
            'phone': self.contact_phone,
        }
