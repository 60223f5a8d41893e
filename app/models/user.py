from sqlalchemy import Column, String, Boolean
from sqlalchemy.orm import relationship
from .base import BaseModel


class User(BaseModel):
    """Venue owner; identity itself lives with the external provider"""
    __tablename__ = 'users'

    email = Column(String(255), unique=True, nullable=False, index=True)
    full_name = Column(String(200))
    phone = Column(String(20))

    # Set when the calendar provider rejected the stored credential
    calendar_reconnect_required = Column(Boolean, default=False, nullable=False)

    # Relationships
    venues = relationship("Venue", back_populates="owner", lazy='dynamic')
    calendar_credential = relationship("CalendarCredential", back_populates="user", uselist=False)
