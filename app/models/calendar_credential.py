from sqlalchemy import Column, Integer, Text, ForeignKey, DateTime
from sqlalchemy.orm import relationship
from .base import BaseModel


class CalendarCredential(BaseModel):
    __tablename__ = 'calendar_credentials'

    user_id = Column(Integer, ForeignKey('users.id'), unique=True, nullable=False)
    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text)
    expires_at = Column(DateTime, nullable=False)

    user = relationship("User", back_populates="calendar_credential")
