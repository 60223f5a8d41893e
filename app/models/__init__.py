from .user import User
from .venue import Venue, SyncDirection
from .reservation import Reservation, ReservationStatus, ReservationSource
from .synced_event import SyncedEvent, MirrorDirection
from .calendar_credential import CalendarCredential

__all__ = [
    'User', 'Venue', 'SyncDirection',
    'Reservation', 'ReservationStatus', 'ReservationSource',
    'SyncedEvent', 'MirrorDirection', 'CalendarCredential'
]
