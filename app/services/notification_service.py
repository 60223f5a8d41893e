from typing import Dict, Optional
from app.integrations import SendGridClient
from app.models import Reservation, Venue
from app.utils.logger import get_logger
from app.utils.timeutils import to_local

logger = get_logger(__name__)

REQUESTER_TEMPLATES = ('booking_confirmed', 'booking_declined', 'booking_cancelled')


class NotificationService:
    """Booking emails; delivery failures are logged and never reach the caller"""

    def __init__(self, sendgrid_client: SendGridClient = None):
        self.sendgrid = sendgrid_client or SendGridClient()

    @staticmethod
    def build_payload(template_kind: str, recipient: str, venue: Venue, reservation: Reservation) -> Dict:
        """Structured notification payload with times in the venue's zone"""
        local_start = to_local(reservation.start_time, venue.zone_name)
        local_end = to_local(reservation.end_time, venue.zone_name)
        return {
            'recipient': recipient,
            'template_kind': template_kind,
            'venue_info': {
                'id': venue.id,
                'name': venue.name,
            },
            'reservation_info': {
                'id': reservation.id,
                'event_name': reservation.event_name,
                'contact_name': reservation.contact_name,
                'contact_email': reservation.contact_email,
                'contact_phone': reservation.contact_phone,
                'notes': reservation.notes,
                'date': local_start.strftime('%A %d %B %Y'),
                'start_time': local_start.strftime('%H:%M'),
                'end_time': local_end.strftime('%H:%M'),
                'booking_token': reservation.booking_token,
            },
        }

    def send(self, payload: Dict) -> bool:
        """Deliver a payload; returns whether the provider accepted it"""
        if not payload.get('recipient'):
            logger.warning(f"No recipient for {payload.get('template_kind')} notification")
            return False
        try:
            response = self.sendgrid.send_booking_email(
                payload['template_kind'],
                payload['recipient'],
                payload['venue_info'],
                payload['reservation_info'],
            )
            if response:
                logger.info(f"Sent {payload['template_kind']} notification for reservation "
                            f"{payload['reservation_info']['id']}")
                return True
            return False
        except Exception as e:
            logger.error(f"Error sending {payload.get('template_kind')} notification: {str(e)}")
            return False

    def notify_booking_request(self, owner_email: Optional[str], venue: Venue, reservation: Reservation) -> bool:
        """Tell the venue owner about a new public request"""
        return self.send(self.build_payload('booking_request', owner_email, venue, reservation))

    def notify_requester(self, template_kind: str, venue: Venue, reservation: Reservation) -> bool:
        if template_kind not in REQUESTER_TEMPLATES:
            raise ValueError(f"Not a requester template: {template_kind}")
        return self.send(self.build_payload(template_kind, reservation.contact_email, venue, reservation))
