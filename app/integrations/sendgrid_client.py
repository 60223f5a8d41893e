import sendgrid
from html import escape
from sendgrid.helpers.mail import Mail, Email, To, Content
from typing import Dict, Optional
from config.config import Config
from app.utils.logger import get_logger

logger = get_logger(__name__)

# template kind -> (subject, heading, lead paragraph, call to action)
BOOKING_TEMPLATES = {
    'booking_request': (
        "New Booking Request: {event_name} at {venue_name}",
        "New Booking Request",
        "You have received a new booking request for <strong>{venue_name}</strong> that requires your review.",
        ("Review Booking Request", "/dashboard"),
    ),
    'booking_confirmed': (
        "Booking Confirmed: {event_name} at {venue_name}",
        "Your Booking is Confirmed",
        "Good news! Your booking at <strong>{venue_name}</strong> has been confirmed.",
        None,
    ),
    'booking_declined': (
        "Booking Request Declined: {event_name} at {venue_name}",
        "Booking Request Declined",
        "Unfortunately your booking request at <strong>{venue_name}</strong> could not be accepted.",
        None,
    ),
    'booking_cancelled': (
        "Booking Cancelled: {event_name} at {venue_name}",
        "Booking Cancelled",
        "Your booking at <strong>{venue_name}</strong> has been cancelled.",
        None,
    ),
}


class SendGridClient:
    """Wrapper for SendGrid email operations"""

    def __init__(self):
        self.api_key = Config.SENDGRID_API_KEY
        self.from_email = Config.SENDGRID_FROM_EMAIL

        if self.api_key:
            self.client = sendgrid.SendGridAPIClient(api_key=self.api_key)
        else:
            self.client = None
            logger.warning("SendGrid API key not configured")

    def send_email(self, to_email: str, subject: str, html_content: str,
                   plain_content: str = None) -> Optional[Dict]:
        """Send email via SendGrid"""
        if not self.client:
            logger.error("SendGrid client not initialized")
            return None

        try:
            message = Mail(
                from_email=Email(self.from_email, "Scout Bookings"),
                to_emails=To(to_email),
                subject=subject,
                html_content=Content("text/html", html_content)
            )

            if plain_content:
                message.plain_text_content = Content("text/plain", plain_content)

            response = self.client.send(message)

            return {
                'status_code': response.status_code,
                'message_id': response.headers.get('X-Message-Id')
            }
        except Exception as e:
            logger.error(f"Error sending email to {to_email}: {str(e)}")
            return None

    def send_booking_email(self, template_kind: str, to_email: str,
                           venue_info: Dict, reservation_info: Dict) -> Optional[Dict]:
        """Render one of the booking templates and send it"""
        if template_kind not in BOOKING_TEMPLATES:
            logger.error(f"Unknown email template: {template_kind}")
            return None

        subject_tpl, heading, lead_tpl, action = BOOKING_TEMPLATES[template_kind]
        venue_name = venue_info.get('name', '')
        event_name = reservation_info.get('event_name', '')
        subject = subject_tpl.format(event_name=event_name, venue_name=venue_name)
        lead = lead_tpl.format(venue_name=escape(venue_name))

        rows = [
            ('Date', reservation_info.get('date')),
            ('Time', f"{reservation_info.get('start_time')} - {reservation_info.get('end_time')}"),
            ('Contact Name', reservation_info.get('contact_name')),
            ('Email', reservation_info.get('contact_email')),
            ('Phone', reservation_info.get('contact_phone')),
            ('Notes', reservation_info.get('notes')),
        ]
        details = ''.join(
            f'<p><strong>{label}:</strong> {escape(str(value))}</p>'
            for label, value in rows if value
        )
        button = ''
        if action:
            button = f"""
                <p style="margin: 30px 0;">
                    <a href="{Config.APP_URL}{action[1]}"
                       style="background-color: #7c3aed; color: white; padding: 14px 28px;
                              text-decoration: none; border-radius: 4px; display: inline-block;">
                        {action[0]}
                    </a>
                </p>"""

        html_content = f"""
        <html>
            <body style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
                <h2>{heading}</h2>
                <p>{lead}</p>
                <div style="background-color: #f5f5f5; padding: 20px; border-radius: 8px; margin: 20px 0;">
                    <h3>{escape(event_name)}</h3>
                    {details}
                </div>{button}
                <hr style="margin-top: 40px;">
                <p style="color: #666; font-size: 12px;">This email was sent by Scout Bookings.</p>
            </body>
        </html>
        """
        plain_lines = [heading, ''] + [f"{label}: {value}" for label, value in rows if value]
        return self.send_email(to_email, subject, html_content, '\n'.join(plain_lines))
