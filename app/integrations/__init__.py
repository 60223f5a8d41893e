from .google_calendar_client import GoogleCalendarClient, ExternalEvent, EventPayload, TokenGrant
from .sendgrid_client import SendGridClient

__all__ = ['GoogleCalendarClient', 'ExternalEvent', 'EventPayload', 'TokenGrant', 'SendGridClient']
