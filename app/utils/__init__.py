from .logger import setup_logger, get_logger
from .security import generate_token, verify_token, generate_booking_token
from .validators import validate_email, validate_phone, require_fields
from .errors import ErrorKind, SyncStatus, ValidationError, TransientExternalError, AuthError, NotFoundError
from .result import Success, Failure

__all__ = [
    'setup_logger', 'get_logger',
    'generate_token', 'verify_token', 'generate_booking_token',
    'validate_email', 'validate_phone', 'require_fields',
    'ErrorKind', 'SyncStatus', 'ValidationError', 'TransientExternalError', 'AuthError', 'NotFoundError',
    'Success', 'Failure'
]
