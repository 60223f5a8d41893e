from functools import wraps
from flask import request, jsonify
from app.utils.security import verify_token
from app.utils.logger import get_logger

logger = get_logger(__name__)


def _bearer_payload():
    """Decoded token payload, False for a malformed or invalid header, None when absent"""
    auth_header = request.headers.get('Authorization')
    if not auth_header:
        return None

    parts = auth_header.split()
    if len(parts) != 2 or parts[0] != 'Bearer':
        return False

    payload = verify_token(parts[1])
    if not payload or 'user_id' not in payload:
        return False
    return payload


def require_auth(f):
    """Decorator to require authentication"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        payload = _bearer_payload()
        if payload is None:
            return jsonify({'error': 'Authorization header missing'}), 401
        if payload is False:
            return jsonify({'error': 'Invalid or expired token'}), 401

        return f(current_user=payload, *args, **kwargs)

    return decorated_function


def optional_auth(f):
    """Decorator passing current_user when a valid token is supplied, None otherwise"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        payload = _bearer_payload()
        if payload is False:
            logger.debug("Ignoring invalid bearer token on public endpoint")
        return f(current_user=payload or None, *args, **kwargs)

    return decorated_function
