import secrets
from datetime import timedelta
from jose import jwt, JWTError
from config.config import Config
from app.utils.timeutils import utcnow

# JWT settings
ALGORITHM = "HS256"


def generate_token(data: dict, expires_delta: timedelta = None) -> str:
    """Generate JWT token"""
    to_encode = data.copy()
    if expires_delta:
        expire = utcnow() + expires_delta
    else:
        expire = utcnow() + timedelta(minutes=Config.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, Config.SECRET_KEY, algorithm=ALGORITHM)


def verify_token(token: str) -> dict:
    """Verify and decode JWT token, None when invalid or expired"""
    try:
        return jwt.decode(token, Config.SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None


def generate_booking_token() -> str:
    """32-character reference handed to public requesters"""
    return secrets.token_hex(16)


def generate_secure_token() -> str:
    """Generate secure random token"""
    return secrets.token_urlsafe(32)
