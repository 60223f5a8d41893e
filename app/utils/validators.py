import re
from typing import Dict, Iterable, Optional, Tuple
from app.utils.errors import ValidationError


def validate_email(email: str) -> Tuple[bool, Optional[str]]:
    """Validate email format"""
    pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
    if not email:
        return False, "Email is required"
    if not re.match(pattern, email):
        return False, "Invalid email format"
    return True, None


def validate_phone(phone: str) -> Tuple[bool, Optional[str]]:
    """Validate phone number, returning the digits-only form on success"""
    if not phone:
        return False, "Phone number is required"
    digits = re.sub(r'[^\d+]', '', phone)
    bare = digits.lstrip('+')
    if 10 <= len(bare) <= 15:
        return True, digits
    return False, "Invalid phone number"


def require_fields(data: Dict, fields: Iterable[str]):
    """Raise ValidationError naming the first missing field"""
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    for field in fields:
        value = data.get(field)
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValidationError(f"{field} is required")


def validate_contact(data: Dict) -> Dict:
    """Contact fields for a booking; email is mandatory for public requests"""
    email = (data.get('contact_email') or '').strip()
    valid, error = validate_email(email)
    if not valid:
        raise ValidationError(error)
    phone = data.get('contact_phone')
    if phone:
        valid, formatted = validate_phone(phone)
        if not valid:
            raise ValidationError(formatted)
        phone = formatted
    return {
        'contact_name': (data.get('contact_name') or '').strip() or None,
        'contact_email': email,
        'contact_phone': phone or None,
    }
