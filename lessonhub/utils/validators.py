"""Request payload validation helpers shared by the blueprints."""

import re
from urllib.parse import urlparse

from flask import request

from lessonhub.errors import ValidationError

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
NAME_MAX_LENGTH = 50
PASSWORD_MIN_LENGTH = 6


def get_json_body():
    """Return the JSON object body or raise ValidationError"""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def normalize_email(email):
    return (email or "").strip().lower()


def validate_email(email):
    if not email or len(email) > 254:
        return False
    return EMAIL_PATTERN.match(email) is not None


def validate_password(password):
    """Password strength check, returns (ok, message)"""
    if not password:
        return False, "Password is required"

    if len(password) < PASSWORD_MIN_LENGTH:
        return False, f"Password must be at least {PASSWORD_MIN_LENGTH} characters long"

    checks = {
        "lowercase": any(c.islower() for c in password),
        "uppercase": any(c.isupper() for c in password),
        "digit": any(c.isdigit() for c in password),
    }
    missing = [name for name, passed in checks.items() if not passed]
    if missing:
        return False, f"Password must contain at least one {', '.join(missing)} character"

    return True, "Password is strong"


def validate_name(value, label):
    value = (value or "").strip() if isinstance(value, str) else ""
    if not value:
        return None, f"{label} is required"
    if len(value) > NAME_MAX_LENGTH:
        return None, f"{label} cannot exceed {NAME_MAX_LENGTH} characters"
    return value, None


def validate_url(value):
    if not isinstance(value, str):
        return False
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def require_string(data, field, message=None):
    value = data.get(field)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(message or f"{field} is required")
    return value.strip()


def raise_if_errors(errors):
    if errors:
        raise ValidationError(errors[0], payload={"errors": errors})
