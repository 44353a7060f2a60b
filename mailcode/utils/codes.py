"""Login code generation."""

import secrets
from datetime import datetime, timedelta

DEFAULT_DIGITS = 6
DEFAULT_TTL_HOURS = 24


def generate_code(digits: int = DEFAULT_DIGITS) -> str:
    """Return ``digits`` independently drawn decimal digits; leading zeros allowed."""
    if digits < 1:
        raise ValueError("digits must be positive")
    return "".join(secrets.choice("0123456789") for _ in range(digits))


def code_expiry(now: datetime, ttl_hours: int = DEFAULT_TTL_HOURS) -> datetime:
    """Expiry is fixed when the code is requested and never extended."""
    return now + timedelta(hours=ttl_hours)
