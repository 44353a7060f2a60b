"""Database models for the authentication service."""

from mailcode.models.user import User
from mailcode.models.login_code import PendingLoginCode

__all__ = [
    "User",
    "PendingLoginCode",
]
