"""Store adapters consumed by the authentication core."""

from mailcode.repositories.users import UserRepository, SqlUserRepository
from mailcode.repositories.login_codes import LoginCodeRepository, SqlLoginCodeRepository

__all__ = [
    "UserRepository",
    "SqlUserRepository",
    "LoginCodeRepository",
    "SqlLoginCodeRepository",
]
