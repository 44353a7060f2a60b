"""Business logic services for the authentication core."""

from mailcode.services.email_service import ConsoleMailer, DeliveryError, MailgunMailer, build_mailer
from mailcode.services.encryption_service import EncryptionService
from mailcode.services.login_code_service import CodeRequest, LoginCodeService
from mailcode.services.session_service import SessionData, SessionService
from mailcode.services.token_service import TokenClaims, TokenService
from mailcode.services.auth_service import AuthService

__all__ = [
    "ConsoleMailer",
    "DeliveryError",
    "MailgunMailer",
    "build_mailer",
    "EncryptionService",
    "CodeRequest",
    "LoginCodeService",
    "SessionData",
    "SessionService",
    "TokenClaims",
    "TokenService",
    "AuthService",
]
