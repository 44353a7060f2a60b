"""
Application Configuration Settings
Passwordless Email-Code Authentication Service
"""

from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = False

    # Application
    APP_NAME: str = "Mailcode Authentication Service"
    APP_VERSION: str = "1.0.0"
    SITE_NAME: str = "Mailcode"

    # Database
    DATABASE_URL: str = "sqlite:///./mailcode.db"

    # Secrets
    SESSION_SECRET: str = "change-this-session-secret"
    JWT_SECRET: str = "change-this-jwt-secret"
    JWT_ALGORITHM: str = "HS256"

    # Login codes
    LOGIN_CODE_DIGITS: int = 6
    LOGIN_CODE_TTL_HOURS: int = 24
    SINGLE_USE_CODES: bool = False  # Stamp codes as consumed on first successful verify
    REGISTRATION_FIELDS: List[str] = ["name", "handle"]  # Attributes accepted at sign-up

    # Email normalization
    NORMALIZE_GMAIL_REMOVE_DOTS: bool = True
    NORMALIZE_REMOVE_SUBADDRESS: bool = True
    ALLOWED_EMAIL_DOMAINS: List[str] = []  # Empty = allow all

    # Sessions and tokens
    SESSION_COOKIE_NAME: str = "session"
    REDIRECT_COOKIE_NAME: str = "redirect"
    SESSION_MAX_AGE_DAYS: int = 30
    REDIRECT_COOKIE_MAX_AGE_MINUTES: int = 60
    TOKEN_TTL_MINUTES: int = 60

    # Outbound mail
    MAIL_BACKEND: str = "console"  # "mailgun" or "console"
    LOGIN_FROM: str = "login@example.com"
    MAILGUN_API_KEY: str = ""
    MAILGUN_DOMAIN: str = ""
    MAILGUN_URL: str = "https://api.mailgun.net"

    # Security
    ALLOWED_ORIGINS: List[str] = ["http://localhost:8000"]
    RATE_LIMIT_REQUESTS: int = 20
    RATE_LIMIT_WINDOW_SECONDS: int = 60
    TRUSTED_PROXIES: List[str] = []  # Peers whose X-Forwarded-For is believed

    @property
    def cookie_secure(self) -> bool:
        """Secure cookies everywhere except local development (Safari rejects them on http://localhost)."""
        return self.ENVIRONMENT != "development"

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
