"""Outbound mail dispatch for login codes."""

from typing import Optional, Protocol
import logging

import httpx

from mailcode.utils.email import mask_email

logger = logging.getLogger(__name__)


class DeliveryError(Exception):
    """Raised when the mail transport fails to accept a message."""


class Mailer(Protocol):
    """Single "send email" capability consumed by the login code engine."""

    def send(self, to_email: str, subject: str, body: str) -> None:
        ...


class MailgunMailer:
    """Sends plain-text mail through the Mailgun messages API."""

    def __init__(self, api_key: str, domain: str, from_address: str,
                 base_url: str = "https://api.mailgun.net", timeout: float = 30.0,
                 transport: Optional[httpx.BaseTransport] = None):
        self.api_key = api_key
        self.domain = domain
        self.from_address = from_address
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    def send(self, to_email: str, subject: str, body: str) -> None:
        """Send a message, raising DeliveryError on any transport or HTTP failure."""
        if not self.api_key or not self.domain:
            raise DeliveryError("Mailgun is not configured (MAILGUN_API_KEY / MAILGUN_DOMAIN)")

        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.post(
                    f"{self.base_url}/v3/{self.domain}/messages",
                    auth=("api", self.api_key),
                    data={
                        "from": self.from_address,
                        "to": to_email,
                        "subject": subject,
                        "text": body,
                    },
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Mail delivery to {mask_email(to_email)} failed: {e}")
            raise DeliveryError(str(e)) from e

        logger.info(f"Mail '{subject}' sent to {mask_email(to_email)}")


class ConsoleMailer:
    """Development mailer: logs the message instead of sending it."""

    def __init__(self, from_address: str):
        self.from_address = from_address

    def send(self, to_email: str, subject: str, body: str) -> None:
        logger.info(f"[console mail] from={self.from_address} to={to_email} subject={subject}\n{body}")


def build_mailer(settings) -> Mailer:
    """Select the mail backend from settings.MAIL_BACKEND."""
    backend = settings.MAIL_BACKEND.lower()
    if backend == "mailgun":
        return MailgunMailer(
            api_key=settings.MAILGUN_API_KEY,
            domain=settings.MAILGUN_DOMAIN,
            from_address=settings.LOGIN_FROM,
            base_url=settings.MAILGUN_URL,
        )
    if backend == "console":
        if settings.ENVIRONMENT == "production":
            logger.warning("Console mailer in production: login codes will only be logged")
        return ConsoleMailer(settings.LOGIN_FROM)
    raise ValueError(f"Unknown MAIL_BACKEND: {settings.MAIL_BACKEND}")
