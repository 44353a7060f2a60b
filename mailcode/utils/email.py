"""
Email normalization and validation.

Every store key and comparison uses the canonical form produced here, so
``normalize_email(normalize_email(x)) == normalize_email(x)`` must hold.
"""

from dataclasses import dataclass, field
from typing import Iterable, Tuple
import logging

from email_validator import EmailNotValidError, validate_email

logger = logging.getLogger(__name__)

GMAIL_DOMAINS = ("gmail.com", "googlemail.com")
# Providers whose "+tag" suffix is delivered to the same mailbox
PLUS_SUBADDRESS_DOMAINS = GMAIL_DOMAINS + (
    "outlook.com", "hotmail.com", "live.com",
    "icloud.com", "me.com", "mac.com",
)
# Yahoo uses "-" for disposable addresses
DASH_SUBADDRESS_DOMAINS = ("yahoo.com", "ymail.com", "rocketmail.com")


class InvalidEmailError(ValueError):
    """Raised when an address is empty, malformed, or outside the allowed domains."""


@dataclass(frozen=True)
class NormalizeOptions:
    """Provider-specific canonicalization switches."""
    gmail_remove_dots: bool = True
    remove_subaddress: bool = True
    allowed_domains: Tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_settings(cls, settings) -> "NormalizeOptions":
        return cls(
            gmail_remove_dots=settings.NORMALIZE_GMAIL_REMOVE_DOTS,
            remove_subaddress=settings.NORMALIZE_REMOVE_SUBADDRESS,
            allowed_domains=_clean_domains(settings.ALLOWED_EMAIL_DOMAINS),
        )


def _clean_domains(domains: Iterable[str]) -> Tuple[str, ...]:
    return tuple(sorted({d.strip().lower() for d in domains if d and d.strip()}))


def _validated(address: str) -> str:
    try:
        return validate_email(address, check_deliverability=False).normalized
    except EmailNotValidError as e:
        raise InvalidEmailError(str(e)) from e


def _is_valid(address: str) -> bool:
    try:
        _validated(address)
    except InvalidEmailError:
        return False
    return True


def _strip_subaddress(local: str, domain: str) -> str:
    if domain in PLUS_SUBADDRESS_DOMAINS:
        return local.split("+", 1)[0]
    if domain in DASH_SUBADDRESS_DOMAINS:
        return local.split("-", 1)[0]
    return local


def normalize_email(raw: str, options: NormalizeOptions = NormalizeOptions()) -> str:
    """
    Validate and canonicalize an email address.

    Args:
        raw: Address as typed by the user
        options: Provider-specific normalization switches

    Returns:
        Lower-cased canonical address

    Raises:
        InvalidEmailError: if the address is empty, malformed, or not allowed
    """
    if not raw or not raw.strip():
        raise InvalidEmailError("Email is required")

    local, _, domain = _validated(raw.strip()).lower().rpartition("@")

    if domain in GMAIL_DOMAINS:
        domain = "gmail.com"
        if options.gmail_remove_dots:
            local = local.replace(".", "")

    if options.remove_subaddress:
        stripped = _strip_subaddress(local, domain)
        # "a.-b@yahoo.com" would become "a.@yahoo.com"; keep the tag instead
        if stripped != local:
            if _is_valid(f"{stripped}@{domain}"):
                local = stripped
            else:
                logger.debug(f"Kept sub-address for {mask_email(f'{local}@{domain}')}")

    canonical = _validated(f"{local}@{domain}").lower()

    if options.allowed_domains and domain not in options.allowed_domains:
        raise InvalidEmailError(
            f"Email domain not allowed. Allowed: {', '.join(options.allowed_domains)}"
        )

    return canonical


def mask_email(email: str) -> str:
    """Mask an address for log output."""
    local, _, domain = (email or "").partition("@")
    return f"{local[:3]}***@{domain}"
