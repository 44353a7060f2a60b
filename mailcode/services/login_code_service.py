"""
Login code engine.

Issues, resends and verifies emailed login codes. The service holds no state
between calls: stores, mailer and clock are injected, and the store's upsert
is the only serialization point between concurrent requests for one email.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Iterable, List, Mapping, Sequence, Tuple, Union
import logging

from mailcode.models.user import User
from mailcode.repositories.login_codes import LoginCodeRepository
from mailcode.repositories.users import UserRepository
from mailcode.services.email_service import DeliveryError, Mailer
from mailcode.utils.codes import generate_code, code_expiry
from mailcode.utils.email import InvalidEmailError, NormalizeOptions, mask_email, normalize_email
from mailcode.utils.result import AuthError, Err, Ok, Result
from mailcode.utils.timezone import utc_now

logger = logging.getLogger(__name__)

LOGIN_CODE_SUBJECT = "Your login code"

ExtraFields = Union[Mapping[str, Any], Iterable[Tuple[str, Any]], None]


@dataclass(frozen=True)
class CodeRequest:
    """Outcome of a successful code request."""
    email: str
    will_register: bool


class LoginCodeService:
    """Request, resend and verify login codes."""

    def __init__(
        self,
        users: UserRepository,
        codes: LoginCodeRepository,
        mailer: Mailer,
        *,
        site_name: str,
        code_digits: int = 6,
        code_ttl_hours: int = 24,
        registration_fields: Sequence[str] = (),
        single_use: bool = False,
        normalize_options: NormalizeOptions = NormalizeOptions(),
        clock: Callable[[], datetime] = utc_now,
    ):
        self.users = users
        self.codes = codes
        self.mailer = mailer
        self.site_name = site_name
        self.code_digits = code_digits
        self.code_ttl_hours = code_ttl_hours
        self.registration_fields = tuple(registration_fields)
        self.single_use = single_use
        self.normalize_options = normalize_options
        self.clock = clock

    @classmethod
    def from_settings(cls, users: UserRepository, codes: LoginCodeRepository, mailer: Mailer,
                      settings, clock: Callable[[], datetime] = utc_now) -> "LoginCodeService":
        return cls(
            users,
            codes,
            mailer,
            site_name=settings.SITE_NAME,
            code_digits=settings.LOGIN_CODE_DIGITS,
            code_ttl_hours=settings.LOGIN_CODE_TTL_HOURS,
            registration_fields=settings.REGISTRATION_FIELDS,
            single_use=settings.SINGLE_USE_CODES,
            normalize_options=NormalizeOptions.from_settings(settings),
            clock=clock,
        )

    def request_code(self, email: str, allow_registration: bool,
                     extra_fields: ExtraFields = None) -> Result[CodeRequest]:
        """
        Generate a fresh code for ``email``, replacing any pending one, and mail it.

        Fails with USER_NOT_FOUND when no account exists and registration is not
        allowed. A DELIVERY_ERROR leaves the new code stored, so resending is the
        recovery path; the error carries the CodeRequest as context.
        """
        normalized = self._normalize(email)
        if not normalized.ok:
            return normalized
        email = normalized.value

        fields = self._registration_pairs(extra_fields)
        if not fields.ok:
            return fields

        user = self.users.find_by_email(email)
        if user is None and not allow_registration:
            logger.warning(f"Login code requested for unknown user {mask_email(email)}")
            return Err(AuthError.USER_NOT_FOUND)

        code = generate_code(self.code_digits)
        self.codes.upsert(
            email,
            code=code,
            expires_at=code_expiry(self.clock(), self.code_ttl_hours),
            allow_registration=allow_registration,
            extra_fields=fields.value,
        )
        outcome = CodeRequest(email=email, will_register=user is None)
        logger.info(f"Login code issued for {mask_email(email)} (register={outcome.will_register})")

        try:
            self._send(email, code)
        except DeliveryError:
            return Err(AuthError.DELIVERY_ERROR, context=outcome)
        return Ok(outcome)

    def resend_code(self, email: str) -> Result[str]:
        """Re-send the pending code unchanged. Expired codes are still resent."""
        normalized = self._normalize(email)
        if not normalized.ok:
            return normalized
        email = normalized.value

        entry = self.codes.find_by_email(email)
        if entry is None:
            return Err(AuthError.NO_PENDING_CODE)

        try:
            self._send(email, entry.code)
        except DeliveryError:
            return Err(AuthError.DELIVERY_ERROR)
        logger.info(f"Login code resent to {mask_email(email)}")
        return Ok(email)

    def verify_code(self, email: str, code: str, extra_fields: ExtraFields = None) -> Result[User]:
        """
        Check ``code`` for ``email`` and return the matching user.

        A wrong code and a missing pending record both yield INVALID_CODE. The
        pending record is left in place (unless single-use codes are enabled),
        so an unexpired code verifies repeatedly. A new user is created only
        when the code was requested with registration allowed; ``extra_fields``
        given here are merged over those captured at request time.
        """
        normalized = self._normalize(email)
        if not normalized.ok:
            return normalized
        email = normalized.value

        code = (code or "").strip()
        if not code:
            return Err(AuthError.CODE_REQUIRED)

        late_fields = self._registration_pairs(extra_fields)
        if not late_fields.ok:
            return late_fields

        entry = self.codes.find_by_email_and_code(email, code)
        if entry is None or (self.single_use and entry.consumed_at is not None):
            logger.warning(f"Invalid login code for {mask_email(email)}")
            return Err(AuthError.INVALID_CODE)

        now = self.clock()
        if entry.expires_at < now:
            logger.warning(f"Expired login code for {mask_email(email)}")
            return Err(AuthError.CODE_EXPIRED)

        user = self.users.find_by_email(email)
        if user is None:
            if not entry.allow_registration:
                logger.warning(f"User {mask_email(email)} disappeared before code verification")
                return Err(AuthError.USER_NOT_FOUND)
            fields = dict(entry.extra_fields or [])
            fields.update(late_fields.value)
            fields["email"] = email
            user = self.users.create(fields)
            logger.info(f"Registered user {user.id} for {mask_email(email)}")

        if self.single_use:
            self.codes.mark_consumed(email, now)
        return Ok(user)

    def _normalize(self, email: str) -> Result[str]:
        try:
            return Ok(normalize_email(email, self.normalize_options))
        except InvalidEmailError as e:
            return Err(AuthError.INVALID_EMAIL, context=str(e))

    def _registration_pairs(self, extra_fields: ExtraFields) -> Result[List[List[str]]]:
        """Validate registration attributes against the allow-list, keeping their order."""
        if not extra_fields:
            return Ok([])
        items = extra_fields.items() if isinstance(extra_fields, Mapping) else extra_fields

        pairs = []
        for key, value in items:
            if key not in self.registration_fields:
                logger.warning(f"Rejected registration field '{key}'")
                return Err(AuthError.INVALID_FIELDS, f"Unsupported registration field: {key}")
            if value is None:
                continue
            pairs.append([key, str(value)])
        return Ok(pairs)

    def _send(self, email: str, code: str) -> None:
        self.mailer.send(
            email,
            LOGIN_CODE_SUBJECT,
            f"Here's your login code for {self.site_name}.\n\n   {code}",
        )
