"""
Cookie session lifecycle.

Sessions live entirely in a sealed cookie holding a snapshot of
``{userId, email, roles}`` taken at login. A second short-lived cookie carries
the post-login redirect target across the login -> code round trip.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional, Tuple, Union
from urllib.parse import urlsplit
import logging

from starlette.requests import HTTPConnection
from starlette.responses import Response

from mailcode.models.user import User
from mailcode.services.encryption_service import EncryptionService
from mailcode.utils.email import mask_email
from mailcode.utils.timezone import utc_now

logger = logging.getLogger(__name__)

DEFAULT_REDIRECT = "/"


@dataclass(frozen=True)
class SessionData:
    """Identity snapshot carried by the session cookie; stale until next login."""
    user_id: Union[int, str]
    email: str
    roles: Tuple[str, ...] = ()

    def to_payload(self) -> dict:
        return {"userId": self.user_id, "email": self.email, "roles": list(self.roles)}

    @classmethod
    def from_payload(cls, payload: dict) -> Optional["SessionData"]:
        user_id = payload.get("userId")
        email = payload.get("email")
        if user_id is None or not email:
            return None
        return cls(user_id=user_id, email=email, roles=tuple(payload.get("roles") or ()))


class SessionService:
    """Establish, read and destroy cookie sessions; carry the redirect intent."""

    def __init__(
        self,
        secret: str,
        *,
        cookie_name: str = "session",
        redirect_cookie_name: str = "redirect",
        max_age: timedelta = timedelta(days=30),
        redirect_max_age: timedelta = timedelta(hours=1),
        secure: bool = True,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.sealer = EncryptionService(secret)
        self.cookie_name = cookie_name
        self.redirect_cookie_name = redirect_cookie_name
        self.max_age_seconds = int(max_age.total_seconds())
        self.redirect_max_age_seconds = int(redirect_max_age.total_seconds())
        self.secure = secure
        self.clock = clock

    @classmethod
    def from_settings(cls, settings, clock: Callable[[], datetime] = utc_now) -> "SessionService":
        return cls(
            settings.SESSION_SECRET,
            cookie_name=settings.SESSION_COOKIE_NAME,
            redirect_cookie_name=settings.REDIRECT_COOKIE_NAME,
            max_age=timedelta(days=settings.SESSION_MAX_AGE_DAYS),
            redirect_max_age=timedelta(minutes=settings.REDIRECT_COOKIE_MAX_AGE_MINUTES),
            secure=settings.cookie_secure,
            clock=clock,
        )

    def establish(self, user: User) -> Tuple[SessionData, str]:
        """Start a fresh session for ``user``. Returns the session and its Set-Cookie value."""
        session = SessionData(
            user_id=user.id,
            email=user.email,
            roles=tuple(user.roles or ()),
        )
        value = self.sealer.seal(session.to_payload(), self.clock())
        logger.info(f"Session established for user {user.id} ({mask_email(user.email)})")
        return session, self._cookie_header(self.cookie_name, value, self.max_age_seconds)

    def current(self, request: HTTPConnection) -> Optional[SessionData]:
        """Read the session cookie. A missing, tampered or expired cookie means no session."""
        payload = self.sealer.unseal(
            request.cookies.get(self.cookie_name, ""), self.max_age_seconds, self.clock()
        )
        if payload is None:
            return None
        return SessionData.from_payload(payload)

    def destroy(self, request: Optional[HTTPConnection] = None) -> str:
        """Return a Set-Cookie value that clears the session. Succeeds with or without a session."""
        if request is not None:
            session = self.current(request)
            if session is not None:
                logger.info(f"Session destroyed for user {session.user_id}")
        response = Response()
        response.delete_cookie(
            self.cookie_name, path="/", secure=self.secure, httponly=True, samesite="lax"
        )
        return response.headers["set-cookie"]

    def set_redirect_intent(self, request: HTTPConnection) -> str:
        """
        Store the request's ``redirect`` query parameter in the redirect cookie.

        Without the parameter the cookie is reset to ``/``, so a target left
        over from an abandoned login is not reused.
        """
        target = request.query_params.get("redirect") or DEFAULT_REDIRECT
        value = self.sealer.seal({"redirect": target}, self.clock())
        return self._cookie_header(self.redirect_cookie_name, value, self.redirect_max_age_seconds)

    def consume_redirect_intent(self, request: HTTPConnection) -> str:
        """
        Return the post-login destination, ``/`` when missing or unusable.

        The cookie is not re-issued, but nothing invalidates it either: it is a
        path hint, not a capability. Only same-origin targets are honoured.
        """
        payload = self.sealer.unseal(
            request.cookies.get(self.redirect_cookie_name, ""),
            self.redirect_max_age_seconds,
            self.clock(),
        )
        if payload is None:
            return DEFAULT_REDIRECT
        target = payload.get("redirect")
        if not isinstance(target, str) or not target:
            return DEFAULT_REDIRECT
        return safe_redirect_target(target, request.url.netloc)

    def _cookie_header(self, key: str, value: str, max_age: int) -> str:
        response = Response()
        response.set_cookie(
            key,
            value,
            max_age=max_age,
            path="/",
            secure=self.secure,
            httponly=True,
            samesite="lax",
        )
        return response.headers["set-cookie"]


def safe_redirect_target(target: str, host: str) -> str:
    """Reduce ``target`` to a local path, falling back to ``/`` for foreign or odd URLs."""
    if "\\" in target or any(ord(ch) < 32 for ch in target):
        return DEFAULT_REDIRECT

    if target.startswith("/") and not target.startswith("//"):
        return target

    try:
        parts = urlsplit(target)
    except ValueError:
        return DEFAULT_REDIRECT

    if parts.scheme not in ("http", "https") or parts.netloc != host:
        logger.warning("Ignoring off-site redirect target")
        return DEFAULT_REDIRECT

    path = parts.path or DEFAULT_REDIRECT
    if path.startswith("//"):
        return DEFAULT_REDIRECT
    return f"{path}?{parts.query}" if parts.query else path
