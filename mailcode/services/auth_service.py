"""Authorization gate: who is the caller, and are they allowed in."""

from typing import Mapping, Optional, Union
from urllib.parse import urlencode
import logging

from starlette.requests import HTTPConnection

from mailcode.models.user import User
from mailcode.repositories.users import UserRepository
from mailcode.services.session_service import SessionService
from mailcode.services.token_service import TokenClaims, TokenService
from mailcode.utils.result import AuthError, Err, Ok, Result

logger = logging.getLogger(__name__)

UserId = Union[int, str]


class AuthService:
    """
    Resolve callers from a bearer token or the session cookie.

    A request carrying an Authorization header is judged by the token alone;
    the session cookie is not consulted even when the token is invalid.
    """

    def __init__(self, sessions: SessionService, tokens: TokenService, login_path: str = "/auth/login"):
        self.sessions = sessions
        self.tokens = tokens
        self.login_path = login_path

    @staticmethod
    def has_authorization(request: HTTPConnection) -> bool:
        return "authorization" in request.headers

    @staticmethod
    def bearer_token(request: HTTPConnection) -> Optional[str]:
        """Extract the token from ``Authorization: Bearer <token>``."""
        header = request.headers.get("authorization", "")
        scheme, _, token = header.strip().partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            return None
        return token.strip()

    def token_claims(self, request: HTTPConnection) -> Result[TokenClaims]:
        token = self.bearer_token(request)
        if token is None:
            return Err(AuthError.INVALID_TOKEN)
        return self.tokens.verify(token)

    def resolve_user_id(self, request: HTTPConnection) -> Optional[UserId]:
        """Bearer token first, then the session cookie."""
        if self.has_authorization(request):
            claims = self.token_claims(request)
            return claims.value.user_id if claims.ok else None

        session = self.sessions.current(request)
        return session.user_id if session is not None else None

    def require_api_auth(self, request: HTTPConnection) -> Result[TokenClaims]:
        """Bearer-only check; a session cookie never satisfies it."""
        claims = self.token_claims(request)
        if not claims.ok:
            logger.warning(f"API auth failed for {request.url.path}")
            return Err(AuthError.UNAUTHORIZED, claims.message)
        return claims

    def require_logged_in(self, request: HTTPConnection,
                          extra_params: Optional[Mapping[str, str]] = None) -> Result[UserId]:
        """
        Session-or-bearer check.

        On failure the error context is the login URL carrying this request as
        the redirect target; the caller performs the actual redirect.
        """
        user_id = self.resolve_user_id(request)
        if user_id is None:
            return Err(AuthError.LOGIN_REQUIRED, context=self.login_url(request, extra_params))
        return Ok(user_id)

    def login_url(self, request: HTTPConnection, extra_params: Optional[Mapping[str, str]] = None) -> str:
        params = {"redirect": str(request.url), **(extra_params or {})}
        return f"{self.login_path}?{urlencode(params)}"

    def current_user(self, request: HTTPConnection, users: UserRepository) -> Optional[User]:
        user_id = self.resolve_user_id(request)
        if user_id is None:
            return None
        return users.find_by_id(user_id)
