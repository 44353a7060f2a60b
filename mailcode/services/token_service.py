"""Stateless bearer tokens for API callers."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Union
import logging

import jwt

from mailcode.utils.result import AuthError, Err, Ok, Result
from mailcode.utils.timezone import to_unix, utc_now

logger = logging.getLogger(__name__)

CLAIM_USER_ID = "userId"
CLAIM_CLIENT_ID = "clientId"


@dataclass(frozen=True)
class TokenClaims:
    """Identity carried by a bearer token."""
    user_id: Union[int, str]
    client_id: str


class TokenService:
    """
    Sign and verify time-boxed JWTs.

    There is no refresh and no revocation list: a leaked token stays valid
    until it expires.
    """

    def __init__(
        self,
        secret: str,
        *,
        algorithm: str = "HS256",
        ttl: timedelta = timedelta(hours=1),
        clock: Callable[[], datetime] = utc_now,
    ):
        if not secret:
            raise ValueError("A non-empty secret is required to sign tokens")
        self.secret = secret
        self.algorithm = algorithm
        self.ttl = ttl
        self.clock = clock

    @classmethod
    def from_settings(cls, settings, clock: Callable[[], datetime] = utc_now) -> "TokenService":
        return cls(
            settings.JWT_SECRET,
            algorithm=settings.JWT_ALGORITHM,
            ttl=timedelta(minutes=settings.TOKEN_TTL_MINUTES),
            clock=clock,
        )

    @property
    def expires_in(self) -> int:
        return int(self.ttl.total_seconds())

    def sign(self, user_id: Union[int, str], client_id: str) -> str:
        """Issue a token for ``(user_id, client_id)`` valid for the configured TTL."""
        now = self.clock()
        payload = {
            CLAIM_USER_ID: user_id,
            CLAIM_CLIENT_ID: client_id,
            "iat": to_unix(now),
            "exp": to_unix(now + self.ttl),
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def verify(self, token: str) -> Result[TokenClaims]:
        """Decode ``token``; bad signature, malformed payload or expiry all yield INVALID_TOKEN."""
        if not token:
            return Err(AuthError.INVALID_TOKEN)
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                # Time claims are checked against self.clock below
                options={
                    "require": ["exp", CLAIM_USER_ID, CLAIM_CLIENT_ID],
                    "verify_exp": False,
                    "verify_iat": False,
                },
            )
        except jwt.InvalidTokenError as e:
            logger.warning(f"Rejected invalid bearer token: {type(e).__name__}")
            return Err(AuthError.INVALID_TOKEN)

        exp = payload["exp"]
        if not isinstance(exp, (int, float)) or isinstance(exp, bool):
            return Err(AuthError.INVALID_TOKEN)
        if exp <= to_unix(self.clock()):
            logger.warning("Rejected expired bearer token")
            return Err(AuthError.INVALID_TOKEN, "Token has expired")

        user_id = payload[CLAIM_USER_ID]
        client_id = payload[CLAIM_CLIENT_ID]
        if not isinstance(user_id, (int, str)) or isinstance(user_id, bool) or not isinstance(client_id, str):
            return Err(AuthError.INVALID_TOKEN)
        return Ok(TokenClaims(user_id=user_id, client_id=client_id))
