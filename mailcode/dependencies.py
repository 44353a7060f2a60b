"""
FastAPI dependencies wiring the authentication core to requests.

Provides:
- Service construction from settings (stores, mailer, clock injected)
- Login-required and API-auth guards that turn core results into HTTP outcomes
"""

from datetime import datetime
from functools import lru_cache
from typing import Callable, Optional

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from mailcode.config import settings
from mailcode.database import get_db
from mailcode.models.user import User
from mailcode.repositories.login_codes import SqlLoginCodeRepository
from mailcode.repositories.users import SqlUserRepository
from mailcode.services.auth_service import AuthService, UserId
from mailcode.services.email_service import Mailer, build_mailer
from mailcode.services.login_code_service import LoginCodeService
from mailcode.services.session_service import SessionService
from mailcode.services.token_service import TokenClaims, TokenService
from mailcode.utils.timezone import utc_now


class LoginRequired(Exception):
    """Raised by page guards; the app turns it into a redirect to ``login_url``."""

    def __init__(self, login_url: str):
        super().__init__(login_url)
        self.login_url = login_url


def get_clock() -> Callable[[], datetime]:
    return utc_now


@lru_cache()
def get_mailer() -> Mailer:
    return build_mailer(settings)


@lru_cache()
def get_session_service() -> SessionService:
    return SessionService.from_settings(settings)


@lru_cache()
def get_token_service() -> TokenService:
    return TokenService.from_settings(settings)


def get_auth_service(
    sessions: SessionService = Depends(get_session_service),
    tokens: TokenService = Depends(get_token_service),
) -> AuthService:
    return AuthService(sessions, tokens)


def get_user_repository(db: Session = Depends(get_db)) -> SqlUserRepository:
    return SqlUserRepository(db)


def get_login_code_service(
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> LoginCodeService:
    return LoginCodeService.from_settings(
        SqlUserRepository(db), SqlLoginCodeRepository(db), mailer, settings, clock=clock
    )


def require_api_auth(request: Request, auth: AuthService = Depends(get_auth_service)) -> TokenClaims:
    """Bearer-token guard for API routes (401 otherwise)."""
    result = auth.require_api_auth(request)
    if not result.ok:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=result.message,
            headers={"WWW-Authenticate": "Bearer"},
        )
    return result.value


def require_logged_in(request: Request, auth: AuthService = Depends(get_auth_service)) -> UserId:
    """Session-or-bearer guard for page routes (redirects to login otherwise)."""
    result = auth.require_logged_in(request)
    if not result.ok:
        raise LoginRequired(result.context)
    return result.value


def get_current_user_optional(
    request: Request,
    auth: AuthService = Depends(get_auth_service),
    users: SqlUserRepository = Depends(get_user_repository),
) -> Optional[User]:
    return auth.current_user(request, users)
