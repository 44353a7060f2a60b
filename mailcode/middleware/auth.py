"""Authentication middleware: resolves the caller once per request."""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response, JSONResponse
import logging

from mailcode.dependencies import get_session_service, get_token_service
from mailcode.services.auth_service import AuthService

logger = logging.getLogger(__name__)

# Paths under this prefix only accept bearer tokens
API_PREFIX = "/api/"

# API paths that don't require authentication
PUBLIC_PATHS = [
    "/api/docs",
    "/api/redoc",
]


class AuthMiddleware(BaseHTTPMiddleware):
    """Sets ``request.state.user_id`` and rejects unauthenticated API calls."""

    def __init__(self, app, auth: AuthService = None):
        super().__init__(app)
        self._auth = auth

    @property
    def auth(self) -> AuthService:
        if self._auth is None:
            self._auth = AuthService(get_session_service(), get_token_service())
        return self._auth

    async def dispatch(self, request: Request, call_next) -> Response:
        path = request.url.path

        if path.startswith(API_PREFIX) and not self._is_public_path(path):
            result = self.auth.require_api_auth(request)
            if not result.ok:
                return JSONResponse(
                    status_code=401,
                    content={"detail": result.message},
                    headers={"WWW-Authenticate": "Bearer"},
                )
            request.state.user_id = result.value.user_id
        else:
            request.state.user_id = self.auth.resolve_user_id(request)

        return await call_next(request)

    def _is_public_path(self, path: str) -> bool:
        """Check if path is public (no auth required)."""
        for public_path in PUBLIC_PATHS:
            if path == public_path or path.startswith(public_path + "/"):
                return True
        return False
