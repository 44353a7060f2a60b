"""
Security Middleware
Response hardening and brute-force throttling for the login endpoints.
"""

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from typing import Dict, Iterable, List
import logging
import time

logger = logging.getLogger(__name__)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds standard security headers; auth responses are never cached."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        # Responses carrying codes, cookies or tokens
        if request.url.path.startswith("/auth/"):
            response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, private"
            response.headers["Pragma"] = "no-cache"

        return response


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Sliding-window limit on POSTs to the login endpoints.

    Six-digit codes are guessable, so code submissions and code requests
    are throttled per client address.
    """

    def __init__(self, app, max_requests: int = 20, window_seconds: int = 60, path_prefix: str = "/auth/",
                 trusted_proxies: Iterable[str] = ()):
        super().__init__(app)
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.path_prefix = path_prefix
        self.trusted_proxies = frozenset(trusted_proxies)
        self.request_counts: Dict[str, List[float]] = {}

    def _get_client_ip(self, request: Request) -> str:
        """
        Get client IP from request.

        X-Forwarded-For is only honoured when the direct peer is a configured
        proxy; otherwise any client could pick a fresh address per request.
        """
        peer = request.client.host if request.client else "unknown"
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded and peer in self.trusted_proxies:
            return forwarded.split(",")[0].strip() or peer
        return peer

    def _recent_requests(self, client_ip: str, current_time: float) -> List[float]:
        """Timestamps still inside the window; idle clients are dropped."""
        recent = [
            timestamp for timestamp in self.request_counts.get(client_ip, [])
            if current_time - timestamp < self.window_seconds
        ]
        if recent:
            self.request_counts[client_ip] = recent
        else:
            self.request_counts.pop(client_ip, None)
        return recent

    async def dispatch(self, request: Request, call_next):
        if request.method != "POST" or not request.url.path.startswith(self.path_prefix):
            return await call_next(request)

        client_ip = self._get_client_ip(request)
        current_time = time.time()

        if len(self._recent_requests(client_ip, current_time)) >= self.max_requests:
            logger.warning(f"Rate limit exceeded for IP: {client_ip}")
            return JSONResponse(
                status_code=429,
                content={"detail": "Too many requests. Please try again later."}
            )

        self.request_counts.setdefault(client_ip, []).append(current_time)

        response = await call_next(request)

        response.headers["X-RateLimit-Limit"] = str(self.max_requests)
        response.headers["X-RateLimit-Remaining"] = str(
            self.max_requests - len(self.request_counts.get(client_ip, []))
        )

        return response
