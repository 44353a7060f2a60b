"""HTTP middleware."""

from mailcode.middleware.auth import AuthMiddleware
from mailcode.middleware.security import SecurityHeadersMiddleware, RateLimitMiddleware

__all__ = [
    "AuthMiddleware",
    "SecurityHeadersMiddleware",
    "RateLimitMiddleware",
]
