"""
Main FastAPI Application Entry Point
"""

from fastapi import FastAPI, Request, Depends, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from contextlib import asynccontextmanager
import logging
import traceback

from mailcode.config import settings
from mailcode.database import init_db, health_check
from mailcode.dependencies import LoginRequired, require_api_auth, require_logged_in
from mailcode.middleware.auth import AuthMiddleware
from mailcode.middleware.security import SecurityHeadersMiddleware, RateLimitMiddleware
from mailcode.routers import auth
from mailcode.services.token_service import TokenClaims

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info(f"Starting {settings.APP_NAME} ({settings.ENVIRONMENT})")

    try:
        init_db()
        logger.info("Database tables verified/created")
    except Exception as e:
        logger.error(f"Failed to create database tables: {e}")
        raise

    if settings.ENVIRONMENT == "production" and "change-this" in (settings.SESSION_SECRET + settings.JWT_SECRET):
        logger.warning("Default SESSION_SECRET/JWT_SECRET in production; set real secrets")

    yield

    logger.info(f"Shutting down {settings.APP_NAME}")


app = FastAPI(
    title=settings.APP_NAME,
    description="Passwordless email-code login with cookie sessions and bearer tokens",
    version=settings.APP_VERSION,
    lifespan=lifespan,
    docs_url="/api/docs" if settings.DEBUG else None,
    redoc_url="/api/redoc" if settings.DEBUG else None,
)


@app.exception_handler(LoginRequired)
async def login_required_handler(request: Request, exc: LoginRequired):
    """Send unauthenticated page requests to the login entry point."""
    return RedirectResponse(url=exc.login_url, status_code=303)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch all unhandled exceptions and return proper JSON response with logging."""
    logger.error(f"Unhandled exception on {request.method} {request.url.path}: {exc}")
    logger.error(f"Stack trace:\n{traceback.format_exc()}")

    if isinstance(exc, HTTPException):
        raise exc

    return JSONResponse(
        status_code=500,
        content={
            "detail": "Internal server error",
            "error_type": type(exc).__name__,
            "message": str(exc) if settings.DEBUG else "An unexpected error occurred",
            "path": str(request.url.path),
        }
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    RateLimitMiddleware,
    max_requests=settings.RATE_LIMIT_REQUESTS,
    window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS,
    trusted_proxies=settings.TRUSTED_PROXIES,
)
app.add_middleware(AuthMiddleware)

app.include_router(auth.router, prefix="/auth", tags=["Authentication"])


@app.get("/health")
async def health():
    return {
        "status": "healthy" if health_check() else "degraded",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
    }


@app.get("/account")
async def account(user_id=Depends(require_logged_in)):
    """Example page requiring a login (session or bearer)."""
    return {"user_id": user_id}


@app.get("/api/whoami")
async def whoami(claims: TokenClaims = Depends(require_api_auth)):
    """Example API route: bearer tokens only."""
    return {"user_id": claims.user_id, "client_id": claims.client_id}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("mailcode.main:app", host="0.0.0.0", port=8000, reload=settings.DEBUG)
