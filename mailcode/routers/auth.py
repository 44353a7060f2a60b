"""Authentication API endpoints."""

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse, RedirectResponse
from typing import Optional
from urllib.parse import urlencode
import logging

from mailcode.config import settings
from mailcode.dependencies import (
    get_current_user_optional,
    get_login_code_service,
    get_session_service,
    get_token_service,
)
from mailcode.models.user import User
from mailcode.schemas.auth import (
    CodeRequestResponse,
    LoginCodeRequest,
    ResendCodeRequest,
    ResendCodeResponse,
    TokenRequest,
    TokenResponse,
    UserInfo,
    VerifyCodeRequest,
    VerifyCodeResponse,
)
from mailcode.services.login_code_service import LoginCodeService
from mailcode.services.session_service import SessionService, safe_redirect_target
from mailcode.services.token_service import TokenService
from mailcode.utils.result import AuthError, Err

router = APIRouter()
logger = logging.getLogger(__name__)

ERROR_STATUS = {
    AuthError.INVALID_EMAIL: status.HTTP_400_BAD_REQUEST,
    AuthError.USER_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    AuthError.NO_PENDING_CODE: status.HTTP_404_NOT_FOUND,
    AuthError.CODE_REQUIRED: status.HTTP_400_BAD_REQUEST,
    AuthError.INVALID_CODE: status.HTTP_400_BAD_REQUEST,
    AuthError.CODE_EXPIRED: status.HTTP_400_BAD_REQUEST,
    AuthError.INVALID_FIELDS: status.HTTP_400_BAD_REQUEST,
    AuthError.DELIVERY_ERROR: status.HTTP_502_BAD_GATEWAY,
    AuthError.INVALID_TOKEN: status.HTTP_401_UNAUTHORIZED,
    AuthError.UNAUTHORIZED: status.HTTP_401_UNAUTHORIZED,
    AuthError.LOGIN_REQUIRED: status.HTTP_401_UNAUTHORIZED,
}


def error_response(err: Err) -> HTTPException:
    """Translate a core failure into an HTTP error the UI can render."""
    return HTTPException(
        status_code=ERROR_STATUS[err.kind],
        detail={"error": err.kind.value, "message": err.message},
    )


def user_info(user: User) -> UserInfo:
    return UserInfo(
        id=user.id,
        email=user.email,
        roles=list(user.roles or []),
        name=user.name,
        handle=user.handle,
    )


@router.get("/login")
async def login_page(request: Request, sessions: SessionService = Depends(get_session_service)):
    """Login entry point: remembers ``?redirect=`` for after the code is verified."""
    response = JSONResponse({"login_from": settings.LOGIN_FROM, "site": settings.SITE_NAME})
    response.headers.append("set-cookie", sessions.set_redirect_intent(request))
    return response


@router.post("/login", response_model=CodeRequestResponse)
def request_login_code(
    body: LoginCodeRequest,
    engine: LoginCodeService = Depends(get_login_code_service),
):
    """Email a login code and point the client at the code entry step."""
    result = engine.request_code(body.email, allow_registration=body.allow_registration)
    if not result.ok:
        raise error_response(result)

    outcome = result.value
    params = {"email": outcome.email, "register": "yes" if outcome.will_register else "no"}
    return CodeRequestResponse(
        email=outcome.email,
        will_register=outcome.will_register,
        next_url=f"/auth/code?{urlencode(params)}",
    )


@router.post("/code", response_model=VerifyCodeResponse)
def verify_login_code(
    body: VerifyCodeRequest,
    request: Request,
    engine: LoginCodeService = Depends(get_login_code_service),
    sessions: SessionService = Depends(get_session_service),
):
    """Verify a code, registering the account if allowed, and start a session."""
    profile = body.profile if body.register_account else None
    result = engine.verify_code(body.email, body.code, extra_fields=profile)
    if not result.ok:
        raise error_response(result)

    user = result.value
    _, cookie = sessions.establish(user)
    redirect_to = sessions.consume_redirect_intent(request)

    payload = VerifyCodeResponse(redirect_to=redirect_to, user=user_info(user))
    response = JSONResponse(payload.model_dump())
    response.headers.append("set-cookie", cookie)
    return response


@router.post("/code/resend", response_model=ResendCodeResponse)
def resend_login_code(
    body: ResendCodeRequest,
    engine: LoginCodeService = Depends(get_login_code_service),
):
    """Resend the pending code without rotating it."""
    result = engine.resend_code(body.email)
    if not result.ok:
        raise error_response(result)
    return ResendCodeResponse(resent=True)


@router.get("/logout")
async def logout(request: Request, sessions: SessionService = Depends(get_session_service)):
    """Clear the session and redirect to ``?redirect=`` (or ``/``)."""
    target = safe_redirect_target(request.query_params.get("redirect") or "/", request.url.netloc)
    response = RedirectResponse(url=target, status_code=status.HTTP_303_SEE_OTHER)
    response.headers.append("set-cookie", sessions.destroy(request))
    logger.info("User logged out, session cookie cleared")
    return response


@router.get("/me", response_model=UserInfo)
def current_user(user: Optional[User] = Depends(get_current_user_optional)):
    """Current user, resolved from a bearer token or the session cookie."""
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": AuthError.UNAUTHORIZED.value, "message": AuthError.UNAUTHORIZED.default_message},
        )
    return user_info(user)


@router.post("/token", response_model=TokenResponse)
def issue_token(
    body: TokenRequest,
    request: Request,
    sessions: SessionService = Depends(get_session_service),
    tokens: TokenService = Depends(get_token_service),
):
    """
    Issue a bearer token to a logged-in browser session.

    Tokens cannot mint tokens: only the session cookie is accepted here, so a
    token's lifetime is never extended.
    """
    session = sessions.current(request)
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": AuthError.UNAUTHORIZED.value, "message": AuthError.UNAUTHORIZED.default_message},
        )
    token = tokens.sign(session.user_id, body.client_id)
    logger.info(f"Issued bearer token for user {session.user_id} (client {body.client_id})")
    return TokenResponse(access_token=token, expires_in=tokens.expires_in)
