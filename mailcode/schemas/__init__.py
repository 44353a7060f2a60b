"""Pydantic schemas for request/response validation."""

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

__all__ = [
    "CodeRequestResponse",
    "LoginCodeRequest",
    "ResendCodeRequest",
    "ResendCodeResponse",
    "TokenRequest",
    "TokenResponse",
    "UserInfo",
    "VerifyCodeRequest",
    "VerifyCodeResponse",
]
