"""Authentication schemas."""

from pydantic import BaseModel, Field
from typing import Dict, List, Optional, Union


class LoginCodeRequest(BaseModel):
    """Ask for a login code. The email is validated by the login code engine."""
    email: str
    allow_registration: bool = True


class CodeRequestResponse(BaseModel):
    """Where to enter the code, and whether this flow registers an account."""
    email: str
    will_register: bool
    next_url: str


class ResendCodeRequest(BaseModel):
    email: str


class ResendCodeResponse(BaseModel):
    resent: bool = True


class VerifyCodeRequest(BaseModel):
    """Code entry. ``profile`` carries registration attributes such as name and handle."""
    email: str
    code: str = ""
    register_account: bool = False
    profile: Optional[Dict[str, str]] = None


class UserInfo(BaseModel):
    """User information returned after login."""
    id: Union[int, str]
    email: str
    roles: List[str] = Field(default_factory=list)
    name: Optional[str] = None
    handle: Optional[str] = None


class VerifyCodeResponse(BaseModel):
    redirect_to: str
    user: UserInfo


class TokenRequest(BaseModel):
    client_id: str = Field(min_length=1, max_length=200)


class TokenResponse(BaseModel):
    """Bearer token for API clients."""
    access_token: str
    token_type: str = "bearer"
    expires_in: int
