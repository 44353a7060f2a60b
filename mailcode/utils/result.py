"""Explicit result values returned by the authentication core.

Core operations never raise for expected failures. They return ``Ok(value)``
or ``Err(kind)``, and the HTTP layer decides how each ``AuthError`` is shown.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Optional, TypeVar, Union

T = TypeVar("T")


class AuthError(str, Enum):
    """Failure kinds, each rendered as a distinct message by the route layer."""

    INVALID_EMAIL = "invalid_email"
    USER_NOT_FOUND = "user_not_found"
    NO_PENDING_CODE = "no_pending_code"
    CODE_REQUIRED = "code_required"
    INVALID_CODE = "invalid_code"
    CODE_EXPIRED = "code_expired"
    INVALID_FIELDS = "invalid_fields"
    DELIVERY_ERROR = "delivery_error"
    INVALID_TOKEN = "invalid_token"
    UNAUTHORIZED = "unauthorized"
    LOGIN_REQUIRED = "login_required"

    @property
    def default_message(self) -> str:
        return _MESSAGES[self]


_MESSAGES = {
    AuthError.INVALID_EMAIL: "Invalid email",
    AuthError.USER_NOT_FOUND: "User not found",
    AuthError.NO_PENDING_CODE: "No code found",
    AuthError.CODE_REQUIRED: "Please enter a code",
    AuthError.INVALID_CODE: "Invalid code",
    AuthError.CODE_EXPIRED: "Code expired",
    AuthError.INVALID_FIELDS: "Unsupported registration field",
    AuthError.DELIVERY_ERROR: "We could not send the email, please try resending the code",
    AuthError.INVALID_TOKEN: "Invalid authorization token.",
    AuthError.UNAUTHORIZED: "Authentication required",
    AuthError.LOGIN_REQUIRED: "Please log in",
}


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful outcome carrying a value."""

    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    """Failed outcome carrying an error kind and optional context for the caller."""

    kind: AuthError
    message: str = ""
    context: Optional[Any] = None

    def __post_init__(self):
        if not self.message:
            object.__setattr__(self, "message", self.kind.default_message)

    @property
    def ok(self) -> bool:
        return False


Result = Union[Ok[T], Err]
