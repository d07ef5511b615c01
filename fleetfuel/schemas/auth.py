"""Roles, error codes, the tagged auth result, and request/response schemas for auth endpoints."""

from datetime import datetime
from enum import Enum
from typing import Any

from email_validator import EmailNotValidError, validate_email
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class Role(str, Enum):
    """Closed set of account roles."""

    ADMIN = "admin"
    USER = "user"
    VIEWER = "viewer"


ROLE_VALUES: frozenset[str] = frozenset(r.value for r in Role)


def is_valid_email(email: str) -> bool:
    """True if email is a bare, syntactically valid address ("Name <addr>" is rejected)."""
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


class AuthErrorCode(str, Enum):
    """Stable machine-readable codes carried by failed AuthResults and HTTP error bodies."""

    # input validation
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_EMAIL = "INVALID_EMAIL"
    WEAK_PASSWORD = "WEAK_PASSWORD"
    EMAIL_EXISTS = "EMAIL_EXISTS"
    INVALID_CURRENT_PASSWORD = "INVALID_CURRENT_PASSWORD"
    # authorization
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    ACCOUNT_DISABLED = "ACCOUNT_DISABLED"
    ACCOUNT_LOCKED = "ACCOUNT_LOCKED"
    INVALID_REFRESH_TOKEN = "INVALID_REFRESH_TOKEN"
    TOKEN_REVOKED = "TOKEN_REVOKED"
    NO_TOKEN = "NO_TOKEN"
    NO_REFRESH_TOKEN = "NO_REFRESH_TOKEN"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    INVALID_TOKEN = "INVALID_TOKEN"
    INVALID_TOKEN_STRUCTURE = "INVALID_TOKEN_STRUCTURE"
    INSUFFICIENT_PERMISSIONS = "INSUFFICIENT_PERMISSIONS"
    # not found
    TOKEN_NOT_FOUND = "TOKEN_NOT_FOUND"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    # internal
    REGISTRATION_ERROR = "REGISTRATION_ERROR"
    LOGIN_ERROR = "LOGIN_ERROR"
    REFRESH_ERROR = "REFRESH_ERROR"
    LOGOUT_ERROR = "LOGOUT_ERROR"
    PASSWORD_CHANGE_ERROR = "PASSWORD_CHANGE_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class CamelModel(BaseModel):
    """Base for payloads serialized with camelCase keys (accessToken, lockedUntil, ...)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AccountPublic(CamelModel):
    """Public account fields; never includes the password hash or lockout state."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    name: str
    role: Role


class SessionData(CamelModel):
    """Successful register/login payload."""

    user: AccountPublic
    access_token: str
    refresh_token: str


class AccessTokenData(CamelModel):
    """Successful refresh payload. refresh_token is set only when rotation is enabled."""

    access_token: str
    refresh_token: str | None = None


class ProfileData(CamelModel):
    """Current account profile."""

    user: AccountPublic


AuthData = SessionData | AccessTokenData | ProfileData


class AuthResult(CamelModel):
    """
    Tagged result of every auth core operation.

    Success: {"success": true, "data": {...}} or {"success": true, "message": "..."}.
    Failure: {"success": false, "error": "...", "code": "...", plus optional
    attemptsRemaining / lockedUntil}.
    """

    success: bool
    data: AuthData | None = None
    message: str | None = None
    error: str | None = None
    code: AuthErrorCode | None = None
    attempts_remaining: int | None = None
    locked_until: datetime | None = None

    @classmethod
    def ok(cls, data: AuthData | None = None, message: str | None = None) -> "AuthResult":
        return cls(success=True, data=data, message=message)

    @classmethod
    def fail(cls, code: AuthErrorCode, error: str, **extra: Any) -> "AuthResult":
        return cls(success=False, code=code, error=error, **extra)

    def to_response(self) -> dict[str, Any]:
        """JSON-ready dict with camelCase keys and unset optional fields omitted."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class RegisterRequest(CamelModel):
    """Registration body. Email format and password strength are checked by the auth core."""

    email: str = Field(..., min_length=1, max_length=255, description="Email address")
    password: str = Field(..., min_length=1, max_length=128, description="Password")
    name: str = Field(..., min_length=2, max_length=255, description="Display name")
    role: Role | None = Field(default=None, description="admin, user or viewer (default user)")


class LoginRequest(CamelModel):
    """Credentials for login."""

    email: str = Field(..., min_length=1, max_length=255, description="Email address")
    password: str = Field(..., min_length=1, max_length=128, description="Password")


class RefreshRequest(CamelModel):
    """Optional body for refresh/logout; the refreshToken cookie takes precedence."""

    refresh_token: str | None = Field(default=None, description="Refresh token")


class ChangePasswordRequest(CamelModel):
    """Body for changing the current account's password."""

    current_password: str = Field(..., min_length=1, max_length=128)
    new_password: str = Field(..., min_length=1, max_length=128)


class CurrentUser(BaseModel):
    """Authenticated account (id, email, role) taken from a verified access token."""

    id: int
    email: str
    role: Role

    @field_validator("email")
    @classmethod
    def validate_email_claim(cls, v: str) -> str:
        if not is_valid_email(v):
            raise ValueError("email is not a valid address")
        return v
