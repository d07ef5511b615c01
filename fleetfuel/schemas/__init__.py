"""Pydantic schemas for API request/response and auth results."""

from fleetfuel.schemas.auth import (
    AccessTokenData,
    AccountPublic,
    AuthErrorCode,
    AuthResult,
    CurrentUser,
    ProfileData,
    Role,
    SessionData,
)
from fleetfuel.schemas.health import HealthResponse

__all__ = [
    "AccessTokenData",
    "AccountPublic",
    "AuthErrorCode",
    "AuthResult",
    "CurrentUser",
    "HealthResponse",
    "ProfileData",
    "Role",
    "SessionData",
]
