"""Auth endpoints (register, login, refresh, logout, me, change-password) and auth dependencies."""

from collections.abc import Callable
from typing import Annotated

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from fleetfuel.api.errors import AuthHTTPError, error_response
from fleetfuel.core.config import Settings, get_settings
from fleetfuel.core.database import get_db
from fleetfuel.core.security import (
    AuthConfig,
    InvalidTokenStructureError,
    TokenError,
    TokenExpiredError,
)
from fleetfuel.schemas.auth import (
    AuthErrorCode,
    AuthResult,
    ChangePasswordRequest,
    CurrentUser,
    LoginRequest,
    RefreshRequest,
    RegisterRequest,
    Role,
    SessionData,
)
from fleetfuel.services.auth import AuthService, verify_access_token

router = APIRouter()
security = HTTPBearer(auto_error=False)

REFRESH_COOKIE_NAME = "refreshToken"

# Transport status for each failure code; anything unlisted is a 401.
_STATUS_BY_CODE: dict[AuthErrorCode, int] = {
    AuthErrorCode.VALIDATION_ERROR: status.HTTP_400_BAD_REQUEST,
    AuthErrorCode.INVALID_EMAIL: status.HTTP_400_BAD_REQUEST,
    AuthErrorCode.WEAK_PASSWORD: status.HTTP_400_BAD_REQUEST,
    AuthErrorCode.EMAIL_EXISTS: status.HTTP_400_BAD_REQUEST,
    AuthErrorCode.INVALID_CURRENT_PASSWORD: status.HTTP_400_BAD_REQUEST,
    AuthErrorCode.ACCOUNT_LOCKED: status.HTTP_423_LOCKED,
    AuthErrorCode.USER_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    AuthErrorCode.REGISTRATION_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
    AuthErrorCode.LOGIN_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
    AuthErrorCode.REFRESH_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
    AuthErrorCode.LOGOUT_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
    AuthErrorCode.PASSWORD_CHANGE_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
    AuthErrorCode.INTERNAL_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def status_for(code: AuthErrorCode | None) -> int:
    """Map a failure code to its HTTP status."""
    if code is None:
        return status.HTTP_500_INTERNAL_SERVER_ERROR
    return _STATUS_BY_CODE.get(code, status.HTTP_401_UNAUTHORIZED)


def get_auth_config(settings: Annotated[Settings, Depends(get_settings)]) -> AuthConfig:
    """Dependency: immutable auth configuration built from settings."""
    return AuthConfig.from_settings(settings)


def get_auth_service(
    db: Annotated[Session, Depends(get_db)],
    config: Annotated[AuthConfig, Depends(get_auth_config)],
) -> AuthService:
    """Dependency: request-scoped auth core."""
    return AuthService(db, config)


def _failure(result: AuthResult, status_code: int | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code or status_for(result.code),
        content=result.to_response(),
    )


def _set_refresh_cookie(response: JSONResponse, token: str, settings: Settings) -> None:
    response.set_cookie(
        key=REFRESH_COOKIE_NAME,
        value=token,
        httponly=True,
        secure=settings.APP_ENV != "dev",
        samesite="strict",
        max_age=settings.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 60 * 60,
    )


def _session_response(
    data: SessionData,
    settings: Settings,
    status_code: int = status.HTTP_200_OK,
) -> JSONResponse:
    # The refresh token travels only in the HTTP-only cookie.
    response = JSONResponse(
        status_code=status_code,
        content={
            "success": True,
            "data": data.model_dump(mode="json", by_alias=True, exclude={"refresh_token"}),
        },
    )
    _set_refresh_cookie(response, data.refresh_token, settings)
    return response


def _refresh_token_from(request: Request, body: RefreshRequest | None) -> str | None:
    token = request.cookies.get(REFRESH_COOKIE_NAME)
    if not token and body is not None:
        token = body.refresh_token
    return token or None


@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(
    body: RegisterRequest,
    service: Annotated[AuthService, Depends(get_auth_service)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> JSONResponse:
    """Register a new account; returns the account and an access token, sets the refresh cookie."""
    result = service.register(
        email=body.email,
        password=body.password,
        name=body.name,
        role=body.role or Role.USER,
    )
    if not result.success:
        return _failure(result)
    return _session_response(result.data, settings, status_code=status.HTTP_201_CREATED)


@router.post("/login")
def login(
    body: LoginRequest,
    service: Annotated[AuthService, Depends(get_auth_service)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> JSONResponse:
    """
    Authenticate with email and password; returns the account and an access token.
    Include the token in the Authorization header as: Bearer <accessToken>
    """
    result = service.login(email=body.email, password=body.password)
    if not result.success:
        return _failure(result)
    return _session_response(result.data, settings)


@router.post("/refresh")
def refresh(
    request: Request,
    service: Annotated[AuthService, Depends(get_auth_service)],
    settings: Annotated[Settings, Depends(get_settings)],
    body: RefreshRequest | None = None,
) -> JSONResponse:
    """Exchange the refresh token (cookie or body) for a new access token."""
    token = _refresh_token_from(request, body)
    if token is None:
        return error_response(
            status.HTTP_401_UNAUTHORIZED,
            AuthErrorCode.NO_REFRESH_TOKEN,
            "Refresh token not provided",
        )

    result = service.refresh_access_token(token)
    if not result.success:
        status_code = status_for(result.code)
        if status_code < status.HTTP_500_INTERNAL_SERVER_ERROR:
            status_code = status.HTTP_401_UNAUTHORIZED
        response = _failure(result, status_code)
        response.delete_cookie(REFRESH_COOKIE_NAME)
        return response

    response = JSONResponse(
        content={
            "success": True,
            "data": {"accessToken": result.data.access_token},
        }
    )
    if result.data.refresh_token is not None:
        _set_refresh_cookie(response, result.data.refresh_token, settings)
    return response


@router.post("/logout")
def logout(
    request: Request,
    service: Annotated[AuthService, Depends(get_auth_service)],
    body: RefreshRequest | None = None,
) -> JSONResponse:
    """Revoke the refresh token (if any) and clear the cookie. Always succeeds for unknown tokens."""
    token = _refresh_token_from(request, body)
    if token is not None:
        result = service.logout(token)
        if not result.success:
            return _failure(result)
    response = JSONResponse(content={"success": True, "message": "Logged out successfully"})
    response.delete_cookie(REFRESH_COOKIE_NAME)
    return response


def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    config: Annotated[AuthConfig, Depends(get_auth_config)],
) -> CurrentUser:
    """Dependency: require valid Bearer access token and return the current account. Raises 401."""
    bearer = {"WWW-Authenticate": "Bearer"}
    if credentials is None:
        raise AuthHTTPError(
            status.HTTP_401_UNAUTHORIZED,
            AuthErrorCode.NO_TOKEN,
            "Authentication token not provided",
            headers=bearer,
        )
    try:
        return verify_access_token(credentials.credentials, config)
    except TokenExpiredError:
        raise AuthHTTPError(
            status.HTTP_401_UNAUTHORIZED, AuthErrorCode.TOKEN_EXPIRED, "Token expired", headers=bearer
        )
    except InvalidTokenStructureError:
        raise AuthHTTPError(
            status.HTTP_401_UNAUTHORIZED,
            AuthErrorCode.INVALID_TOKEN_STRUCTURE,
            "Invalid token structure",
            headers=bearer,
        )
    except TokenError:
        raise AuthHTTPError(
            status.HTTP_401_UNAUTHORIZED, AuthErrorCode.INVALID_TOKEN, "Invalid token", headers=bearer
        )


def require_roles(*roles: Role) -> Callable[[CurrentUser], CurrentUser]:
    """Dependency factory: require an authenticated account whose role is one of roles. Raises 403."""
    allowed = frozenset(roles)

    def dependency(
        current_user: Annotated[CurrentUser, Depends(get_current_user)],
    ) -> CurrentUser:
        if current_user.role not in allowed:
            raise AuthHTTPError(
                status.HTTP_403_FORBIDDEN,
                AuthErrorCode.INSUFFICIENT_PERMISSIONS,
                "You do not have permission to perform this action",
                requiredRoles=sorted(r.value for r in allowed),
                userRole=current_user.role.value,
            )
        return current_user

    return dependency


@router.get("/me")
def get_profile(
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    service: Annotated[AuthService, Depends(get_auth_service)],
) -> JSONResponse:
    """Return the current account's public profile."""
    result = service.get_profile(current_user.id)
    if not result.success:
        return _failure(result)
    return JSONResponse(content=result.to_response())


@router.post("/change-password")
def change_password(
    body: ChangePasswordRequest,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    service: Annotated[AuthService, Depends(get_auth_service)],
) -> JSONResponse:
    """Change the current account's password; every refresh token of the account is revoked."""
    result = service.change_password(
        current_user.id,
        body.current_password,
        body.new_password,
    )
    if not result.success:
        return _failure(result)
    response = JSONResponse(content=result.to_response())
    response.delete_cookie(REFRESH_COOKIE_NAME)
    return response
