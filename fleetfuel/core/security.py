"""Password hashing, password policy, and JWT access/refresh token creation and verification."""

import re
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

import bcrypt
import jwt

if TYPE_CHECKING:
    from fleetfuel.core.config import Settings

# Bcrypt cost (rounds); 12 is a good default for security vs speed.
BCRYPT_ROUNDS = 12

PASSWORD_MIN_LEN = 8
PASSWORD_SPECIAL_CHARS = "@$!%*?&"

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"

_PASSWORD_COMPOSITION = re.compile(
    r"^(?=.*[a-z])(?=.*[A-Z])(?=.*[0-9])(?=.*[@$!%*?&])[A-Za-z0-9@$!%*?&]+$"
)


class TokenError(Exception):
    """Raised when a token cannot be accepted."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class TokenExpiredError(TokenError):
    """Signature is valid but the token is past its exp claim."""


class InvalidTokenError(TokenError):
    """Signature, encoding or algorithm does not verify."""


class InvalidTokenStructureError(TokenError):
    """Token verifies but its claims are missing or of the wrong type."""


@dataclass(frozen=True)
class AuthConfig:
    """
    Immutable authentication settings injected into the auth core.

    Built once at startup from Settings; nothing in the core reads the environment.
    """

    access_secret: str = field(repr=False)
    refresh_secret: str = field(repr=False)
    algorithm: str = "HS256"
    access_token_ttl: timedelta = timedelta(minutes=15)
    refresh_token_ttl: timedelta = timedelta(days=7)
    bcrypt_rounds: int = BCRYPT_ROUNDS
    max_failed_attempts: int = 5
    lockout_duration: timedelta = timedelta(minutes=30)
    rotate_refresh_tokens: bool = False

    def __post_init__(self) -> None:
        if not self.access_secret or not self.refresh_secret:
            raise ValueError("Both access and refresh signing secrets are required")
        if self.access_secret == self.refresh_secret:
            raise ValueError("Access and refresh signing secrets must differ")

    @classmethod
    def from_settings(cls, settings: "Settings") -> "AuthConfig":
        return cls(
            access_secret=settings.JWT_SECRET.get_secret_value(),
            refresh_secret=settings.JWT_REFRESH_SECRET.get_secret_value(),
            algorithm=settings.JWT_ALGORITHM,
            access_token_ttl=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
            refresh_token_ttl=timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
            bcrypt_rounds=settings.BCRYPT_ROUNDS,
            max_failed_attempts=settings.MAX_FAILED_LOGIN_ATTEMPTS,
            lockout_duration=timedelta(minutes=settings.ACCOUNT_LOCKOUT_MINUTES),
            rotate_refresh_tokens=settings.REFRESH_TOKEN_ROTATION,
        )


def hash_password(plain_password: str, rounds: int = BCRYPT_ROUNDS) -> str:
    """Hash a plain-text password for storage. Do not store plain passwords."""
    # bcrypt has a 72-byte limit; truncate to avoid errors (validation already limits length).
    pw_bytes = plain_password.encode("utf-8")[:72]
    return bcrypt.hashpw(pw_bytes, bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain_password: str, hashed: str) -> bool:
    """Verify a plain password against a stored hash."""
    pw_bytes = plain_password.encode("utf-8")[:72]
    try:
        return bcrypt.checkpw(pw_bytes, hashed.encode("utf-8"))
    except (ValueError, TypeError):
        return False


def check_password_strength(password: str) -> str | None:
    """
    Return None when password satisfies the policy, else a human-readable reason.

    Policy: at least PASSWORD_MIN_LEN characters, and at least one lowercase letter,
    one uppercase letter, one digit and one of PASSWORD_SPECIAL_CHARS, using only
    letters, digits and those special characters.
    """
    if len(password) < PASSWORD_MIN_LEN:
        return f"Password must be at least {PASSWORD_MIN_LEN} characters long"
    if not _PASSWORD_COMPOSITION.match(password):
        return (
            "Password must contain uppercase and lowercase letters, digits and "
            f"special characters ({PASSWORD_SPECIAL_CHARS})"
        )
    return None


def _encode(payload: dict[str, Any], secret: str, algorithm: str) -> str:
    return jwt.encode(payload, secret, algorithm=algorithm)


def _decode(token: str, secret: str, algorithm: str) -> dict[str, Any]:
    try:
        return jwt.decode(
            token,
            secret,
            algorithms=[algorithm],
            options={"require": ["exp", "iat", "sub"]},
        )
    except jwt.ExpiredSignatureError as e:
        raise TokenExpiredError("Token expired") from e
    except jwt.MissingRequiredClaimError as e:
        raise InvalidTokenStructureError("Invalid token structure") from e
    except jwt.PyJWTError as e:
        raise InvalidTokenError("Invalid token") from e


def create_access_token(
    account_id: int,
    email: str,
    role: str,
    config: AuthConfig,
    now: datetime | None = None,
) -> str:
    """Create a short-lived JWT access token carrying account id, email and role."""
    now = now or datetime.now(UTC)
    payload: dict[str, Any] = {
        "sub": str(account_id),
        "email": email,
        "role": role,
        "type": ACCESS_TOKEN_TYPE,
        "iat": now,
        "exp": now + config.access_token_ttl,
        "jti": uuid.uuid4().hex,
    }
    return _encode(payload, config.access_secret, config.algorithm)


def create_refresh_token(
    account_id: int,
    config: AuthConfig,
    now: datetime | None = None,
) -> tuple[str, datetime]:
    """
    Create a refresh JWT signed with the refresh secret.

    Returns (token, expires_at); expires_at is what the token store records.
    """
    now = now or datetime.now(UTC)
    expires_at = now + config.refresh_token_ttl
    payload: dict[str, Any] = {
        "sub": str(account_id),
        "type": REFRESH_TOKEN_TYPE,
        "iat": now,
        "exp": expires_at,
        # Two tokens minted in the same second must still differ (unique column).
        "jti": uuid.uuid4().hex,
    }
    return _encode(payload, config.refresh_secret, config.algorithm), expires_at


def decode_access_token(token: str, config: AuthConfig) -> dict[str, Any]:
    """
    Decode and validate an access JWT; return its payload.
    Raises TokenError subclasses on expired, invalid or malformed tokens.
    """
    payload = _decode(token, config.access_secret, config.algorithm)
    if payload.get("type") != ACCESS_TOKEN_TYPE:
        raise InvalidTokenStructureError("Invalid token type")
    return payload


def decode_refresh_token(token: str, config: AuthConfig) -> int:
    """
    Verify a refresh JWT and return the account id it was issued to.
    Raises TokenError subclasses when signature, expiry, structure or type marker is wrong.
    """
    payload = _decode(token, config.refresh_secret, config.algorithm)
    if payload.get("type") != REFRESH_TOKEN_TYPE:
        raise InvalidTokenStructureError("Invalid token type")
    try:
        return int(payload["sub"])
    except (TypeError, ValueError) as e:
        raise InvalidTokenStructureError("Invalid token payload") from e
