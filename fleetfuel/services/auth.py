"""
Authentication core: registration, login with per-account lockout, refresh-token
issuance/verification/revocation, and password change.

Every operation returns an AuthResult; expected failures are never raised. Account
lockout state lives entirely in the account row:

  ACTIVE-UNLOCKED --wrong password, counter < max--> ACTIVE-UNLOCKED (counter + 1)
  ACTIVE-UNLOCKED --wrong password, counter reaches max--> ACTIVE-LOCKED(now + lockout)
  ACTIVE-LOCKED(until) --any attempt before until--> rejected, no counter change
  ACTIVE-LOCKED(until) / ACTIVE-UNLOCKED --correct password--> counter 0, lock cleared
  DISABLED (is_active false) --any attempt--> rejected
"""

import logging
from collections.abc import Callable
from datetime import UTC, datetime

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from fleetfuel.core.security import (
    AuthConfig,
    InvalidTokenStructureError,
    TokenError,
    check_password_strength,
    create_access_token,
    create_refresh_token,
    decode_access_token,
    decode_refresh_token,
    hash_password,
    verify_password,
)
from fleetfuel.models import Account, RefreshToken
from fleetfuel.schemas.auth import (
    AccessTokenData,
    AccountPublic,
    AuthErrorCode,
    AuthResult,
    CurrentUser,
    ProfileData,
    Role,
    SessionData,
    is_valid_email,
)

logger = logging.getLogger(__name__)

# Same message for unknown email and wrong password so callers cannot probe registered emails.
INVALID_CREDENTIALS_MESSAGE = "Invalid credentials"


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from stores without timezone support (SQLite)."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


def verify_access_token(token: str, config: AuthConfig) -> CurrentUser:
    """
    Verify an access token without a store lookup and return the account it names.

    Raises TokenExpiredError, InvalidTokenError or InvalidTokenStructureError.
    """
    payload = decode_access_token(token, config)
    try:
        return CurrentUser(
            id=int(payload["sub"]),
            email=payload["email"],
            role=payload["role"],
        )
    except (KeyError, TypeError, ValueError) as e:
        raise InvalidTokenStructureError("Invalid token structure") from e


class AuthService:
    """Request-scoped auth core over one DB session and the process-wide AuthConfig."""

    def __init__(
        self,
        db: Session,
        config: AuthConfig,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.db = db
        self.config = config
        self._clock = clock or _utcnow

    def now(self) -> datetime:
        return self._clock()

    def register(
        self,
        email: str,
        password: str,
        name: str,
        role: Role | str = Role.USER,
    ) -> AuthResult:
        """Create an account and open its first session (access + refresh token)."""
        try:
            role = Role(role)
        except ValueError:
            return AuthResult.fail(
                AuthErrorCode.VALIDATION_ERROR,
                "Role must be one of: admin, user, viewer",
            )
        if not is_valid_email(email):
            return AuthResult.fail(AuthErrorCode.INVALID_EMAIL, "Invalid email format")
        reason = check_password_strength(password)
        if reason is not None:
            return AuthResult.fail(AuthErrorCode.WEAK_PASSWORD, reason)

        email_taken = AuthResult.fail(
            AuthErrorCode.EMAIL_EXISTS, "Email address is already registered"
        )
        try:
            if self.db.query(Account.id).filter(Account.email == email).first() is not None:
                return email_taken
            now = self.now()
            account = Account(
                email=email,
                password_hash=hash_password(password, rounds=self.config.bcrypt_rounds),
                name=name,
                role=role.value,
                is_active=True,
                failed_login_attempts=0,
                created_at=now,
            )
            self.db.add(account)
            self.db.flush()
            session_data = self._open_session(account, now)
            self.db.commit()
        except IntegrityError:
            # Lost a race with a concurrent registration of the same email.
            self.db.rollback()
            return email_taken
        except (SQLAlchemyError, ValueError):
            return self._internal_error(
                "register", AuthErrorCode.REGISTRATION_ERROR, "Error registering user"
            )

        logger.info("Account registered", extra={"account_id": account.id, "role": role.value})
        return AuthResult.ok(session_data)

    def login(self, email: str, password: str) -> AuthResult:
        """Check credentials, apply lockout rules, and open a new session on success."""
        try:
            account = self.db.query(Account).filter(Account.email == email).first()
            if account is None:
                return AuthResult.fail(
                    AuthErrorCode.INVALID_CREDENTIALS, INVALID_CREDENTIALS_MESSAGE
                )
            if not account.is_active:
                return AuthResult.fail(AuthErrorCode.ACCOUNT_DISABLED, "Account is disabled")

            now = self.now()
            locked_until = _as_utc(account.locked_until)
            if locked_until is not None and locked_until > now:
                logger.info("Login rejected: account locked", extra={"account_id": account.id})
                return AuthResult.fail(
                    AuthErrorCode.ACCOUNT_LOCKED,
                    "Account temporarily locked due to repeated failed login attempts",
                    locked_until=locked_until,
                )

            if not verify_password(password, account.password_hash):
                return self._record_failed_login(account.id, now)

            account.failed_login_attempts = 0
            account.locked_until = None
            account.last_login_at = now
            session_data = self._open_session(account, now)
            self.db.commit()
        except (SQLAlchemyError, ValueError):
            return self._internal_error("login", AuthErrorCode.LOGIN_ERROR, "Error logging in")

        logger.info("Login succeeded", extra={"account_id": session_data.user.id})
        return AuthResult.ok(session_data)

    def refresh_access_token(self, refresh_token: str) -> AuthResult:
        """
        Mint a new access token from a refresh token.

        The token must verify against the refresh secret AND be present, unexpired and
        unrevoked in the token store. With rotation enabled the presented token is
        revoked and a replacement refresh token is returned too.
        """
        try:
            decode_refresh_token(refresh_token, self.config)
        except TokenError:
            return AuthResult.fail(
                AuthErrorCode.INVALID_REFRESH_TOKEN, "Invalid refresh token"
            )

        try:
            now = self.now()
            record = (
                self.db.query(RefreshToken)
                .filter(RefreshToken.token == refresh_token, RefreshToken.expires_at > now)
                .first()
            )
            if record is None:
                return AuthResult.fail(
                    AuthErrorCode.TOKEN_NOT_FOUND, "Refresh token not found or expired"
                )
            if record.revoked_at is not None:
                logger.warning(
                    "Revoked refresh token presented",
                    extra={"account_id": record.account_id, "refresh_token_id": record.id},
                )
                return AuthResult.fail(AuthErrorCode.TOKEN_REVOKED, "Refresh token revoked")

            account = (
                self.db.query(Account)
                .filter(Account.id == record.account_id, Account.is_active.is_(True))
                .first()
            )
            if account is None:
                return AuthResult.fail(
                    AuthErrorCode.USER_NOT_FOUND, "User not found or inactive"
                )

            access_token = create_access_token(
                account.id, account.email, account.role, self.config
            )
            if not self.config.rotate_refresh_tokens:
                return AuthResult.ok(AccessTokenData(access_token=access_token))

            record.revoked_at = now
            new_refresh_token = self._store_refresh_token(account.id, now)
            self.db.commit()
        except SQLAlchemyError:
            return self._internal_error(
                "refresh", AuthErrorCode.REFRESH_ERROR, "Error refreshing token"
            )

        return AuthResult.ok(
            AccessTokenData(access_token=access_token, refresh_token=new_refresh_token)
        )

    def logout(self, refresh_token: str) -> AuthResult:
        """Revoke a refresh token. Unknown or already-revoked tokens are a no-op."""
        try:
            revoked = (
                self.db.query(RefreshToken)
                .filter(RefreshToken.token == refresh_token, RefreshToken.revoked_at.is_(None))
                .update({RefreshToken.revoked_at: self.now()}, synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError:
            return self._internal_error("logout", AuthErrorCode.LOGOUT_ERROR, "Error logging out")

        if revoked:
            logger.info("Refresh token revoked on logout")
        return AuthResult.ok(message="Logged out successfully")

    def change_password(
        self,
        account_id: int,
        current_password: str,
        new_password: str,
    ) -> AuthResult:
        """Replace the password hash and revoke every refresh token of the account."""
        try:
            account = self.db.query(Account).filter(Account.id == account_id).first()
            if account is None:
                return AuthResult.fail(AuthErrorCode.USER_NOT_FOUND, "User not found")
            if not verify_password(current_password, account.password_hash):
                return AuthResult.fail(
                    AuthErrorCode.INVALID_CURRENT_PASSWORD, "Current password is incorrect"
                )
            reason = check_password_strength(new_password)
            if reason is not None:
                return AuthResult.fail(AuthErrorCode.WEAK_PASSWORD, reason)

            now = self.now()
            account.password_hash = hash_password(new_password, rounds=self.config.bcrypt_rounds)
            account.updated_at = now
            revoked = (
                self.db.query(RefreshToken)
                .filter(RefreshToken.account_id == account_id, RefreshToken.revoked_at.is_(None))
                .update({RefreshToken.revoked_at: now}, synchronize_session=False)
            )
            self.db.commit()
        except (SQLAlchemyError, ValueError):
            return self._internal_error(
                "change_password",
                AuthErrorCode.PASSWORD_CHANGE_ERROR,
                "Error changing password",
            )

        logger.info(
            "Password changed",
            extra={"account_id": account_id, "refresh_tokens_revoked": revoked},
        )
        return AuthResult.ok(message="Password changed successfully. Please log in again.")

    def get_profile(self, account_id: int) -> AuthResult:
        """Public fields of an active account."""
        account = (
            self.db.query(Account)
            .filter(Account.id == account_id, Account.is_active.is_(True))
            .first()
        )
        if account is None:
            return AuthResult.fail(AuthErrorCode.USER_NOT_FOUND, "User not found")
        return AuthResult.ok(ProfileData(user=AccountPublic.model_validate(account)))

    def _record_failed_login(self, account_id: int, now: datetime) -> AuthResult:
        # Increment in SQL so concurrent failures against one account do not lose updates.
        self.db.query(Account).filter(Account.id == account_id).update(
            {Account.failed_login_attempts: Account.failed_login_attempts + 1},
            synchronize_session=False,
        )
        attempts = (
            self.db.query(Account.failed_login_attempts)
            .filter(Account.id == account_id)
            .scalar()
        )
        locked_until = None
        if attempts >= self.config.max_failed_attempts:
            locked_until = now + self.config.lockout_duration
            self.db.query(Account).filter(Account.id == account_id).update(
                {Account.locked_until: locked_until},
                synchronize_session=False,
            )
        self.db.commit()

        if locked_until is not None:
            logger.warning(
                "Account locked after failed login attempts",
                extra={"account_id": account_id, "failed_attempts": attempts},
            )
        else:
            logger.info(
                "Login failed: wrong password",
                extra={"account_id": account_id, "failed_attempts": attempts},
            )
        return AuthResult.fail(
            AuthErrorCode.INVALID_CREDENTIALS,
            INVALID_CREDENTIALS_MESSAGE,
            attempts_remaining=max(0, self.config.max_failed_attempts - attempts),
            locked_until=locked_until,
        )

    def _open_session(self, account: Account, now: datetime) -> SessionData:
        """Issue an access token and a persisted refresh token for account (no commit)."""
        access_token = create_access_token(
            account.id, account.email, account.role, self.config
        )
        refresh_token = self._store_refresh_token(account.id, now)
        return SessionData(
            user=AccountPublic.model_validate(account),
            access_token=access_token,
            refresh_token=refresh_token,
        )

    def _store_refresh_token(self, account_id: int, now: datetime) -> str:
        # The JWT carries wall-clock iat/exp; the store row expires on the service clock.
        token, _ = create_refresh_token(account_id, self.config)
        expires_at = now + self.config.refresh_token_ttl
        self.db.add(
            RefreshToken(
                account_id=account_id,
                token=token,
                expires_at=expires_at,
                created_at=now,
            )
        )
        return token

    def _internal_error(
        self,
        operation: str,
        code: AuthErrorCode,
        message: str,
    ) -> AuthResult:
        self.db.rollback()
        logger.exception("Auth operation failed", extra={"operation": operation})
        return AuthResult.fail(code, message)
