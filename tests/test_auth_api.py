"""HTTP tests for the auth endpoints: status mapping, refresh cookie handling, and auth dependencies."""

import unittest
from collections.abc import Generator
from datetime import UTC, datetime, timedelta
from typing import Annotated

from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from fleetfuel.api.errors import register_exception_handlers
from fleetfuel.api.v1 import router as v1_router
from fleetfuel.api.v1.auth import REFRESH_COOKIE_NAME, require_roles
from fleetfuel.core.config import Settings, get_settings
from fleetfuel.core.database import build_engine, get_db
from fleetfuel.core.security import AuthConfig, create_access_token
from fleetfuel.models import Base
from fleetfuel.schemas.auth import CurrentUser, Role

PREFIX = "/api/v1/auth"
EMAIL = "driver@example.com"
PASSWORD = "Str0ng!Pass"


def _settings() -> Settings:
    return Settings(
        _env_file=None,
        APP_ENV="dev",
        DATABASE_URL="sqlite://",
        JWT_SECRET="api-access-secret-0123456789abcdef",
        JWT_REFRESH_SECRET="api-refresh-secret-0123456789abcdef",
        BCRYPT_ROUNDS=4,
    )


class AuthApiTestCase(unittest.TestCase):
    """App with the v1 router over an in-memory database; one client per test."""

    def setUp(self) -> None:
        self.settings = _settings()
        self.engine = build_engine("sqlite://", poolclass=StaticPool)
        Base.metadata.create_all(self.engine)
        session_factory = sessionmaker(bind=self.engine, autoflush=False)

        def override_get_db() -> Generator[Session, None, None]:
            db = session_factory()
            try:
                yield db
            finally:
                db.close()

        app = FastAPI()
        register_exception_handlers(app)
        app.include_router(v1_router, prefix="/api/v1")

        @app.get("/admin-only")
        def admin_only(
            user: Annotated[CurrentUser, Depends(require_roles(Role.ADMIN))],
        ) -> dict[str, int]:
            return {"id": user.id}

        app.dependency_overrides[get_db] = override_get_db
        app.dependency_overrides[get_settings] = lambda: self.settings
        self.client = TestClient(app)

    def tearDown(self) -> None:
        self.client.close()
        Base.metadata.drop_all(self.engine)
        self.engine.dispose()

    def _register(self, email: str = EMAIL, role: str | None = None) -> dict:
        body = {"email": email, "password": PASSWORD, "name": "Driver One"}
        if role is not None:
            body["role"] = role
        response = self.client.post(f"{PREFIX}/register", json=body)
        self.assertEqual(response.status_code, 201, response.text)
        return response.json()

    def _bearer(self, access_token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {access_token}"}


class TestRegisterAndLogin(AuthApiTestCase):
    def test_register_sets_cookie_and_hides_refresh_token(self) -> None:
        body = self._register()
        self.assertTrue(body["success"])
        self.assertEqual(body["data"]["user"]["email"], EMAIL)
        self.assertEqual(body["data"]["user"]["role"], "user")
        self.assertIn("accessToken", body["data"])
        self.assertNotIn("refreshToken", body["data"])
        self.assertIn(REFRESH_COOKIE_NAME, self.client.cookies)

    def test_register_validation_failures_are_400(self) -> None:
        self._register()
        duplicate = self.client.post(
            f"{PREFIX}/register",
            json={"email": EMAIL, "password": "An0ther!Secret", "name": "Other"},
        )
        self.assertEqual(duplicate.status_code, 400)
        self.assertEqual(duplicate.json()["code"], "EMAIL_EXISTS")

        weak = self.client.post(
            f"{PREFIX}/register",
            json={"email": "new@example.com", "password": "short1", "name": "New"},
        )
        self.assertEqual(weak.status_code, 400)
        self.assertEqual(weak.json()["code"], "WEAK_PASSWORD")
        self.assertFalse(weak.json()["success"])

    def test_malformed_body_returns_field_details(self) -> None:
        response = self.client.post(f"{PREFIX}/register", json={"email": EMAIL, "password": PASSWORD})
        self.assertEqual(response.status_code, 400)
        body = response.json()
        self.assertEqual(body["code"], "VALIDATION_ERROR")
        self.assertIn("name", [d["field"] for d in body["details"]])

    def test_unknown_role_rejected(self) -> None:
        response = self.client.post(
            f"{PREFIX}/register",
            json={"email": EMAIL, "password": PASSWORD, "name": "Driver", "role": "root"},
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "VALIDATION_ERROR")

    def test_login_failures_then_lock(self) -> None:
        self._register()
        for expected_remaining in (4, 3, 2, 1):
            response = self.client.post(
                f"{PREFIX}/login", json={"email": EMAIL, "password": "Wr0ng!Password"}
            )
            self.assertEqual(response.status_code, 401)
            self.assertEqual(response.json()["code"], "INVALID_CREDENTIALS")
            self.assertEqual(response.json()["attemptsRemaining"], expected_remaining)

        fifth = self.client.post(f"{PREFIX}/login", json={"email": EMAIL, "password": "Wr0ng!Password"})
        self.assertEqual(fifth.status_code, 401)
        self.assertIn("lockedUntil", fifth.json())

        locked = self.client.post(f"{PREFIX}/login", json={"email": EMAIL, "password": PASSWORD})
        self.assertEqual(locked.status_code, 423)
        self.assertEqual(locked.json()["code"], "ACCOUNT_LOCKED")
        self.assertIn("lockedUntil", locked.json())

    def test_login_success(self) -> None:
        self._register()
        self.client.cookies.clear()
        response = self.client.post(f"{PREFIX}/login", json={"email": EMAIL, "password": PASSWORD})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["data"]["user"]["email"], EMAIL)
        self.assertIn(REFRESH_COOKIE_NAME, self.client.cookies)


class TestRefreshAndLogout(AuthApiTestCase):
    def test_refresh_with_cookie(self) -> None:
        self._register()
        response = self.client.post(f"{PREFIX}/refresh")
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["data"]["accessToken"])

    def test_refresh_with_body(self) -> None:
        self._register()
        token = self.client.cookies[REFRESH_COOKIE_NAME]
        self.client.cookies.clear()
        response = self.client.post(f"{PREFIX}/refresh", json={"refreshToken": token})
        self.assertEqual(response.status_code, 200)

    def test_refresh_without_token(self) -> None:
        response = self.client.post(f"{PREFIX}/refresh")
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["code"], "NO_REFRESH_TOKEN")

    def test_logout_then_refresh_is_revoked(self) -> None:
        self._register()
        token = self.client.cookies[REFRESH_COOKIE_NAME]
        logout = self.client.post(f"{PREFIX}/logout")
        self.assertEqual(logout.status_code, 200)
        self.assertNotIn(REFRESH_COOKIE_NAME, self.client.cookies)

        response = self.client.post(f"{PREFIX}/refresh", json={"refreshToken": token})
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["code"], "TOKEN_REVOKED")

    def test_logout_unknown_token_succeeds(self) -> None:
        response = self.client.post(f"{PREFIX}/logout", json={"refreshToken": "unknown"})
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["success"])

    def test_invalid_refresh_token(self) -> None:
        response = self.client.post(f"{PREFIX}/refresh", json={"refreshToken": "garbage"})
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["code"], "INVALID_REFRESH_TOKEN")


class TestProtectedRoutes(AuthApiTestCase):
    def test_me_requires_token(self) -> None:
        response = self.client.get(f"{PREFIX}/me")
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["code"], "NO_TOKEN")

    def test_me_returns_profile(self) -> None:
        access = self._register()["data"]["accessToken"]
        response = self.client.get(f"{PREFIX}/me", headers=self._bearer(access))
        self.assertEqual(response.status_code, 200)
        user = response.json()["data"]["user"]
        self.assertEqual(user["email"], EMAIL)
        self.assertEqual(user["name"], "Driver One")

    def test_invalid_and_expired_tokens(self) -> None:
        invalid = self.client.get(f"{PREFIX}/me", headers=self._bearer("garbage"))
        self.assertEqual(invalid.status_code, 401)
        self.assertEqual(invalid.json()["code"], "INVALID_TOKEN")

        config = AuthConfig.from_settings(self.settings)
        expired_token = create_access_token(
            1, EMAIL, "user", config, now=datetime.now(UTC) - timedelta(hours=1)
        )
        expired = self.client.get(f"{PREFIX}/me", headers=self._bearer(expired_token))
        self.assertEqual(expired.status_code, 401)
        self.assertEqual(expired.json()["code"], "TOKEN_EXPIRED")

    def test_token_with_unknown_role_has_invalid_structure(self) -> None:
        config = AuthConfig.from_settings(self.settings)
        token = create_access_token(1, EMAIL, "superuser", config)
        response = self.client.get(f"{PREFIX}/me", headers=self._bearer(token))
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["code"], "INVALID_TOKEN_STRUCTURE")

    def test_change_password_revokes_sessions(self) -> None:
        access = self._register()["data"]["accessToken"]
        old_refresh = self.client.cookies[REFRESH_COOKIE_NAME]
        response = self.client.post(
            f"{PREFIX}/change-password",
            json={"currentPassword": PASSWORD, "newPassword": "N3w!Passw0rd"},
            headers=self._bearer(access),
        )
        self.assertEqual(response.status_code, 200, response.text)
        self.assertTrue(response.json()["success"])

        refresh = self.client.post(f"{PREFIX}/refresh", json={"refreshToken": old_refresh})
        self.assertEqual(refresh.json()["code"], "TOKEN_REVOKED")

    def test_change_password_wrong_current(self) -> None:
        access = self._register()["data"]["accessToken"]
        response = self.client.post(
            f"{PREFIX}/change-password",
            json={"currentPassword": "Wr0ng!Password", "newPassword": "N3w!Passw0rd"},
            headers=self._bearer(access),
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "INVALID_CURRENT_PASSWORD")

    def test_require_roles(self) -> None:
        user_access = self._register()["data"]["accessToken"]
        forbidden = self.client.get("/admin-only", headers=self._bearer(user_access))
        self.assertEqual(forbidden.status_code, 403)
        self.assertEqual(forbidden.json()["code"], "INSUFFICIENT_PERMISSIONS")
        self.assertEqual(forbidden.json()["userRole"], "user")

        admin_access = self._register("admin@example.com", role="admin")["data"]["accessToken"]
        allowed = self.client.get("/admin-only", headers=self._bearer(admin_access))
        self.assertEqual(allowed.status_code, 200)


class TestHealth(AuthApiTestCase):
    def test_health_reports_database(self) -> None:
        response = self.client.get("/api/v1/health/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok", "environment": "dev", "database": "connected"})


if __name__ == "__main__":
    unittest.main()
