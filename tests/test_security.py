"""Unit tests for fleetfuel.core.security: password policy, hashing, and JWT access/refresh tokens."""

import unittest
from datetime import UTC, datetime, timedelta

import jwt

from fleetfuel.core.security import (
    AuthConfig,
    InvalidTokenError,
    InvalidTokenStructureError,
    TokenExpiredError,
    check_password_strength,
    create_access_token,
    create_refresh_token,
    decode_access_token,
    decode_refresh_token,
    hash_password,
    verify_password,
)

CONFIG = AuthConfig(
    access_secret="unit-access-secret-0123456789abcdef",
    refresh_secret="unit-refresh-secret-0123456789abcdef",
    bcrypt_rounds=4,
)


class TestPasswordStrength(unittest.TestCase):
    def test_strong_password_passes(self) -> None:
        for password in ("Str0ng!Pass", "aB3$aB3$", "Fleet&Fuel2024?"):
            self.assertIsNone(check_password_strength(password), password)

    def test_short_password_reports_length(self) -> None:
        reason = check_password_strength("Sh0rt!")
        self.assertIsNotNone(reason)
        self.assertIn("at least 8", reason)

    def test_no_upper_length_limit(self) -> None:
        self.assertIsNone(check_password_strength("Aa1!" * 33))

    def test_composition_failures(self) -> None:
        for password in (
            "alllowercase1!",  # no uppercase
            "ALLUPPERCASE1!",  # no lowercase
            "NoDigitsHere!",  # no digit
            "NoSpecial123",  # no special character
            "Has Space1!",  # character outside the allowed set
            "Hash#Mark1!",  # '#' is not one of the allowed specials
        ):
            reason = check_password_strength(password)
            self.assertIsNotNone(reason, password)
            self.assertIn("special characters", reason)

    def test_non_ascii_digits_do_not_count(self) -> None:
        self.assertIsNotNone(check_password_strength("Password!١"))


class TestPasswordHashing(unittest.TestCase):
    def test_hash_and_verify(self) -> None:
        hashed = hash_password("Str0ng!Pass", rounds=4)
        self.assertNotEqual(hashed, "Str0ng!Pass")
        self.assertTrue(verify_password("Str0ng!Pass", hashed))
        self.assertFalse(verify_password("Str0ng!Pasz", hashed))

    def test_hashes_are_salted(self) -> None:
        first = hash_password("Str0ng!Pass", rounds=4)
        second = hash_password("Str0ng!Pass", rounds=4)
        self.assertNotEqual(first, second)

    def test_default_cost_is_twelve_rounds(self) -> None:
        self.assertEqual(AuthConfig(access_secret="a", refresh_secret="b").bcrypt_rounds, 12)

    def test_verify_against_garbage_hash_is_false(self) -> None:
        self.assertFalse(verify_password("Str0ng!Pass", "not-a-bcrypt-hash"))


class TestAuthConfig(unittest.TestCase):
    def test_secrets_required_and_distinct(self) -> None:
        with self.assertRaises(ValueError):
            AuthConfig(access_secret="", refresh_secret="refresh")
        with self.assertRaises(ValueError):
            AuthConfig(access_secret="same", refresh_secret="same")

    def test_secrets_hidden_from_repr(self) -> None:
        self.assertNotIn(CONFIG.access_secret, repr(CONFIG))
        self.assertNotIn(CONFIG.refresh_secret, repr(CONFIG))


class TestAccessTokens(unittest.TestCase):
    def test_round_trip_claims(self) -> None:
        token = create_access_token(7, "driver@example.com", "viewer", CONFIG)
        payload = decode_access_token(token, CONFIG)
        self.assertEqual(payload["sub"], "7")
        self.assertEqual(payload["email"], "driver@example.com")
        self.assertEqual(payload["role"], "viewer")
        self.assertEqual(payload["type"], "access")
        self.assertEqual(payload["exp"] - payload["iat"], 15 * 60)

    def test_expired_access_token(self) -> None:
        issued = datetime.now(UTC) - timedelta(hours=1)
        token = create_access_token(7, "driver@example.com", "user", CONFIG, now=issued)
        with self.assertRaises(TokenExpiredError):
            decode_access_token(token, CONFIG)

    def test_refresh_token_is_not_an_access_token(self) -> None:
        refresh, _ = create_refresh_token(7, CONFIG)
        with self.assertRaises(InvalidTokenError):
            decode_access_token(refresh, CONFIG)

    def test_missing_claims(self) -> None:
        token = jwt.encode({"type": "access"}, CONFIG.access_secret, algorithm="HS256")
        with self.assertRaises(InvalidTokenStructureError):
            decode_access_token(token, CONFIG)


class TestRefreshTokens(unittest.TestCase):
    def test_returns_account_id_and_store_expiry(self) -> None:
        now = datetime.now(UTC)
        token, expires_at = create_refresh_token(42, CONFIG, now=now)
        self.assertEqual(expires_at, now + timedelta(days=7))
        self.assertEqual(decode_refresh_token(token, CONFIG), 42)

    def test_tokens_issued_together_differ(self) -> None:
        now = datetime.now(UTC)
        first, _ = create_refresh_token(42, CONFIG, now=now)
        second, _ = create_refresh_token(42, CONFIG, now=now)
        self.assertNotEqual(first, second)

    def test_access_token_rejected_as_refresh(self) -> None:
        access = create_access_token(42, "driver@example.com", "user", CONFIG)
        with self.assertRaises(InvalidTokenError):
            decode_refresh_token(access, CONFIG)

    def test_wrong_type_marker_rejected(self) -> None:
        now = datetime.now(UTC)
        token = jwt.encode(
            {"sub": "42", "type": "access", "iat": now, "exp": now + timedelta(days=1)},
            CONFIG.refresh_secret,
            algorithm="HS256",
        )
        with self.assertRaises(InvalidTokenStructureError):
            decode_refresh_token(token, CONFIG)

    def test_expired_refresh_token(self) -> None:
        token, _ = create_refresh_token(42, CONFIG, now=datetime.now(UTC) - timedelta(days=8))
        with self.assertRaises(TokenExpiredError):
            decode_refresh_token(token, CONFIG)


if __name__ == "__main__":
    unittest.main()
