"""
Tests for app.core.security: JWT tokens, password hashing, the token
blocklist, login throttling and audit rows.

Redis-dependent helpers are exercised through the ``fake_redis`` mock.
"""
import time
from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from jose import jwt
from sqlalchemy.exc import OperationalError
from sqlmodel import select

from app.core.config import settings
from app.core.exceptions import TwoFactorTokenInvalidException
from app.core.security import (
    create_access_token,
    create_log,
    create_two_factor_token,
    decode_two_factor_token,
    get_password_hash,
    is_login_blocked,
    is_token_revoked,
    register_failed_login,
    register_two_factor_resend,
    reset_failed_logins,
    revoke_token,
    revoke_token_payload,
    verify_password,
)
from app.models.operation_log import OperationLog


def _decode(token):
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])


# ---------------------------------------------------------------------------
# Token creation
# ---------------------------------------------------------------------------

class TestCreateAccessToken:

    def test_token_contains_required_claims(self):
        payload = _decode(create_access_token(subject=7))

        assert payload["sub"] == "7"
        assert "exp" in payload
        assert "jti" in payload
        assert "iat" in payload

    def test_custom_expiry(self):
        payload = _decode(create_access_token(subject=1, expires_delta=timedelta(minutes=5)))

        now = time.time()
        assert payload["exp"] - now < 310
        assert payload["exp"] - now > 250

    def test_default_expiry_uses_settings(self):
        payload = _decode(create_access_token(subject=1))

        expected_seconds = settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60
        assert abs(payload["exp"] - time.time() - expected_seconds) < 10

    def test_each_token_has_unique_jti(self):
        p1 = _decode(create_access_token(subject=1))
        p2 = _decode(create_access_token(subject=1))
        assert p1["jti"] != p2["jti"]

    def test_expiry_is_timezone_independent(self):
        payload = _decode(create_access_token(subject=1, expires_delta=timedelta(hours=1)))
        assert abs(payload["exp"] - time.time() - 3600) < 10


# ---------------------------------------------------------------------------
# Pending 2FA tokens
# ---------------------------------------------------------------------------

class TestTwoFactorToken:

    def test_roundtrip(self):
        payload = decode_two_factor_token(create_two_factor_token("a@b.com"))

        assert payload["sub"] == "a@b.com"
        assert payload["purpose"] == "2fa_pending"
        assert payload["jti"]

    def test_short_lived(self):
        payload = _decode(create_two_factor_token("a@b.com"))

        expected_seconds = settings.TWO_FACTOR_PENDING_TOKEN_MINUTES * 60
        assert abs(payload["exp"] - time.time() - expected_seconds) < 10

    def test_missing_token(self):
        with pytest.raises(TwoFactorTokenInvalidException):
            decode_two_factor_token(None)
        with pytest.raises(TwoFactorTokenInvalidException):
            decode_two_factor_token("")

    def test_garbage_token(self):
        with pytest.raises(TwoFactorTokenInvalidException):
            decode_two_factor_token("not.a.jwt")

    def test_access_token_rejected(self):
        with pytest.raises(TwoFactorTokenInvalidException) as exc_info:
            decode_two_factor_token(create_access_token(subject=1))
        assert exc_info.value.status_code == 401

    def test_revoked_token_rejected(self, fake_redis):
        token = create_two_factor_token("a@b.com")
        fake_redis.exists.return_value = 1

        with pytest.raises(TwoFactorTokenInvalidException):
            decode_two_factor_token(token)

    def test_revoke_payload_until_expiry(self, fake_redis):
        payload = _decode(create_two_factor_token("a@b.com"))

        revoke_token_payload(payload)

        key, ttl, _ = fake_redis.setex.call_args[0]
        assert key == f"revoked_token:{payload['jti']}"
        assert 0 < ttl <= settings.TWO_FACTOR_PENDING_TOKEN_MINUTES * 60

    def test_revoke_payload_without_jti_is_noop(self, fake_redis):
        revoke_token_payload({"sub": "1"})
        fake_redis.setex.assert_not_called()


# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------

class TestPasswordHashing:

    def test_hash_and_verify_roundtrip(self):
        hashed = get_password_hash("my-secure-p@ssw0rd!")
        assert verify_password("my-secure-p@ssw0rd!", hashed) is True
        assert verify_password("wrong-password", hashed) is False

    def test_hash_is_salted_bcrypt(self):
        h1 = get_password_hash("password")
        h2 = get_password_hash("password")
        assert h1.startswith("$2b$")
        assert h1 != h2


# ---------------------------------------------------------------------------
# Token revocation
# ---------------------------------------------------------------------------

class TestTokenRevocation:

    def test_revoke_token_sets_key_with_ttl(self, fake_redis):
        revoke_token("test-jti-123", ttl=3600)
        fake_redis.setex.assert_called_once_with("revoked_token:test-jti-123", 3600, "1")

    def test_is_token_revoked(self, fake_redis):
        fake_redis.exists.return_value = 1
        assert is_token_revoked("revoked-jti") is True

        fake_redis.exists.return_value = 0
        assert is_token_revoked("valid-jti") is False


# ---------------------------------------------------------------------------
# Login throttling
# ---------------------------------------------------------------------------

class TestLoginThrottling:

    def test_not_blocked_without_failures(self, fake_redis):
        fake_redis.get.return_value = None
        assert is_login_blocked("10.0.0.1") is False

    def test_blocked_past_threshold(self, fake_redis):
        fake_redis.get.return_value = str(settings.LOGIN_MAX_FAILED_ATTEMPTS)
        assert is_login_blocked("10.0.0.1") is False

        fake_redis.get.return_value = str(settings.LOGIN_MAX_FAILED_ATTEMPTS + 1)
        assert is_login_blocked("10.0.0.1") is True
        fake_redis.get.assert_called_with("login_attempts:10.0.0.1")

    def test_register_failure_counts_and_expires(self, fake_redis):
        register_failed_login("10.0.0.1")
        fake_redis.incr.assert_called_once_with("login_attempts:10.0.0.1")
        fake_redis.expire.assert_called_once_with("login_attempts:10.0.0.1", settings.LOGIN_BLOCK_SECONDS)

    def test_reset(self, fake_redis):
        reset_failed_logins("10.0.0.1")
        fake_redis.delete.assert_called_once_with("login_attempts:10.0.0.1")


class TestTwoFactorResendThrottling:

    def test_first_resend_opens_window(self, fake_redis):
        fake_redis.incr.return_value = 1

        assert register_two_factor_resend("a@b.com") is True
        fake_redis.incr.assert_called_once_with("2fa_resends:a@b.com")
        fake_redis.expire.assert_called_once_with("2fa_resends:a@b.com", settings.TWO_FACTOR_RESEND_WINDOW_SECONDS)

    def test_later_resends_keep_window(self, fake_redis):
        fake_redis.incr.return_value = 2

        assert register_two_factor_resend("a@b.com") is True
        fake_redis.expire.assert_not_called()

    def test_limit(self, fake_redis):
        fake_redis.incr.return_value = settings.TWO_FACTOR_MAX_RESENDS
        assert register_two_factor_resend("a@b.com") is True

        fake_redis.incr.return_value = settings.TWO_FACTOR_MAX_RESENDS + 1
        assert register_two_factor_resend("a@b.com") is False


# ---------------------------------------------------------------------------
# Audit log
# ---------------------------------------------------------------------------

class TestCreateLog:

    def test_writes_row(self, session):
        create_log(session, "login", "a@b.com", "Login successful", "10.0.0.1")

        row = session.exec(select(OperationLog)).one()
        assert row.action == "login"
        assert row.username == "a@b.com"
        assert row.status == "success"
        assert row.ip_address == "10.0.0.1"

    def test_failure_is_swallowed(self):
        broken = MagicMock()
        broken.commit.side_effect = OperationalError("INSERT", {}, Exception("db is down"))

        create_log(broken, "login", "a@b.com")

        broken.rollback.assert_called_once()
