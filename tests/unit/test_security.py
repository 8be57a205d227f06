"""Tests for password hashing, bearer tokens and the auth gate."""

from datetime import timedelta

import pytest

from licensary.common.config import LicensarySettings
from licensary.common.exceptions import UnauthorizedError
from licensary.common.security import (
    authenticate,
    create_access_token,
    decode_access_token,
    hash_password,
    verify_password,
)


def make_settings(**overrides) -> LicensarySettings:
    defaults = {
        "secret_key": "test-secret-key-for-unit-tests",
        "db_url": "sqlite+aiosqlite://",
    }
    defaults.update(overrides)
    return LicensarySettings(**defaults)


class TestPasswords:
    def test_roundtrip(self):
        hashed = hash_password("hunter22")
        assert hashed != "hunter22"
        assert verify_password("hunter22", hashed)
        assert not verify_password("hunter23", hashed)

    def test_salted(self):
        assert hash_password("same") != hash_password("same")

    def test_malformed_hash(self):
        assert verify_password("x", "not-a-bcrypt-hash") is False


class TestTokens:
    def test_decode_returns_subject(self):
        settings = make_settings()
        token = create_access_token(42, settings)
        assert decode_access_token(token, settings) == 42

    def test_expired(self):
        settings = make_settings()
        token = create_access_token(1, settings, expires_delta=timedelta(seconds=-5))
        with pytest.raises(UnauthorizedError, match="expired"):
            decode_access_token(token, settings)

    def test_wrong_secret(self):
        token = create_access_token(1, make_settings())
        with pytest.raises(UnauthorizedError):
            decode_access_token(token, make_settings(secret_key="other-secret-key"))

    def test_garbage(self):
        with pytest.raises(UnauthorizedError):
            decode_access_token("abc.def.ghi", make_settings())


class TestAuthenticate:
    def test_missing_header(self):
        with pytest.raises(UnauthorizedError, match="not provided"):
            authenticate(None, make_settings())

    @pytest.mark.parametrize("header", ["Token abc", "Bearer", "bearer abc", "Bearer a b"])
    def test_bad_scheme(self, header):
        with pytest.raises(UnauthorizedError, match="scheme"):
            authenticate(header, make_settings())

    def test_valid(self):
        settings = make_settings()
        identity = authenticate(f"Bearer {create_access_token(9, settings)}", settings)
        assert identity.user_id == 9
        assert identity.role == "user"
        assert not identity.is_admin
