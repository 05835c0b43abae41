"""Unit tests for Supabase access token verification."""

from datetime import datetime, timedelta, timezone

import pytest
from fakes import make_token
from jose import JWTError, jwt

from promptvault.auth.jwt import decode_token, user_from_payload
from promptvault.config import settings


class TestDecodeToken:
    """Test token decoding and validation."""

    def test_valid_token(self):
        payload = decode_token(make_token("user-abc"))
        assert payload["sub"] == "user-abc"
        assert payload["aud"] == "authenticated"

    def test_expired_token_raises(self):
        token = make_token("user-abc", exp=datetime.now(timezone.utc) - timedelta(seconds=1))
        with pytest.raises(JWTError):
            decode_token(token)

    def test_wrong_audience_raises(self):
        with pytest.raises(JWTError):
            decode_token(make_token("user-abc", aud="service_role"))

    def test_wrong_secret_raises(self):
        token = jwt.encode(
            {"sub": "user-abc", "aud": "authenticated"},
            "some-other-secret",
            algorithm=settings.supabase_jwt_algorithm,
        )
        with pytest.raises(JWTError):
            decode_token(token)

    def test_malformed_token_raises(self):
        with pytest.raises(JWTError):
            decode_token("not.a.jwt")


class TestUserFromPayload:
    def test_builds_user(self):
        user = user_from_payload({"sub": "u1", "email": "a@b.c"}, access_token="tok")

        assert user.id == "u1"
        assert user.email == "a@b.c"
        assert user.role == "authenticated"
        assert user.access_token == "tok"

    def test_missing_subject(self):
        assert user_from_payload({"email": "a@b.c"}) is None
