"""
Tests for identity token verification.

Run locally:
    python -m pytest scoutreel/tests/test_identity.py -v
"""

from __future__ import annotations

import jwt
import pytest

from scoutreel.exceptions import InvalidTokenError
from scoutreel.services.identity_service import IdentityService

from conftest import JWT_SECRET as SECRET, make_token


@pytest.fixture
def identity():
    return IdentityService(secret=SECRET, public_key="", audience="", issuer="", leeway=0)


class TestVerify:
    def test_valid_token(self, identity):
        result = identity.verify(make_token())
        assert result["account_id"] == "user-1"
        assert result["email"] == "jane@example.com"
        assert result["claims"]["sub"] == "user-1"

    def test_subject_fallbacks(self, identity):
        token = make_token({"sub": None, "user_id": "legacy-7"})
        assert identity.verify(token)["account_id"] == "legacy-7"

    def test_missing_subject(self, identity):
        with pytest.raises(InvalidTokenError):
            identity.verify(make_token({"sub": None}))

    def test_expired(self, identity):
        with pytest.raises(InvalidTokenError) as exc_info:
            identity.verify(make_token(expires_in=-60))
        assert "expired" in exc_info.value.message

    def test_wrong_signature(self, identity):
        with pytest.raises(InvalidTokenError):
            identity.verify(make_token(secret="another-secret-that-is-32-bytes-long!!"))

    def test_missing_exp_rejected(self, identity):
        token = jwt.encode({"sub": "user-1"}, SECRET, algorithm="HS256")
        with pytest.raises(InvalidTokenError):
            identity.verify(token)

    @pytest.mark.parametrize("token", [None, "", "not-a-jwt"])
    def test_garbage(self, identity, token):
        with pytest.raises(InvalidTokenError):
            identity.verify(token)

    def test_not_configured(self):
        service = IdentityService(secret="", public_key="", audience="", issuer="")
        with pytest.raises(InvalidTokenError):
            service.verify(make_token())

    def test_audience_checked_when_configured(self):
        service = IdentityService(secret=SECRET, public_key="", audience="scoutreel", issuer="", leeway=0)
        assert service.verify(make_token({"aud": "scoutreel"}))["account_id"] == "user-1"
        with pytest.raises(InvalidTokenError):
            service.verify(make_token({"aud": "someone-else"}))
