"""
Tests for the token gateway: login checks, issued claims, validation.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import jwt
import pytest

from _support import TEST_SECRET
from jobdeck.core.auth import ADMIN_ROLE, AuthGateway
from jobdeck.core.errors import AuthenticationError, AuthorizationError, MissingConfigError
from jobdeck.core.settings import AuthSettings


def raw_token(**overrides) -> str:
    now = datetime.now(UTC)
    payload = {
        "sub": "admin",
        "role": ADMIN_ROLE,
        "iat": now,
        "exp": now + timedelta(minutes=5),
        "iss": "jobdeck",
        "aud": "jobdeck-users",
    }
    payload.update(overrides)
    return jwt.encode(payload, TEST_SECRET, algorithm="HS256")


class TestAuthenticate:
    def test_valid_login_issues_admin_token(self, gateway):
        issued = gateway.authenticate("admin", "s3cret")
        assert issued is not None

        claims = jwt.decode(
            issued.token, TEST_SECRET, algorithms=["HS256"], audience="jobdeck-users"
        )
        assert claims["sub"] == "admin"
        assert claims["role"] == "Admin"
        assert claims["iss"] == "jobdeck"
        assert claims["aud"] == "jobdeck-users"
        assert claims["exp"] - claims["iat"] == 3600
        assert int(issued.expires_at.timestamp()) == claims["exp"]

    def test_username_is_case_insensitive(self, gateway):
        issued = gateway.authenticate("ADMIN", "s3cret")
        assert issued is not None

    def test_subject_is_submitted_username(self, gateway):
        issued = gateway.authenticate("Admin", "s3cret")
        assert gateway.decode_token(issued.token).subject == "Admin"

    def test_password_is_case_sensitive(self, gateway):
        assert gateway.authenticate("admin", "S3CRET") is None

    @pytest.mark.parametrize("username,password", [("root", "s3cret"), ("admin", ""), ("", "")])
    def test_rejected(self, gateway, username, password):
        assert gateway.authenticate(username, password) is None

    def test_unconfigured_credentials_reject_everything(self):
        gateway = AuthGateway(AuthSettings(secret=TEST_SECRET))
        assert gateway.authenticate("", "") is None

    def test_custom_expiry(self):
        gateway = AuthGateway(
            AuthSettings(username="a", password="b", secret=TEST_SECRET, token_expiry_minutes=5)
        )
        issued = gateway.authenticate("a", "b")
        claims = gateway.decode_token(issued.token)
        assert claims.expires_at - claims.issued_at == timedelta(minutes=5)


class TestDecode:
    def test_round_trip(self, gateway):
        claims = gateway.decode_token(gateway.issue_token("admin").token)
        assert claims.subject == "admin"
        assert claims.role == ADMIN_ROLE
        assert gateway.validate_token(gateway.issue_token("admin").token)

    def test_expired(self, gateway):
        past = datetime.now(UTC) - timedelta(minutes=1)
        token = raw_token(iat=past - timedelta(hours=1), exp=past)
        with pytest.raises(AuthenticationError, match="expired"):
            gateway.decode_token(token)

    def test_wrong_signature(self, gateway):
        token = jwt.encode(
            {"sub": "admin", "role": ADMIN_ROLE, "iss": "jobdeck", "aud": "jobdeck-users"},
            "another-secret-that-is-long-enough-for-hs256-signing",
            algorithm="HS256",
        )
        with pytest.raises(AuthenticationError):
            gateway.decode_token(token)
        assert not gateway.validate_token(token)

    @pytest.mark.parametrize("claim,value", [("iss", "someone-else"), ("aud", "other-users")])
    def test_wrong_issuer_or_audience(self, gateway, claim, value):
        with pytest.raises(AuthenticationError):
            gateway.decode_token(raw_token(**{claim: value}))

    def test_missing_claim(self, gateway):
        now = datetime.now(UTC)
        token = jwt.encode(
            {"sub": "admin", "iat": now, "exp": now + timedelta(minutes=5), "iss": "jobdeck", "aud": "jobdeck-users"},
            TEST_SECRET,
            algorithm="HS256",
        )
        with pytest.raises(AuthenticationError):
            gateway.decode_token(token)

    def test_non_admin_role(self, gateway):
        with pytest.raises(AuthorizationError):
            gateway.decode_token(raw_token(role="Viewer"))

    def test_garbage(self, gateway):
        assert not gateway.validate_token("not-a-token")


class TestSecret:
    def test_required_secret_missing(self):
        with pytest.raises(MissingConfigError):
            AuthGateway(AuthSettings(username="a", password="b", require_secret=True))

    def test_generated_secret_is_per_instance(self):
        first = AuthGateway(AuthSettings(username="a", password="b"))
        second = AuthGateway(AuthSettings(username="a", password="b"))
        token = first.authenticate("a", "b").token
        assert first.validate_token(token)
        assert not second.validate_token(token)
