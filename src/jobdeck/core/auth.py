"""Bearer token authentication.

Manifesto:
    The dashboard has exactly one operator identity.  The gateway checks a
    login against it and hands out a short-lived signed token; every other
    request proves itself with that token.  Tokens are stateless JWTs
    (HS256), so validation needs nothing but the signing secret.

Architecture:
    ::

        POST /auth/login ──► AuthGateway.authenticate(username, password)
                                 │  username: case-insensitive
                                 │  password: case-sensitive, constant time
                                 ▼
                             IssuedToken(token, expires_at)

        Authorization: Bearer <token> ──► AuthGateway.decode_token(token)
                                 │  signature, iss, aud, exp (no leeway)
                                 ▼
                             TokenClaims | AuthenticationError

    Without a configured secret a random one is generated per gateway
    instance.  Tokens then die with the process and cannot be shared
    between instances; ``auth.require_secret`` turns that case into a
    startup error instead.

Tags:
    auth, jwt, pyjwt, bearer-token, jobdeck

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import hmac
import secrets
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import jwt

from jobdeck.core.errors import AuthenticationError, AuthorizationError, MissingConfigError
from jobdeck.core.logging import get_logger
from jobdeck.core.settings import AuthSettings

logger = get_logger(__name__)

ADMIN_ROLE = "Admin"
ALGORITHM = "HS256"
REQUIRED_CLAIMS = ["sub", "role", "iat", "exp", "iss", "aud"]


@dataclass(frozen=True)
class IssuedToken:
    """A freshly signed token and the moment it stops being valid."""

    token: str
    expires_at: datetime


@dataclass(frozen=True)
class TokenClaims:
    """Verified contents of a bearer token."""

    subject: str
    role: str
    issued_at: datetime
    expires_at: datetime
    issuer: str
    audience: str


class AuthGateway:
    """Issues and validates tokens for the single configured identity."""

    def __init__(self, settings: AuthSettings) -> None:
        self._settings = settings
        if settings.secret:
            self._secret = settings.secret
        elif settings.require_secret:
            raise MissingConfigError(
                "auth.secret",
                "auth.secret is required when auth.require_secret is enabled",
            )
        else:
            self._secret = secrets.token_urlsafe(64)
            logger.warning(
                "auth_secret_generated",
                detail="auth.secret is not set; tokens will not survive a restart "
                "and are not valid on other instances",
            )

    @property
    def token_expiry(self) -> timedelta:
        return timedelta(minutes=self._settings.token_expiry_minutes)

    def authenticate(self, username: str, password: str) -> IssuedToken | None:
        """Check a login.  Returns ``None`` (and logs) on any mismatch."""
        expected_user = self._settings.username
        expected_password = self._settings.password
        if not expected_user or not expected_password:
            logger.warning("login_rejected", reason="credentials_not_configured")
            return None

        user_matches = (username or "").casefold() == expected_user.casefold()
        password_matches = hmac.compare_digest(
            (password or "").encode("utf-8"), expected_password.encode("utf-8")
        )
        if not (user_matches and password_matches):
            logger.warning("login_rejected", reason="invalid_credentials", username=username)
            return None

        issued = self.issue_token(username)
        logger.info("login_succeeded", username=username, expires_at=issued.expires_at.isoformat())
        return issued

    def issue_token(self, subject: str) -> IssuedToken:
        now = datetime.now(UTC).replace(microsecond=0)
        expires_at = now + self.token_expiry
        payload = {
            "sub": subject,
            "role": ADMIN_ROLE,
            "iat": now,
            "exp": expires_at,
            "iss": self._settings.issuer,
            "aud": self._settings.audience,
        }
        token = jwt.encode(payload, self._secret, algorithm=ALGORITHM)
        return IssuedToken(token=token, expires_at=expires_at)

    def decode_token(self, token: str) -> TokenClaims:
        """Verify *token* and return its claims.

        Raises:
            AuthenticationError: bad signature, issuer, audience or expiry.
            AuthorizationError: the token does not carry the admin role.
        """
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[ALGORITHM],
                audience=self._settings.audience,
                issuer=self._settings.issuer,
                leeway=0,
                options={"require": REQUIRED_CLAIMS},
            )
        except jwt.ExpiredSignatureError as e:
            raise AuthenticationError("Token has expired", cause=e) from e
        except jwt.InvalidTokenError as e:
            raise AuthenticationError(f"Invalid token: {e}", cause=e) from e

        if payload["role"] != ADMIN_ROLE:
            raise AuthorizationError(f"Role {payload['role']!r} may not use the dashboard")

        return TokenClaims(
            subject=payload["sub"],
            role=payload["role"],
            issued_at=datetime.fromtimestamp(payload["iat"], UTC),
            expires_at=datetime.fromtimestamp(payload["exp"], UTC),
            issuer=payload["iss"],
            audience=payload["aud"],
        )

    def validate_token(self, token: str) -> bool:
        try:
            self.decode_token(token)
        except (AuthenticationError, AuthorizationError):
            return False
        return True
