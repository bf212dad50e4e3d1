"""
Auth router: exchange the configured credentials for a bearer token.
"""

from __future__ import annotations

from fastapi import APIRouter

from jobdeck.api.deps import Gateway
from jobdeck.api.schemas import LoginRequest, TokenResponse
from jobdeck.core.errors import AuthenticationError

router = APIRouter(prefix="/auth")


@router.post("/login", response_model=TokenResponse)
async def login(body: LoginRequest, gateway: Gateway) -> TokenResponse:
    """Issue a token for valid credentials, 401 otherwise.

    Example::

        POST /api/auth/login
        {"username": "admin", "password": "s3cret"}
        → {"token": "eyJhbGciOi...", "expiresAt": "2026-01-01T13:00:00Z"}
    """
    issued = gateway.authenticate(body.username, body.password)
    if issued is None:
        raise AuthenticationError("Invalid username or password")
    return TokenResponse(token=issued.token, expires_at=issued.expires_at)
