"""Login request and token response schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from jobdeck.api.schemas.common import CamelModel


class LoginRequest(CamelModel):
    username: str = Field(description="Dashboard username (case-insensitive)")
    password: str = Field(description="Dashboard password")


class TokenResponse(CamelModel):
    """Bearer token to send as ``Authorization: Bearer <token>``."""

    token: str
    expires_at: datetime = Field(description="UTC expiry of the token")
