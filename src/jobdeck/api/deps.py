"""
FastAPI dependency injection: shared components and the bearer-token gate.

Usage in routers::

    from jobdeck.api.deps import Controller, require_token

    router = APIRouter(prefix="/jobs", dependencies=[Depends(require_token)])

    @router.get("")
    async def list_jobs(controller: Controller):
        ...

Manifesto:
    Dependency injection keeps routers thin.  The controller and the auth
    gateway are created once by the app factory and stored on
    ``app.state``; dependencies only look them up.

Tags:
    jobdeck, api, dependency-injection, bearer-token

Doc-Types:
    api-reference
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from jobdeck.core.auth import AuthGateway, TokenClaims
from jobdeck.core.errors import AuthenticationError
from jobdeck.core.scheduling import SchedulerController

bearer_scheme = HTTPBearer(auto_error=False)


# ── Components (singletons on app.state) ─────────────────────────────────


def get_controller(request: Request) -> SchedulerController:
    return request.app.state.controller


def get_gateway(request: Request) -> AuthGateway:
    return request.app.state.gateway


# ── Authentication ───────────────────────────────────────────────────────


def require_token(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    gateway: Annotated[AuthGateway, Depends(get_gateway)],
) -> TokenClaims:
    """Verify the ``Authorization: Bearer`` token of the current request.

    Raises:
        AuthenticationError: no bearer token, or the token does not verify.
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Missing bearer token")
    return gateway.decode_token(credentials.credentials)


# ── Type aliases for cleaner router signatures ───────────────────────────

Controller = Annotated[SchedulerController, Depends(get_controller)]
Gateway = Annotated[AuthGateway, Depends(get_gateway)]
