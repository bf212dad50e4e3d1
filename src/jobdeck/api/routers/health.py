"""
Health router: liveness and readiness probes (no authentication).
"""

from __future__ import annotations

from datetime import UTC, datetime

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from jobdeck import __version__
from jobdeck.api.deps import Controller

router = APIRouter(prefix="/health")


@router.get("/live")
async def liveness() -> dict[str, str]:
    """Liveness probe: always 200 while the process serves requests."""
    return {"status": "alive", "timestamp": datetime.now(UTC).isoformat()}


@router.get("/ready")
async def readiness(controller: Controller) -> JSONResponse:
    """Readiness probe: 503 until startup succeeded, and again after shutdown."""
    ready = controller.is_ready
    return JSONResponse(
        status_code=200 if ready else 503,
        content={
            "status": "ready" if ready else "not_ready",
            "state": controller.state.value,
            "version": __version__,
        },
    )
