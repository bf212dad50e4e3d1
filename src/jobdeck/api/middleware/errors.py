"""
Error-translation middleware: maps exceptions to ``ErrorResponse`` bodies.

Every exception that escapes a route or dependency ends up here and is
turned into ``{statusCode, message, detailedMessage, traceId}``:

    =====================================  ======  =============================
    exception                              status  message
    =====================================  ======  =============================
    AuthError (and subclasses)             401     Authentication required.
    ValidationError, RequestValidation-    400     Invalid request data.
    Error
    anything else                          500     An unexpected error occurred.
    =====================================  ======  =============================

``detailedMessage`` carries ``str(exc)``; it never replaces ``message``.
"""

from __future__ import annotations

import uuid

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from jobdeck.api.schemas.common import ErrorResponse
from jobdeck.core.errors import ErrorCategory, categorize_error
from jobdeck.core.logging import get_logger

logger = get_logger(__name__)

# ── Error category → HTTP status mapping ─────────────────────────────────

CATEGORY_TO_STATUS: dict[ErrorCategory, int] = {
    ErrorCategory.AUTH: 401,
    ErrorCategory.VALIDATION: 400,
    ErrorCategory.CONFIG: 500,
    ErrorCategory.ENGINE: 500,
    ErrorCategory.STARTUP: 500,
    ErrorCategory.CANCELLED: 500,
    ErrorCategory.INTERNAL: 500,
}

STATUS_MESSAGES: dict[int, str] = {
    400: "Invalid request data.",
    401: "Authentication required.",
    500: "An unexpected error occurred.",
}


def status_for_exception(exc: BaseException) -> int:
    """Resolve an exception to an HTTP status, defaulting to 500."""
    if isinstance(exc, RequestValidationError):
        return 400
    return CATEGORY_TO_STATUS.get(categorize_error(exc), 500)


def _detail(exc: BaseException) -> str:
    if isinstance(exc, RequestValidationError):
        return "; ".join(
            f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg', '')}"
            for err in exc.errors()
        )
    return str(exc)


def trace_id_for(request: Request) -> str:
    return getattr(request.state, "request_id", None) or uuid.uuid4().hex


def translate_exception(exc: BaseException, trace_id: str | None) -> JSONResponse:
    """Build the JSON error response for *exc*."""
    status = status_for_exception(exc)
    body = ErrorResponse(
        status_code=status,
        message=STATUS_MESSAGES[status],
        detailed_message=_detail(exc),
        trace_id=trace_id,
    )
    return JSONResponse(status_code=status, content=body.model_dump(by_alias=True))


def _log(exc: BaseException, request: Request, status: int, trace_id: str) -> None:
    fields = {
        "trace_id": trace_id,
        "method": request.method,
        "path": request.url.path,
        "status": status,
        "error_type": type(exc).__name__,
        "error": str(exc),
    }
    if status >= 500:
        logger.error("request_failed", exc_info=exc, **fields)
    else:
        logger.warning("request_rejected", **fields)


class ErrorTranslatorMiddleware(BaseHTTPMiddleware):
    """Catch everything the app raises and answer with an ErrorResponse."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:
            trace_id = trace_id_for(request)
            _log(exc, request, status_for_exception(exc), trace_id)
            return translate_exception(exc, trace_id)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed path/query/body input → 400 instead of FastAPI's 422."""
    trace_id = trace_id_for(request)
    _log(exc, request, 400, trace_id)
    return translate_exception(exc, trace_id)
