"""Request-ID middleware: injects ``X-Request-ID`` on every request.

Manifesto:
    Every request gets a unique ID so logs and error responses can be
    correlated.  The ID is the ``traceId`` of error responses and is bound
    into the structlog context for the duration of the request.

Tags:
    jobdeck, api, middleware, request-id, tracing, correlation

Doc-Types:
    api-reference
"""

from __future__ import annotations

import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from jobdeck.core.logging import bind_context, unbind_context

REQUEST_ID_HEADER = "X-Request-ID"


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Attach a unique request ID to every request/response cycle."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id
        bind_context(request_id=request_id)
        try:
            response = await call_next(request)
        finally:
            unbind_context("request_id")
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
