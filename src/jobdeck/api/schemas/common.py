"""
Common API schemas: camelCase base model, action and error envelopes.

Every JSON body uses camelCase field names; models are declared with
snake_case attributes and aliased through :class:`CamelModel`.

Response Envelope Conventions:
    - Mutating endpoints return :class:`ActionResponse` ``{success, message}``
    - All 4xx/5xx responses use :class:`ErrorResponse`
      ``{statusCode, message, detailedMessage, traceId}``

Doc-Types: API_REFERENCE
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serialized with camelCase aliases, populated by either name."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ActionResponse(CamelModel):
    """Outcome of a state-changing operation.

    ``success`` is False for idempotent no-ops (e.g. starting a running
    scheduler); failures are reported as :class:`ErrorResponse` instead.
    """

    success: bool = Field(description="Whether the operation changed anything")
    message: str = Field(description="Human-readable outcome")


class ErrorResponse(CamelModel):
    """Canonical error envelope for all non-2xx responses.

    UI Hints:
        Display ``message`` to the user; ``detailedMessage`` is for
        diagnostics and may leak internals.  Quote ``traceId`` when
        reporting a problem.
    """

    status_code: int = Field(description="HTTP status code")
    message: str = Field(description="Generic, user-safe message")
    detailed_message: str | None = Field(default=None, description="Original exception text")
    trace_id: str | None = Field(default=None, description="Request correlation id (X-Request-ID)")
