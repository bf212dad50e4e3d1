"""Pydantic request/response schemas for the jobdeck API."""

from jobdeck.api.schemas.auth import LoginRequest, TokenResponse
from jobdeck.api.schemas.common import ActionResponse, CamelModel, ErrorResponse
from jobdeck.api.schemas.scheduling import (
    ExecutionHistorySchema,
    ExecutionRecordSchema,
    JobSchema,
    SchedulerStatusSchema,
    ShutdownRequest,
    TriggerSchema,
)

__all__ = [
    "ActionResponse",
    "CamelModel",
    "ErrorResponse",
    "ExecutionHistorySchema",
    "ExecutionRecordSchema",
    "JobSchema",
    "LoginRequest",
    "SchedulerStatusSchema",
    "ShutdownRequest",
    "TokenResponse",
    "TriggerSchema",
]
